"""
These most-fundamental classes in the syntax class hierarchy
are separate from the rest to avoid various circular-import
scenarios. The run-time modules all need to agree on what an
instruction is and what counts as a fatal condition, so those
live here too.
"""

class Phrase:
	""" Anything the (external) parser may hand us. """

class Instruction(Phrase):
	""" Something that may appear in a scope's instruction sequence. """

class Expression(Instruction):
	"""
	An expression may stand as an instruction in its own right.
	Its value is then discarded, although any Error it produces still counts.
	"""

class Pattern(Phrase):
	""" The left-hand side of a destructuring declaration or a match arm. """

#######################################################################

class EngineFatal(Exception):
	"""
	Conditions that no Ciphel program can recover from:
	They abort the current top-level instruction (with its effects undone)
	and go straight to the host. They are never turned into Error values.
	"""
