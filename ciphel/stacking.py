"""
Activation records for the run-time, and the rules for finding things in them.

Every frame but the general one has exactly one parent, fixed at construction and held weakly:
the engine's own call-chain keeps parents alive, and a frame must never be what keeps its parent alive.
Declaring binds locally (which may shadow). Resolving walks outward. Assigning writes at the owner.
"""
import weakref
from typing import Optional
from .ontology import EngineFatal, Instruction
from .values import copy_value

class UnresolvedVariable(EngineFatal):
	def __init__(self, name): super().__init__("No variable named %r is in scope here." % name)

class UnknownInstruction(EngineFatal):
	def __init__(self, ident): super().__init__("No committed instruction has id %r." % ident)

class Frame:
	_bindings: dict
	pc: Optional[Instruction] = None
	breadcrumb = None
	is_general = False

	def parent(self) -> Optional["Frame"]: raise NotImplementedError(type(self))

	def holds(self, name: str) -> bool: return name in self._bindings
	def fetch(self, name: str): return self._bindings[name]
	def names(self): return iter(self._bindings)

	def declare(self, name: str, value):
		self._bindings[name] = value
		return value

	def forget(self, name: str):
		""" Undo a declaration. Only the journal should need this. """
		del self._bindings[name]

	def chase(self, name: str) -> "Frame":
		""" Find the frame that owns a name. """
		frame = self
		while frame is not None:
			if name in frame._bindings: return frame
			frame = frame.parent()
		raise UnresolvedVariable(name)

	def resolve(self, name: str):
		owner = self.chase(name)
		return owner, owner._bindings[name]

	def assign(self, name: str, value):
		owner = self.chase(name)
		owner._bindings[name] = value
		return owner

	def child(self, breadcrumb=None) -> "Activation":
		return Activation(self, breadcrumb)

	def exit(self, keep=None):
		"""
		Discard every binding in this frame. Heap objects that were
		only reachable from here are not freed; that takes an explicit free.
		"""
		self._bindings.clear()
		return keep

	def trace(self, tracer): raise NotImplementedError(type(self))

class GeneralFrame(Frame):
	""" The root of every chain. The only frame with a list of instructions. """
	is_general = True

	def __init__(self):
		self._bindings = {}
		self.instructions = InstructionLog()
	def parent(self): return None
	def trace(self, tracer): tracer.hit_bottom()

class Activation(Frame):
	def __init__(self, parent: Frame, breadcrumb=None):
		self._bindings = {}
		self._parent = weakref.ref(parent)
		self._general = parent if parent.is_general else parent._general
		self.breadcrumb = breadcrumb

	def parent(self):
		# A frame that outlives its parent (say, a procedure's static link after
		# the block that defined it has gone) sees only the general scope beyond itself.
		frame = self._parent()
		return self._general if frame is None else frame

	def trace(self, tracer):
		self.parent().trace(tracer)
		if self.breadcrumb is not None:
			tracer.trace_frame(self.breadcrumb, self._bindings)
		if self.pc is not None: tracer.called_from(self.pc)

def general_of(frame: Frame) -> GeneralFrame:
	return frame if frame.is_general else frame._general

def snapshot(frame: Frame, breadcrumb=None) -> Activation:
	"""
	The outer frame of a new closure: a copy of every variable visible from `frame`,
	nearest binding winning, except for those in the general scope, which stay live.
	Stack kinds are copied; heap kinds come along by handle.
	"""
	general = general_of(frame)
	outer = Activation(general, breadcrumb)
	while not frame.is_general:
		for name in frame.names():
			if not outer.holds(name):
				outer.declare(name, copy_value(frame.fetch(name)))
		frame = frame.parent()
	return outer

###############################################################################

class InstructionLog:
	"""
	The general scope's sequence of top-level instructions.
	Ids are stable and never re-used, so a cursor of "last id executed" stays meaningful
	no matter what gets committed or reverted around it.
	"""
	def __init__(self):
		self._entries = {}
		self._next_id = 1
		self.version = 0

	def __len__(self): return len(self._entries)
	def __iter__(self): return iter(self._entries.items())
	def __contains__(self, ident): return ident in self._entries

	def commit(self, instruction: Instruction) -> int:
		assert isinstance(instruction, Instruction), instruction
		ident = self._next_id
		self._next_id += 1
		self._entries[ident] = instruction
		self.version += 1
		return ident

	def revert(self, ident: int) -> Instruction:
		try: instruction = self._entries.pop(ident)
		except KeyError: raise UnknownInstruction(ident)
		self.version += 1
		return instruction

	def after(self, cursor: Optional[int]):
		""" The first entry with id greater than the cursor, as an (id, instruction) pair, or None. """
		for ident, instruction in self._entries.items():
			if cursor is None or ident > cursor:
				return ident, instruction
		return None
