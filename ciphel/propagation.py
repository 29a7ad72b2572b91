"""
How an Error travels.

An Error is an ordinary value until something consumes it: an operator, a condition,
a call, a return, a tainted store. Each such consumption is one hop, and every hop
charges the Error's energy cost again. Making an Error, or just moving it from one
variable to another, is free.

Conditions that turn out to be Errors do not choose a branch by truth. The main
branch runs, and everything it stores becomes the same Error. That is the taint.

Inside a `try`, the first Error produced or propagated is contained: it unwinds to
the try, is discarded, and the else-scope runs instead. Python's exception machinery
does the unwinding, but nothing outside this module and the engine ever sees it.
"""
from contextlib import contextmanager
from .values import Error, is_error

DEFAULT_FAULT_COST = 2
WOULD_BLOCK_COST = 1

class Contained(Exception):
	""" Internal: carries a contained Error back to its try. Never escapes the engine. """
	def __init__(self, error: Error):
		super().__init__(error)
		self.error = error

class Journal:
	""" Undo-actions for one step, so an engine-fatal condition can put everything back. """
	def __init__(self):
		self._undo = []
	def __len__(self): return len(self._undo)
	def record(self, undo):
		self._undo.append(undo)
	def rollback(self):
		while self._undo: self._undo.pop()()

class Context:
	""" Execution state belonging to whichever thread of control is running. """
	def __init__(self):
		self.journal = None
		self.taints = []
		self.containment = 0
		self.depth = 0
		self.draining = False
		self.strand = None

def fault(message: str, energy_cost: int = DEFAULT_FAULT_COST) -> Error:
	""" The Error value a recoverable run-time fault becomes. """
	return Error(message, energy_cost)

def main_branch(arms):
	""" Which arm runs when the thing being matched is an Error: the first, in source order. """
	return arms[0] if arms else None

class ErrorPolicy:
	def __init__(self, charge):
		self._charge = charge

	def produced(self, ctx: Context, error: Error) -> Error:
		if ctx.containment: raise Contained(error)
		return error

	def hop(self, ctx: Context, error: Error) -> Error:
		assert is_error(error), error
		self._charge(error.energy_cost)
		return self.produced(ctx, error)

	def admit(self, ctx: Context, value):
		""" Every store passes through here. """
		if ctx.taints: return self.hop(ctx, ctx.taints[-1])
		if is_error(value): return self.produced(ctx, value)
		return value

	@contextmanager
	def tainted(self, ctx: Context, error: Error):
		ctx.taints.append(error)
		try: yield
		finally: ctx.taints.pop()

	@contextmanager
	def containing(self, ctx: Context):
		ctx.containment += 1
		try: yield
		finally: ctx.containment -= 1

	@contextmanager
	def suspended(self, ctx: Context):
		""" Trigger predicates are judged outside whatever try or taint happens to be running. """
		saved = ctx.containment, ctx.taints
		ctx.containment, ctx.taints = 0, []
		try: yield
		finally: ctx.containment, ctx.taints = saved
