"""
The set of instruction nodes in simple form.
The parser (which lives elsewhere) calls these constructors bottom-up;
the run-time only ever reads them. Nothing here knows about energy,
scopes, or values beyond the literal payloads a node carries.
"""
from typing import Any, Optional, Sequence, NamedTuple
from .ontology import Instruction, Expression, Pattern

###############################################################################
# Expressions

class Literal(Expression):
	""" Number, float, char, bool, static string or unit: the stack-kind scalars. """
	def __init__(self, value: Any): self.value = value
	def __repr__(self): return "<Literal %r>" % (self.value,)

class ErrorLiteral(Expression):
	def __init__(self, message: str, energy_cost: int):
		assert isinstance(energy_cost, int) and energy_cost >= 0, energy_cost
		self.message, self.energy_cost = message, energy_cost
	def __repr__(self): return "<Error %r %d>" % (self.message, self.energy_cost)

class Lookup(Expression):
	def __init__(self, name: str): self.name = name
	def __repr__(self): return "<Lookup %s>" % self.name

class Group(Expression):
	""" Parentheses survive parsing only so that they cost what their inside costs. """
	def __init__(self, inner: Expression): self.inner = inner

class BinExp(Expression):
	def __init__(self, lhs: Expression, op: str, rhs: Expression):
		self.lhs, self.op, self.rhs = lhs, op, rhs
	def __repr__(self): return "<BinExp %r %s %r>" % (self.lhs, self.op, self.rhs)

class UnaryExp(Expression):
	def __init__(self, op: str, arg: Expression):
		self.op, self.arg = op, arg

class AddressOf(Expression):
	""" &name """
	def __init__(self, name: str): self.name = name

class Deref(Expression):
	""" *expr """
	def __init__(self, pointer: Expression): self.pointer = pointer

class FieldReference(Expression):
	def __init__(self, lhs: Expression, field_name: str):
		self.lhs, self.field_name = lhs, field_name

class IndexReference(Expression):
	def __init__(self, lhs: Expression, index: Expression):
		self.lhs, self.index = lhs, index

class TupleLiteral(Expression):
	def __init__(self, items: Sequence[Expression]): self.items = tuple(items)

class SliceLiteral(Expression):
	def __init__(self, items: Sequence[Expression]): self.items = tuple(items)

class StructLiteral(Expression):
	def __init__(self, type_name: str, fields: Sequence[tuple[str, Expression]]):
		self.type_name = type_name
		self.fields = tuple(fields)

class VectorLiteral(Expression):
	def __init__(self, items: Sequence[Expression], capacity: Optional[int] = None):
		self.items = tuple(items)
		self.capacity = capacity

class MapLiteral(Expression):
	def __init__(self, pairs: Sequence[tuple[Expression, Expression]], capacity: Optional[int] = None):
		self.pairs = tuple(pairs)
		self.capacity = capacity

class RangeLiteral(Expression):
	def __init__(self, start: Expression, stop: Expression, step: Optional[Expression] = None):
		self.start, self.stop, self.step = start, stop, step

class Param(NamedTuple):
	name: str
	type_name: Optional[str] = None

	def is_heap(self):
		return self.type_name in HEAP_TYPE_NAMES

HEAP_TYPE_NAMES = {"vec", "map", "closure", "chan"}

class LambdaForm(Expression):
	""" An anonymous function; evaluating one allocates a closure on the heap. """
	def __init__(self, params: Sequence[Param], body: "Block"):
		self.params = tuple(params)
		self.body = body

class Call(Expression):
	def __init__(self, fn_exp: Expression, args: Sequence[Expression]):
		self.fn_exp = fn_exp
		self.args = tuple(args)
	def __repr__(self): return "<Call %r %r>" % (self.fn_exp, self.args)

class IfExpr(Expression):
	def __init__(self, condition: Expression, then_part: Expression, else_part: Expression):
		self.condition, self.then_part, self.else_part = condition, then_part, else_part

class MatchExpr(Expression):
	def __init__(self, subject: Expression, arms: Sequence["Arm"], otherwise: Optional[Expression] = None):
		self.subject = subject
		self.arms = tuple(arms)
		self.otherwise = otherwise

class TryExpr(Expression):
	def __init__(self, main: Expression, otherwise: Optional[Expression] = None):
		self.main, self.otherwise = main, otherwise

###############################################################################
# Patterns

class TuplePattern(Pattern):
	def __init__(self, names: Sequence[str]): self.names = tuple(names)

class StructPattern(Pattern):
	def __init__(self, type_name: str, names: Sequence[str]):
		self.type_name = type_name
		self.names = tuple(names)

class ValuePattern(Pattern):
	""" Matches when the subject equals the (literal) value. """
	def __init__(self, value: Any): self.value = value

class Arm(NamedTuple):
	pattern: Pattern
	body: Any  # A Block in a statement; an Expression in a match-expression.

###############################################################################
# Statements

class Block(Instruction):
	""" Creates a scope. The same node serves as a loop's, function's, or event's attached scope. """
	def __init__(self, instructions: Sequence[Instruction]): self.instructions = tuple(instructions)
	def __repr__(self): return "<Block of %d>" % len(self.instructions)

class Declaration(Instruction):
	def __init__(self, target, value: Expression, type_name: Optional[str] = None):
		# The target is a plain name, or else a TuplePattern or StructPattern.
		assert isinstance(target, (str, TuplePattern, StructPattern)), target
		self.target, self.value, self.type_name = target, value, type_name
	def is_pattern(self): return not isinstance(self.target, str)
	def __repr__(self): return "<let %s = %r>" % (self.target, self.value)

class Assignment(Instruction):
	def __init__(self, target: Expression, value: Expression):
		assert isinstance(target, (Lookup, FieldReference, IndexReference, Deref)), target
		self.target, self.value = target, value
	def is_simple(self): return isinstance(self.target, Lookup)
	def __repr__(self): return "<assign %r = %r>" % (self.target, self.value)

class ForLoop(Instruction):
	def __init__(self, name: str, iterable: Expression, body: Block):
		self.name, self.iterable, self.body = name, iterable, body

class WhileLoop(Instruction):
	def __init__(self, condition: Expression, body: Block):
		self.condition, self.body = condition, body

class Loop(Instruction):
	def __init__(self, body: Block): self.body = body

class Break(Instruction): pass
class Continue(Instruction): pass

class Return(Instruction):
	def __init__(self, value: Optional[Expression] = None): self.value = value

class FunctionDef(Instruction):
	def __init__(self, name: str, params: Sequence[Param], body: Block):
		self.name = name
		self.params = tuple(params)
		self.body = body
	def __repr__(self): return "<fn %s/%d>" % (self.name, len(self.params))

class ObservableSpec(NamedTuple):
	"""
	One line of an event's "on" clause. A subject of None subscribes broadly.
	Threshold kinds carry a comparator and a level instead of a subject.
	"""
	kind: str
	subject: Optional[Expression] = None
	comparator: Optional[str] = None
	level: Optional[Expression] = None

class EventDef(Instruction):
	def __init__(self, name: str, observables: Sequence[ObservableSpec], trigger: Optional[Expression], body: Block):
		self.name = name
		self.observables = tuple(observables)
		self.trigger = trigger
		self.body = body
	def __repr__(self): return "<event %s>" % self.name

class IfStmt(Instruction):
	def __init__(self, condition: Expression, then_part: Block, else_part: Optional[Block] = None):
		self.condition, self.then_part, self.else_part = condition, then_part, else_part

class MatchStmt(Instruction):
	def __init__(self, subject: Expression, arms: Sequence[Arm], otherwise: Optional[Block] = None):
		self.subject = subject
		self.arms = tuple(arms)
		self.otherwise = otherwise

class TryStmt(Instruction):
	def __init__(self, main: Block, otherwise: Optional[Block] = None):
		self.main, self.otherwise = main, otherwise

class Free(Instruction):
	def __init__(self, name: str): self.name = name
