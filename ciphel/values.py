"""
This module defines the specialized value-types that the run-time operates in terms of.
Basic primitive values play themselves: numbers are int, floats are float, booleans are bool,
and static strings are str. Special things like characters, slices, addresses, heap handles,
and Errors need a bit more help.

Stack kinds are copied whenever they are stored. Heap kinds are carried
as a Handle, so storing one shares the underlying object.
"""
from typing import NamedTuple, Sequence
from . import syntax
from .casm import weight, PLATFORM_CALL_WEIGHT

class Char(str):
	def __new__(cls, text):
		assert len(text) == 1, text
		return super().__new__(cls, text)
	def __repr__(self): return "'%s'" % str(self)

class Slice(tuple):
	""" A fixed-size array living on the stack. """
	def __repr__(self): return "[%s]" % ", ".join(map(repr, self))

class _Unit:
	def __repr__(self): return "unit"
	def __bool__(self): return False

UNIT = _Unit()

class Address(NamedTuple):
	""" The address of a variable: which frame owns it, and under what name. """
	frame: object
	name: str
	def __repr__(self): return "&%s" % self.name

class Handle(NamedTuple):
	"""
	A stable reference to a heap object. The object's backing address may move
	when it grows, but the handle does not, so handles are fit to be map keys.
	"""
	ident: int
	kind: str
	def __repr__(self): return "<%s @%d>" % (self.kind, self.ident)

class Error(NamedTuple):
	""" A fully-fledged value which corrupts whatever consumes it. """
	message: str
	energy_cost: int
	def __repr__(self): return "Error(%r, %d)" % (self.message, self.energy_cost)

class Struct:
	def __init__(self, type_name: str, fields: dict):
		self.type_name = type_name
		self.fields = fields
	def copy(self):
		return Struct(self.type_name, {k: copy_value(v) for k, v in self.fields.items()})
	def __eq__(self, other):
		return isinstance(other, Struct) and self.type_name == other.type_name and self.fields == other.fields
	def __repr__(self):
		return "%s{%s}" % (self.type_name, ", ".join("%s: %r" % pair for pair in self.fields.items()))

def kind_of(value) -> str:
	# Order matters: bool before int, Char before str, and the named tuples before tuple.
	if isinstance(value, bool): return "bool"
	if isinstance(value, int): return "number"
	if isinstance(value, float): return "float"
	if isinstance(value, Char): return "char"
	if isinstance(value, str): return "string"
	if value is UNIT: return "unit"
	if isinstance(value, Handle): return value.kind
	if isinstance(value, Error): return "error"
	if isinstance(value, Address): return "address"
	if isinstance(value, Slice): return "slice"
	if isinstance(value, tuple): return "tuple"
	if isinstance(value, Struct): return "struct"
	if isinstance(value, range): return "range"
	if isinstance(value, Function): return "function"
	raise TypeError(type(value))

def is_error(value) -> bool: return isinstance(value, Error)

def copy_value(value):
	""" The copy made when a stack-kind value is stored somewhere new. """
	if isinstance(value, Struct): return value.copy()
	if isinstance(value, Slice): return Slice(copy_value(v) for v in value)
	if type(value) is tuple: return tuple(copy_value(v) for v in value)
	return value

def as_text(value) -> str:
	if isinstance(value, str): return str(value)
	if isinstance(value, bool): return "true" if value else "false"
	return repr(value)

###############################################################################

class Function:
	""" A run-time object that can be applied with arguments. """
	def call_weight(self, arg_weight: int) -> int:
		raise NotImplementedError(type(self))
	def apply(self, engine, args: Sequence):
		raise NotImplementedError(type(self))

class UserFunction(Function):
	params: tuple[syntax.Param, ...]
	body: syntax.Block
	_weight = None

	def weight(self) -> int:
		if self._weight is None:
			self._weight = weight(self.definition())
		return self._weight

	def definition(self) -> syntax.Instruction:
		raise NotImplementedError(type(self))

	def call_weight(self, arg_weight: int) -> int:
		# ceil(w/10) in integers
		return -(-self.weight() // 10) + arg_weight

class Procedure(UserFunction):
	""" A named function: it sees its defining scope live, through the static link. """
	def __init__(self, fn: syntax.FunctionDef, static_link):
		self._fn = fn
		self.params = fn.params
		self.body = fn.body
		self.static_link = static_link
	def definition(self): return self._fn
	def __repr__(self): return "<fn %s>" % self._fn.name
	def apply(self, engine, args):
		return engine.invoke(self, self.static_link, args)

class Closure(UserFunction):
	"""
	The run-time manifestation of a lambda form. The outer frame is a snapshot
	taken once at the definition point, and every call shares it, so state
	written there persists from one call to the next.
	"""
	def __init__(self, form: syntax.LambdaForm, outer):
		self._form = form
		self.params = form.params
		self.body = form.body
		self.outer = outer
	def definition(self): return self._form
	def __repr__(self): return "<closure/%d>" % len(self.params)
	def apply(self, engine, args):
		return engine.invoke(self, self.outer, args)

class Primitive(Function):
	"""
	A core-library routine. These cost according to a weight level, plus the arguments.
	Errors among the arguments short-circuit, except in positions that merely store them.
	"""
	def __init__(self, name: str, fn: callable, level: int, stores=()):
		self.name = name
		self._fn = fn
		self.level = level
		self.stores = stores
	def __repr__(self): return "<core %s>" % self.name
	def call_weight(self, arg_weight: int) -> int: return self.level + arg_weight
	def apply(self, engine, args):
		return engine.call_native(self, self._fn, args)

class PlatformFunction(Function):
	""" The platform API. Every such call costs the same flat rate, whatever the arguments. """
	def __init__(self, name: str, fn: callable, stores=()):
		self.name = name
		self._fn = fn
		self.stores = stores
	def __repr__(self): return "<platform %s>" % self.name
	def call_weight(self, arg_weight: int) -> int:
		return PLATFORM_CALL_WEIGHT
	def apply(self, engine, args):
		return engine.call_native(self, self._fn, args)
