"""
The core library: routines on vectors, maps and channels that are built into the language.
Unlike the platform API, these cost according to a weight level, plus their arguments.

Each routine takes the engine first, then its Ciphel arguments.
"""
from .casm import Weight
from .values import Primitive, UNIT
from .heap import HeapFault
from .channels import Channel

def _append(engine, vector, value):
	engine.heap.vector_append(vector, engine.admit(value))
	return UNIT

def _pop(engine, vector):
	return engine.heap.vector_pop(vector)

def _remove(engine, vector, index):
	return engine.heap.vector_remove(vector, index)

def _contains(engine, container, item):
	if engine.heap.deref(container).kind == "map":
		return engine.heap.map_contains(container, item)
	return engine.heap.vector_contains(container, item)

def _insert(engine, table, key, value):
	engine.heap.map_insert(table, key, engine.admit(value))
	return UNIT

def _get(engine, container, key):
	if engine.heap.deref(container).kind == "map":
		return engine.heap.map_get(container, key)
	return engine.heap.vector_get(container, key)

def _delete(engine, table, key):
	return engine.heap.map_delete(table, key)

def _len(engine, container):
	return engine.heap.length(container)

def _cap(engine, container):
	return engine.heap.capacity(container)

def _clear(engine, container):
	engine.heap.clear(container)
	return UNIT

def _capacity_arg(capacity):
	if capacity is None: return None
	if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
		raise HeapFault("Bad capacity %r" % (capacity,))
	return capacity

def _vec(engine, capacity=None):
	return engine.heap.allocate_vector(capacity=_capacity_arg(capacity))

def _map(engine, capacity=None):
	return engine.heap.allocate_map(capacity=_capacity_arg(capacity))

def _chan(engine):
	return engine.heap.allocate_channel(Channel())

CORE = [
	# name, routine, weight level, argument positions that may hold an Error without short-circuit
	("append", _append, Weight.MEDIUM, (1,)),
	("pop", _pop, Weight.LOW, ()),
	("remove", _remove, Weight.LOW, ()),
	("contains", _contains, Weight.MEDIUM, ()),
	("insert", _insert, Weight.HIGH, (2,)),
	("get", _get, Weight.MEDIUM, ()),
	("delete", _delete, Weight.HIGH, ()),
	("len", _len, Weight.LOW, ()),
	("cap", _cap, Weight.LOW, ()),
	("clear", _clear, Weight.HIGH, ()),
	("vec", _vec, Weight.HIGH, ()),
	("map", _map, Weight.MEDIUM, ()),
	("chan", _chan, Weight.HIGH, ()),
]

def install(frame):
	for name, fn, level, stores in CORE:
		frame.declare(name, Primitive(name, fn, level, stores))
