"""
The heap: where vectors, maps, closures and channels live.

Programs only ever hold a Handle. The object behind it has a backing address,
which moves when the object outgrows its capacity; the handle never does.
Addresses come from a bump allocator and are only ever informative:
nothing is read back from them.
"""
from .ontology import EngineFatal
from .values import Handle, Address, Char, is_error
from .observables import Observation, HEAP_CHANGE

ALIGNMENT = 8
HEADER_SIZE = 16
SLOT_SIZE = 8
DEFAULT_CAPACITY = 4
GROWTH_PENALTY = 4  # Energy charged each time a vector or map doubles.

class InvalidKeyType(EngineFatal):
	def __init__(self, key): super().__init__("A value of type %s cannot be a map key." % type(key).__name__)

class HeapFault(Exception):
	"""
	Misuse that a program can survive: bad index, missing key, freed handle.
	The engine turns these into Error values.
	"""

def check_key(key):
	# Error is a named tuple, but it is not in this list, so it is rejected along with plain tuples.
	if isinstance(key, (bool, int, float, Char, str, Address, Handle)) and not is_error(key):
		return key
	raise InvalidKeyType(key)

class HeapHooks:
	"""
	The heap reports to whoever embeds it. By default, nobody is listening.
	The engine overrides these to charge energy, raise observations, and keep an undo journal.
	"""
	def charge(self, amount: int): pass
	def notify(self, observation: Observation): pass
	def record(self, undo: callable): pass

class HeapObject:
	kind: str
	capacity: int = 0  # At least one slot once built, so that doubling always makes room.
	address: int = 0

	def size(self) -> int: return HEADER_SIZE + SLOT_SIZE * self.capacity
	def restore_point(self) -> callable:
		raise NotImplementedError(type(self))

class Vector(HeapObject):
	kind = "vector"
	def __init__(self, items, capacity):
		self.items = list(items)
		self.capacity = max(capacity, len(self.items), 1)
	def __len__(self): return len(self.items)
	def restore_point(self):
		items, capacity, address = list(self.items), self.capacity, self.address
		def undo():
			self.items, self.capacity, self.address = items, capacity, address
		return undo

class Map(HeapObject):
	kind = "map"
	def __init__(self, pairs, capacity):
		self.entries = dict(pairs)
		self.capacity = max(capacity, len(self.entries), 1)
	def __len__(self): return len(self.entries)
	def restore_point(self):
		entries, capacity, address = dict(self.entries), self.capacity, self.address
		def undo():
			self.entries, self.capacity, self.address = entries, capacity, address
		return undo

class Boxed(HeapObject):
	""" A closure or channel: something that lives on the heap but has no slots of its own. """
	def __init__(self, kind: str, payload):
		self.kind = kind
		self.payload = payload
		self.capacity = 1
	def restore_point(self):
		return lambda: None

class Heap:
	def __init__(self, hooks: HeapHooks = None):
		self._hooks = hooks or HeapHooks()
		self._objects = {}
		self._next_ident = 1
		self._brk = 0

	def __len__(self): return len(self._objects)
	def __contains__(self, handle): return isinstance(handle, Handle) and handle.ident in self._objects

	def _place(self, obj: HeapObject) -> int:
		# Bump allocation, aligned. Freed space is never re-used, so addresses only ever increase.
		address = self._brk
		self._brk += -(-obj.size() // ALIGNMENT) * ALIGNMENT
		return address

	def _allocate(self, obj: HeapObject) -> Handle:
		obj.address = self._place(obj)
		handle = Handle(self._next_ident, obj.kind)
		self._next_ident += 1
		self._objects[handle.ident] = obj
		self._hooks.record(lambda: self._objects.pop(handle.ident, None))
		return handle

	def allocate_vector(self, items=(), capacity=None) -> Handle:
		return self._allocate(Vector(items, DEFAULT_CAPACITY if capacity is None else capacity))

	def allocate_map(self, pairs=(), capacity=None) -> Handle:
		pairs = [(check_key(k), v) for k, v in pairs]
		return self._allocate(Map(pairs, DEFAULT_CAPACITY if capacity is None else capacity))

	def allocate_closure(self, closure) -> Handle:
		return self._allocate(Boxed("closure", closure))

	def allocate_channel(self, channel) -> Handle:
		return self._allocate(Boxed("channel", channel))

	def deref(self, handle: Handle, kind=None) -> HeapObject:
		if not isinstance(handle, Handle):
			raise HeapFault("Expected a heap handle; got %r" % (handle,))
		try: obj = self._objects[handle.ident]
		except KeyError: raise HeapFault("Use of a freed handle %r" % (handle,))
		if kind is not None and obj.kind != kind:
			raise HeapFault("Expected a %s; got a %s" % (kind, obj.kind))
		return obj

	def payload(self, handle: Handle, kind: str):
		return self.deref(handle, kind).payload

	def backing_address(self, handle: Handle) -> int:
		return self.deref(handle).address

	def free(self, handle: Handle):
		obj = self.deref(handle)
		del self._objects[handle.ident]
		self._hooks.record(lambda: self._objects.__setitem__(handle.ident, obj))
		self._hooks.notify(Observation(HEAP_CHANGE, handle))

	def _mutating(self, handle: Handle, kind: str):
		obj = self.deref(handle, kind)
		self._hooks.record(obj.restore_point())
		return obj

	def _changed(self, handle: Handle):
		self._hooks.notify(Observation(HEAP_CHANGE, handle))

	def _grow(self, obj: HeapObject):
		obj.capacity *= 2
		obj.address = self._place(obj)
		self._hooks.charge(GROWTH_PENALTY)

	###########################################################################
	# Vectors

	def vector_append(self, handle: Handle, value) -> bool:
		""" Returns whether the vector had to grow. """
		obj = self._mutating(handle, "vector")
		grew = len(obj.items) >= obj.capacity
		if grew: self._grow(obj)
		obj.items.append(value)
		self._changed(handle)
		return grew

	def vector_remove(self, handle: Handle, index: int):
		obj = self._mutating(handle, "vector")
		try: value = obj.items.pop(self._index(obj, index))
		except IndexError: raise HeapFault("Index %r out of range" % (index,))
		self._changed(handle)
		return value

	def vector_pop(self, handle: Handle):
		obj = self._mutating(handle, "vector")
		if not obj.items: raise HeapFault("Pop from an empty vector")
		value = obj.items.pop()
		self._changed(handle)
		return value

	def vector_contains(self, handle: Handle, value) -> bool:
		return value in self.deref(handle, "vector").items

	def vector_get(self, handle: Handle, index: int):
		obj = self.deref(handle, "vector")
		try: return obj.items[self._index(obj, index)]
		except IndexError: raise HeapFault("Index %r out of range" % (index,))

	def vector_set(self, handle: Handle, index: int, value):
		obj = self._mutating(handle, "vector")
		try: obj.items[self._index(obj, index)] = value
		except IndexError: raise HeapFault("Index %r out of range" % (index,))
		self._changed(handle)

	@staticmethod
	def _index(obj, index):
		if isinstance(index, bool) or not isinstance(index, int) or index < 0:
			raise IndexError(index)
		return index

	###########################################################################
	# Maps

	def map_insert(self, handle: Handle, key, value) -> bool:
		""" Returns whether the map had to grow. """
		check_key(key)
		obj = self._mutating(handle, "map")
		grew = key not in obj.entries and len(obj.entries) >= obj.capacity
		if grew: self._grow(obj)
		obj.entries[key] = value
		self._changed(handle)
		return grew

	def map_get(self, handle: Handle, key):
		check_key(key)
		try: return self.deref(handle, "map").entries[key]
		except KeyError: raise HeapFault("No such key %r" % (key,))

	def map_contains(self, handle: Handle, key) -> bool:
		check_key(key)
		return key in self.deref(handle, "map").entries

	def map_delete(self, handle: Handle, key):
		check_key(key)
		obj = self._mutating(handle, "map")
		try: value = obj.entries.pop(key)
		except KeyError: raise HeapFault("No such key %r" % (key,))
		self._changed(handle)
		return value

	def map_keys(self, handle: Handle) -> list:
		return list(self.deref(handle, "map").entries)

	###########################################################################
	# Either

	def length(self, handle: Handle) -> int:
		obj = self.deref(handle)
		if isinstance(obj, (Vector, Map)): return len(obj)
		raise HeapFault("A %s has no length" % obj.kind)

	def capacity(self, handle: Handle) -> int:
		return self.deref(handle).capacity

	def clear(self, handle: Handle):
		obj = self.deref(handle)
		if not isinstance(obj, (Vector, Map)): raise HeapFault("Cannot clear a %s" % obj.kind)
		self._mutating(handle, obj.kind)
		if isinstance(obj, Vector): obj.items = []
		else: obj.entries = {}
		self._changed(handle)
