import unittest

from ciphel.heap import Heap, HeapHooks, HeapFault, InvalidKeyType, ALIGNMENT, DEFAULT_CAPACITY, GROWTH_PENALTY
from ciphel.observables import HEAP_CHANGE
from ciphel.values import Char, Struct, Error, Handle, Address

class Recorder(HeapHooks):
	def __init__(self):
		self.charged = []
		self.observed = []
		self.undo = []
	def charge(self, amount): self.charged.append(amount)
	def notify(self, observation): self.observed.append(observation)
	def record(self, undo): self.undo.append(undo)

class HeapTests(unittest.TestCase):

	def setUp(self) -> None:
		self.hooks = Recorder()
		self.heap = Heap(self.hooks)

	def test_vector_growth(self):
		v = self.heap.allocate_vector()
		before = self.heap.backing_address(v)
		for i in range(DEFAULT_CAPACITY):
			self.assertFalse(self.heap.vector_append(v, i))
		self.assertEqual(DEFAULT_CAPACITY, self.heap.capacity(v))
		self.assertEqual([], self.hooks.charged)
		self.assertTrue(self.heap.vector_append(v, "five"))
		self.assertEqual(2 * DEFAULT_CAPACITY, self.heap.capacity(v))
		self.assertGreater(self.heap.backing_address(v), before)
		self.assertEqual([GROWTH_PENALTY], self.hooks.charged)
		self.assertEqual(5, self.heap.length(v))
		self.assertEqual("five", self.heap.vector_get(v, 4))

	def test_zero_capacity_still_doubles(self):
		for kind in ("vector", "map"):
			with self.subTest(kind):
				self.hooks.charged.clear()
				h = getattr(self.heap, "allocate_" + kind)(capacity=0)
				self.assertEqual(1, self.heap.capacity(h))
				for i in range(3):
					if kind == "vector": self.heap.vector_append(h, i)
					else: self.heap.map_insert(h, i, i)
				self.assertEqual(3, self.heap.length(h))
				self.assertEqual(4, self.heap.capacity(h))
				# One slot to two, then two to four.
				self.assertEqual([GROWTH_PENALTY] * 2, self.hooks.charged)

	def test_remove_never_reallocates(self):
		v = self.heap.allocate_vector(range(6))
		address, capacity = self.heap.backing_address(v), self.heap.capacity(v)
		self.assertEqual(2, self.heap.vector_remove(v, 2))
		self.assertEqual(5, self.heap.vector_pop(v))
		self.assertEqual((address, capacity), (self.heap.backing_address(v), self.heap.capacity(v)))

	def test_addresses_are_aligned(self):
		handles = [self.heap.allocate_vector(capacity=n) for n in (1, 3, 5)]
		handles.append(self.heap.allocate_map())
		for h in handles:
			self.assertEqual(0, self.heap.backing_address(h) % ALIGNMENT)

	def test_map_growth_counts_only_new_keys(self):
		m = self.heap.allocate_map()
		for k in "abcd":
			self.assertFalse(self.heap.map_insert(m, k, 1))
		self.assertFalse(self.heap.map_insert(m, "a", 2))
		self.assertEqual([], self.hooks.charged)
		self.assertTrue(self.heap.map_insert(m, "e", 3))
		self.assertEqual([GROWTH_PENALTY], self.hooks.charged)
		self.assertEqual(2, self.heap.map_get(m, "a"))
		self.assertEqual(5, self.heap.length(m))

	def test_map_ops(self):
		m = self.heap.allocate_map([(1, "one")])
		self.assertTrue(self.heap.map_contains(m, 1))
		self.assertEqual("one", self.heap.map_delete(m, 1))
		self.assertFalse(self.heap.map_contains(m, 1))
		with self.assertRaises(HeapFault):
			self.heap.map_get(m, 1)
		with self.assertRaises(HeapFault):
			self.heap.map_delete(m, 1)

	def test_key_types(self):
		m = self.heap.allocate_map()
		for good in (True, 7, 2.5, Char("c"), "text", Address(None, "x"), Handle(9, "vector")):
			with self.subTest(good=good):
				self.heap.map_insert(m, good, 0)
		for bad in ((1, 2), Struct("P", {}), Error("no", 1), None):
			with self.subTest(bad=bad):
				with self.assertRaises(InvalidKeyType):
					self.heap.map_insert(m, bad, 0)

	def test_faults(self):
		v = self.heap.allocate_vector([1])
		with self.assertRaises(HeapFault):
			self.heap.vector_get(v, 1)
		with self.assertRaises(HeapFault):
			self.heap.vector_get(v, -1)
		self.heap.free(v)
		with self.assertRaises(HeapFault):
			self.heap.length(v)
		with self.assertRaises(HeapFault):
			self.heap.vector_append(self.heap.allocate_map(), 1)

	def test_every_change_is_observed(self):
		v = self.heap.allocate_vector()
		self.heap.vector_append(v, 1)
		self.heap.vector_set(v, 0, 2)
		self.heap.vector_contains(v, 2)
		self.heap.vector_get(v, 0)
		self.heap.vector_pop(v)
		self.heap.clear(v)
		self.heap.free(v)
		self.assertEqual(5, len(self.hooks.observed))
		for observation in self.hooks.observed:
			self.assertEqual((HEAP_CHANGE, v), (observation.kind, observation.subject))

	def test_undo(self):
		v = self.heap.allocate_vector([1, 2, 3, 4])
		mark = len(self.hooks.undo)
		self.heap.vector_append(v, 5)
		self.heap.vector_set(v, 0, 9)
		for undo in reversed(self.hooks.undo[mark:]): undo()
		self.assertEqual(4, self.heap.length(v))
		self.assertEqual(DEFAULT_CAPACITY, self.heap.capacity(v))
		self.assertEqual(1, self.heap.vector_get(v, 0))

if __name__ == '__main__':
	unittest.main()
