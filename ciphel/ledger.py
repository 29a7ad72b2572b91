"""
The player's energy account. Every instruction is paid for here before it takes effect.
A charge the balance cannot cover is refused outright: nothing is deducted,
and the instruction that asked for it does not run.
"""
from .ontology import EngineFatal
from .observables import Observation, ENERGY_THRESHOLD, ECR_THRESHOLD

DEFAULT_ENERGY = 10_000

class OutOfEnergy(EngineFatal):
	def __init__(self, wanted, available):
		super().__init__("Needed %d energy but only %d remains." % (wanted, available))
		self.wanted, self.available = wanted, available

class Player:
	def __init__(self, energy: int = DEFAULT_ENERGY, max_energy: int = None):
		assert energy >= 0
		self.energy = energy
		self.max_energy = energy if max_energy is None else max_energy
		self.consumed = 0
		self._watchers = []

	def __repr__(self): return "<Player %d/%d>" % (self.energy, self.max_energy)

	@property
	def ecr(self) -> float:
		""" Energy consumption ratio: how full the tank is, from 0 to 1. """
		return self.energy / self.max_energy if self.max_energy else 0.0

	def watch(self, callback):
		self._watchers.append(callback)

	def consume(self, amount: int):
		assert amount >= 0, amount
		if amount == 0: return
		if amount > self.energy: raise OutOfEnergy(amount, self.energy)
		self.energy -= amount
		self.consumed += amount
		self._changed()

	def refill(self, amount: int):
		self.energy = min(self.max_energy, self.energy + amount)
		self._changed()

	def _changed(self):
		for callback in self._watchers:
			callback(Observation(ENERGY_THRESHOLD, None, self.energy))
			callback(Observation(ECR_THRESHOLD, None, self.ecr))
