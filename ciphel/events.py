"""
Events are reactive scopes: a set of observables, an optional trigger, and a body.

The registry hears every observation the run-time makes. For each registered event
that subscribes to it (and whose trigger agrees) one execution is queued. The engine
drains the queue between top-level steps, first-in first-out.

An event belongs to the registry, not to the scope that defined it. It goes away only
when something removes it by name.
"""
from collections import deque
from typing import NamedTuple, Optional, Callable
from .ontology import EngineFatal
from . import syntax
from .observables import Observation, Observable

MAX_EVENT_DEPTH = 8

class EventLoopOverflow(EngineFatal):
	def __init__(self, name, depth):
		super().__init__("Event %r would run at depth %d, past the limit of %d." % (name, depth, MAX_EVENT_DEPTH))

class Event:
	def __init__(self, name: str, observables: tuple[Observable, ...], trigger: Optional[syntax.Expression], body: syntax.Block, defined_in=None):
		self.name = name
		self.observables = observables
		self.trigger = trigger
		self.body = body
		# Informative only. The event must not keep its defining scope alive, nor depend on it.
		self.defined_in = defined_in
	def __repr__(self): return "<Event %s>" % self.name

class Pending(NamedTuple):
	event: Event
	observation: Observation
	depth: int

class EventRegistry:
	def __init__(self, judge: Callable[[Event, Observation], bool] = None):
		self._events = {}
		self._queue = deque()
		self._edges = {}
		self._judge = judge or (lambda event, observation: True)

	def __len__(self): return len(self._events)
	def __contains__(self, name): return name in self._events
	def __getitem__(self, name) -> Event: return self._events[name]
	def pending(self) -> int: return len(self._queue)

	def register(self, event: Event):
		self.remove(event.name)
		self._events[event.name] = event

	def remove(self, name: str) -> bool:
		if name not in self._events: return False
		del self._events[name]
		for key in [k for k in self._edges if k[0] == name]: del self._edges[key]
		return True

	def notify(self, observation: Observation, depth: int = 0):
		for event in list(self._events.values()):
			if self._concerns(event, observation) and self._judge(event, observation):
				if depth + 1 > MAX_EVENT_DEPTH:
					raise EventLoopOverflow(event.name, depth + 1)
				self._queue.append(Pending(event, observation, depth + 1))

	def _concerns(self, event: Event, observation: Observation) -> bool:
		hit = False
		for index, observable in enumerate(event.observables):
			if observable.is_threshold():
				if observable.kind != observation.kind: continue
				now = observable.matches(observation)
				before = self._edges.get((event.name, index), False)
				self._edges[event.name, index] = now
				hit = hit or (now and not before)
			else:
				hit = hit or observable.matches(observation)
		return hit

	def pop(self) -> Optional[Pending]:
		return self._queue.popleft() if self._queue else None

	def mark(self) -> int:
		return len(self._queue)

	def truncate(self, mark: int):
		""" Forget whatever was queued since the mark. Used when a step is rolled back. """
		while len(self._queue) > mark: self._queue.pop()
