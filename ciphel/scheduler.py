"""
This is the tick-driven scheduler.

Each strand gets a real thread, but only one ever runs at a time: whoever holds
the baton. The scheduler hands the baton to each runnable strand in turn, and
waits to get it back. A strand gives it back when it finishes, when it finishes
one top-level step, or when it parks to wait for something. So runs are deterministic,
and the only places one strand can observe another's effects are between
steps and across a park.

A strand that dies of something engine-fatal takes the run down with it:
the scheduler re-raises the exception on its own thread, for the host to see.

A strand can also be stopped where it is parked, by another strand or by the
host closing the scheduler. It wakes to find a StrandStopped exception, which
unwinds it without touching the baton; the stopper joins its thread.
"""
from threading import Lock, Thread
from typing import Optional
from .ontology import EngineFatal

MAX_STRANDS = 4

IDLE = "idle"
ACTIVE = "active"
WAITING = "waiting"
COMPLETED = "completed"

class TooManyStrands(EngineFatal):
	def __init__(self): super().__init__("At most %d strands may run at once." % MAX_STRANDS)

class StrandStopped(Exception):
	""" Internal: unwinds a strand that is being closed, or that calls exit. Never reaches the host. """

class Strand:
	"""
	One thread of Ciphel control. The job is a callable that receives the strand;
	it may call `checkpoint`, `idle`, or one of the parking methods to give the
	baton back for a while.
	"""
	def __init__(self, scheduler: "TickScheduler", sid: int, job, name: str):
		self._scheduler = scheduler
		self.sid = sid
		self.name = name
		self.state = ACTIVE
		self._job = job
		self._go = Lock()
		self._go.acquire()
		self._thread = None
		self._stopping = False
		self._woken = False
		self.waiting_for = None
		self.deadline: Optional[int] = None
		self.has_work = lambda: False
		self.result = None
		self.failure: Optional[BaseException] = None

	def __repr__(self): return "<Strand %d %s %s>" % (self.sid, self.name, self.state)

	def is_ready(self, tick: int) -> bool:
		if self.state == ACTIVE: return True
		if self.state == IDLE: return self.has_work()
		if self.state == WAITING:
			if self.waiting_for(): return True
			return self.deadline is not None and tick >= self.deadline
		return False

	def resume(self):
		""" Scheduler-side: hand over the baton, and wait to get it back. """
		self.state = ACTIVE
		if self._thread is None:
			self._thread = Thread(target=self._run, daemon=True, name="strand " + str(self.sid))
			self._thread.start()
		else:
			self._go.release()
		self._scheduler._baton.acquire()

	def _run(self):
		self._scheduler.engine.context.strand = self
		try: self.result = self._job(self)
		except StrandStopped: pass
		except BaseException as ex:
			self.failure = ex
		finally:
			self.state = COMPLETED
			# Whoever stopped this strand is joining it, not waiting for the baton.
			if not self._stopping: self._scheduler._baton.release()

	def _pause(self):
		self._scheduler._baton.release()
		self._go.acquire()
		if self._stopping: raise StrandStopped()

	def stop(self):
		"""
		End this strand from outside, where it is parked. The caller holds the
		baton, or is the host between runs; either way, this strand is not running.
		"""
		if self._thread is None:
			self.state = COMPLETED
			return
		if self.state != COMPLETED:
			self._stopping = True
			self._go.release()
		self._thread.join()

	def exit(self):
		""" End this strand from inside. What it already did stays done. """
		raise StrandStopped()

	def checkpoint(self):
		""" Give back the baton, but stay runnable for the next tick. """
		self._pause()

	def idle(self, has_work):
		""" Give back the baton until `has_work()` says otherwise. """
		self.state = IDLE
		self.has_work = has_work
		self._pause()

	def park_until(self, ready, remaining: Optional[int] = None) -> int:
		"""
		Give back the baton until `ready()` says so, or `remaining` ticks have passed.
		Returns the number of ticks that did pass.
		"""
		start = self._scheduler.tick
		self.state = WAITING
		self.waiting_for = ready
		self.deadline = None if remaining is None else start + remaining
		try: self._pause()
		finally:
			self.waiting_for = None
			self.deadline = None
		return self._scheduler.tick - start

	def park(self, channel, remaining: Optional[int]) -> int:
		return self.park_until(lambda: channel.pending(self.sid), remaining)

	def sleep(self, ticks: int) -> int:
		if ticks <= 0: return 0
		return self.park_until(lambda: False, ticks)

	def wait(self):
		""" Park until some other strand wakes this one. A wake that came first is not lost. """
		if not self._woken: self.park_until(lambda: self._woken)
		self._woken = False

	def wake(self):
		self._woken = True

	def join(self, other: "Strand"):
		if other.state != COMPLETED:
			self.park_until(lambda: other.state == COMPLETED)

class TickScheduler:
	"""
	Owns the global tick clock and the strands. Strand 1 always runs the
	general scope's instruction log, one instruction per tick.
	"""
	def __init__(self, engine):
		self.engine = engine
		self.tick = 0
		self.strands = []
		self._next_sid = 1
		self._baton = Lock()
		self._baton.acquire()
		engine.scheduler = self
		self.main = self.spawn(self._general_program, name="general")

	def live(self):
		return [s for s in self.strands if s.state != COMPLETED]

	def find(self, sid) -> Optional[Strand]:
		for strand in self.strands:
			if strand.sid == sid: return strand
		return None

	def spawn(self, job, name="strand") -> Strand:
		if len(self.live()) >= MAX_STRANDS: raise TooManyStrands()
		strand = Strand(self, self._next_sid, job, name)
		self._next_sid += 1
		self.strands.append(strand)
		return strand

	def _general_program(self, strand: Strand):
		log = self.engine.general.instructions
		cursor = None
		while True:
			entry = log.after(cursor)
			if entry is None:
				strand.idle(lambda: log.after(cursor) is not None)
				continue
			cursor, instruction = entry
			self.engine.step(instruction, ident=cursor)
			strand.checkpoint()

	def run(self, max_ticks: int = None) -> int:
		"""
		Run until nothing can make progress, or for `max_ticks` ticks if that comes first.
		Returns the number of ticks that elapsed.
		"""
		start = self.tick
		while max_ticks is None or self.tick - start < max_ticks:
			ready = [s for s in self.strands if s.is_ready(self.tick)]
			if not ready and not any(s.state == WAITING and s.deadline is not None for s in self.strands):
				break
			for strand in ready:
				if not strand.is_ready(self.tick): continue
				strand.resume()
				if strand.failure is not None:
					failure, strand.failure = strand.failure, None
					raise failure
			self.tick += 1
		return self.tick - start

	def close(self):
		""" Stop every strand that has not finished, and wait for its thread to end. """
		for strand in self.strands:
			strand.stop()
