"""
Channels: one writer at a time, any number of readers, and every reader sees every value.

A channel does not know about ticks or strands. When a receive must wait,
it asks the caller-supplied `park` routine to suspend it; `park` comes back
after some number of ticks have passed, and the receive looks again.
"""
from collections import deque
from typing import Optional, Callable
from .ontology import EngineFatal

class ChannelFault(EngineFatal): pass

class NoReaderError(ChannelFault):
	def __init__(self): super().__init__("Send on a channel that nobody reads.")

class WriterConflictError(ChannelFault):
	def __init__(self, writer, holder):
		super().__init__("Writer %r cannot send while writer %r still has values in flight." % (writer, holder))

class ChannelTimeoutError(ChannelFault):
	def __init__(self, ticks): super().__init__("Nothing arrived within %d ticks." % ticks)

class WouldBlock(ChannelFault):
	def __init__(self): super().__init__("Receive would block.")

PARK = Callable[["Channel", Optional[int]], int]

class Channel:
	def __init__(self):
		self._queues = {}
		self._writer = None

	def __repr__(self): return "<Channel readers=%d>" % len(self._queues)

	def readers(self): return list(self._queues)

	def attach(self, reader):
		self._queues.setdefault(reader, deque())

	def detach(self, reader):
		self._queues.pop(reader, None)
		self._release_if_drained()

	def pending(self, reader=None) -> bool:
		if reader is None: return any(self._queues.values())
		return bool(self._queues.get(reader))

	def send(self, writer, value):
		if not self._queues: raise NoReaderError()
		if self._writer is not None and self._writer != writer and self.pending():
			raise WriterConflictError(writer, self._writer)
		self._writer = writer
		for queue in self._queues.values(): queue.append(value)

	def receive(self, reader, timeout: int = 0, park: Optional[PARK] = None):
		"""
		timeout  0: take what is there, or raise WouldBlock.
		timeout -1: wait as long as it takes.
		timeout  n: wait at most n ticks, then raise ChannelTimeoutError.
		Without a way to park, any wait becomes WouldBlock.
		"""
		self.attach(reader)
		waited = 0
		while not self._queues[reader]:
			if timeout == 0 or park is None: raise WouldBlock()
			if 0 < timeout <= waited: raise ChannelTimeoutError(timeout)
			waited += park(self, None if timeout < 0 else timeout - waited)
			if reader not in self._queues: self.attach(reader)
		value = self._queues[reader].popleft()
		self._release_if_drained()
		return value

	def _release_if_drained(self):
		if not self.pending(): self._writer = None
