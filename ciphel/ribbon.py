"""
The ribbon is the game board a program manipulates: cells with a mode, a state,
a substate and some content, plus the cursors that move over them.
The real one belongs to the game. This module defines what the run-time needs from it,
and a plain in-memory grid that does the job for tests and the command line.

Also here: the command log, which is how the game tells programs
what the player's commands did.
"""
from typing import Any
from .observables import (
	Observation, CELL_MODE_CHANGE, CELL_STATE_CHANGE, CELL_SUBSTATE_CHANGE,
	CELL_CONTENT_CHANGE, CURSOR_MOVE, COMMAND_EXECUTED, COMMAND_FAILED, COMMAND_SUCCEEDED,
)

DEFAULT_MODE = 0
DEFAULT_STATE = 0
DEFAULT_SUBSTATE = 0

class Ribbon:
	""" The interface. """
	def watch(self, callback): raise NotImplementedError(type(self))
	def cell(self, cell_id) -> "Cell": raise NotImplementedError(type(self))
	def set_mode(self, cell_id, mode): raise NotImplementedError(type(self))
	def set_state(self, cell_id, state): raise NotImplementedError(type(self))
	def set_substate(self, cell_id, substate): raise NotImplementedError(type(self))
	def write(self, cell_id, content): raise NotImplementedError(type(self))
	def move_cursor(self, cursor_id, cell_id): raise NotImplementedError(type(self))
	def reset_cell(self, cell_id, mode=DEFAULT_MODE, state=DEFAULT_STATE, substate=DEFAULT_SUBSTATE):
		""" What happens to a cell when an Error reaches it. """
		raise NotImplementedError(type(self))

class Cell:
	def __init__(self):
		self.mode = DEFAULT_MODE
		self.state = DEFAULT_STATE
		self.substate = DEFAULT_SUBSTATE
		self.content: Any = None
	def __repr__(self): return "<Cell %r/%r/%r %r>" % (self.mode, self.state, self.substate, self.content)

class Grid(Ribbon):
	def __init__(self):
		self._cells = {}
		self._cursors = {}
		self._watchers = []

	def watch(self, callback): self._watchers.append(callback)

	def _tell(self, kind, subject, value=None):
		for callback in self._watchers: callback(Observation(kind, subject, value))

	def cell(self, cell_id) -> Cell:
		try: return self._cells[cell_id]
		except KeyError:
			cell = self._cells[cell_id] = Cell()
			return cell

	def cursor(self, cursor_id):
		return self._cursors.get(cursor_id)

	def _set(self, cell_id, aspect, value, kind):
		cell = self.cell(cell_id)
		if getattr(cell, aspect) != value:
			setattr(cell, aspect, value)
			self._tell(kind, cell_id, value)

	def set_mode(self, cell_id, mode): self._set(cell_id, "mode", mode, CELL_MODE_CHANGE)
	def set_state(self, cell_id, state): self._set(cell_id, "state", state, CELL_STATE_CHANGE)
	def set_substate(self, cell_id, substate): self._set(cell_id, "substate", substate, CELL_SUBSTATE_CHANGE)
	def write(self, cell_id, content): self._set(cell_id, "content", content, CELL_CONTENT_CHANGE)

	def move_cursor(self, cursor_id, cell_id):
		self._cursors[cursor_id] = cell_id
		self._tell(CURSOR_MOVE, cursor_id, cell_id)

	def reset_cell(self, cell_id, mode=DEFAULT_MODE, state=DEFAULT_STATE, substate=DEFAULT_SUBSTATE):
		self.set_mode(cell_id, mode)
		self.set_state(cell_id, state)
		self.set_substate(cell_id, substate)

class CommandLog:
	def __init__(self):
		self.entries = []
		self._watchers = []

	def watch(self, callback): self._watchers.append(callback)

	def record(self, command, succeeded: bool):
		self.entries.append((command, succeeded))
		outcome = COMMAND_SUCCEEDED if succeeded else COMMAND_FAILED
		for callback in self._watchers:
			callback(Observation(COMMAND_EXECUTED, command, succeeded))
			callback(Observation(outcome, command, succeeded))
