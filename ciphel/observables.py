"""
The things a Ciphel event can watch for.

An Observation is what some part of the system reports after a mutation is fully applied.
An Observable is what an event subscribes to: a kind, and optionally a particular subject.
Leaving the subject open subscribes broadly, to every entity of that kind, which costs more.
"""
import operator
from typing import NamedTuple, Any, Optional

HEAP_CHANGE = "heap-change"
CURSOR_MOVE = "cursor-move"
CELL_CHANGE = "cell-change"
CELL_MODE_CHANGE = "cell-mode-change"
CELL_STATE_CHANGE = "cell-state-change"
CELL_SUBSTATE_CHANGE = "cell-substate-change"
CELL_CONTENT_CHANGE = "cell-content-change"
EVENT_FIRED = "event-fired"
COMMAND_EXECUTED = "command-executed"
COMMAND_FAILED = "command-failed"
COMMAND_SUCCEEDED = "command-succeeded"
ENERGY_THRESHOLD = "energy-threshold"
ECR_THRESHOLD = "ecr-threshold"
INSTRUCTION_COMMITTED = "instruction-committed"
INSTRUCTION_REVERTED = "instruction-reverted"

CELL_ASPECTS = {CELL_MODE_CHANGE, CELL_STATE_CHANGE, CELL_SUBSTATE_CHANGE, CELL_CONTENT_CHANGE}
THRESHOLDS = {ENERGY_THRESHOLD, ECR_THRESHOLD}

# kind: (narrow cost, broad cost)
COST = {
	HEAP_CHANGE: (2, 8),
	CURSOR_MOVE: (1, 4),
	CELL_CHANGE: (2, 8),
	CELL_MODE_CHANGE: (1, 4),
	CELL_STATE_CHANGE: (1, 4),
	CELL_SUBSTATE_CHANGE: (1, 4),
	CELL_CONTENT_CHANGE: (1, 4),
	EVENT_FIRED: (1, 4),
	COMMAND_EXECUTED: (2, 8),
	COMMAND_FAILED: (1, 4),
	COMMAND_SUCCEEDED: (1, 4),
	ENERGY_THRESHOLD: (2, 2),
	ECR_THRESHOLD: (2, 2),
	INSTRUCTION_COMMITTED: (1, 4),
	INSTRUCTION_REVERTED: (1, 4),
}
KINDS = tuple(COST)

COMPARATORS = {
	"<": operator.lt,
	"<=": operator.le,
	">": operator.gt,
	">=": operator.ge,
	"==": operator.eq,
}

class Observation(NamedTuple):
	kind: str
	subject: Any = None
	value: Any = None

class Observable(NamedTuple):
	kind: str
	subject: Any = None
	comparator: Optional[str] = None
	level: Any = None

	def is_broad(self) -> bool:
		return self.subject is None

	def cost(self) -> int:
		narrow, broad = COST[self.kind]
		return broad if self.is_broad() else narrow

	def is_threshold(self) -> bool:
		return self.kind in THRESHOLDS

	def matches(self, observation: Observation) -> bool:
		"""
		Does the observation concern this subscription, right now?
		For thresholds, that means the comparison currently holds;
		making that edge-triggered is the registry's job.
		"""
		if self.is_threshold():
			return observation.kind == self.kind and COMPARATORS[self.comparator](observation.value, self.level)
		if self.kind == CELL_CHANGE:
			kind_ok = observation.kind in CELL_ASPECTS
		else:
			kind_ok = observation.kind == self.kind
		return kind_ok and (self.subject is None or self.subject == observation.subject)

def make_observable(kind, subject=None, comparator=None, level=None) -> Observable:
	assert kind in COST, kind
	if kind in THRESHOLDS:
		assert comparator in COMPARATORS, comparator
		assert level is not None
	return Observable(kind, subject, comparator, level)
