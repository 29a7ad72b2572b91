"""
The execution engine.

A top-level step goes like this: weigh the instruction, charge for it, run it,
and then let any events it provoked have their turn. Every mutation on the way
is journaled, so that if something engine-fatal happens the step can be undone
as if it never ran. Energy already paid is not refunded.

The Executor does the actual tree-walking, one visit method per kind of node.
Statements return a Transfer (or None); expressions return values.
"""
import sys
import inspect
import operator
import threading
import weakref
from typing import Optional
from boozetools.support.foundation import Visitor
from . import syntax, primitive
from .adapters import platform
from .ontology import EngineFatal, Instruction
from .values import (
	UNIT, Char, Slice, Struct, Address, Handle, Error, Function, Procedure, Closure,
	copy_value, is_error, kind_of,
)
from .stacking import Frame, GeneralFrame, Activation, UnresolvedVariable, snapshot
from .heap import Heap, HeapHooks, HeapFault
from .events import EventRegistry, Event, Pending
from .observables import Observation, make_observable, EVENT_FIRED, INSTRUCTION_COMMITTED, INSTRUCTION_REVERTED
from .casm import weight
from .ledger import Player
from .ribbon import Grid, CommandLog
from .diagnostics import Report
from .propagation import Context, Journal, ErrorPolicy, Contained, fault, main_branch, WOULD_BLOCK_COST

HOST = 0  # The reader/writer identity of code running outside any strand.

class Transfer: pass

class _Break(Transfer):
	def __repr__(self): return "BREAK"

class _Continue(Transfer):
	def __repr__(self): return "CONTINUE"

BREAK = _Break()
CONTINUE = _Continue()

class Returning(Transfer):
	def __init__(self, value): self.value = value
	def __repr__(self): return "RETURN %r" % (self.value,)

def _divide(a, b):
	if isinstance(a, int) and isinstance(b, int):
		quotient = abs(a) // abs(b)
		return quotient if (a < 0) == (b < 0) else -quotient
	return a / b

def _remainder(a, b):
	if isinstance(a, int) and isinstance(b, int):
		return a - b * _divide(a, b)
	return operator.mod(a, b)

def _add(a, b):
	if isinstance(a, bool) or isinstance(b, bool): raise TypeError
	return a + b

PRIMITIVE_BINARY = {
	"+"   : _add,
	"-"   : operator.sub,
	"*"   : operator.mul,
	"/"   : _divide,
	"%"   : _remainder,
	"^"   : operator.pow,
	"==" : operator.eq,
	"!=" : operator.ne,
	"<="  : operator.le,
	"<" : operator.lt,
	">="  : operator.ge,
	">" : operator.gt,
	"<<" : operator.lshift,
	">>" : operator.rshift,
	"&" : operator.and_,
	"|" : operator.or_,
}
PRIMITIVE_UNARY = {
	"-" : operator.neg,
	"!" : operator.not_,
}
SHORTCUT = {
	"and":False,
	"or":True,
}

def _as_struct(observation: Observation) -> Struct:
	def plain(x): return UNIT if x is None else x
	return Struct("signal", {
		"kind": observation.kind,
		"subject": plain(observation.subject),
		"value": plain(observation.value),
	})

class Engine(HeapHooks):
	scheduler = None

	def __init__(self, player: Player = None, ribbon=None, report: Report = None, stdout=None):
		self._local = threading.local()
		self.general = GeneralFrame()
		self.heap = Heap(self)
		self.events = EventRegistry(self._judge)
		self.policy = ErrorPolicy(self.charge)
		self.player = player or Player()
		self.player.watch(self.notify)
		self.ribbon = ribbon or Grid()
		self.ribbon.watch(self.notify)
		self.commands = CommandLog()
		self.commands.watch(self.notify)
		self.report = report or Report(verbose=0)
		self.stdout = stdout or sys.stdout
		self.executor = Executor(self)
		primitive.install(self.general)
		platform.install(self.general)

	@property
	def context(self) -> Context:
		try: return self._local.context
		except AttributeError:
			ctx = self._local.context = Context()
			return ctx

	###########################################################################
	# Energy, and the heap's hooks.

	def charge(self, amount: int):
		self.player.consume(amount)

	def notify(self, observation: Observation):
		self.events.notify(observation, self.context.depth)

	def record(self, undo):
		journal = self.context.journal
		if journal is not None: journal.record(undo)

	def weigh(self, node, frame: Frame) -> int:
		return weight(node, lambda expr: self._callee(expr, frame))

	def _callee(self, expr, frame: Frame) -> Optional[Function]:
		if not isinstance(expr, syntax.Lookup): return None
		try: owner = frame.chase(expr.name)
		except UnresolvedVariable: return None
		value = owner.fetch(expr.name)
		if isinstance(value, Handle) and value.kind == "closure" and value in self.heap:
			return self.heap.payload(value, "closure")
		return value if isinstance(value, Function) else None

	###########################################################################
	# Stores. All of them go through admit, which is where taint happens.

	def admit(self, value):
		return copy_value(self.policy.admit(self.context, value))

	def declare(self, frame: Frame, name: str, value):
		value = self.admit(value)
		self._journal_binding(frame, name)
		frame.declare(name, value)

	def assign(self, frame: Frame, name: str, value):
		self.assign_at(frame.chase(name), name, value)

	def assign_at(self, owner: Frame, name: str, value):
		value = self.admit(value)
		self._journal_binding(owner, name)
		owner.declare(name, value)

	def _journal_binding(self, frame: Frame, name: str):
		journal = self.context.journal
		if journal is None: return
		if frame.holds(name):
			old = frame.fetch(name)
			journal.record(lambda: frame.declare(name, old))
		else:
			journal.record(lambda: frame.forget(name) if frame.holds(name) else None)

	def free(self, handle: Handle):
		self.heap.free(handle)

	###########################################################################
	# Calls

	def call(self, callee, args, site=None):
		if isinstance(callee, Handle) and callee.kind == "closure":
			try: callee = self.heap.payload(callee, "closure")
			except HeapFault as ex: return self.executor.fault(str(ex), site)
		if not isinstance(callee, Function):
			return self.executor.fault("A %s is not callable." % kind_of(callee), site)
		return callee.apply(self, args)

	def invoke(self, function, parent: Frame, args):
		""" Run a user function's body in a fresh frame hanging off `parent`. """
		params = function.params
		if len(args) != len(params):
			return self.executor.fault("Expected %d arguments; got %d." % (len(params), len(args)), function.definition())
		ctx = self.context
		inner = Activation(parent, function)
		try:
			for param, arg in zip(params, args):
				if is_error(arg): arg = self.policy.hop(ctx, arg)
				self.declare(inner, param.name, arg)
			result = self.executor.run(function.body.instructions, inner)
		finally:
			inner.exit()
		if isinstance(result, Returning): return result.value
		return UNIT

	def call_native(self, function, fn, args):
		for index, arg in enumerate(args):
			if is_error(arg) and index not in function.stores:
				return self.policy.hop(self.context, arg)
		try: inspect.signature(fn).bind(self, *args)
		except TypeError: return self.executor.fault("Wrong arguments to %s." % function.name, function)
		try: return fn(self, *args)
		except HeapFault as ex: return self.executor.fault(str(ex), function)

	###########################################################################
	# Steps

	def step(self, instruction: Instruction, frame: Frame = None, ident=None):
		"""
		Run one top-level instruction, then drain the event queue.
		Returns whatever the instruction produced: a value for an expression,
		a Transfer or None for a statement.
		"""
		frame = frame or self.general
		ctx = self.context
		outer_journal = ctx.journal
		journal = ctx.journal = Journal()
		mark = self.events.mark()
		try:
			self.charge(self.weigh(instruction, frame))
			self.report.trace(ident, instruction, self.player.energy)
			frame.pc = instruction
			result = self.executor.visit(instruction, frame)
		except EngineFatal as ex:
			journal.rollback()
			self.events.truncate(mark)
			self.report.fatal(frame, ex, instruction)
			raise
		finally:
			ctx.journal = outer_journal
		self.drain_events()
		return result

	def execute(self, *instructions):
		""" Synchronous convenience: step through each instruction in the general scope. """
		result = None
		for instruction in instructions:
			result = self.step(instruction)
		return result

	def evaluate(self, expr: syntax.Expression, frame: Frame = None):
		""" Evaluate without charging for it. Mainly for hosts and tests that want to peek. """
		return self.executor.visit(expr, frame or self.general)

	def run_detached(self, callee, args):
		""" The body of a spawned strand: one call, journaled like a step. """
		ctx = self.context
		journal = ctx.journal = Journal()
		mark = self.events.mark()
		try:
			result = self.call(callee, args)
		except EngineFatal as ex:
			journal.rollback()
			self.events.truncate(mark)
			self.report.fatal(self.general, ex, callee)
			raise
		finally:
			ctx.journal = None
		self.drain_events()
		return result

	###########################################################################
	# The general scope's instruction log.

	def commit(self, instruction: Instruction) -> int:
		ident = self.general.instructions.commit(instruction)
		self.notify(Observation(INSTRUCTION_COMMITTED, ident))
		self.drain_events()
		return ident

	def revert(self, ident: int) -> Instruction:
		instruction = self.general.instructions.revert(ident)
		self.notify(Observation(INSTRUCTION_REVERTED, ident))
		self.drain_events()
		return instruction

	###########################################################################
	# Events

	def register_event(self, event: Event):
		previous = self.events[event.name] if event.name in self.events else None
		self.events.register(event)
		def undo():
			self.events.remove(event.name)
			if previous is not None: self.events.register(previous)
		self.record(undo)

	def remove_event(self, name: str) -> bool:
		if name not in self.events: return False
		event = self.events[name]
		self.events.remove(name)
		self.record(lambda: self.events.register(event))
		return True

	def _judge(self, event: Event, observation: Observation) -> bool:
		if event.trigger is None: return True
		ctx = self.context
		frame = Activation(self.general, event)
		with self.policy.suspended(ctx):
			try:
				frame.declare("signal", _as_struct(observation))
				verdict = self.executor.visit(event.trigger, frame)
			finally:
				frame.exit()
		return not is_error(verdict) and bool(verdict)

	def drain_events(self):
		ctx = self.context
		if ctx.draining: return
		ctx.draining = True
		try:
			while True:
				pending = self.events.pop()
				if pending is None: break
				self._fire(pending)
		except EngineFatal:
			# A failed cascade takes the rest of its queue with it.
			self.events.truncate(0)
			raise
		finally:
			ctx.draining = False

	def _fire(self, pending: Pending):
		ctx = self.context
		event = pending.event
		frame = Activation(self.general, event)
		depth, ctx.depth = ctx.depth, pending.depth
		outer_journal = ctx.journal
		journal = ctx.journal = Journal()
		mark = self.events.mark()
		try:
			self.charge(self.weigh(event.body, frame))
			frame.declare("signal", _as_struct(pending.observation))
			self.report.info("Event %s fires at depth %d" % (event.name, pending.depth))
			self.executor.run(event.body.instructions, frame)
			self.notify(Observation(EVENT_FIRED, event.name))
		except EngineFatal as ex:
			journal.rollback()
			self.events.truncate(mark)
			self.report.fatal(frame, ex, event.body)
			raise
		finally:
			frame.exit()
			ctx.journal = outer_journal
			ctx.depth = depth

	###########################################################################
	# Strands and channels

	def whoami(self):
		strand = self.context.strand
		return HOST if strand is None else strand.sid

	def strand_here(self):
		""" The strand running now, if it may park or end; not on the host, nor while events drain. """
		ctx = self.context
		if ctx.strand is None or ctx.draining: return None
		return ctx.strand

	def parker(self):
		""" How the current thread of control may wait on a channel, if it may at all. """
		strand = self.strand_here()
		return None if strand is None else strand.park

	def would_block(self) -> Error:
		return self.policy.produced(self.context, fault("would block", WOULD_BLOCK_COST))

	def spawn(self, callee, args):
		if self.scheduler is None:
			return self.executor.fault("There is no scheduler to spawn on.", None)
		strand = self.scheduler.spawn(lambda strand: self.run_detached(callee, args), name=repr(callee))
		return strand.sid

	def _strand_named(self, sid):
		return None if self.scheduler is None else self.scheduler.find(sid)

	def sleep(self, ticks):
		if isinstance(ticks, bool) or not isinstance(ticks, int) or ticks < 0:
			return self.executor.fault("Cannot sleep for %r ticks." % (ticks,), None)
		strand = self.strand_here()
		if strand is None: return self.would_block()
		strand.sleep(ticks)
		return UNIT

	def wait(self):
		strand = self.strand_here()
		if strand is None: return self.would_block()
		strand.wait()
		return UNIT

	def wake(self, sid):
		target = self._strand_named(sid)
		if target is None: return self.executor.fault("No strand %r." % (sid,), None)
		target.wake()
		return UNIT

	def join(self, sid):
		strand = self.strand_here()
		if strand is None: return self.would_block()
		target = self._strand_named(sid)
		if target is None: return self.executor.fault("No strand %r." % (sid,), None)
		if target is strand: return self.executor.fault("A strand cannot join itself.", None)
		strand.join(target)
		return UNIT

	def close_strand(self, sid):
		target = self._strand_named(sid)
		if target is None: return self.executor.fault("No strand %r." % (sid,), None)
		if target is self.scheduler.main: return self.executor.fault("The general strand cannot be closed.", None)
		if target is self.context.strand: return self.exit_strand()
		target.stop()
		return UNIT

	def exit_strand(self):
		strand = self.strand_here()
		if strand is None: return self.would_block()
		if strand is self.scheduler.main: return self.executor.fault("The general strand cannot exit.", None)
		strand.exit()

	def echo(self, text: str):
		print(text, file=self.stdout)

class Executor(Visitor):
	def __init__(self, engine: Engine):
		self.engine = engine
		self.policy = engine.policy

	@property
	def ctx(self) -> Context: return self.engine.context

	def hop(self, error: Error) -> Error:
		return self.policy.hop(self.ctx, error)

	def fault(self, message: str, site) -> Error:
		error = fault(message)
		self.engine.report.fault(error, site)
		return self.policy.produced(self.ctx, error)

	def run(self, instructions, frame: Frame):
		for instruction in instructions:
			frame.pc = instruction
			result = self.visit(instruction, frame)
			if isinstance(result, Transfer): return result
		return None

	def _scoped(self, block: syntax.Block, frame: Frame, breadcrumb, bindings=()):
		inner = frame.child(breadcrumb)
		try:
			for name, value in bindings: self.engine.declare(inner, name, value)
			return self.run(block.instructions, inner)
		finally: inner.exit()

	###########################################################################
	# Expressions

	def visit_Literal(self, it: syntax.Literal, frame): return copy_value(it.value)

	def visit_ErrorLiteral(self, it: syntax.ErrorLiteral, frame):
		return self.policy.produced(self.ctx, Error(it.message, it.energy_cost))

	def visit_Lookup(self, it: syntax.Lookup, frame): return frame.resolve(it.name)[1]

	def visit_Group(self, it: syntax.Group, frame): return self.visit(it.inner, frame)

	def visit_BinExp(self, it: syntax.BinExp, frame):
		lhs = self.visit(it.lhs, frame)
		if is_error(lhs): return self.hop(lhs)
		if it.op in SHORTCUT:
			if bool(lhs) == SHORTCUT[it.op]: return lhs
			rhs = self.visit(it.rhs, frame)
			return self.hop(rhs) if is_error(rhs) else rhs
		rhs = self.visit(it.rhs, frame)
		if is_error(rhs): return self.hop(rhs)
		try: return PRIMITIVE_BINARY[it.op](lhs, rhs)
		except ZeroDivisionError: return self.fault("Division by zero.", it)
		except (TypeError, ValueError, OverflowError):
			return self.fault("%s %s %s is undefined." % (kind_of(lhs), it.op, kind_of(rhs)), it)

	def visit_UnaryExp(self, it: syntax.UnaryExp, frame):
		arg = self.visit(it.arg, frame)
		if is_error(arg): return self.hop(arg)
		try: return PRIMITIVE_UNARY[it.op](arg)
		except TypeError: return self.fault("%s%s is undefined." % (it.op, kind_of(arg)), it)

	def visit_AddressOf(self, it: syntax.AddressOf, frame):
		return Address(frame.chase(it.name), it.name)

	def visit_Deref(self, it: syntax.Deref, frame):
		pointer = self._pointer(it, frame)
		if is_error(pointer): return pointer
		return pointer.frame.fetch(pointer.name)

	def _pointer(self, it: syntax.Deref, frame):
		pointer = self.visit(it.pointer, frame)
		if is_error(pointer): return self.hop(pointer)
		if not isinstance(pointer, Address): return self.fault("Cannot dereference a %s." % kind_of(pointer), it)
		if not pointer.frame.holds(pointer.name): return self.fault("Dangling address %r." % (pointer,), it)
		return pointer

	def visit_FieldReference(self, it: syntax.FieldReference, frame):
		lhs = self.visit(it.lhs, frame)
		if is_error(lhs): return self.hop(lhs)
		name = it.field_name
		if isinstance(lhs, Struct) and name in lhs.fields: return lhs.fields[name]
		if type(lhs) is tuple and name.isdigit() and int(name) < len(lhs): return lhs[int(name)]
		return self.fault("A %s has no field %r." % (kind_of(lhs), name), it)

	def visit_IndexReference(self, it: syntax.IndexReference, frame):
		lhs = self.visit(it.lhs, frame)
		if is_error(lhs): return self.hop(lhs)
		index = self.visit(it.index, frame)
		if is_error(index): return self.hop(index)
		heap = self.engine.heap
		try:
			if isinstance(lhs, Handle):
				if lhs.kind == "map": return heap.map_get(lhs, index)
				return heap.vector_get(lhs, index)
			if isinstance(lhs, (Slice, str)) or type(lhs) is tuple:
				if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(lhs):
					raise HeapFault("Index %r out of range" % (index,))
				item = lhs[index]
				return Char(item) if isinstance(lhs, str) else item
		except HeapFault as ex: return self.fault(str(ex), it)
		return self.fault("Cannot index into a %s." % kind_of(lhs), it)

	def visit_TupleLiteral(self, it: syntax.TupleLiteral, frame):
		return tuple(copy_value(self.visit(x, frame)) for x in it.items)

	def visit_SliceLiteral(self, it: syntax.SliceLiteral, frame):
		return Slice(copy_value(self.visit(x, frame)) for x in it.items)

	def visit_StructLiteral(self, it: syntax.StructLiteral, frame):
		return Struct(it.type_name, {name: copy_value(self.visit(x, frame)) for name, x in it.fields})

	def visit_VectorLiteral(self, it: syntax.VectorLiteral, frame):
		items = [copy_value(self.visit(x, frame)) for x in it.items]
		return self.engine.heap.allocate_vector(items, it.capacity)

	def visit_MapLiteral(self, it: syntax.MapLiteral, frame):
		pairs = [(self.visit(k, frame), copy_value(self.visit(v, frame))) for k, v in it.pairs]
		return self.engine.heap.allocate_map(pairs, it.capacity)

	def visit_RangeLiteral(self, it: syntax.RangeLiteral, frame):
		parts = [self.visit(x, frame) for x in (it.start, it.stop, it.step) if x is not None]
		for part in parts:
			if is_error(part): return self.hop(part)
		try: return range(*parts)
		except (TypeError, ValueError): return self.fault("Bad range bounds %r." % (parts,), it)

	def visit_LambdaForm(self, it: syntax.LambdaForm, frame):
		return self.engine.heap.allocate_closure(Closure(it, snapshot(frame, it)))

	def visit_Call(self, it: syntax.Call, frame):
		callee = self.visit(it.fn_exp, frame)
		if is_error(callee): return self.hop(callee)
		args = [self.visit(a, frame) for a in it.args]
		return self.engine.call(callee, args, it)

	def visit_IfExpr(self, it: syntax.IfExpr, frame):
		condition = self.visit(it.condition, frame)
		if is_error(condition): return self.hop(condition)
		return self.visit(it.then_part if condition else it.else_part, frame)

	def visit_MatchExpr(self, it: syntax.MatchExpr, frame):
		subject = self.visit(it.subject, frame)
		if is_error(subject): return self.hop(subject)
		for arm in it.arms:
			bindings = self._match(arm.pattern, subject)
			if bindings is not None:
				inner = frame.child(it)
				try:
					for name, value in bindings: self.engine.declare(inner, name, value)
					return self.visit(arm.body, inner)
				finally: inner.exit()
		if it.otherwise is not None: return self.visit(it.otherwise, frame)
		return self.fault("No arm matches %r." % (subject,), it)

	def visit_TryExpr(self, it: syntax.TryExpr, frame):
		try:
			with self.policy.containing(self.ctx):
				value = self.visit(it.main, frame)
				if is_error(value): raise Contained(value)
		except Contained as c:
			self.engine.report.contained(c.error, it)
			return UNIT if it.otherwise is None else self.visit(it.otherwise, frame)
		return value

	def _match(self, pattern, subject) -> Optional[list]:
		""" The bindings an arm would make, or None if it does not match. """
		if isinstance(pattern, syntax.ValuePattern):
			if kind_of(pattern.value) == kind_of(subject) and pattern.value == subject: return []
		elif isinstance(pattern, syntax.StructPattern):
			if isinstance(subject, Struct) and subject.type_name == pattern.type_name and all(n in subject.fields for n in pattern.names):
				return [(n, subject.fields[n]) for n in pattern.names]
		elif isinstance(pattern, syntax.TuplePattern):
			if (isinstance(subject, Slice) or type(subject) is tuple) and len(subject) == len(pattern.names):
				return list(zip(pattern.names, subject))
		else:
			raise NotImplementedError(type(pattern))
		return None

	###########################################################################
	# Statements

	def visit_Block(self, it: syntax.Block, frame):
		return self._scoped(it, frame, it)

	def visit_Declaration(self, it: syntax.Declaration, frame):
		value = self.visit(it.value, frame)
		target = it.target
		if isinstance(target, str):
			self.engine.declare(frame, target, value)
			return
		if is_error(value): parts = [value] * len(target.names)
		else:
			bindings = self._match(target, value)
			if bindings is None:
				error = self.fault("Cannot destructure a %s that way." % kind_of(value), it)
				parts = [error] * len(target.names)
			else: parts = [v for _, v in bindings]
		for name, part in zip(target.names, parts):
			self.engine.declare(frame, name, part)

	def visit_Assignment(self, it: syntax.Assignment, frame):
		value = self.visit(it.value, frame)
		target = it.target
		if isinstance(target, syntax.Lookup):
			self.engine.assign(frame, target.name, value)
		elif isinstance(target, syntax.Deref):
			pointer = self._pointer(target, frame)
			if not is_error(pointer): self.engine.assign_at(pointer.frame, pointer.name, value)
		elif isinstance(target, syntax.FieldReference):
			self._assign_field(target, value, frame)
		else:
			self._assign_index(target, value, frame)

	def _assign_field(self, target: syntax.FieldReference, value, frame):
		names = []
		node = target
		while isinstance(node, syntax.FieldReference):
			names.insert(0, node.field_name)
			node = node.lhs
		if not isinstance(node, syntax.Lookup):
			return self.fault("Cannot assign to a field of that.", target)
		owner, root = frame.resolve(node.name)
		if is_error(root): return self.hop(root)
		updated = copy_value(root)
		holder = updated
		for name in names[:-1]:
			holder = holder.fields.get(name) if isinstance(holder, Struct) else None
		if not (isinstance(holder, Struct) and names[-1] in holder.fields):
			return self.fault("No field %r to assign." % names[-1], target)
		holder.fields[names[-1]] = copy_value(value)
		self.engine.assign_at(owner, node.name, updated)

	def _assign_index(self, target: syntax.IndexReference, value, frame):
		container = self.visit(target.lhs, frame)
		if is_error(container): return self.hop(container)
		index = self.visit(target.index, frame)
		if is_error(index): return self.hop(index)
		if isinstance(container, Handle):
			value = self.engine.admit(value)
			try:
				if container.kind == "map": self.engine.heap.map_insert(container, index, value)
				else: self.engine.heap.vector_set(container, index, value)
			except HeapFault as ex: return self.fault(str(ex), target)
		elif isinstance(container, Slice) and isinstance(target.lhs, syntax.Lookup):
			if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(container):
				return self.fault("Index %r out of range" % (index,), target)
			items = list(container)
			items[index] = copy_value(value)
			self.engine.assign(frame, target.lhs.name, Slice(items))
		else:
			return self.fault("Cannot assign into a %s." % kind_of(container), target)

	def visit_ForLoop(self, it: syntax.ForLoop, frame):
		iterable = self.visit(it.iterable, frame)
		items = [iterable] if is_error(iterable) else self._iterate(iterable, it)
		if is_error(items): return None
		body_weight = self.engine.weigh(it.body, frame)
		for item in items:
			if is_error(item):
				# Binding the item is its hop; the rest of the pass stores it too.
				with self.policy.tainted(self.ctx, item):
					result = self._iteration(it, frame, body_weight, [(it.name, item)])
			else:
				result = self._iteration(it, frame, body_weight, [(it.name, item)])
			if result is BREAK: break
			if isinstance(result, Returning): return result
		return None

	def _iterate(self, iterable, site):
		heap = self.engine.heap
		if isinstance(iterable, Handle):
			try:
				if iterable.kind == "vector":
					heap.deref(iterable, "vector")
					return self._vector_items(iterable)
				if iterable.kind == "map": return iter(heap.map_keys(iterable))
			except HeapFault as ex: return self.fault(str(ex), site)
		elif isinstance(iterable, (Slice, range)) or type(iterable) is tuple:
			return iter(iterable)
		elif isinstance(iterable, str):
			return map(Char, iterable)
		return self.fault("Cannot iterate over a %s." % kind_of(iterable), site)

	def _vector_items(self, handle: Handle):
		""" Lazy, so that changes to the vector during the loop are seen. """
		heap = self.engine.heap
		index = 0
		while True:
			try:
				if index >= heap.length(handle): return
				item = heap.vector_get(handle, index)
			except HeapFault as ex:
				yield fault(str(ex))
				return
			yield item
			index += 1

	def _iteration(self, it, frame, body_weight: int, bindings=()):
		self.engine.charge(body_weight)
		return self._scoped(it.body, frame, it, bindings)

	def visit_WhileLoop(self, it: syntax.WhileLoop, frame):
		body_weight = self.engine.weigh(it.body, frame)
		while True:
			condition = self.visit(it.condition, frame)
			if is_error(condition):
				error = self.hop(condition)
				with self.policy.tainted(self.ctx, error):
					result = self._iteration(it, frame, body_weight)
				return result if isinstance(result, Returning) else None
			if not condition: return None
			result = self._iteration(it, frame, body_weight)
			if result is BREAK: return None
			if isinstance(result, Returning): return result

	def visit_Loop(self, it: syntax.Loop, frame):
		body_weight = self.engine.weigh(it.body, frame)
		while True:
			result = self._iteration(it, frame, body_weight)
			if result is BREAK: return None
			if isinstance(result, Returning): return result

	def visit_Break(self, it: syntax.Break, frame): return BREAK
	def visit_Continue(self, it: syntax.Continue, frame): return CONTINUE

	def visit_Return(self, it: syntax.Return, frame):
		if it.value is None: return Returning(UNIT)
		value = self.visit(it.value, frame)
		if is_error(value): value = self.hop(value)
		return Returning(value)

	def visit_FunctionDef(self, it: syntax.FunctionDef, frame):
		self.engine.declare(frame, it.name, Procedure(it, frame))

	def visit_EventDef(self, it: syntax.EventDef, frame):
		observables = tuple(self._observable(spec, frame) for spec in it.observables)
		self.engine.register_event(Event(it.name, observables, it.trigger, it.body, weakref.ref(frame)))

	def _observable(self, spec: syntax.ObservableSpec, frame):
		subject = None if spec.subject is None else self.visit(spec.subject, frame)
		level = None if spec.level is None else self.visit(spec.level, frame)
		for part in (subject, level):
			if is_error(part): self.hop(part)
		return make_observable(spec.kind, subject, spec.comparator, level)

	def visit_IfStmt(self, it: syntax.IfStmt, frame):
		condition = self.visit(it.condition, frame)
		if is_error(condition):
			error = self.hop(condition)
			with self.policy.tainted(self.ctx, error):
				return self.visit(it.then_part, frame)
		if condition: return self.visit(it.then_part, frame)
		if it.else_part is not None: return self.visit(it.else_part, frame)

	def visit_MatchStmt(self, it: syntax.MatchStmt, frame):
		subject = self.visit(it.subject, frame)
		if is_error(subject):
			error = self.hop(subject)
			arm = main_branch(it.arms)
			with self.policy.tainted(self.ctx, error):
				if arm is None:
					return None if it.otherwise is None else self.visit(it.otherwise, frame)
				names = getattr(arm.pattern, "names", ())
				return self._scoped(arm.body, frame, it, [(n, error) for n in names])
		for arm in it.arms:
			bindings = self._match(arm.pattern, subject)
			if bindings is not None: return self._scoped(arm.body, frame, it, bindings)
		if it.otherwise is not None: return self.visit(it.otherwise, frame)

	def visit_TryStmt(self, it: syntax.TryStmt, frame):
		try:
			with self.policy.containing(self.ctx):
				return self.visit(it.main, frame)
		except Contained as c:
			self.engine.report.contained(c.error, it)
			if it.otherwise is not None: return self.visit(it.otherwise, frame)

	def visit_Free(self, it: syntax.Free, frame):
		owner, value = frame.resolve(it.name)
		if isinstance(value, Handle) and value in self.engine.heap:
			self.engine.free(value)
		self.engine.assign_at(owner, it.name, UNIT)
