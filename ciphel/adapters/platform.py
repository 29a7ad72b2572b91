"""
The platform API: how a Ciphel program reaches the game and the rest of the world.
Every one of these costs the same flat rate to call.

Each routine takes the engine first, then its Ciphel arguments.
"""
from ..values import PlatformFunction, Struct, UNIT, copy_value, is_error, as_text
from ..channels import WouldBlock

def _print(engine, *values):
	engine.echo(" ".join(map(as_text, values)))
	return UNIT

def _channel(engine, handle):
	return engine.heap.payload(handle, "channel")

def _send(engine, handle, value):
	_channel(engine, handle).send(engine.whoami(), copy_value(value))
	return UNIT

def _receive(engine, handle, timeout=-1):
	channel = _channel(engine, handle)
	try: value = channel.receive(engine.whoami(), timeout, engine.parker())
	except WouldBlock: return engine.would_block()
	if is_error(value): return engine.policy.hop(engine.context, value)
	return value

def _listen(engine, handle):
	_channel(engine, handle).attach(engine.whoami())
	return UNIT

def _unlisten(engine, handle):
	_channel(engine, handle).detach(engine.whoami())
	return UNIT

def _spawn(engine, callee, *args):
	return engine.spawn(callee, list(args))

# Strand control. Whatever would park the caller gets a would-block Error on the host.

def _join(engine, sid):
	return engine.join(sid)

def _sleep(engine, ticks):
	return engine.sleep(ticks)

def _wait(engine):
	return engine.wait()

def _wake(engine, sid):
	return engine.wake(sid)

def _close(engine, sid):
	return engine.close_strand(sid)

def _exit(engine):
	return engine.exit_strand()

def _remove_event(engine, name):
	return engine.remove_event(name)

def _energy(engine):
	return engine.player.energy

def _ecr(engine):
	return engine.player.ecr

def _cell(engine, cell_id):
	cell = engine.ribbon.cell(cell_id)
	content = UNIT if cell.content is None else cell.content
	return Struct("cell", {"mode": cell.mode, "state": cell.state, "substate": cell.substate, "content": content})

def _cell_setter(method_name):
	def setter(engine, cell_id, value):
		if is_error(value):
			# An Error reaching a cell corrupts it back to its defaults.
			engine.ribbon.reset_cell(cell_id)
			return engine.policy.hop(engine.context, value)
		getattr(engine.ribbon, method_name)(cell_id, copy_value(value))
		return UNIT
	return setter

def _move_cursor(engine, cursor_id, cell_id):
	engine.ribbon.move_cursor(cursor_id, cell_id)
	return UNIT

def _address(engine, handle):
	return engine.heap.backing_address(handle)

PLATFORM = [
	# name, routine, argument positions that may hold an Error without short-circuit
	("print", _print, ()),
	("send", _send, (1,)),
	("receive", _receive, ()),
	("listen", _listen, ()),
	("unlisten", _unlisten, ()),
	("spawn", _spawn, ()),
	("join", _join, ()),
	("sleep", _sleep, ()),
	("wait", _wait, ()),
	("wake", _wake, ()),
	("close", _close, ()),
	("exit", _exit, ()),
	("remove_event", _remove_event, ()),
	("energy", _energy, ()),
	("ecr", _ecr, ()),
	("cell", _cell, ()),
	("set_mode", _cell_setter("set_mode"), (1,)),
	("set_state", _cell_setter("set_state"), (1,)),
	("set_substate", _cell_setter("set_substate"), (1,)),
	("write_cell", _cell_setter("write"), (1,)),
	("move_cursor", _move_cursor, ()),
	("address", _address, ()),
]

def install(frame):
	for name, fn, stores in PLATFORM:
		frame.declare(name, PlatformFunction(name, fn, stores))
