"""
count = 3
log = vec()
event on_log on heap-change(log) { print("logged", len(log)) }
while count > 0 { append(log, count); count = count - 1 }
print("liftoff")
"""
from ciphel.syntax import (
	Literal, Lookup, BinExp, Call, VectorLiteral, Block,
	Declaration, Assignment, WhileLoop, EventDef, ObservableSpec,
)

def call(name, *args): return Call(Lookup(name), args)

PROGRAM = [
	Declaration("count", Literal(3)),
	Declaration("log", VectorLiteral([])),
	EventDef("on_log", [ObservableSpec("heap-change", Lookup("log"))], None, Block([
		call("print", Literal("logged"), call("len", Lookup("log"))),
	])),
	WhileLoop(BinExp(Lookup("count"), ">", Literal(0)), Block([
		call("append", Lookup("log"), Lookup("count")),
		Assignment(Lookup("count"), BinExp(Lookup("count"), "-", Literal(1))),
	])),
	call("print", Literal("liftoff")),
]
