"""
ch = chan()
listen(ch)
worker = fn(c) { send(c, 42) }
spawn(worker, ch)
answer = receive(ch, 5)
print("answer", answer)
"""
from ciphel.syntax import (
	Literal, Lookup, Call, Block, Declaration, LambdaForm, Param,
)

def call(name, *args): return Call(Lookup(name), args)

PROGRAM = [
	Declaration("ch", call("chan")),
	call("listen", Lookup("ch")),
	Declaration("worker", LambdaForm([Param("c", "chan")], Block([
		call("send", Lookup("c"), Literal(42)),
	]))),
	call("spawn", Lookup("worker"), Lookup("ch")),
	Declaration("answer", call("receive", Lookup("ch"), Literal(5))),
	call("print", Literal("answer"), Lookup("answer")),
]
