import unittest

from ciphel import syntax
from ciphel.runtime import Engine
from ciphel.values import Error, UNIT
from ciphel.propagation import DEFAULT_FAULT_COST

def call(name, *args): return syntax.Call(syntax.Lookup(name), args)
def let(name, value): return syntax.Declaration(name, value)
def lit(value): return syntax.Literal(value)
def var(name): return syntax.Lookup(name)
def assign(name, value): return syntax.Assignment(syntax.Lookup(name), value)
def error(message, cost): return syntax.ErrorLiteral(message, cost)

class ErrorPropagationTests(unittest.TestCase):
	""" Errors are values. Every hop costs the Error's energy again. """

	def setUp(self) -> None:
		self.engine = Engine()

	def spent(self): return self.engine.player.consumed
	def fetch(self, name): return self.engine.general.fetch(name)

	def test_each_hop_charges(self):
		self.engine.execute(
			let("x", error("E", 5)),
			let("y", syntax.BinExp(var("x"), "+", lit(1))),
		)
		self.assertEqual(Error("E", 5), self.fetch("y"))
		# Two declarations at two apiece, plus one hop.
		self.assertEqual(2 + 2 + 5, self.spent())
		self.engine.execute(
			let("z", syntax.BinExp(var("y"), "*", lit(2))),
			let("w", syntax.BinExp(var("z"), "-", lit(3))),
		)
		self.assertEqual(9 + 2 * (2 + 5), self.spent())

	def test_moving_is_free(self):
		self.engine.execute(let("x", error("E", 5)), let("y", var("x")))
		self.assertEqual(Error("E", 5), self.fetch("y"))
		self.assertEqual(2 + 1, self.spent())

	def test_tainted_branch(self):
		self.engine.execute(
			let("e", error("T", 3)),
			let("a", lit(1)),
			let("b", lit(2)),
		)
		self.assertEqual(6, self.spent())
		self.engine.execute(syntax.IfStmt(
			var("e"),
			syntax.Block([assign("a", lit(10)), assign("b", lit(20))]),
			syntax.Block([assign("a", lit(0))]),
		))
		# The if weighs 4. One hop for the condition, and one for each store in the main branch.
		self.assertEqual(6 + 4 + 3 * 3, self.spent())
		self.assertEqual(Error("T", 3), self.fetch("a"))
		self.assertEqual(Error("T", 3), self.fetch("b"))

	def test_taint_stays_in_the_branch(self):
		self.engine.execute(
			let("e", error("T", 3)),
			let("a", lit(1)),
			syntax.IfStmt(var("e"), syntax.Block([])),
			assign("a", lit(2)),
		)
		self.assertEqual(2, self.fetch("a"))

	def test_taint_follows_calls(self):
		setg = syntax.FunctionDef("setg", [], syntax.Block([assign("g", lit(10))]))
		pusher = syntax.LambdaForm([], syntax.Block([call("append", var("v"), lit(7))]))
		self.engine.execute(
			let("e", error("T", 3)),
			let("g", lit(1)),
			let("v", syntax.VectorLiteral([])),
			setg,
			let("pusher", pusher),
			syntax.IfStmt(var("e"), syntax.Block([call("setg"), call("pusher")])),
		)
		self.assertEqual(Error("T", 3), self.fetch("g"))
		self.assertEqual(Error("T", 3), self.engine.heap.vector_get(self.fetch("v"), 0))
		# Outside the branch, the same calls store clean values again.
		self.engine.execute(call("setg"), call("pusher"))
		self.assertEqual(10, self.fetch("g"))
		self.assertEqual(7, self.engine.heap.vector_get(self.fetch("v"), 1))

	def test_error_item_in_a_for_loop(self):
		self.engine.execute(
			let("e", error("F", 4)),
			let("clean", syntax.VectorLiteral([lit(1), lit(2)])),
			let("dirty", syntax.VectorLiteral([lit(1), var("e")])),
			let("s", lit(0)),
		)
		def loop(name, *body):
			before = self.spent()
			self.engine.execute(syntax.ForLoop("x", var(name), syntax.Block(body)))
			return self.spent() - before
		# Binding the Error item is one hop.
		self.assertEqual(loop("clean") + 4, loop("dirty"))
		# A store in that pass is one more, and stores the Error.
		self.assertEqual(loop("clean", assign("s", var("x"))) + 4 + 4, loop("dirty", assign("s", var("x"))))
		self.assertEqual(Error("F", 4), self.fetch("s"))
		self.engine.execute(assign("s", lit(3)))
		self.assertEqual(3, self.fetch("s"))

	def test_error_iterable_runs_once(self):
		self.engine.execute(
			let("e", error("I", 2)),
			let("n", lit(0)),
			let("seen", lit(0)),
			syntax.ForLoop("x", var("e"), syntax.Block([
				assign("n", syntax.BinExp(var("n"), "+", lit(1))),
				assign("seen", var("x")),
			])),
		)
		self.assertEqual(Error("I", 2), self.fetch("n"))
		self.assertEqual(Error("I", 2), self.fetch("seen"))

	def test_error_through_a_channel(self):
		self.engine.execute(
			let("e", error("C", 5)),
			let("ch", call("chan")),
			call("listen", var("ch")),
			call("send", var("ch"), var("e")),
		)
		before = self.spent()
		self.engine.execute(let("r", call("receive", var("ch"), lit(0))))
		# let is 1, the platform call 10, and the receiver pays the hop.
		self.assertEqual(1 + 10 + 5, self.spent() - before)
		self.assertEqual(Error("C", 5), self.fetch("r"))

	def test_tainted_match(self):
		arms = [
			syntax.Arm(syntax.TuplePattern(["p", "q"]), syntax.Block([assign("out", var("p"))])),
			syntax.Arm(syntax.ValuePattern(1), syntax.Block([assign("other", lit(1))])),
		]
		self.engine.execute(
			let("e", error("M", 1)),
			let("out", lit(0)),
			let("other", lit(0)),
			syntax.MatchStmt(var("e"), arms),
		)
		self.assertEqual(Error("M", 1), self.fetch("out"))
		self.assertEqual(0, self.fetch("other"))

	def test_try_statement(self):
		self.engine.execute(let("a", lit(1)), let("b", lit(1)))
		self.engine.execute(syntax.TryStmt(
			syntax.Block([assign("b", error("boom", 7)), assign("a", lit(2))]),
			syntax.Block([assign("b", lit(3))]),
		))
		self.assertEqual(1, self.fetch("a"))
		self.assertEqual(3, self.fetch("b"))
		# The try weighs three times its main scope, plus the else. Nothing hopped.
		self.assertEqual(4 + 3 * 4 + 2, self.spent())

	def test_try_without_else(self):
		self.engine.execute(let("a", lit(1)))
		self.engine.execute(syntax.TryStmt(syntax.Block([assign("a", syntax.BinExp(lit(1), "/", lit(0)))])))
		self.assertEqual(1, self.fetch("a"))

	def test_try_expression(self):
		self.engine.execute(
			let("r", syntax.TryExpr(error("x", 3), lit(7))),
			let("s", syntax.TryExpr(lit(5), lit(7))),
			let("t", syntax.TryExpr(error("x", 3))),
		)
		self.assertEqual(7, self.fetch("r"))
		self.assertEqual(5, self.fetch("s"))
		self.assertIs(UNIT, self.fetch("t"))

	def test_runtime_faults_become_errors(self):
		self.engine.execute(
			let("q", syntax.BinExp(lit(1), "/", lit(0))),
			let("v", syntax.VectorLiteral([])),
			let("i", syntax.IndexReference(var("v"), lit(3))),
			let("n", syntax.BinExp(lit("text"), "-", lit(1))),
		)
		for name in "qin":
			with self.subTest(name):
				value = self.fetch(name)
				self.assertIsInstance(value, Error)
				self.assertEqual(DEFAULT_FAULT_COST, value.energy_cost)

	def test_errors_short_circuit_core_calls(self):
		self.engine.execute(
			let("e", error("E", 4)),
			let("v", syntax.VectorLiteral([lit(1)])),
			let("n", call("len", var("e"))),
		)
		self.assertEqual(Error("E", 4), self.fetch("n"))
		before = self.spent()
		self.engine.execute(call("append", var("v"), var("e")))
		# Storing an Error in a vector is not a hop.
		self.assertEqual(2, self.spent() - before)
		self.assertEqual(Error("E", 4), self.engine.heap.vector_get(self.fetch("v"), 1))

	def test_errors_hop_into_user_functions(self):
		fn = syntax.FunctionDef("ident", [syntax.Param("x")], syntax.Block([syntax.Return(var("x"))]))
		self.engine.execute(fn, let("e", error("E", 5)))
		before = self.spent()
		self.engine.execute(let("r", call("ident", var("e"))))
		# let is 1, the call 1; one hop for the argument and one for the return.
		self.assertEqual(2 + 5 + 5, self.spent() - before)
		self.assertEqual(Error("E", 5), self.fetch("r"))

	def test_error_corrupts_a_cell(self):
		self.engine.execute(call("set_mode", lit(1), lit(5)))
		self.assertEqual(5, self.engine.ribbon.cell(1).mode)
		before = self.spent()
		self.engine.execute(call("set_state", lit(1), error("E", 2)))
		self.assertEqual(0, self.engine.ribbon.cell(1).mode)
		self.assertEqual(10 + 2, self.spent() - before)

	def test_error_condition_in_while_runs_once(self):
		self.engine.execute(
			let("e", error("W", 1)),
			let("n", lit(0)),
			syntax.WhileLoop(var("e"), syntax.Block([assign("n", lit(1))])),
		)
		self.assertEqual(Error("W", 1), self.fetch("n"))

if __name__ == '__main__':
	unittest.main()
