import unittest
from io import StringIO

from ciphel import syntax
from ciphel.runtime import Engine
from ciphel.ledger import Player, OutOfEnergy
from ciphel.heap import GROWTH_PENALTY
from ciphel.stacking import UnresolvedVariable
from ciphel.values import Struct, Error, Slice, Handle, Char, UNIT

def call(name, *args): return syntax.Call(syntax.Lookup(name), args)
def let(name, value): return syntax.Declaration(name, value)
def lit(value): return syntax.Literal(value)
def var(name): return syntax.Lookup(name)
def assign(name, value): return syntax.Assignment(syntax.Lookup(name), value)
def plus(a, b): return syntax.BinExp(a, "+", b)

class EngineTests(unittest.TestCase):

	def setUp(self) -> None:
		self.out = StringIO()
		self.engine = Engine(stdout=self.out)

	def fetch(self, name): return self.engine.general.fetch(name)
	def spent(self): return self.engine.player.consumed

	def test_arithmetic(self):
		self.engine.execute(
			let("a", syntax.BinExp(lit(7), "/", lit(-2))),
			let("b", syntax.BinExp(lit(-7), "%", lit(2))),
			let("c", syntax.BinExp(lit(2), "^", lit(10))),
			let("d", syntax.UnaryExp("!", lit(False))),
			let("e", syntax.BinExp(lit(False), "or", lit(3))),
			let("f", syntax.BinExp(lit(0), "and", syntax.BinExp(lit(1), "/", lit(0)))),
		)
		self.assertEqual([-3, -1, 1024, True, 3, 0], [self.fetch(n) for n in "abcdef"])

	def test_energy_is_charged_before_running(self):
		self.engine.execute(let("x", plus(lit(1), lit(2))))
		self.assertEqual(3, self.spent())
		self.assertEqual(3, self.fetch("x"))

	def test_platform_energy_sees_its_own_charge(self):
		self.engine.execute(let("left", call("energy")))
		self.assertEqual(self.engine.player.energy, self.fetch("left"))

	def test_print(self):
		self.engine.execute(call("print", lit("hello"), lit(42), lit(True)))
		self.assertEqual("hello 42 true\n", self.out.getvalue())

	def test_out_of_energy_rolls_back_the_step(self):
		engine = Engine(player=Player(20))
		engine.execute(let("v", call("vec")), let("a", lit(1)))
		self.assertEqual(13, engine.player.energy)
		doomed = syntax.Block([
			assign("a", lit(2)),
			syntax.Loop(syntax.Block([call("append", var("v"), lit(1))])),
		])
		with self.assertRaises(OutOfEnergy):
			engine.execute(doomed)
		self.assertEqual(1, engine.general.fetch("a"))
		self.assertEqual(0, engine.heap.length(engine.general.fetch("v")))
		self.assertEqual(2, engine.player.energy)
		self.assertTrue(engine.report.sick())

	def test_unaffordable_step_does_nothing(self):
		engine = Engine(player=Player(3))
		with self.assertRaises(OutOfEnergy):
			engine.execute(let("v", call("vec")))
		self.assertEqual(3, engine.player.energy)
		self.assertFalse(engine.general.holds("v"))

	def test_unresolved_variable_is_fatal(self):
		with self.assertRaises(UnresolvedVariable):
			self.engine.execute(let("x", var("nobody")))
		self.assertFalse(self.engine.general.holds("x"))

	def test_block_scope(self):
		self.engine.execute(
			let("x", lit(1)),
			syntax.Block([let("x", lit(2)), let("y", lit(3))]),
		)
		self.assertEqual(1, self.fetch("x"))
		self.assertFalse(self.engine.general.holds("y"))

	def test_procedure_sees_live_scope(self):
		bump = syntax.FunctionDef("bump", [], syntax.Block([assign("g", plus(var("g"), lit(1)))]))
		self.engine.execute(let("g", lit(0)), bump, call("bump"), call("bump"))
		self.assertEqual(2, self.fetch("g"))

	def test_function_shadowed_in_a_block(self):
		def returning(n): return syntax.FunctionDef("f", [], syntax.Block([syntax.Return(lit(n))]))
		self.engine.execute(
			returning(1),
			let("a", lit(0)),
			syntax.Block([returning(2), assign("a", call("f"))]),
			let("b", call("f")),
		)
		self.assertEqual((2, 1), (self.fetch("a"), self.fetch("b")))

	def test_recursion(self):
		n = var("n")
		body = syntax.Block([
			syntax.IfStmt(syntax.BinExp(n, "<", lit(2)), syntax.Block([syntax.Return(n)])),
			syntax.Return(plus(
				call("fib", syntax.BinExp(n, "-", lit(1))),
				call("fib", syntax.BinExp(n, "-", lit(2))),
			)),
		])
		self.engine.execute(syntax.FunctionDef("fib", [syntax.Param("n")], body), let("f", call("fib", lit(10))))
		self.assertEqual(55, self.fetch("f"))

	def test_closure_state_persists(self):
		counter = syntax.LambdaForm([], syntax.Block([
			assign("n", plus(var("n"), lit(1))),
			syntax.Return(var("n")),
		]))
		self.engine.execute(
			let("counter", lit(UNIT)),
			syntax.Block([let("n", lit(0)), assign("counter", counter)]),
			let("first", call("counter")),
			let("second", call("counter")),
		)
		self.assertEqual((1, 2), (self.fetch("first"), self.fetch("second")))
		self.assertEqual(Handle(1, "closure"), self.fetch("counter"))

	def test_closure_snapshot_is_a_copy(self):
		peek = syntax.LambdaForm([], syntax.Block([syntax.Return(var("n"))]))
		self.engine.execute(
			let("f", lit(UNIT)),
			syntax.Block([
				let("n", lit(1)),
				assign("f", peek),
				assign("n", lit(2)),
			]),
			let("seen", call("f")),
		)
		self.assertEqual(1, self.fetch("seen"))

	def test_arity(self):
		fn = syntax.FunctionDef("two", [syntax.Param("a"), syntax.Param("b")], syntax.Block([]))
		self.engine.execute(fn, let("r", call("two", lit(1))))
		self.assertIsInstance(self.fetch("r"), Error)

	def test_struct_copy_on_store(self):
		self.engine.execute(
			let("p", syntax.StructLiteral("Point", [("x", lit(1)), ("y", lit(2))])),
			let("q", var("p")),
			syntax.Assignment(syntax.FieldReference(var("q"), "x"), lit(5)),
		)
		self.assertEqual(Struct("Point", {"x": 1, "y": 2}), self.fetch("p"))
		self.assertEqual(5, self.fetch("q").fields["x"])

	def test_heap_values_are_shared(self):
		self.engine.execute(
			let("v", syntax.VectorLiteral([])),
			let("w", var("v")),
			call("append", var("w"), lit(1)),
			let("n", call("len", var("v"))),
		)
		self.assertEqual(1, self.fetch("n"))

	def test_vector_growth(self):
		self.engine.execute(let("v", call("vec")))
		for i in range(4):
			self.engine.execute(call("append", var("v"), lit(i)))
		self.engine.execute(let("before", call("address", var("v"))))
		spent = self.spent()
		self.engine.execute(call("append", var("v"), lit(4)))
		self.assertEqual(3 + GROWTH_PENALTY, self.spent() - spent)
		self.engine.execute(let("after", call("address", var("v"))), let("room", call("cap", var("v"))))
		self.assertEqual((0, 48, 8), (self.fetch("before"), self.fetch("after"), self.fetch("room")))

	def test_zero_capacity_literal_grows(self):
		self.engine.execute(let("v", syntax.VectorLiteral([], capacity=0)))
		for i in range(3):
			self.engine.execute(call("append", var("v"), lit(i)))
		self.engine.execute(let("n", call("len", var("v"))), let("room", call("cap", var("v"))))
		self.assertEqual(3, self.fetch("n"))
		self.assertGreaterEqual(self.fetch("room"), self.fetch("n"))

	def test_maps(self):
		self.engine.execute(
			let("m", syntax.MapLiteral([(lit("a"), lit(1))])),
			call("insert", var("m"), lit("b"), lit(2)),
			syntax.Assignment(syntax.IndexReference(var("m"), lit("c")), lit(3)),
			let("b", syntax.IndexReference(var("m"), lit("b"))),
			let("has", call("contains", var("m"), lit("c"))),
			let("gone", call("delete", var("m"), lit("a"))),
			let("n", call("len", var("m"))),
		)
		self.assertEqual([2, True, 1, 2], [self.fetch(k) for k in ("b", "has", "gone", "n")])

	def test_pointers(self):
		self.engine.execute(
			let("x", lit(1)),
			let("p", syntax.AddressOf("x")),
			syntax.Assignment(syntax.Deref(var("p")), lit(9)),
			let("y", syntax.Deref(var("p"))),
		)
		self.assertEqual((9, 9), (self.fetch("x"), self.fetch("y")))

	def test_dangling_address(self):
		self.engine.execute(
			let("p", lit(UNIT)),
			syntax.Block([let("t", lit(1)), assign("p", syntax.AddressOf("t"))]),
			let("d", syntax.Deref(var("p"))),
		)
		self.assertIsInstance(self.fetch("d"), Error)

	def test_free(self):
		self.engine.execute(
			let("v", syntax.VectorLiteral([lit(1)])),
			let("w", var("v")),
			syntax.Free("v"),
			let("n", call("len", var("w"))),
		)
		self.assertIsInstance(self.fetch("n"), Error)
		self.assertEqual(0, len(self.engine.heap))

	def test_for_loop(self):
		self.engine.execute(let("s", lit(0)))
		spent = self.spent()
		self.engine.execute(syntax.ForLoop("i", syntax.RangeLiteral(lit(0), lit(3)), syntax.Block([
			assign("s", plus(var("s"), var("i"))),
		])))
		self.assertEqual(3, self.fetch("s"))
		# Header 3, then one per pass.
		self.assertEqual(6, self.spent() - spent)

	def test_loop_control(self):
		self.engine.execute(
			let("s", lit(0)),
			let("i", lit(0)),
			syntax.Loop(syntax.Block([
				assign("i", plus(var("i"), lit(1))),
				syntax.IfStmt(syntax.BinExp(var("i"), ">", lit(5)), syntax.Block([syntax.Break()])),
				syntax.IfStmt(syntax.BinExp(syntax.BinExp(var("i"), "%", lit(2)), "==", lit(0)), syntax.Block([syntax.Continue()])),
				assign("s", plus(var("s"), var("i"))),
			])),
		)
		self.assertEqual(1 + 3 + 5, self.fetch("s"))

	def test_iterate_string_and_vector(self):
		self.engine.execute(
			let("chars", syntax.VectorLiteral([])),
			syntax.ForLoop("c", lit("ab"), syntax.Block([call("append", var("chars"), var("c"))])),
			let("total", lit(0)),
			syntax.ForLoop("x", syntax.VectorLiteral([lit(1), lit(2), lit(3)]), syntax.Block([
				assign("total", plus(var("total"), var("x"))),
			])),
		)
		self.assertEqual(Char("b"), self.engine.heap.vector_get(self.fetch("chars"), 1))
		self.assertEqual(6, self.fetch("total"))

	def test_destructuring(self):
		self.engine.execute(
			let("pair", syntax.TupleLiteral([lit(1), lit(2)])),
			syntax.Declaration(syntax.TuplePattern(["a", "b"]), var("pair")),
			let("s", syntax.SliceLiteral([lit(5), lit(6)])),
			syntax.Assignment(syntax.IndexReference(var("s"), lit(0)), lit(7)),
		)
		self.assertEqual((1, 2), (self.fetch("a"), self.fetch("b")))
		self.assertEqual(Slice([7, 6]), self.fetch("s"))

	def test_match_expression(self):
		arms = [
			syntax.Arm(syntax.ValuePattern(1), lit("one")),
			syntax.Arm(syntax.StructPattern("P", ["x"]), var("x")),
		]
		self.engine.execute(
			let("a", syntax.MatchExpr(lit(1), arms, lit("other"))),
			let("b", syntax.MatchExpr(syntax.StructLiteral("P", [("x", lit(4))]), arms)),
			let("c", syntax.MatchExpr(lit(True), arms, lit("other"))),
		)
		self.assertEqual(["one", 4, "other"], [self.fetch(n) for n in "abc"])

	def test_commit_and_revert(self):
		ident = self.engine.commit(let("x", lit(1)))
		self.assertEqual(1, len(self.engine.general.instructions))
		self.engine.revert(ident)
		self.assertEqual(0, len(self.engine.general.instructions))

if __name__ == '__main__':
	unittest.main()
