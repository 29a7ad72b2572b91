"""
Casm weights: the static energy cost of an instruction.

This is a pure function of the syntax tree, apart from one thing:
what a call costs depends on what gets called. So the caller may supply
a resolver that maps a callee expression to the function value it would
find at run-time. Anything the resolver cannot see is costed as an
anonymous user function: one-tenth of its callee-expression's own weight.

Loops are weighed for their header only. The engine charges the
weight of the body again on every pass through it.
"""
from boozetools.support.foundation import Visitor
from . import syntax
from .observables import COST, THRESHOLDS

class Weight:
	LOW = 1
	MEDIUM = 2
	HIGH = 4
	EXTREME = 8

PLATFORM_CALL_WEIGHT = 10
STATIC_DATA = 1
ADDRESSING = 1
POINTER_ACCESS = 2
NEGATION = 1
SIMPLE_ASSIGN = 1
INDIRECT_ASSIGN = 2
DECLARATION = 1
PATTERN_DECLARATION = 2
TRY_FACTOR = 3

def ceil_tenth(w: int) -> int:
	return -(-w // 10)

def observable_cost(spec: syntax.ObservableSpec) -> int:
	narrow, broad = COST[spec.kind]
	if spec.kind in THRESHOLDS: return narrow
	return broad if spec.subject is None else narrow

def weight(node, resolve_callee=None) -> int:
	return CasmWeigher(resolve_callee).visit(node)

class CasmWeigher(Visitor):
	def __init__(self, resolve_callee=None):
		self._resolve = resolve_callee or (lambda expr: None)

	def _sum(self, nodes) -> int:
		return sum(self.visit(n) for n in nodes if n is not None)

	def _optional(self, node) -> int:
		return 0 if node is None else self.visit(node)

	###########################################################################
	# Expressions

	def visit_Literal(self, it: syntax.Literal): return STATIC_DATA
	def visit_ErrorLiteral(self, it: syntax.ErrorLiteral): return STATIC_DATA
	def visit_Lookup(self, it: syntax.Lookup): return 0
	def visit_Group(self, it: syntax.Group): return self.visit(it.inner)
	def visit_BinExp(self, it: syntax.BinExp): return self.visit(it.lhs) + self.visit(it.rhs)
	def visit_UnaryExp(self, it: syntax.UnaryExp): return NEGATION + self.visit(it.arg)
	def visit_AddressOf(self, it: syntax.AddressOf): return ADDRESSING
	def visit_Deref(self, it: syntax.Deref): return POINTER_ACCESS + self.visit(it.pointer)
	def visit_FieldReference(self, it: syntax.FieldReference): return ADDRESSING + self.visit(it.lhs)
	def visit_IndexReference(self, it: syntax.IndexReference): return ADDRESSING + self.visit(it.lhs) + self.visit(it.index)

	def visit_TupleLiteral(self, it: syntax.TupleLiteral): return STATIC_DATA + self._sum(it.items)
	def visit_SliceLiteral(self, it: syntax.SliceLiteral): return STATIC_DATA + self._sum(it.items)
	def visit_VectorLiteral(self, it: syntax.VectorLiteral): return STATIC_DATA + self._sum(it.items)
	def visit_StructLiteral(self, it: syntax.StructLiteral): return STATIC_DATA + self._sum(e for _, e in it.fields)
	def visit_MapLiteral(self, it: syntax.MapLiteral): return STATIC_DATA + self._sum(x for pair in it.pairs for x in pair)
	def visit_RangeLiteral(self, it: syntax.RangeLiteral): return STATIC_DATA + self._sum((it.start, it.stop, it.step))

	def visit_LambdaForm(self, it: syntax.LambdaForm): return self._function(it.params, it.body)

	def visit_Call(self, it: syntax.Call):
		args = self._sum(it.args)
		callee = self._resolve(it.fn_exp)
		if callee is None:
			return ceil_tenth(self.visit(it.fn_exp)) + args
		return callee.call_weight(args)

	def visit_IfExpr(self, it: syntax.IfExpr):
		return self.visit(it.condition) + max(self.visit(it.then_part), self.visit(it.else_part))

	def visit_MatchExpr(self, it: syntax.MatchExpr):
		return self.visit(it.subject) + self._widest([arm.body for arm in it.arms] + [it.otherwise])

	def visit_TryExpr(self, it: syntax.TryExpr):
		return TRY_FACTOR * self.visit(it.main) + self._optional(it.otherwise)

	def _widest(self, branches) -> int:
		return max((self.visit(b) for b in branches if b is not None), default=0)

	###########################################################################
	# Statements

	def visit_Block(self, it: syntax.Block): return self._sum(it.instructions)

	def visit_Declaration(self, it: syntax.Declaration):
		return (PATTERN_DECLARATION if it.is_pattern() else DECLARATION) + self.visit(it.value)

	def visit_Assignment(self, it: syntax.Assignment):
		return (SIMPLE_ASSIGN if it.is_simple() else INDIRECT_ASSIGN) + self.visit(it.value)

	def visit_ForLoop(self, it: syntax.ForLoop): return self.visit(it.iterable)
	def visit_WhileLoop(self, it: syntax.WhileLoop): return self.visit(it.condition)
	def visit_Loop(self, it: syntax.Loop): return 0
	def visit_Break(self, it: syntax.Break): return 1
	def visit_Continue(self, it: syntax.Continue): return 1
	def visit_Free(self, it: syntax.Free): return 1
	def visit_Return(self, it: syntax.Return): return self._optional(it.value)

	def visit_FunctionDef(self, it: syntax.FunctionDef): return self._function(it.params, it.body)

	def _function(self, params, body) -> int:
		return sum(1 for p in params if not p.is_heap()) + self.visit(body)

	def visit_EventDef(self, it: syntax.EventDef):
		return sum(map(observable_cost, it.observables)) + self._optional(it.trigger) + self.visit(it.body)

	def visit_IfStmt(self, it: syntax.IfStmt):
		return self.visit(it.condition) + max(self.visit(it.then_part), self._optional(it.else_part))

	def visit_MatchStmt(self, it: syntax.MatchStmt):
		return self.visit(it.subject) + self._widest([arm.body for arm in it.arms] + [it.otherwise])

	def visit_TryStmt(self, it: syntax.TryStmt):
		return TRY_FACTOR * self.visit(it.main) + self._optional(it.otherwise)
