"""Tests for block-level idiom reconstruction and the generic fallback."""

from exgen import ast, ir
from exgen.build_types import BuildConfig
from exgen.builders import blocks

from tests.unit.conftest import (
    ARRAY,
    INT,
    MAP,
    array,
    assign,
    binop,
    block,
    decl,
    eq,
    if_,
    int_,
    local,
    lt,
    make_context,
    method_call,
    new_map,
    null,
    post_increment,
    ret,
    static_call,
    str_,
    var,
)


def _map_block(m: ir.Var) -> list[ir.Expr]:
    return [
        decl(m, new_map()),
        method_call(local(m), "set", str_("a"), int_(1)),
        method_call(local(m), "set", str_("b"), int_(2)),
        local(m),
    ]


def _counter_loop(counter: ir.Var, bound: ir.Var, i: ir.Var, *body: ir.Expr) -> ir.While:
    return ir.While(
        cond=lt(local(counter), local(bound)),
        body=block(decl(i, post_increment(counter)), *body),
    )


class TestEmptyAndSingleton:
    def test_empty_block_is_empty_not_nil(self):
        node = make_context().build(block())
        assert ast.is_empty_block(node)
        assert node != ast.nil()

    def test_singleton_block_unwraps(self):
        assert make_context().build(block(int_(7))) == ast.integer(7)


class TestMapLiteral:
    def test_inserts_become_map_literal_in_order(self):
        node = make_context().build(block(*_map_block(var("m", MAP))))
        assert node.kind == ast.MapLit(
            (
                (ast.string("a"), ast.integer(1)),
                (ast.string("b"), ast.integer(2)),
            )
        )

    def test_index_assignment_counts_as_insert(self):
        m = var("m", MAP)
        stmts = [
            decl(m, new_map()),
            assign(ir.ArrayAccess(obj=local(m), index=str_("k")), int_(1)),
            local(m),
        ]
        node = make_context().build(block(*stmts))
        assert node.kind == ast.MapLit(((ast.string("k"), ast.integer(1)),))

    def test_simple_temp_is_inlined(self):
        m = var("m", MAP)
        key = var("key")
        stmts = [
            decl(m, new_map()),
            decl(key, str_("a")),
            method_call(local(m), "set", local(key), int_(1)),
            local(m),
        ]
        node = make_context().build(block(*stmts))
        assert node.kind == ast.MapLit(((ast.string("a"), ast.integer(1)),))

    def test_returned_map_is_recognized(self):
        m = var("m", MAP)
        stmts = _map_block(m)[:-1] + [ret(local(m))]
        assert blocks.detect_map_literal(stmts, make_context()) is not None

    def test_interleaved_call_is_not_a_map_literal(self):
        m = var("m", MAP)
        stmts = _map_block(m)
        stmts.insert(2, static_call("Util", "log", local(m)))
        ctx = make_context()
        assert blocks.detect_map_literal(stmts, ctx) is None
        node = ctx.build(block(*stmts))
        assert isinstance(node.kind, ast.Block)
        first = node.kind.expressions[0]
        assert first == ast.match(ast.PVar("m"), ast.Node(ast.MapLit(())))

    def test_value_reading_the_map_is_not_a_map_literal(self):
        m = var("m", MAP)
        stmts = [
            decl(m, new_map()),
            method_call(local(m), "set", str_("self"), local(m)),
            local(m),
        ]
        assert blocks.detect_map_literal(stmts, make_context()) is None

    def test_detection_leaves_context_untouched(self):
        ctx = make_context()
        before = ctx.snapshot()
        assert blocks.detect(_map_block(var("m", MAP)), ctx) is not None
        assert ctx.snapshot() == before


class TestNullCoalesceTemp:
    def test_complex_initializer_is_bound_once(self):
        t = var("t")
        stmts = [
            decl(t, static_call("Util", "compute")),
            if_(eq(local(t), null()), str_("none"), local(t)),
        ]
        node = make_context().build(block(*stmts))
        test = ast.binop("!=", ast.match(ast.PVar("tmp"), ast.remote("Util", "compute")), ast.nil())
        assert node.kind == ast.If(test, ast.var("tmp"), ast.string("none"))

    def test_simple_initializer_is_reused(self):
        a = var("a")
        t = var("t")
        ctx = make_context()
        ctx.declare(a)
        stmts = [decl(t, local(a)), if_(eq(null(), local(t)), str_("none"), local(t))]
        node = ctx.build(block(*stmts))
        assert node.kind == ast.If(
            ast.binop("!=", ast.var("a"), ast.nil()), ast.var("a"), ast.string("none")
        )

    def test_not_equal_orientation(self):
        a = var("a")
        t = var("t")
        stmts = [
            decl(t, local(a)),
            if_(binop(ir.BinaryOp.NOT_EQ, local(t), null()), local(t), int_(0)),
        ]
        pattern = blocks.detect_null_coalesce(stmts, make_context())
        assert isinstance(pattern, blocks.NullCoalescePattern)
        assert pattern.default == int_(0)

    def test_default_reading_the_temp_is_rejected(self):
        t = var("t")
        stmts = [
            decl(t, static_call("Util", "compute")),
            if_(eq(local(t), null()), static_call("Util", "fix", local(t)), local(t)),
        ]
        assert blocks.detect_null_coalesce(stmts, make_context()) is None

    def test_disabled_by_config(self):
        t = var("t")
        stmts = [
            decl(t, static_call("Util", "compute")),
            if_(eq(local(t), null()), str_("none"), local(t)),
        ]
        ctx = make_context(BuildConfig(inline_null_coalescing=False))
        assert blocks.detect_null_coalesce(stmts, ctx) is None
        assert isinstance(ctx.build(block(*stmts)).kind, ast.Block)


class TestListLiteral:
    def test_unrolled_appends_become_list_literal(self):
        lst = var("lst", ARRAY)
        stmts = [
            decl(lst, array()),
            assign(local(lst), binop(ir.BinaryOp.ADD, local(lst), array(int_(1)))),
            assign(local(lst), binop(ir.BinaryOp.ADD, local(lst), array(int_(2)))),
            local(lst),
        ]
        node = make_context().build(block(*stmts))
        assert node.kind == ast.ListLit((ast.integer(1), ast.integer(2)))

    def test_push_and_concat_forms_mix(self):
        lst = var("lst", ARRAY)
        stmts = [
            decl(lst, array()),
            method_call(local(lst), "push", int_(1)),
            assign(local(lst), method_call(local(lst), "concat", array(int_(2), int_(3)))),
            local(lst),
        ]
        node = make_context().build(block(*stmts))
        assert node.kind == ast.ListLit((ast.integer(1), ast.integer(2), ast.integer(3)))

    def test_nested_rows_become_list_of_lists(self):
        rows = var("rows", ARRAY)
        row = var("row", ARRAY)
        stmts = [
            decl(rows, array()),
            decl(row, array()),
            method_call(local(row), "push", int_(1)),
            method_call(local(row), "push", int_(2)),
            method_call(local(rows), "push", local(row)),
            assign(local(row), array()),
            method_call(local(row), "push", int_(3)),
            method_call(local(rows), "push", local(row)),
            local(rows),
        ]
        node = make_context().build(block(*stmts))
        assert node.kind == ast.ListLit(
            (
                ast.Node(ast.ListLit((ast.integer(1), ast.integer(2)))),
                ast.Node(ast.ListLit((ast.integer(3),))),
            )
        )


class TestComprehension:
    def test_for_loop_push_becomes_comprehension(self):
        nums = var("nums", ARRAY)
        result = var("result", ARRAY)
        x = var("x", INT)
        loop = ir.For(
            var=x,
            iterable=local(nums),
            body=block(method_call(local(result), "push", binop(ir.BinaryOp.MULT, local(x), int_(2)))),
        )
        ctx = make_context()
        ctx.declare(nums)
        node = ctx.build(block(decl(result, array()), loop, local(result)))
        assert node.kind == ast.Comprehension(
            (ast.Generator(ast.PVar("x"), ast.var("nums")),),
            ast.binop("*", ast.var("x"), ast.integer(2)),
        )

    def test_guarded_push_becomes_filter(self):
        nums = var("nums", ARRAY)
        result = var("result", ARRAY)
        x = var("x", INT)
        keep = binop(ir.BinaryOp.GT, local(x), int_(0))
        loop = ir.For(
            var=x,
            iterable=local(nums),
            body=block(if_(keep, method_call(local(result), "push", local(x)))),
        )
        ctx = make_context()
        ctx.declare(nums)
        node = ctx.build(block(decl(result, array()), loop, local(result)))
        assert node.kind.filters == (ast.binop(">", ast.var("x"), ast.integer(0)),)
        assert node.kind.body == ast.var("x")

    def test_counter_loop_temps_are_consumed(self):
        n = var("n", INT)
        result = var("result", ARRAY)
        g = var("_g", INT)
        g1 = var("_g1", INT)
        i = var("i", INT)
        square = binop(ir.BinaryOp.MULT, local(i), local(i))
        stmts = [
            decl(result, array()),
            decl(g, int_(0)),
            decl(g1, local(n)),
            _counter_loop(g, g1, i, method_call(local(result), "push", square)),
            local(result),
        ]
        ctx = make_context()
        ctx.declare(n)
        node = ctx.build(block(*stmts))
        source = ast.Node(
            ast.Range(ast.integer(0), ast.binop("-", ast.var("n"), ast.integer(1)), ast.integer(1))
        )
        assert node.kind == ast.Comprehension(
            (ast.Generator(ast.PVar("i"), source),),
            ast.binop("*", ast.var("i"), ast.var("i")),
        )

    def test_embedded_run_is_spliced_into_block(self):
        nums = var("nums", ARRAY)
        evens = var("evens", ARRAY)
        x = var("x", INT)
        is_even = eq(binop(ir.BinaryOp.MOD, local(x), int_(2)), int_(0))
        loop = ir.For(
            var=x,
            iterable=local(nums),
            body=block(if_(is_even, method_call(local(evens), "push", local(x)))),
        )
        ctx = make_context()
        ctx.declare(nums)
        node = ctx.build(block(decl(evens, array()), loop, static_call("Util", "log", local(evens))))
        comprehension = ast.Node(
            ast.Comprehension(
                (ast.Generator(ast.PVar("x"), ast.var("nums")),),
                ast.var("x"),
                (ast.binop("==", ast.local("rem", ast.var("x"), ast.integer(2)), ast.integer(0)),),
            )
        )
        assert node.kind == ast.Block(
            (
                ast.match(ast.PVar("evens"), comprehension),
                ast.remote("Util", "log", ast.var("evens")),
            )
        )

    def test_disabled_by_config(self):
        nums = var("nums", ARRAY)
        result = var("result", ARRAY)
        x = var("x", INT)
        loop = ir.For(var=x, iterable=local(nums), body=method_call(local(result), "push", local(x)))
        stmts = [decl(result, array()), loop, local(result)]
        ctx = make_context(BuildConfig(emit_comprehensions=False))
        assert blocks.detect_comprehension(stmts, ctx) is None


class TestFallback:
    def test_early_return_guard_takes_rest_as_else(self):
        flag = var("flag")
        ctx = make_context()
        ctx.declare(flag)
        stmts = [
            if_(local(flag), block(ret(int_(1)))),
            static_call("Util", "log"),
            ret(int_(2)),
        ]
        node = ctx.build(block(*stmts))
        assert node.kind == ast.If(
            ast.var("flag"),
            ast.integer(1),
            ast.block([ast.remote("Util", "log"), ast.integer(2)]),
        )

    def test_statements_after_return_are_dropped(self):
        node = make_context().build(block(ret(int_(1)), static_call("Util", "log")))
        assert node == ast.integer(1)

    def test_temp_bound_only_for_case_is_merged(self):
        g = var("_g", INT)
        switch = ir.Switch(
            subject=local(g),
            cases=[ir.SwitchCase(values=[int_(1)], body=str_("one"))],
            default=str_("other"),
        )
        node = make_context().build(block(decl(g, static_call("Util", "next")), switch))
        assert node.kind == ast.Case(
            ast.remote("Util", "next"),
            (
                ast.CaseClause(ast.PLiteral(ast.integer(1)), ast.string("one")),
                ast.CaseClause(ast.PWildcard(), ast.string("other")),
            ),
        )

    def test_unconsumed_temp_is_kept(self):
        g = var("_g", INT)
        node = make_context().build(
            block(decl(g, static_call("Util", "next")), static_call("Util", "log", local(g)))
        )
        assert node.kind.expressions[0].kind.pattern == ast.PVar("_g")


class TestIdempotence:
    def test_literal_statement_is_not_reconstructed_again(self):
        ctx = make_context()
        literal = array(int_(1), int_(2))
        assert blocks.detect([literal], ctx) is None
        assert ctx.build(block(literal)) == ctx.build(literal)

    def test_coalesced_expression_is_not_reconstructed_again(self):
        a = var("a")
        ctx = make_context()
        ctx.declare(a)
        coalesced = binop(ir.BinaryOp.NULL_COAL, local(a), int_(0))
        assert blocks.detect([coalesced], ctx) is None
        assert ctx.build(block(coalesced)) == ctx.build(coalesced)
