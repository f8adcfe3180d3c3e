"""Tests for conditional, switch and pattern-match reconstruction."""

import pytest

from exgen import ast, ir
from exgen.build_types import BuildConfig
from exgen.builders.control_flow import detect_tag_dispatch
from exgen.errors import InvariantViolation

from tests.unit.conftest import (
    INT,
    assign,
    block,
    decl,
    enum_index,
    enum_param,
    eq,
    if_,
    int_,
    local,
    make_context,
    ret,
    shape_enum,
    static_call,
    str_,
    var,
)

SHAPE_TYPE = ir.StaticType(kind=ir.TypeKind.ENUM, name="Shape")


def _shape_context(config: BuildConfig | None = None, idiomatic: bool | None = None):
    shape = var("shape", SHAPE_TYPE)
    ctx = make_context(config, enums=[shape_enum(idiomatic)])
    ctx.declare(shape)
    return ctx, shape


def _is_tag(shape: ir.Var, index: int) -> ir.Binop:
    return eq(enum_index(local(shape), "Shape"), int_(index))


def _tag(name: str) -> ast.Pattern:
    return ast.PLiteral(ast.atom(name))


class TestTagDispatch:
    def test_extraction_becomes_named_binder(self):
        ctx, shape = _shape_context()
        r = var("r")
        then = block(
            decl(r, enum_param(local(shape), "Shape", "Circle", 0)),
            static_call("Util", "use", local(r)),
        )
        node = ctx.build(if_(_is_tag(shape, 1), then, static_call("Util", "fallback")))
        assert node.kind == ast.Case(
            ast.var("shape"),
            (
                ast.CaseClause(
                    ast.PTuple((_tag("circle"), ast.PVar("r"))),
                    ast.remote("Util", "use", ast.var("r")),
                ),
                ast.CaseClause(ast.PWildcard(), ast.remote("Util", "fallback")),
            ),
        )

    def test_reversed_comparison_is_recognized(self):
        ctx, shape = _shape_context()
        cond = eq(int_(1), enum_index(local(shape), "Shape"))
        dispatch = detect_tag_dispatch(cond, ctx)
        assert dispatch is not None
        assert dispatch.ctor.name == "Circle"

    def test_without_else_falls_back_to_raise(self):
        ctx, shape = _shape_context()
        node = ctx.build(if_(_is_tag(shape, 1), static_call("Util", "use")))
        fallback = node.kind.clauses[1]
        assert fallback.pattern == ast.PWildcard()
        assert fallback.body.kind == ast.Raise(ast.string("unmatched value"))

    def test_orphan_extraction_uses_parameter_name(self):
        ctx, shape = _shape_context()
        then = static_call("Util", "use", enum_param(local(shape), "Shape", "Circle", 0))
        node = ctx.build(if_(_is_tag(shape, 1), then, int_(0)))
        matched = node.kind.clauses[0]
        assert matched.pattern == ast.PTuple((_tag("circle"), ast.PVar("radius")))
        assert matched.body == ast.remote("Util", "use", ast.var("radius"))

    def test_idiomatic_zero_arity_constructor_is_bare_atom(self):
        ctx, shape = _shape_context(idiomatic=True)
        node = ctx.build(if_(_is_tag(shape, 0), str_("nothing"), str_("something")))
        assert node.kind.clauses[0].pattern == _tag("empty")

    def test_tagged_zero_arity_constructor_is_one_tuple(self):
        ctx, shape = _shape_context(idiomatic=False)
        node = ctx.build(if_(_is_tag(shape, 0), str_("nothing"), str_("something")))
        assert node.kind.clauses[0].pattern == ast.PTuple((_tag("empty"),))

    def test_unknown_tag_is_left_as_comparison(self):
        ctx, shape = _shape_context()
        assert detect_tag_dispatch(_is_tag(shape, 9), ctx) is None


class TestBinderUsage:
    def test_unused_binder_is_wildcarded(self):
        ctx, shape = _shape_context()
        r = var("r")
        then = block(decl(r, enum_param(local(shape), "Shape", "Circle", 0)), static_call("Util", "noop"))
        node = ctx.build(if_(_is_tag(shape, 1), then, int_(0)))
        assert node.kind.clauses[0].pattern == ast.PTuple((_tag("circle"), ast.PWildcard()))
        assert node.kind.clauses[0].body == ast.remote("Util", "noop")

    def test_unused_binder_is_underscored_without_strict_binders(self):
        ctx, shape = _shape_context(BuildConfig(strict_binders=False))
        r = var("r")
        then = block(decl(r, enum_param(local(shape), "Shape", "Circle", 0)), static_call("Util", "noop"))
        node = ctx.build(if_(_is_tag(shape, 1), then, int_(0)))
        assert node.kind.clauses[0].pattern == ast.PTuple((_tag("circle"), ast.PVar("_r")))

    def test_only_referenced_parameters_are_named(self):
        ctx, shape = _shape_context()
        w = var("w")
        h = var("h")
        then = block(
            decl(w, enum_param(local(shape), "Shape", "Rect", 0)),
            decl(h, enum_param(local(shape), "Shape", "Rect", 1)),
            static_call("Util", "use", local(h)),
        )
        node = ctx.build(if_(_is_tag(shape, 2), then, int_(0)))
        assert node.kind.clauses[0].pattern == ast.PTuple(
            (_tag("rect"), ast.PWildcard(), ast.PVar("h"))
        )

    def test_temp_copy_takes_the_user_name(self):
        ctx, shape = _shape_context()
        g = var("_g")
        radius = var("radius")
        then = block(
            decl(g, enum_param(local(shape), "Shape", "Circle", 0)),
            decl(radius, local(g)),
            static_call("Util", "use", local(radius)),
        )
        node = ctx.build(if_(_is_tag(shape, 1), then, int_(0)))
        matched = node.kind.clauses[0]
        assert matched.pattern == ast.PTuple((_tag("circle"), ast.PVar("radius")))
        assert matched.body == ast.remote("Util", "use", ast.var("radius"))


class TestConditionalChains:
    def test_else_if_chain_becomes_cond(self):
        p = var("p")
        q = var("q")
        ctx = make_context()
        ctx.declare(p)
        ctx.declare(q)
        expr = if_(
            local(p),
            static_call("Util", "a"),
            if_(local(q), static_call("Util", "b"), static_call("Util", "c")),
        )
        node = ctx.build(expr)
        assert node.kind == ast.Cond(
            (
                ast.CondClause(ast.var("p"), ast.remote("Util", "a")),
                ast.CondClause(ast.var("q"), ast.remote("Util", "b")),
                ast.CondClause(ast.boolean(True), ast.remote("Util", "c")),
            )
        )

    def test_chain_without_final_else_ends_with_nil(self):
        p = var("p")
        q = var("q")
        ctx = make_context()
        ctx.declare(p)
        ctx.declare(q)
        node = ctx.build(if_(local(p), static_call("Util", "a"), if_(local(q), static_call("Util", "b"))))
        assert node.kind.clauses[-1] == ast.CondClause(ast.boolean(True), ast.nil())

    def test_literal_valued_chain_stays_nested(self):
        p = var("p")
        q = var("q")
        ctx = make_context()
        ctx.declare(p)
        ctx.declare(q)
        node = ctx.build(if_(local(p), int_(1), if_(local(q), int_(2), int_(3))))
        assert node.kind == ast.If(
            ast.var("p"),
            ast.integer(1),
            ast.Node(ast.If(ast.var("q"), ast.integer(2), ast.integer(3))),
        )


class TestStateThreading:
    def test_branch_rebinding_is_matched_back(self):
        p = var("p")
        x = var("x", INT)
        ctx = make_context()
        ctx.declare(p)
        ctx.declare(x)
        node = ctx.build(if_(local(p), assign(local(x), int_(1)), assign(local(x), int_(2))))
        assert node.kind.pattern == ast.PVar("x")
        conditional = node.kind.value.kind
        assert conditional.then == ast.block(
            [ast.match(ast.PVar("x"), ast.integer(1)), ast.var("x")]
        )
        assert conditional.else_ == ast.block(
            [ast.match(ast.PVar("x"), ast.integer(2)), ast.var("x")]
        )

    def test_missing_else_keeps_current_value(self):
        p = var("p")
        x = var("x", INT)
        ctx = make_context()
        ctx.declare(p)
        ctx.declare(x)
        node = ctx.build(if_(local(p), assign(local(x), int_(1))))
        assert node.kind.value.kind.else_ == ast.var("x")

    def test_branch_local_declaration_is_not_threaded(self):
        p = var("p")
        ctx = make_context()
        ctx.declare(p)
        node = ctx.build(if_(local(p), block(decl(var("tmp"), int_(1)), int_(2))))
        assert isinstance(node.kind, ast.If)


class TestSwitch:
    def test_enum_switch_matches_constructors(self):
        ctx, shape = _shape_context()
        r = var("r")
        switch = ir.Switch(
            subject=enum_index(local(shape), "Shape"),
            cases=[
                ir.SwitchCase(values=[int_(0)], body=str_("empty")),
                ir.SwitchCase(
                    values=[int_(1)],
                    body=block(
                        decl(r, enum_param(local(shape), "Shape", "Circle", 0)),
                        static_call("Util", "area", local(r)),
                    ),
                ),
            ],
        )
        node = ctx.build(switch)
        assert node.kind == ast.Case(
            ast.var("shape"),
            (
                ast.CaseClause(ast.PTuple((_tag("empty"),)), ast.string("empty")),
                ast.CaseClause(
                    ast.PTuple((_tag("circle"), ast.PVar("r"))),
                    ast.remote("Util", "area", ast.var("r")),
                ),
            ),
        )

    def test_enum_switch_default_is_wildcard(self):
        ctx, shape = _shape_context()
        switch = ir.Switch(
            subject=enum_index(local(shape), "Shape"),
            cases=[ir.SwitchCase(values=[int_(0)], body=int_(0))],
            default=int_(1),
        )
        node = ctx.build(switch)
        assert node.kind.clauses[-1] == ast.CaseClause(ast.PWildcard(), ast.integer(1))

    def test_enum_switch_on_unknown_tag_raises(self):
        ctx, shape = _shape_context()
        switch = ir.Switch(
            subject=enum_index(local(shape), "Shape"),
            cases=[ir.SwitchCase(values=[int_(9)], body=int_(0))],
        )
        with pytest.raises(InvariantViolation):
            ctx.build(switch)

    def test_value_switch_shares_body_across_values(self):
        n = var("n", INT)
        ctx = make_context()
        ctx.declare(n)
        switch = ir.Switch(
            subject=local(n),
            cases=[ir.SwitchCase(values=[int_(1), int_(2)], body=str_("low"))],
            default=str_("high"),
        )
        node = ctx.build(switch)
        assert node.kind == ast.Case(
            ast.var("n"),
            (
                ast.CaseClause(ast.PLiteral(ast.integer(1)), ast.string("low")),
                ast.CaseClause(ast.PLiteral(ast.integer(2)), ast.string("low")),
                ast.CaseClause(ast.PWildcard(), ast.string("high")),
            ),
        )

    def test_switch_on_variable_value_pins_it(self):
        n = var("n", INT)
        limit = var("limit", INT)
        ctx = make_context()
        ctx.declare(n)
        ctx.declare(limit)
        switch = ir.Switch(
            subject=local(n),
            cases=[ir.SwitchCase(values=[local(limit)], body=str_("at limit"))],
        )
        node = ctx.build(switch)
        assert node.kind.clauses[0].pattern == ast.PPin("limit")

    def test_computed_case_value_binder_does_not_shadow_user_variable(self):
        n = var("n", INT)
        value = var("value", INT)
        ctx = make_context()
        ctx.declare(n)
        ctx.declare(value)
        switch = ir.Switch(
            subject=local(n),
            cases=[ir.SwitchCase(values=[static_call("Limits", "max")], body=local(value))],
        )
        (computed, _) = ctx.build(switch).kind.clauses
        assert computed == ast.CaseClause(
            ast.PVar("value_2"),
            ast.var("value"),
            ast.binop("==", ast.var("value_2"), ast.remote("Limits", "max")),
        )


class TestReturn:
    def test_bare_return_is_nil(self):
        assert make_context().build(ret()) == ast.nil()

    def test_return_value_is_the_value(self):
        assert make_context().build(ret(int_(3))) == ast.integer(3)
