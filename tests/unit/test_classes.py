"""Tests for module generation from class, enum and function declarations."""

from exgen import ast, ir
from exgen.builders.classes import build_class, build_enum_module

from tests.unit.conftest import (
    INT,
    STRING,
    assign,
    binop,
    block,
    field,
    int_,
    local,
    make_context,
    ret,
    shape_enum,
    static_call,
    str_,
    this,
    var,
)

POINT_TYPE = ir.StaticType(kind=ir.TypeKind.INSTANCE, name="Point")


def _this_field(name: str) -> ir.FieldAccess:
    return field(this("Point"), name, owner="Point", type_=INT)


def _point_class() -> ir.ClassDecl:
    x = var("x", INT)
    y = var("y", INT)
    n = var("n", INT)
    constructor = ir.FunctionDecl(
        name="new",
        args=[ir.FunctionArg(var=x), ir.FunctionArg(var=y)],
        body=block(
            assign(_this_field("x"), local(x)),
            assign(_this_field("y"), local(y)),
        ),
    )
    total = ir.FunctionDecl(
        name="sum",
        ret=INT,
        body=ret(binop(ir.BinaryOp.ADD, _this_field("x"), _this_field("y"), INT)),
    )
    label = ir.FunctionDecl(
        name="label",
        args=[ir.FunctionArg(var=n)],
        body=ret(str_("point")),
        is_static=True,
    )
    origin = ir.FunctionDecl(
        name="origin",
        body=ret(ir.New(class_name="Point", args=[int_(0), int_(0)], type=POINT_TYPE)),
        is_static=True,
    )
    reset = ir.FunctionDecl(
        name="resetAll",
        body=ret(static_call("Point", "origin")),
        is_static=True,
        is_private=True,
    )
    return ir.ClassDecl(
        name="Point",
        fields=[
            ir.FieldDecl(name="x", type=INT),
            ir.FieldDecl(name="y", type=INT),
            ir.FieldDecl(name="maxSize", type=INT, is_static=True, init=int_(100)),
            ir.FieldDecl(name="created", type=INT, is_static=True, is_mutable=True, init=int_(0)),
        ],
        methods=[total, label, origin, reset],
        constructor=constructor,
    )


def _definitions(module: ast.Node) -> dict[str, ast.Node]:
    return {
        d.kind.name: d for d in module.kind.body if isinstance(d.kind, ast.Def)
    }


class TestClassModule:
    def test_module_layout_in_declaration_order(self):
        cls = _point_class()
        module = build_class(cls, make_context(classes=[cls]))
        assert module.kind.name == "Point"
        kinds = [type(d.kind).__name__ for d in module.kind.body]
        assert kinds == ["DefStruct", "Def", "Def", "Def", "Def", "Def", "Def", "Def"]

    def test_struct_holds_instance_fields_only(self):
        cls = _point_class()
        module = build_class(cls, make_context(classes=[cls]))
        assert module.kind.body[0].kind == ast.DefStruct((("x", ast.nil()), ("y", ast.nil())))

    def test_constructor_builds_and_returns_struct(self):
        cls = _point_class()
        new = _definitions(build_class(cls, make_context(classes=[cls])))["new"]
        struct = ast.var("struct")
        assert new.kind.params == (ast.PVar("x"), ast.PVar("y"))
        assert new.kind.body == ast.block(
            [
                ast.match(ast.PVar("struct"), ast.Node(ast.StructLit("Point"))),
                ast.match(ast.PVar("struct"), ast.Node(ast.StructUpdate(struct, (("x", ast.var("x")),)))),
                ast.match(ast.PVar("struct"), ast.Node(ast.StructUpdate(struct, (("y", ast.var("y")),)))),
                struct,
            ]
        )

    def test_instance_method_takes_struct_first(self):
        cls = _point_class()
        total = _definitions(build_class(cls, make_context(classes=[cls])))["sum"]
        struct = ast.var("struct")
        assert total.kind == ast.Def(
            "sum",
            (ast.PVar("struct"),),
            ast.binop("+", ast.Node(ast.FieldGet(struct, "x")), ast.Node(ast.FieldGet(struct, "y"))),
        )

    def test_unused_parameter_is_underscored(self):
        cls = _point_class()
        label = _definitions(build_class(cls, make_context(classes=[cls])))["label"]
        assert label.kind.params == (ast.PVar("_n"),)

    def test_static_call_within_module_is_local(self):
        cls = _point_class()
        reset = _definitions(build_class(cls, make_context(classes=[cls])))["reset_all"]
        assert reset.kind.body == ast.local("origin")
        assert reset.kind.private

    def test_immutable_static_field_is_constant_getter(self):
        cls = _point_class()
        getter = _definitions(build_class(cls, make_context(classes=[cls])))["max_size"]
        assert getter.kind == ast.Def("max_size", (), ast.integer(100))

    def test_mutable_static_field_reads_process_state(self):
        cls = _point_class()
        getter = _definitions(build_class(cls, make_context(classes=[cls])))["created"]
        key = ast.tuple_of(ast.Node(ast.Alias("Point")), ast.atom("created"))
        assert getter.kind.body == ast.remote("Process", "get", key, ast.integer(0))

    def test_building_a_class_counts_functions(self):
        cls = _point_class()
        ctx = make_context(classes=[cls])
        build_class(cls, ctx)
        assert ctx.stats.modules_built == 1
        assert ctx.stats.functions_built == 5

    def test_exception_class_gets_message_field(self):
        cls = ir.ClassDecl(name="ParseError", is_exception=True)
        module = build_class(cls, make_context(classes=[cls]))
        assert module.kind.body[0].kind == ast.DefStruct(
            (("message", ast.string("")),), exception=True
        )

    def test_fieldless_class_without_constructor_has_no_struct(self):
        helper = ir.FunctionDecl(name="twice", args=[ir.FunctionArg(var=var("v", INT))], is_static=True)
        cls = ir.ClassDecl(name="MathUtil", module="app.util", methods=[helper])
        module = build_class(cls, make_context(classes=[cls]))
        assert module.kind.name == "App.Util.MathUtil"
        assert [type(d.kind) for d in module.kind.body] == [ast.Def]


class TestEnumModule:
    def test_tagged_enum_constructors(self):
        ctx = make_context(enums=[shape_enum()])
        module = build_enum_module(shape_enum(), ctx)
        assert module.kind == ast.DefModule(
            "Shape",
            (
                ast.Node(ast.Def("empty", (), ast.tuple_of(ast.atom("empty")))),
                ast.Node(
                    ast.Def(
                        "circle",
                        (ast.PVar("radius"),),
                        ast.tuple_of(ast.atom("circle"), ast.var("radius")),
                    )
                ),
                ast.Node(
                    ast.Def(
                        "rect",
                        (ast.PVar("width"), ast.PVar("height")),
                        ast.tuple_of(ast.atom("rect"), ast.var("width"), ast.var("height")),
                    )
                ),
            ),
        )

    def test_idiomatic_enum_has_bare_atom_constructor(self):
        enum = shape_enum(idiomatic=True)
        module = build_enum_module(enum, make_context(enums=[enum]))
        assert module.kind.body[0].kind.body == ast.atom("empty")


class TestFunctionLiteral:
    def test_lambda_becomes_fn(self):
        a = var("a", INT)
        expr = ir.Function(
            args=[ir.FunctionArg(var=a)],
            body=ret(binop(ir.BinaryOp.MULT, local(a), int_(2), INT)),
        )
        node = make_context().build(expr)
        assert node == ast.fn((ast.PVar("a"),), ast.binop("*", ast.var("a"), ast.integer(2)))

    def test_empty_body_returns_nil(self):
        node = make_context().build(ir.Function(body=block()))
        assert node == ast.fn((), ast.nil())

    def test_default_argument_is_substituted_for_nil(self):
        a = var("a", INT)
        expr = ir.Function(args=[ir.FunctionArg(var=a, default=int_(1))], body=ret(local(a)))
        node = make_context().build(expr)
        fallback = ast.Node(
            ast.If(ast.binop("!=", ast.var("a"), ast.nil()), ast.var("a"), ast.integer(1))
        )
        assert node == ast.fn(
            (ast.PVar("a"),),
            ast.block([ast.match(ast.PVar("a"), fallback), ast.var("a")]),
        )

    def test_parameters_do_not_leak(self):
        a = var("a", STRING)
        ctx = make_context()
        ctx.build(ir.Function(args=[ir.FunctionArg(var=a)], body=local(a)))
        assert not ctx.is_bound(a)
