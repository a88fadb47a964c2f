from jsdeob.parser import parse
from jsdeob.scope import access_mode, analyze


def _only(info, name):
    (binding,) = info.bindings_named(name)
    return binding


def test_var_bindings_track_reads_and_writes():
    tree = parse("var a = 1; function f(b) { var c = a + b; a = c; return c; } f(2);")
    info = analyze(tree)

    a = _only(info, "a")
    assert a.kind == "var"
    assert len(a.reads) == 1
    assert len(a.writes) == 1
    assert not a.is_constant

    c = _only(info, "c")
    assert c.scope.kind == "function"
    assert c.is_constant


def test_function_declaration_name_is_not_a_reference():
    tree = parse("function f() {} f(); f();")
    info = analyze(tree)

    f = _only(info, "f")
    assert f.kind == "function"
    assert len(f.declarations) == 1
    assert len(f.references) == 2


def test_inner_declarations_shadow_outer_ones():
    tree = parse("var x = 1; function g() { var x = 2; return x; } x;")
    info = analyze(tree)

    outer, inner = sorted(info.bindings_named("x"), key=lambda b: b.scope.kind != "program")
    assert outer.scope.kind == "program"
    assert len(outer.references) == 1
    assert len(inner.references) == 1

    returned = inner.references[0].node
    assert info.resolve(returned) is inner
    assert info.lookup("x", returned) is inner


def test_block_scoped_bindings_do_not_leak():
    tree = parse("{ let z = 1; z; } z;")
    info = analyze(tree)

    z = _only(info, "z")
    assert z.kind == "let"
    assert len(z.references) == 1
    assert info.free_names() == {"z"}


def test_free_names_lists_unresolved_identifiers():
    tree = parse("console.log(x, y.z); var y = {};")
    info = analyze(tree)

    assert info.free_names() == {"console", "x"}


def test_named_function_expression_binds_inside_itself():
    tree = parse("var h = function fact(n) { return n ? fact(n - 1) : 1; };")
    info = analyze(tree)

    fact = _only(info, "fact")
    assert fact.kind == "callee"
    assert len(fact.references) == 1
    assert "fact" not in info.free_names()


def test_catch_parameter_and_patterns():
    tree = parse("try { f(); } catch (err) { log(err); } var [p, {q}] = pair;")
    info = analyze(tree)

    assert _only(info, "err").kind == "catch"
    assert len(_only(info, "err").references) == 1
    assert _only(info, "p").kind == "var"
    assert _only(info, "q").kind == "var"


def test_access_mode_distinguishes_compound_assignment():
    tree = parse("a = 1; b += 2; c++;")
    info = analyze(tree)

    modes = {ref.name: access_mode(tree, ref.node) for ref in info.references}

    assert modes["a"] == (False, True)
    assert modes["b"] == (True, True)
    assert modes["c"] == (True, True)
