import ast as python_ast

import pytest

from cbit.ast import Block, CbitFor, ExternalLabel, FreeCall, MethodCall, parse_to_ast
from cbit.exceptions import StructureException, SyntaxException


def test_cbit_for_node():
    code = "L: cbit for (a, b) in obj.items[int](1, k=2) break A, loop B as r:\n    a\n"
    (node,) = parse_to_ast(code).body

    assert isinstance(node, CbitFor)
    # position of `for` in the original source
    assert (node.lineno, node.col_offset) == (1, 8)

    spec = node.spec
    assert spec.loop_label == "L"
    assert python_ast.unparse(spec.binding) == "(a, b)"
    assert spec.escape_labels == (ExternalLabel("A", False), ExternalLabel("B", True))
    assert spec.result == "r"
    assert spec.body is node.body

    call = spec.source_call
    assert isinstance(call, MethodCall)
    assert python_ast.unparse(call.receiver) == "obj"
    assert call.method == "items"
    assert python_ast.unparse(call.type_args) == "int"
    assert [python_ast.unparse(a) for a in call.args] == ["1"]
    assert [k.arg for k in call.keywords] == ["k"]
    assert call.describe() == "obj.items[int]"


def test_free_call():
    (node,) = parse_to_ast("cbit for x in make()(n):\n    pass\n").body
    call = node.spec.source_call
    assert isinstance(call, FreeCall)
    assert call.describe() == "make()"
    assert node.spec.loop_label is None
    assert node.spec.escape_labels == ()
    assert node.spec.result is None


def test_native_loop_labels():
    module = parse_to_ast("outer: for i in xs:\n    inner: while i:\n        break outer\n")
    (loop,) = module.body
    assert loop.label == "outer"
    assert (loop.lineno, loop.col_offset) == (1, 7)

    (inner,) = loop.body
    assert inner.label == "inner"
    assert (inner.lineno, inner.col_offset) == (2, 11)

    (jump,) = inner.body
    assert isinstance(jump, python_ast.Break)
    assert jump.label == "outer"


def test_unlabeled_loop_has_no_label():
    (loop,) = parse_to_ast("for i in xs:\n    continue\n").body
    assert not hasattr(loop, "label")
    assert loop.body[0].label is None


def test_block_and_jump_value():
    module = parse_to_ast("blk: block as v:\n    break blk with x + 1\n")
    (block,) = module.body
    assert isinstance(block, Block)
    assert block.label == "blk"
    assert block.target == "v"

    (jump,) = block.body
    assert jump.label == "blk"
    assert python_ast.unparse(jump.value) == "x + 1"
    assert (jump.value.lineno, jump.value.col_offset) == (2, 19)


def test_jump_value_on_first_line():
    (jump,) = parse_to_ast("break with [1, 2]\n").body
    assert jump.label is None
    assert python_ast.unparse(jump.value) == "[1, 2]"
    assert (jump.value.lineno, jump.value.col_offset) == (1, 11)


def test_nodes_carry_source():
    code = "def f():\n    cbit for x in g():\n        pass\n"
    module = parse_to_ast(code, source_path="a.cbit")
    loop = module.body[0].body[0]
    assert loop.full_source_code == code
    assert loop.source_path == "a.cbit"
    assert loop.fn_name == "f"
    assert module.source_path == "a.cbit"


def test_not_a_call():
    with pytest.raises(StructureException, match="expected a function or method call") as e:
        parse_to_ast("L: cbit for x in items:\n    pass\n")
    assert (e.value.lineno, e.value.col_offset) == (1, 17)


fail_list = [
    ("cbit for x in f():\n    pass\nelse:\n    pass\n", "cbit loop cannot have an `else`", 4),
    ("b: block:\n    pass\nelse:\n    pass\n", "labeled block cannot have an `else`", 4),
    ("x = 1\ny = = 2\n", None, 2),
    ("for x in xs:\n    break with\n", "expected a value after `with`", 2),
    ("x = 1\x00\n", "No null bytes", 1),
]


@pytest.mark.parametrize("code,message,lineno", fail_list)
def test_syntax_errors(code, message, lineno):
    with pytest.raises(SyntaxException) as e:
        parse_to_ast(code, source_path="bad.cbit")
    if message is not None:
        assert message in e.value.message
    assert e.value.lineno == lineno
    assert e.value.path == "bad.cbit"


def test_python_syntax_error_column_is_mapped_back():
    # the pre-parser removes `outer: ` (7 columns) from the line
    with pytest.raises(SyntaxException) as e:
        parse_to_ast("outer: for i in xs:\n    pass\nouter: while 1: = 2\n")
    assert e.value.lineno == 3
    assert e.value.col_offset >= 7
