"""
Node types for cbit source.

cbit source is parsed into a regular python AST. Dialect constructs which
python has no node for get their own ``ast.stmt`` subclasses (`CbitFor`,
`Block`); labels on native loops and labeled jumps are attached to the stock
``For``/``While``/``Break``/``Continue`` nodes as extra attributes:

* ``For.label`` / ``While.label``: label of a native loop
* ``Break.label`` / ``Continue.label``: target label, or ``None``
* ``Break.value``: value carried by ``break ... with <value>``, or ``None``
* ``value_target`` (generated loops and blocks only): name which receives the
  value of a ``break ... with <value>`` to that construct

Nodes which carry no label simply lack the attribute; use `get_label` and
`get_jump_value` instead of reading the attributes directly.
"""

import ast as python_ast
from dataclasses import dataclass, field
from typing import Optional, Union

LINE_INFO_FIELDS = ("lineno", "col_offset", "end_lineno", "end_col_offset")


@dataclass(frozen=True)
class ExternalLabel:
    """
    A label declared in the `break` clause of a cbit loop.

    `accepts_continue` is set when the label was declared with the `loop`
    keyword, i.e. the body may `continue` to it.
    """

    label: str
    accepts_continue: bool
    location: Optional[object] = field(default=None, compare=False, repr=False)


@dataclass
class FreeCall:
    callee: python_ast.expr
    args: list
    keywords: list

    def to_call(self, extra_arg: python_ast.expr) -> python_ast.Call:
        return python_ast.Call(
            func=self.callee, args=[*self.args, extra_arg], keywords=list(self.keywords)
        )

    def describe(self) -> str:
        return python_ast.unparse(self.callee)


@dataclass
class MethodCall:
    receiver: python_ast.expr
    method: str
    type_args: Optional[python_ast.expr]
    args: list
    keywords: list

    def to_call(self, extra_arg: python_ast.expr) -> python_ast.Call:
        func: python_ast.expr = python_ast.Attribute(
            value=self.receiver, attr=self.method, ctx=python_ast.Load()
        )
        if self.type_args is not None:
            func = python_ast.Subscript(value=func, slice=self.type_args, ctx=python_ast.Load())
        return python_ast.Call(
            func=func, args=[*self.args, extra_arg], keywords=list(self.keywords)
        )

    def describe(self) -> str:
        ret = f"{python_ast.unparse(self.receiver)}.{self.method}"
        if self.type_args is not None:
            ret += f"[{python_ast.unparse(self.type_args)}]"
        return ret


AnyCall = Union[FreeCall, MethodCall]


def call_from_ast(node: python_ast.expr) -> Optional[AnyCall]:
    """
    Classify a call expression as a free function call or a method call.
    Returns `None` if `node` is not a call at all.
    """
    if not isinstance(node, python_ast.Call):
        return None

    func = node.func
    type_args = None
    if isinstance(func, python_ast.Subscript) and isinstance(func.value, python_ast.Attribute):
        # recv.method[T](...)
        type_args = func.slice
        func = func.value

    if isinstance(func, python_ast.Attribute):
        return MethodCall(func.value, func.attr, type_args, list(node.args), list(node.keywords))

    return FreeCall(node.func, list(node.args), list(node.keywords))


@dataclass
class LoopSpec:
    loop_label: Optional[str]
    binding: python_ast.expr
    source_call: AnyCall
    escape_labels: tuple
    result: Optional[str]
    body: list

    def get_escape_label(self, label: str) -> Optional[ExternalLabel]:
        for entry in self.escape_labels:
            if entry.label == label:
                return entry
        return None


class CbitFor(python_ast.stmt):
    """
    `[label:] cbit for <target> in <call> [break ...] [as <result>]: <body>`

    `spec` holds the parsed `LoopSpec`; `target`, `iter` and `body` mirror
    it so that the stock node visitors walk into the loop.
    """

    _fields = ("target", "iter", "body")

    spec: LoopSpec


class Block(python_ast.stmt):
    """
    `label: block [as <target>]: <body>`

    A labeled block may be left early with `break <label> [with <value>]`.
    `target` is the name receiving the break value (or `None` when the block
    completes normally), if any.
    """

    _fields = ("body",)

    label: str
    target: Optional[str]


def get_label(node: python_ast.AST) -> Optional[str]:
    return getattr(node, "label", None)


def get_jump_value(node: python_ast.AST) -> Optional[python_ast.expr]:
    return getattr(node, "value", None) if isinstance(node, python_ast.Break) else None


def is_loop(node: python_ast.AST) -> bool:
    return isinstance(node, (python_ast.For, python_ast.AsyncFor, python_ast.While, CbitFor))


def make_cbit_for(spec: LoopSpec, for_node: python_ast.For) -> CbitFor:
    ret = CbitFor(target=for_node.target, iter=for_node.iter, body=for_node.body)
    ret.spec = spec
    copy_location_info(ret, for_node)
    return ret


def make_block(label: str, target: Optional[str], body: list, location=None) -> Block:
    ret = Block(body=body)
    ret.label = label
    ret.target = target
    if location is not None:
        copy_location_info(ret, location)
    return ret


def copy_location_info(dst, src):
    for attr in LINE_INFO_FIELDS:
        setattr(dst, attr, getattr(src, attr, None))
    for attr in ("full_source_code", "source_path", "fn_name"):
        if hasattr(src, attr):
            setattr(dst, attr, getattr(src, attr))
    return dst
