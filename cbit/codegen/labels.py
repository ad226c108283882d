"""
Lowering of labels to plain python.

* A jump to the innermost enclosing loop becomes a native `break` or
  `continue`, preceded by the assignment of its value, if any.
* Any other jump raises an exception private to the label it targets, caught
  by a `try` placed around the body of the target:

      for x in xs:                 # outer: for x in xs:
          try:                     #     for y in ys:
              for y in ys:         #         continue outer
                  raise _cbit_label_1.Continue()
          except _cbit_label_1.Continue:
              continue

* A labeled block becomes its body, wrapped in such a `try` when something
  breaks out of it.

The exception holders (`cbit.runtime.Label`) are defined at module level,
one per label declaration.
"""

import ast as python_ast
from dataclasses import dataclass
from typing import Optional

from cbit.ast import nodes as cb_ast
from cbit.codegen import core
from cbit.exceptions import CompilerPanic
from cbit.utils import NameGenerator


@dataclass
class _Target:
    node: python_ast.AST
    label: Optional[str]
    is_loop: bool
    value_target: Optional[str]
    holder: Optional[str] = None
    raises_break: bool = False
    raises_continue: bool = False


def lower_labels(module: python_ast.Module, names: Optional[NameGenerator] = None) -> None:
    """
    Lower all labeled loops, labeled blocks and labeled jumps of `module` in
    place.
    """
    lowering = LabelLowering(names or NameGenerator())
    lowering.visit(module)

    if lowering.holders:
        i = core.ensure_runtime_import(module)
        defs = []
        for holder, label, src in lowering.holders:
            stmt = core.assign(holder, core.call(core.rt("Label"), core.const(label)))
            defs.append(core.locate(stmt, src))
        module.body[i:i] = defs


class LabelLowering(python_ast.NodeTransformer):
    def __init__(self, names: NameGenerator):
        self._names = names
        self._labels: list[_Target] = []
        self._loops: list[_Target] = []
        # (holder name, label, declaring node)
        self.holders: list[tuple[str, str, python_ast.AST]] = []

    def _visit_scope(self, node):
        saved = self._labels, self._loops
        self._labels, self._loops = [], []
        try:
            return self.generic_visit(node)
        finally:
            self._labels, self._loops = saved

    visit_FunctionDef = _visit_scope
    visit_AsyncFunctionDef = _visit_scope
    visit_ClassDef = _visit_scope
    visit_Lambda = _visit_scope

    def _visit_stmts(self, stmts):
        ret = []
        for stmt in stmts:
            new = self.visit(stmt)
            if isinstance(new, list):
                ret.extend(new)
            elif new is not None:
                ret.append(new)
        return ret

    def _holder(self, target: _Target) -> str:
        if target.holder is None:
            target.holder = self._names.make("label", self._names.next_id())
            self.holders.append((target.holder, target.label or "", target.node))
        return target.holder

    def _handler(self, target: _Target, kind: str, body: list) -> python_ast.ExceptHandler:
        name = None
        if kind == "Break" and target.value_target is not None:
            name = self._names.make("jump")
            assign_value = core.assign(target.value_target, core.attr(core.load(name), "value"))
            body = [assign_value, *body]
        return python_ast.ExceptHandler(
            type=core.attr(core.load(self._holder(target)), kind), name=name, body=body
        )

    def _visit_loop(self, node):
        target = _Target(
            node,
            cb_ast.get_label(node),
            is_loop=True,
            value_target=getattr(node, "value_target", None),
        )

        if target.label is not None:
            self._labels.append(target)
        self._loops.append(target)
        try:
            node.body = self._visit_stmts(node.body)
        finally:
            self._loops.pop()
            if target.label is not None:
                self._labels.pop()
        node.orelse = self._visit_stmts(node.orelse)

        handlers = []
        if target.raises_continue:
            handlers.append(self._handler(target, "Continue", [python_ast.Continue()]))
        if target.raises_break:
            handlers.append(self._handler(target, "Break", [python_ast.Break()]))
        if handlers:
            wrapped = python_ast.Try(body=node.body, handlers=handlers, orelse=[], finalbody=[])
            node.body = [core.locate(wrapped, node)]

        for attr in ("label", "value_target"):
            if hasattr(node, attr):
                delattr(node, attr)
        return node

    visit_For = _visit_loop
    visit_AsyncFor = _visit_loop
    visit_While = _visit_loop

    def visit_Block(self, node):
        target = _Target(node, node.label, is_loop=False, value_target=node.target)

        self._labels.append(target)
        try:
            body = self._visit_stmts(node.body)
        finally:
            self._labels.pop()

        ret = []
        if target.value_target is not None:
            ret.append(core.assign(target.value_target, core.const(None)))
        if target.raises_break:
            handler = self._handler(target, "Break", [python_ast.Pass()])
            ret.append(python_ast.Try(body=body, handlers=[handler], orelse=[], finalbody=[]))
        else:
            ret.extend(body)
        return core.locate_all(ret, node)

    def _lookup(self, node) -> _Target:
        label = cb_ast.get_label(node)
        if label is None:
            if not self._loops:
                raise CompilerPanic("jump outside of a loop", node)
            return self._loops[-1]

        for target in reversed(self._labels):
            if target.label == label:
                return target
        raise CompilerPanic(f"unresolved label `{label}`", node)

    def _visit_jump(self, node, kind):
        target = self._lookup(node)
        value = cb_ast.get_jump_value(node)
        if value is not None:
            value = self.visit(value)

        ret: list = []
        if self._loops and target is self._loops[-1]:
            if value is not None:
                if target.value_target is not None:
                    ret.append(core.assign(target.value_target, value))
                else:
                    ret.append(python_ast.Expr(value=value))
            ret.append(python_ast.Break() if kind == "Break" else python_ast.Continue())
        else:
            if kind == "Break":
                target.raises_break = True
            else:
                target.raises_continue = True
            args = [] if value is None else [value]
            exc = core.call(core.attr(core.load(self._holder(target)), kind), *args)
            ret.append(python_ast.Raise(exc=exc, cause=None))

        return core.locate_all(ret, node)

    def visit_Break(self, node):
        return self._visit_jump(node, "Break")

    def visit_Continue(self, node):
        return self._visit_jump(node, "Continue")
