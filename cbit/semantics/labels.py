"""
Label resolution.

Resolves every labeled jump of a module against the labels visible at the
jump, and checks that each jump is one the generated code can perform.

Labels are scoped lexically and per function. The body of a cbit loop runs in
a closure, so it only sees the label of the loop itself, the labels declared
in the loop's `break` clause and the labels declared inside the body.
"""

import ast as python_ast
from dataclasses import dataclass
from typing import Optional

from cbit.ast import nodes as cb_ast
from cbit.exceptions import ExceptionList, LabelResolutionException
from cbit.warnings import UnusedLabel, cbit_warn


@dataclass
class LabelDecl:
    name: str
    # one of "loop", "cbit", "block", "external"
    kind: str
    node: object
    accepts_continue: bool
    accepts_value: bool
    used: bool = False


@dataclass
class _LoopFrame:
    # "loop" for native loops, "cbit" for cbit loops
    kind: str
    decl: Optional[LabelDecl]


def resolve_labels(module: python_ast.Module) -> None:
    """
    Check the labels of a module. Problems are collected per statement and
    raised together once the whole module has been checked.

    Each `CbitFor` node gets a `label_accepts_value` attribute, mapping the
    labels of its `break` clause to whether the construct they name takes a
    value.
    """
    resolver = LabelResolver()
    resolver.visit(module)
    resolver.errors.raise_if_not_empty()


class LabelResolver(python_ast.NodeVisitor):
    def __init__(self):
        self._labels: list[LabelDecl] = []
        self._loops: list[_LoopFrame] = []
        # "module", "function" or "class"
        self._scope = "module"
        self._cbit_depth = 0
        self.errors = ExceptionList()

    def visit_Module(self, node):
        self._visit_stmts(node.body)

    def _enter_scope(self, node, scope):
        saved = self._labels, self._loops, self._scope, self._cbit_depth
        self._labels, self._loops, self._scope, self._cbit_depth = [], [], scope, 0
        try:
            if isinstance(node.body, list):
                self._visit_stmts(node.body)
        finally:
            self._labels, self._loops, self._scope, self._cbit_depth = saved

    def visit_FunctionDef(self, node):
        self._enter_scope(node, "function")

    visit_AsyncFunctionDef = visit_FunctionDef
    visit_Lambda = visit_FunctionDef

    def visit_ClassDef(self, node):
        self._enter_scope(node, "class")

    def lookup(self, name: str) -> Optional[LabelDecl]:
        for decl in reversed(self._labels):
            if decl.name == name:
                return decl
        return None

    def _visit_stmts(self, stmts):
        for stmt in stmts:
            try:
                self.visit(stmt)
            except LabelResolutionException as e:
                self.errors.append(e)

    def _visit_loop(self, node):
        for field in ("target", "iter", "test"):
            if getattr(node, field, None) is not None:
                self.visit(getattr(node, field))

        label = cb_ast.get_label(node)
        decl = None
        if label is not None:
            decl = LabelDecl(label, "loop", node, accepts_continue=True, accepts_value=False)
            self._labels.append(decl)
        self._loops.append(_LoopFrame("loop", decl))
        try:
            self._visit_stmts(node.body)
        finally:
            self._loops.pop()
            if decl is not None:
                self._labels.pop()

        # the `else` clause is outside of the loop
        self._visit_stmts(node.orelse)

    visit_For = _visit_loop
    visit_AsyncFor = _visit_loop
    visit_While = _visit_loop

    def visit_Block(self, node):
        decl = LabelDecl(node.label, "block", node, accepts_continue=False, accepts_value=True)
        self._labels.append(decl)
        try:
            self._visit_stmts(node.body)
        finally:
            self._labels.pop()

    def visit_CbitFor(self, node):
        spec = node.spec
        if self._scope == "class":
            raise LabelResolutionException("cbit loops cannot be used in a class body", node)

        self.visit(node.iter)

        externals = []
        for entry in spec.escape_labels:
            outer = self.lookup(entry.label)
            if outer is None:
                raise LabelResolutionException(
                    f"label `{entry.label}` is not declared in an enclosing scope",
                    entry.location or node,
                )
            if entry.accepts_continue and not outer.accepts_continue:
                raise LabelResolutionException(
                    f"`loop {entry.label}`: `{entry.label}` does not name a loop",
                    entry.location or node,
                    hint=f"use `break {entry.label}` instead",
                )
            ext = LabelDecl(
                entry.label,
                "external",
                entry,
                accepts_continue=entry.accepts_continue,
                accepts_value=outer.accepts_value,
            )
            externals.append(ext)

        node.label_accepts_value = {ext.name: ext.accepts_value for ext in externals}

        own = None
        if spec.loop_label is not None:
            own = LabelDecl(
                spec.loop_label, "cbit", node, accepts_continue=True, accepts_value=True
            )

        saved = self._labels, self._loops
        self._labels = externals + ([own] if own is not None else [])
        self._loops = [_LoopFrame("cbit", own)]
        self._cbit_depth += 1
        n_errors = len(self.errors)
        try:
            self.visit(node.target)
            self._visit_stmts(spec.body)
        finally:
            self._labels, self._loops = saved
            self._cbit_depth -= 1

        # a body with errors may not have reached its jumps
        if len(self.errors) > n_errors:
            return
        for ext in externals:
            if not ext.used:
                cbit_warn(
                    UnusedLabel(
                        f"label `{ext.name}` is declared in the `break` clause "
                        "but the loop body never jumps to it",
                        ext.node.location or node,
                    )
                )

    def visit_Return(self, node):
        if self._cbit_depth > 0 and self._scope == "module":
            raise LabelResolutionException(
                "`return` inside a cbit loop outside of a function", node
            )
        self.generic_visit(node)

    def _resolve_target(self, node, kw):
        label = cb_ast.get_label(node)
        if label is not None:
            decl = self.lookup(label)
            if decl is None:
                raise LabelResolutionException(f"use of undeclared label `{label}`", node)
            decl.used = True
            return decl, None

        if not self._loops:
            raise LabelResolutionException(f"`{kw}` outside of a loop", node)
        frame = self._loops[-1]
        if frame.decl is not None:
            frame.decl.used = True
        return frame.decl, frame

    def visit_Break(self, node):
        value = cb_ast.get_jump_value(node)
        decl, frame = self._resolve_target(node, "break")

        if value is not None:
            if frame is not None and frame.kind != "cbit":
                raise LabelResolutionException(
                    "`break with` a value inside a native loop",
                    node,
                    hint="only cbit loops and labeled blocks take a value",
                )
            if decl is not None and not decl.accepts_value:
                raise LabelResolutionException(
                    f"`break {decl.name} with` a value: `{decl.name}` is a native loop",
                    node,
                    hint="only cbit loops and labeled blocks take a value",
                )
            self.visit(value)

    def visit_Continue(self, node):
        decl, _ = self._resolve_target(node, "continue")
        if decl is None or decl.accepts_continue:
            return

        if decl.kind == "block":
            raise LabelResolutionException(
                f"cannot `continue` the labeled block `{decl.name}`", node
            )
        raise LabelResolutionException(
            f"cannot `continue {decl.name}`: it is not declared as a loop",
            node,
            hint=f"declare it with `break loop {decl.name}` in the cbit loop header",
        )
