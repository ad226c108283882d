"""
Expansion of `cbit for` statements.

Each `CbitFor` node is replaced by the definition of its task followed by
the call of the iterator function and the dispatcher. Loops are expanded
outermost first: the body of an outer loop, inner loops included, becomes
the body of its task, and the inner loops are then expanded inside that task.
"""

import ast as python_ast
from dataclasses import dataclass, field

from cbit.ast import nodes as cb_ast
from cbit.codegen import core
from cbit.codegen.absorbers import build_layers
from cbit.codegen.dispatch import build_dispatch
from cbit.codegen.relay import build_task
from cbit.codegen.taxonomy import build_taxonomy
from cbit.exceptions import tag_exceptions
from cbit.semantics.scopes import (
    bound_names,
    declared_names,
    parameter_names,
    strip_cbit_declarations,
)
from cbit.utils import NameGenerator, uniq


@dataclass
class _Scope:
    node: python_ast.AST
    is_module: bool
    params: set
    globals: set
    nonlocals: set
    # declarations written inside cbit loops, which belong to this scope
    hoisted_globals: list
    hoisted_nonlocals: list
    # names only bound inside cbit loops need a binding in this scope for
    # the `nonlocal` declarations of the tasks to refer to
    annotations: list = field(default_factory=list)


def expand_loops(module: python_ast.Module, debug: bool = False, names=None) -> list:
    """
    Expand every `cbit for` statement of `module` in place.

    Returns a summary of every expanded loop.
    """
    expander = LoopExpander(debug=debug, names=names)
    expander.visit(module)
    return expander.loops


class LoopExpander(python_ast.NodeTransformer):
    def __init__(self, debug: bool = False, names=None):
        self._debug = debug
        self._names = names or NameGenerator()
        self._scopes: list[_Scope] = []
        self.loops: list[dict] = []

    def _enter(self, node, is_module=False) -> _Scope:
        hoisted_globals, hoisted_nonlocals = strip_cbit_declarations(node.body)
        globals_, nonlocals = declared_names(node.body)

        scope = _Scope(
            node=node,
            is_module=is_module,
            params=set() if is_module else set(parameter_names(node)),
            globals=set(globals_) | set(hoisted_globals),
            nonlocals=set(nonlocals) | set(hoisted_nonlocals),
            hoisted_globals=[n for n in hoisted_globals if n not in globals_],
            hoisted_nonlocals=[n for n in hoisted_nonlocals if n not in nonlocals],
        )
        self._scopes.append(scope)
        return scope

    def _exit(self, scope: _Scope):
        popped = self._scopes.pop()
        assert popped is scope

        node = scope.node
        decls: list = []
        if scope.hoisted_globals:
            decls.append(python_ast.Global(names=scope.hoisted_globals))
        if scope.hoisted_nonlocals:
            decls.append(python_ast.Nonlocal(names=scope.hoisted_nonlocals))
        for name in uniq(scope.annotations):
            decls.append(
                python_ast.AnnAssign(
                    target=core.store(name), annotation=core.load("object"), value=None, simple=1
                )
            )
        if not decls:
            return

        i = 1 if node.body and core.is_docstring(node.body[0]) else 0
        core.locate_all(decls, node if not scope.is_module else node.body[0])
        node.body[i:i] = decls

    def visit_Module(self, node):
        scope = self._enter(node, is_module=True)
        try:
            self.generic_visit(node)
        finally:
            self._exit(scope)

        if self.loops:
            core.ensure_runtime_import(node)
        return node

    def _visit_function(self, node):
        scope = self._enter(node)
        try:
            self.generic_visit(node)
        finally:
            self._exit(scope)
        return node

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_CbitFor(self, node):
        scope = self._scopes[-1]
        with tag_exceptions(node, note="while expanding a cbit loop"):
            stmts = self._expand(node, scope)

        # pre-order: loops nested in the body are expanded inside the task
        ret = []
        for stmt in stmts:
            new = self.visit(stmt)
            if isinstance(new, list):
                ret.extend(new)
            elif new is not None:
                ret.append(new)
        return ret

    def _declarations(self, spec, scope: _Scope) -> tuple[list, list]:
        bound = bound_names(spec.binding, spec.body)
        if scope.is_module:
            return bound, []

        globals_ = [n for n in bound if n in scope.globals]
        nonlocals = [n for n in bound if n not in scope.globals]
        scope.annotations.extend(
            n for n in nonlocals if n not in scope.params and n not in scope.nonlocals
        )
        return globals_, nonlocals

    def _expand(self, node: cb_ast.CbitFor, scope: _Scope) -> list:
        spec = node.spec
        loop_id = self._names.next_id()
        taxonomy = build_taxonomy(spec, loop_id, self._names)

        globals_, nonlocals = self._declarations(spec, scope)
        decls: list = []
        if globals_:
            decls.append(python_ast.Global(names=globals_))
        if nonlocals:
            decls.append(python_ast.Nonlocal(names=nonlocals))

        task = build_task(spec, taxonomy, decls, build_layers(spec, taxonomy))
        dispatch = build_dispatch(
            spec,
            taxonomy,
            in_function=not scope.is_module,
            label_accepts_value=getattr(node, "label_accepts_value", {}),
            debug=self._debug,
        )

        self.loops.append(_summarize(node, taxonomy, globals_, nonlocals))

        return core.locate_all([task, *dispatch], node)


def _describe_call(call) -> dict:
    if isinstance(call, cb_ast.MethodCall):
        return {
            "kind": "method",
            "receiver": python_ast.unparse(call.receiver),
            "method": call.method,
            "type_args": None if call.type_args is None else python_ast.unparse(call.type_args),
            "args": [python_ast.unparse(a) for a in call.args],
        }
    return {
        "kind": "free",
        "callee": python_ast.unparse(call.callee),
        "args": [python_ast.unparse(a) for a in call.args],
    }


def _summarize(node, taxonomy, globals_, nonlocals) -> dict:
    spec = node.spec
    return {
        "id": taxonomy.loop_id,
        "lineno": node.lineno,
        "col_offset": node.col_offset,
        "loop_label": spec.loop_label,
        "binding": python_ast.unparse(spec.binding),
        "source_call": _describe_call(spec.source_call),
        "escape_labels": [
            {"label": e.label, "accepts_continue": e.accepts_continue} for e in spec.escape_labels
        ],
        "result": spec.result,
        "task": taxonomy.names.task,
        "global": list(globals_),
        "nonlocal": list(nonlocals),
        **taxonomy.as_dict(),
    }
