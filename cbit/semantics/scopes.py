"""
Scope analysis for the bodies of cbit loops.

A cbit loop body ends up inside a generated function, so every name the body
binds has to be declared `nonlocal` (or `global`) there to keep referring to
the variable of the scope the body was written in.
"""

import ast as python_ast

from cbit.ast import nodes as cb_ast
from cbit.utils import uniq

_NESTED_SCOPES = (
    python_ast.FunctionDef,
    python_ast.AsyncFunctionDef,
    python_ast.ClassDef,
    python_ast.Lambda,
)

_STMT_LIST_FIELDS = ("body", "orelse", "finalbody")


class _BindingCollector(python_ast.NodeVisitor):
    def __init__(self):
        self.names: list[str] = []

    def visit_Name(self, node):
        if isinstance(node.ctx, (python_ast.Store, python_ast.Del)):
            self.names.append(node.id)

    def _visit_nested_scope(self, node):
        # only the name of a def or class is bound in this scope
        if not isinstance(node, python_ast.Lambda):
            self.names.append(node.name)

    visit_FunctionDef = _visit_nested_scope
    visit_AsyncFunctionDef = _visit_nested_scope
    visit_ClassDef = _visit_nested_scope
    visit_Lambda = _visit_nested_scope

    def _visit_comprehension(self, node):
        # comprehension targets are local to the comprehension, but an
        # assignment expression inside it binds in the enclosing scope
        for n in python_ast.walk(node):
            if isinstance(n, python_ast.NamedExpr) and isinstance(n.target, python_ast.Name):
                self.names.append(n.target.id)

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def visit_ExceptHandler(self, node):
        if node.name is not None:
            self.names.append(node.name)
        self.generic_visit(node)

    def _visit_import(self, node):
        for alias in node.names:
            if alias.name == "*":
                continue
            self.names.append(alias.asname or alias.name.split(".")[0])

    visit_Import = _visit_import
    visit_ImportFrom = _visit_import

    def visit_MatchAs(self, node):
        if node.name is not None:
            self.names.append(node.name)
        self.generic_visit(node)

    def visit_MatchStar(self, node):
        if node.name is not None:
            self.names.append(node.name)

    def visit_MatchMapping(self, node):
        if node.rest is not None:
            self.names.append(node.rest)
        self.generic_visit(node)

    def visit_CbitFor(self, node):
        if node.spec.result is not None:
            self.names.append(node.spec.result)
        self.generic_visit(node)

    def visit_Block(self, node):
        if node.target is not None:
            self.names.append(node.target)
        self.generic_visit(node)


def bound_names(*nodes) -> list[str]:
    """
    Names bound by `nodes` in the scope they appear in, in order of first
    binding. Bindings inside nested functions, classes, lambdas and
    comprehensions are not included, bindings inside nested cbit loops and
    blocks are.
    """
    collector = _BindingCollector()
    for node in nodes:
        if isinstance(node, list):
            for n in node:
                collector.visit(n)
        else:
            collector.visit(node)
    return list(uniq(collector.names))


def parameter_names(fn: python_ast.AST) -> list[str]:
    args = fn.args
    ret = [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]
    if args.vararg is not None:
        ret.append(args.vararg.arg)
    if args.kwarg is not None:
        ret.append(args.kwarg.arg)
    return ret


def _walk_scope(stmts):
    # yield every statement of a scope, descending into compound statements
    # (and cbit loops) but not into nested scopes
    for stmt in stmts:
        yield stmt
        if isinstance(stmt, _NESTED_SCOPES):
            continue
        for field in _STMT_LIST_FIELDS:
            yield from _walk_scope(getattr(stmt, field, None) or [])
        for handler in getattr(stmt, "handlers", None) or []:
            yield from _walk_scope(handler.body)
        for case in getattr(stmt, "cases", None) or []:
            yield from _walk_scope(case.body)


def declared_names(stmts) -> tuple[list[str], list[str]]:
    """
    Names declared `global` and `nonlocal` in the scope of `stmts`.
    """
    globals_: list[str] = []
    nonlocals: list[str] = []
    for stmt in _walk_scope(stmts):
        if isinstance(stmt, python_ast.Global):
            globals_.extend(stmt.names)
        elif isinstance(stmt, python_ast.Nonlocal):
            nonlocals.extend(stmt.names)
    return list(uniq(globals_)), list(uniq(nonlocals))


class _DeclarationStripper(python_ast.NodeTransformer):
    def __init__(self):
        self.globals: list[str] = []
        self.nonlocals: list[str] = []

    def visit_Global(self, node):
        self.globals.extend(node.names)
        return None

    def visit_Nonlocal(self, node):
        self.nonlocals.extend(node.names)
        return None

    def _skip(self, node):
        return node

    visit_FunctionDef = _skip
    visit_AsyncFunctionDef = _skip
    visit_ClassDef = _skip
    visit_Lambda = _skip

    def generic_visit(self, node):
        super().generic_visit(node)
        # a compound statement needs at least one statement in its body
        if getattr(node, "body", None) == []:
            node.body.append(cb_ast.copy_location_info(python_ast.Pass(), node))
        return node


def strip_cbit_declarations(stmts) -> tuple[list[str], list[str]]:
    """
    Remove the `global` and `nonlocal` statements written inside the cbit
    loops of a scope. Returns the names they declared.
    """
    stripper = _DeclarationStripper()
    loops = [stmt for stmt in _walk_scope(stmts) if isinstance(stmt, cb_ast.CbitFor)]
    for loop in loops:
        stripper.visit(loop)
    return list(uniq(stripper.globals)), list(uniq(stripper.nonlocals))
