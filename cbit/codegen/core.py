"""
Helpers for building the python AST of generated code.
"""

import ast as python_ast

from cbit.ast import nodes as cb_ast

# the name generated modules import `cbit.runtime` as
RUNTIME_NAME = "_cbit_rt"


def load(name: str) -> python_ast.Name:
    return python_ast.Name(id=name, ctx=python_ast.Load())


def store(name: str) -> python_ast.Name:
    return python_ast.Name(id=name, ctx=python_ast.Store())


def attr(value: python_ast.expr, name: str) -> python_ast.Attribute:
    return python_ast.Attribute(value=value, attr=name, ctx=python_ast.Load())


def rt(name: str) -> python_ast.Attribute:
    """`_cbit_rt.<name>`"""
    return attr(load(RUNTIME_NAME), name)


def call(func: python_ast.expr, *args, **kwargs) -> python_ast.Call:
    keywords = [python_ast.keyword(arg=k, value=v) for k, v in kwargs.items()]
    return python_ast.Call(func=func, args=list(args), keywords=keywords)


def const(value) -> python_ast.Constant:
    return python_ast.Constant(value=value)


def assign(target: str, value: python_ast.expr) -> python_ast.Assign:
    return python_ast.Assign(targets=[store(target)], value=value)


def isinstance_(value: python_ast.expr, runtime_class: str) -> python_ast.Call:
    return call(rt("is_instance"), value, rt(runtime_class))


def if_chain(branches, orelse=None) -> python_ast.If:
    """
    Build `if c0: b0 elif c1: b1 ... else: orelse` from a list of
    (condition, body) pairs.
    """
    ret = None
    tail = orelse or []
    for test, body in reversed(branches):
        ret = python_ast.If(test=test, body=body, orelse=tail)
        tail = [ret]
    assert ret is not None
    return ret


def runtime_import() -> python_ast.Import:
    return python_ast.Import(names=[python_ast.alias(name="cbit.runtime", asname=RUNTIME_NAME)])


def locate(node, src):
    """
    Give every node of a generated tree that has no location the location of
    `src`. Nodes spliced in from the source keep theirs.
    """
    for n in python_ast.walk(node):
        if "lineno" in n._attributes and getattr(n, "lineno", None) is None:
            cb_ast.copy_location_info(n, src)
    return node


def locate_all(nodes, src):
    for n in nodes:
        locate(n, src)
    return nodes


def parse_stmt(source: str) -> python_ast.stmt:
    """
    Parse a statement template. The result carries no location, so that
    `locate` places it at the construct it is generated for.
    """
    ret = python_ast.parse(source).body[0]
    for n in python_ast.walk(ret):
        for field in cb_ast.LINE_INFO_FIELDS:
            if hasattr(n, field):
                delattr(n, field)
    return ret


def prelude_end(module: python_ast.Module) -> int:
    """
    Index of the first statement of a module after its docstring and its
    `from __future__` imports.
    """
    i = 0
    body = module.body
    if is_docstring(body[0] if body else None):
        i = 1
    while (
        i < len(body)
        and isinstance(body[i], python_ast.ImportFrom)
        and body[i].module == "__future__"
    ):
        i += 1
    return i


def ensure_runtime_import(module: python_ast.Module) -> int:
    """
    Import `cbit.runtime` at the top of `module` if it is not imported yet.
    Returns the index of the statement following the import.
    """
    i = prelude_end(module)
    if i < len(module.body) and getattr(module.body[i], "cbit_runtime_import", False):
        return i + 1

    stmt = runtime_import()
    stmt.cbit_runtime_import = True
    anchor = module.body[i] if i < len(module.body) else None
    if anchor is not None:
        python_ast.copy_location(stmt, anchor)
        stmt.end_lineno, stmt.end_col_offset = stmt.lineno, stmt.col_offset
    else:
        stmt.lineno, stmt.col_offset, stmt.end_lineno, stmt.end_col_offset = 1, 0, 1, 0
    for alias in stmt.names:
        python_ast.copy_location(alias, stmt)
    module.body.insert(i, stmt)
    return i + 1


def is_docstring(stmt) -> bool:
    return (
        isinstance(stmt, python_ast.Expr)
        and isinstance(stmt.value, python_ast.Constant)
        and isinstance(stmt.value.value, str)
    )
