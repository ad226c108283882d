"""
Escape relay.

The layered body of a cbit loop becomes a generator function (the "task").
Its only suspension points are aborts: `yield <slot>.record(<flow>)`, which
record the outcome of the invocation in the write-once slot and suspend. The
callback built by `cbit.runtime.relay` polls each task exactly once, so
nothing after an abort ever runs.
"""

import ast as python_ast

from cbit.ast.nodes import LoopSpec
from cbit.codegen import core
from cbit.codegen.taxonomy import EscapeTaxonomy


def abort(taxonomy: EscapeTaxonomy, flow: python_ast.expr) -> python_ast.stmt:
    """`yield <slot>.record(<flow>)`"""
    record = core.attr(core.load(taxonomy.names.slot), "record")
    return python_ast.Expr(value=python_ast.Yield(value=core.call(record, flow)))


def continue_flow(value: python_ast.expr) -> python_ast.Call:
    return core.call(core.rt("Continue"), value)


def break_flow(reason: str, *args) -> python_ast.Call:
    """`_cbit_rt.Break(_cbit_rt.<reason>(*args))`"""
    return core.call(core.rt("Break"), core.call(core.rt(reason), *args))


def build_task(
    spec: LoopSpec,
    taxonomy: EscapeTaxonomy,
    declarations: list,
    layers: list,
) -> python_ast.FunctionDef:
    """
    `def <task>(<item>, <slot>):` binding the element to the loop target,
    followed by the absorber layers.
    """
    names = taxonomy.names
    ret = core.parse_stmt(f"def {names.task}({names.item}, {names.slot}):\n    pass")
    assert isinstance(ret, python_ast.FunctionDef)

    ret.body = [
        *declarations,
        python_ast.Assign(targets=[spec.binding], value=core.load(names.item)),
        core.assign(names.value, core.const(None)),
        *layers,
    ]
    return ret


def relay_call(taxonomy: EscapeTaxonomy, debug: bool) -> python_ast.Call:
    task = core.load(taxonomy.names.task)
    if debug:
        return core.call(core.rt("relay"), task, debug=core.const(True))
    return core.call(core.rt("relay"), task)
