"""
Absorber layers.

An absorber wraps one labeled scope of the task and turns jumps to that label
into an abort (`cbit.codegen.relay.abort`). The body itself is wrapped in a
one-pass loop carrying the label of the cbit loop; around it comes one layer
per label of the `break` clause, in declaration order, each re-declaring the
label of the enclosing code it stands in for:

    E2: block:                                  # `break E2`
        E1: for _cbit_once_1 in _cbit_rt.ONCE:  # `break loop E1`
            L: for _cbit_once_1 in _cbit_rt.ONCE:
                <body>
            else:
                yield slot.record(Continue(value))
            yield slot.record(Break(EarlyBreak(brk)))
        else:
            yield slot.record(Break(ContinueTo("E1")))
        yield slot.record(Break(BreakTo("E1", brk_E1)))
    yield slot.record(Break(BreakTo("E2", brk_E2)))

A one-pass loop is only left through its `else` clause by finishing the pass
or by `continue`, and only left past the `else` clause by `break`. Jumps to an
outer label pass through inner layers untouched, since labels resolve
lexically.
"""

import ast as python_ast

from cbit.ast import nodes as cb_ast
from cbit.ast.nodes import ExternalLabel, LoopSpec
from cbit.codegen import core
from cbit.codegen.relay import abort, break_flow, continue_flow
from cbit.codegen.taxonomy import EscapeTaxonomy


def _once_loop(taxonomy: EscapeTaxonomy, label, value_target, body, orelse):
    ret = python_ast.For(
        target=core.store(taxonomy.names.once),
        iter=core.rt("ONCE"),
        body=body,
        orelse=orelse,
        type_comment=None,
    )
    ret.label = label
    ret.value_target = value_target
    return ret


def with_continue_value(body: list, taxonomy: EscapeTaxonomy) -> list:
    """
    A trailing expression statement is the value of the body, which the
    iterator function receives as `Continue(value)`.
    """
    if body and isinstance(body[-1], python_ast.Expr):
        tail = body[-1]
        assignment = core.assign(taxonomy.names.value, tail.value)
        cb_ast.copy_location_info(assignment, tail)
        cb_ast.copy_location_info(assignment.targets[0], tail)
        return [*body[:-1], assignment]
    return list(body)


def innermost_absorber(spec: LoopSpec, taxonomy: EscapeTaxonomy) -> list:
    names = taxonomy.names
    body = with_continue_value(spec.body, taxonomy)

    loop = _once_loop(
        taxonomy,
        spec.loop_label,
        names.brk,
        body,
        [abort(taxonomy, continue_flow(core.load(names.value)))],
    )
    return [
        core.assign(names.brk, core.const(None)),
        loop,
        abort(taxonomy, break_flow("EarlyBreak", core.load(names.brk))),
    ]


def external_absorber(entry: ExternalLabel, inner: list, taxonomy: EscapeTaxonomy) -> list:
    label = entry.label
    brk = taxonomy.break_var(label)
    on_break = abort(taxonomy, break_flow("BreakTo", core.const(label), core.load(brk)))

    if entry.accepts_continue:
        on_continue = abort(taxonomy, break_flow("ContinueTo", core.const(label)))
        layer = _once_loop(taxonomy, label, brk, inner, [on_continue])
        return [core.assign(brk, core.const(None)), layer, on_break]

    return [cb_ast.make_block(label, brk, inner), on_break]


def build_layers(spec: LoopSpec, taxonomy: EscapeTaxonomy) -> list:
    """
    The statements of the task following the binding of the element, from
    the innermost absorber outwards.
    """
    ret = innermost_absorber(spec, taxonomy)
    for entry in spec.escape_labels:
        ret = external_absorber(entry, ret, taxonomy)
    return ret
