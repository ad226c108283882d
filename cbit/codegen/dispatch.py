"""
Driver and dispatcher.

Calls the iterator function with the relay callback appended to its
arguments, then replays the escape the result carries as a jump in the code
surrounding the loop:

    _cbit_res_1 = f(x, _cbit_rt.relay(_cbit_task_1))
    if _cbit_rt.is_instance(_cbit_res_1, _cbit_rt.Continue):
        result = _cbit_res_1.value
    elif not _cbit_rt.is_instance(_cbit_res_1, _cbit_rt.Break):
        raise _cbit_rt.protocol_error(_cbit_res_1)
    elif _cbit_rt.is_instance(_cbit_res_1.value, _cbit_rt.EarlyReturn):
        return _cbit_res_1.value.value
    elif _cbit_rt.is_instance(_cbit_res_1.value, _cbit_rt.EarlyBreak):
        result = _cbit_res_1.value.value
    elif (
        _cbit_rt.is_instance(_cbit_res_1.value, _cbit_rt.BreakTo)
        and _cbit_res_1.value.label == "X"
    ):
        break X with _cbit_res_1.value.value
    elif _cbit_res_1.value == _cbit_rt.ContinueTo("Y"):
        continue Y
    else:
        raise _cbit_rt.protocol_error(_cbit_res_1)

The labeled jumps are lowered together with the ones written by the user
(`cbit.codegen.labels`).
"""

import ast as python_ast
from typing import Optional

from cbit.ast.nodes import LoopSpec
from cbit.codegen import core
from cbit.codegen.relay import relay_call
from cbit.codegen.taxonomy import EscapeTaxonomy


def _set_result(spec: LoopSpec, value: python_ast.expr) -> python_ast.stmt:
    if spec.result is None:
        return python_ast.Pass()
    return core.assign(spec.result, value)


def _jump(kind, label: str, value: Optional[python_ast.expr] = None) -> python_ast.stmt:
    ret = kind()
    ret.label = label
    if value is not None:
        ret.value = value
    return ret


def build_dispatch(
    spec: LoopSpec,
    taxonomy: EscapeTaxonomy,
    in_function: bool,
    label_accepts_value: dict,
    debug: bool = False,
) -> list:
    names = taxonomy.names

    # fresh nodes for every use, generated trees do not share nodes
    def res():
        return core.load(names.result)

    def reason():
        return core.attr(res(), "value")

    def payload():
        return core.attr(reason(), "value")

    def protocol_error():
        return python_ast.Raise(exc=core.call(core.rt("protocol_error"), res()), cause=None)

    invocation = core.assign(names.result, spec.source_call.to_call(relay_call(taxonomy, debug)))

    branches = [
        (core.isinstance_(res(), "Continue"), [_set_result(spec, reason())]),
        (
            python_ast.UnaryOp(op=python_ast.Not(), operand=core.isinstance_(res(), "Break")),
            [protocol_error()],
        ),
    ]

    # there is no enclosing function to return from at module level; a
    # `return` in the body is rejected during label resolution
    if in_function:
        return_ = python_ast.Return(value=payload())
        branches.append((core.isinstance_(reason(), "EarlyReturn"), [return_]))

    branches.append((core.isinstance_(reason(), "EarlyBreak"), [_set_result(spec, payload())]))

    for entry in spec.escape_labels:
        label = entry.label
        test = python_ast.BoolOp(
            op=python_ast.And(),
            values=[
                core.isinstance_(reason(), "BreakTo"),
                python_ast.Compare(
                    left=core.attr(reason(), "label"),
                    ops=[python_ast.Eq()],
                    comparators=[core.const(label)],
                ),
            ],
        )
        value = payload() if label_accepts_value.get(label, True) else None
        branches.append((test, [_jump(python_ast.Break, label, value)]))

    for entry in spec.escape_labels:
        if not entry.accepts_continue:
            continue
        label = entry.label
        test = python_ast.Compare(
            left=reason(),
            ops=[python_ast.Eq()],
            comparators=[core.call(core.rt("ContinueTo"), core.const(label))],
        )
        branches.append((test, [_jump(python_ast.Continue, label)]))

    return [invocation, core.if_chain(branches, orelse=[protocol_error()])]
