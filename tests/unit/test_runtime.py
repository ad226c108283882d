import pytest

from cbit.runtime import (
    ABORT,
    Break,
    BreakTo,
    Continue,
    ContinueTo,
    EarlyBreak,
    EarlyReturn,
    EscapeSlot,
    IteratorProtocolError,
    Label,
    LabelJump,
    RelayMisuseError,
    protocol_error,
    relay,
)


def test_control_flow():
    assert Continue(1).is_continue
    assert not Continue(1).is_break
    assert Break(EarlyBreak(1)).is_break
    assert Continue().value is None
    assert Break(ContinueTo("x")) == Break(ContinueTo("x"))
    assert ContinueTo("x") != ContinueTo("y")
    assert BreakTo("x", 1) != BreakTo("x", 2)


def test_slot_is_written_once():
    slot = EscapeSlot()
    assert not slot.is_filled
    assert slot.record(Continue(1)) is ABORT
    assert slot.is_filled
    assert slot.take() == Continue(1)

    with pytest.raises(RelayMisuseError):
        slot.record(Break(EarlyBreak(2)))
    assert slot.take() == Continue(1)


def _aborting_task(flow):
    def task(item, slot):
        yield slot.record(flow(item))

    return task


def test_relay_recorded_flow():
    callback = relay(_aborting_task(Continue))
    assert callback(3) == Continue(3)
    assert callback(4) == Continue(4)


def test_relay_return_is_early_return():
    def task(item, slot):
        return item * 2
        yield

    assert relay(task)(5) == Break(EarlyReturn(10))


def test_relay_rejects_foreign_suspension():
    def task(item, slot):
        yield item

    with pytest.raises(RelayMisuseError, match="cannot contain `yield`"):
        relay(task)(1)


def test_relay_rejects_abort_without_escape():
    def task(item, slot):
        yield ABORT

    with pytest.raises(RelayMisuseError):
        relay(task)(1)


def test_relay_never_resumes_task():
    log = []

    def task(item, slot):
        try:
            yield slot.record(Continue(item))
            log.append("resumed")
        finally:
            log.append("closed")

    callback = relay(task)
    callback(1)
    callback(2)
    assert log == ["closed", "closed"]


def test_relay_polls_fresh_task_per_invocation():
    slots = []

    def task(item, slot):
        slots.append(slot)
        yield slot.record(Continue(item))

    callback = relay(task)
    callback(1)
    callback(2)
    assert slots[0] is not slots[1]


def test_relay_debug_rejects_call_after_break():
    callback = relay(_aborting_task(lambda item: Break(EarlyBreak(item))), debug=True)
    assert callback(1) == Break(EarlyBreak(1))
    with pytest.raises(IteratorProtocolError, match="invoked again"):
        callback(2)


def test_relay_without_debug_allows_call_after_break():
    callback = relay(_aborting_task(lambda item: Break(EarlyBreak(item))))
    assert callback(1) == Break(EarlyBreak(1))
    assert callback(2) == Break(EarlyBreak(2))


def test_relay_debug_allows_continue():
    callback = relay(_aborting_task(Continue), debug=True)
    for i in range(3):
        assert callback(i) == Continue(i)


@pytest.mark.parametrize(
    "result,match",
    [(42, "must return Continue or Break"), (Break(1), "did not receive")],
)
def test_protocol_error(result, match):
    err = protocol_error(result)
    assert isinstance(err, IteratorProtocolError)
    with pytest.raises(IteratorProtocolError, match=match):
        raise err


def test_label_exceptions_are_private():
    a = Label("outer")
    b = Label("outer")

    assert a.Break is not b.Break
    assert issubclass(a.Break, LabelJump)
    assert not issubclass(a.Break, Exception)
    assert a.Break.__name__ == "Break[outer]"
    assert a.Continue.__name__ == "Continue[outer]"

    with pytest.raises(a.Break) as excinfo:
        try:
            raise a.Break(7)
        except b.Break:
            pytest.fail("caught by another label")
    assert excinfo.value.value == 7
    assert excinfo.value.label is a


def test_label_jump_passes_except_exception():
    label = Label("x")
    with pytest.raises(label.Continue):
        try:
            raise label.Continue()
        except Exception:
            pytest.fail("label jump intercepted")
