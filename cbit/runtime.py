"""
Runtime support for code generated by the cbit compiler.

Generated modules import this module as `_cbit_rt`. It provides

* the two-state result of callback-style iterators (`Continue` / `Break`),
* the escape reasons relayed through it (`EarlyReturn`, `EarlyBreak`,
  `BreakTo`, `ContinueTo`),
* the write-once `EscapeSlot` and `relay`, which turns a generated task into
  the callback passed to the iterator function, and
* `Label`, the per-label exceptions used to lower labeled jumps python has no
  statement for.

An iterator function driven by a cbit loop looks like::

    def up_to(n, callback):
        for i in range(n):
            flow = callback(i)
            if flow.is_break:
                return flow
        return Continue()
"""

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Generator, Optional


class CbitRuntimeError(Exception):
    """Base class for errors raised by generated code at runtime."""


class RelayMisuseError(CbitRuntimeError):
    """
    The body of a cbit loop suspended other than through an escape, e.g.
    because it contains a `yield`.
    """


class IteratorProtocolError(CbitRuntimeError):
    """An iterator function did not follow the callback protocol."""


# control flow


@dataclass(frozen=True)
class ControlFlow:
    value: Any = None

    is_break: ClassVar[bool]

    @property
    def is_continue(self) -> bool:
        return not self.is_break


@dataclass(frozen=True)
class Continue(ControlFlow):
    """Keep going. Carries the value of the element just processed."""

    is_break: ClassVar[bool] = False


@dataclass(frozen=True)
class Break(ControlFlow):
    """Stop iterating. Carries the escape reason (or any break value)."""

    is_break: ClassVar[bool] = True


# escape reasons


class EscapeReason:
    pass


@dataclass(frozen=True)
class EarlyReturn(EscapeReason):
    value: Any = None


@dataclass(frozen=True)
class EarlyBreak(EscapeReason):
    value: Any = None


@dataclass(frozen=True)
class BreakTo(EscapeReason):
    label: str
    value: Any = None


@dataclass(frozen=True)
class ContinueTo(EscapeReason):
    label: str


# relay


class _Abort:
    def __repr__(self):
        return "ABORT"


# the only value a task may suspend with
ABORT = _Abort()

# iterable of the one-pass loops absorbing jumps inside a task
ONCE = (None,)


class EscapeSlot:
    """
    Receives the outcome of one invocation of a task. Written at most once.
    """

    __slots__ = ("_flow",)

    def __init__(self):
        self._flow: Optional[ControlFlow] = None

    @property
    def is_filled(self) -> bool:
        return self._flow is not None

    def record(self, flow: ControlFlow) -> _Abort:
        if self._flow is not None:
            raise RelayMisuseError(f"escape recorded twice: {self._flow} and {flow}")
        self._flow = flow
        return ABORT

    def take(self) -> ControlFlow:
        assert self._flow is not None
        return self._flow


Task = Callable[[Any, EscapeSlot], Generator]


def relay(task: Task, debug: bool = False) -> Callable[[Any], ControlFlow]:
    """
    Build the callback handed to an iterator function.

    `task` is a generator function taking the element and a fresh
    `EscapeSlot`. Every invocation of the callback polls a new task exactly
    once:

    * the task returned `v` (the loop body executed `return v`):
      `Break(EarlyReturn(v))`
    * the task suspended with `ABORT` after filling the slot: whatever was
      recorded in the slot
    * any other suspension: `RelayMisuseError`

    The task is closed right after the poll and never resumed.

    With `debug`, an iterator function invoking the callback again after it
    returned `Break` raises `IteratorProtocolError`.
    """
    escaped: Optional[ControlFlow] = None

    def callback(item):
        nonlocal escaped

        if debug and escaped is not None:
            raise IteratorProtocolError(
                f"callback invoked again after it returned {escaped}", escaped
            )

        slot = EscapeSlot()
        gen = task(item, slot)
        try:
            try:
                signal = next(gen)
            except StopIteration as e:
                flow: ControlFlow = Break(EarlyReturn(e.value))
            else:
                if signal is not ABORT or not slot.is_filled:
                    raise RelayMisuseError(
                        f"the body of a cbit loop suspended with {signal!r} "
                        "(cbit loop bodies cannot contain `yield`)"
                    )
                flow = slot.take()
        finally:
            gen.close()

        if debug and flow.is_break:
            escaped = flow
        return flow

    return callback


def protocol_error(result) -> IteratorProtocolError:
    """
    The error for an iterator function returning something other than
    `Continue(...)` or the `Break(...)` its callback handed it.
    """
    if isinstance(result, Break):
        msg = f"iterator function returned a break it did not receive: {result}"
    else:
        msg = f"iterator function must return Continue or Break, got {result!r}"
    return IteratorProtocolError(msg, result)


def is_instance(value, cls) -> bool:
    """
    `isinstance` for generated code. User code may rebind the builtin name in
    the scope the dispatcher runs in.
    """
    return isinstance(value, cls)


# labels


class LabelJump(BaseException):
    """
    A jump to a labeled loop or block which is not the innermost loop.

    Derives from BaseException so that `except Exception` in the code jumped
    across does not intercept it.
    """

    label: "Label"

    def __init__(self, value=None):
        super().__init__(value)
        self.value = value


class Label:
    """
    Jump targets for one label declaration. `Break` and `Continue` are
    exception classes private to this declaration.
    """

    def __init__(self, name: str):
        self.name = name

        class _Break(LabelJump):
            label = self

        class _Continue(LabelJump):
            label = self

        _Break.__name__ = _Break.__qualname__ = f"Break[{name}]"
        _Continue.__name__ = _Continue.__qualname__ = f"Continue[{name}]"

        self.Break = _Break
        self.Continue = _Continue

    def __repr__(self):
        return f"Label({self.name!r})"
