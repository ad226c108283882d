import contextlib
import warnings
from typing import Optional

from cbit.exceptions import _BaseCbitException


class CbitWarning(_BaseCbitException, Warning):
    pass


# print a warning
def cbit_warn(warning: CbitWarning | str, node=None):
    if isinstance(warning, str):
        warning = CbitWarning(warning, node)
    warnings.warn(warning, stacklevel=2)


@contextlib.contextmanager
def warnings_filter(warnings_control: Optional[str]):
    # note: using warnings.catch_warnings() since it saves and restores
    # the warnings filter
    with warnings.catch_warnings():
        set_warnings_filter(warnings_control)
        yield


def set_warnings_filter(warnings_control: Optional[str]):
    if warnings_control == "error":
        warnings_filter = "error"
    elif warnings_control == "none":
        warnings_filter = "ignore"
    else:
        assert warnings_control is None  # sanity
        warnings_filter = "default"

    if warnings_control is not None:
        # warnings.simplefilter only adds to the warnings filters,
        # so we should clear warnings filter between calls to simplefilter()
        warnings.resetwarnings()

    warnings.simplefilter(warnings_filter, category=CbitWarning)  # type: ignore[arg-type]


class UnusedLabel(CbitWarning):
    """
    Warn about a label in a `break` clause that the loop body never jumps to
    """

    pass
