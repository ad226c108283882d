import importlib
import sys

import pytest

from cbit.compiler.settings import Settings
from cbit.exceptions import SyntaxException
from cbit.loader import CbitFinder, install_import_hook, load_module
from cbit.runtime import IteratorProtocolError

MODULE_SOURCE = """
from cbit.runtime import Continue


def countdown(n, callback):
    while n > 0:
        flow = callback(n)
        if flow.is_break:
            return flow
        n -= 1
    return Continue("liftoff")


def launch(abort_at=None):
    cbit for n in countdown(3) as result:
        if n == abort_at:
            break with "aborted"
    return result
"""


@pytest.fixture
def clean_modules():
    names = []
    yield names
    for name in names:
        sys.modules.pop(name, None)


@pytest.fixture
def import_hook():
    finder = install_import_hook()
    yield finder
    sys.meta_path.remove(finder)


def test_load_module(make_file, clean_modules):
    path = make_file("rocket.cbit", MODULE_SOURCE)
    clean_modules.append("rocket")

    module = load_module(path)

    assert sys.modules["rocket"] is module
    assert module.__file__ == str(path)
    assert module.launch() == "liftoff"
    assert module.launch(abort_at=2) == "aborted"


def test_load_module_with_name(make_file, clean_modules):
    path = make_file("rocket.cbit", MODULE_SOURCE)
    clean_modules.append("space.rocket")

    module = load_module(path, name="space.rocket")
    assert module.__name__ == "space.rocket"


def test_load_module_with_settings(make_file, clean_modules):
    code = """
def ignores_break(callback):
    callback(1)
    callback(2)
    return None


def f():
    cbit for x in ignores_break():
        break
"""
    path = make_file("careless.cbit", code)
    clean_modules.append("careless")

    module = load_module(path, settings=Settings(debug=True))
    with pytest.raises(IteratorProtocolError, match="invoked again"):
        module.f()


def test_load_module_error(make_file):
    path = make_file("broken.cbit", "def f(:\n")

    with pytest.raises(SyntaxException) as excinfo:
        load_module(path)

    assert excinfo.value.path == str(path)
    assert "broken" not in sys.modules


def test_import_hook(make_file, monkeypatch, import_hook, clean_modules):
    path = make_file("hooked.cbit", MODULE_SOURCE)
    monkeypatch.syspath_prepend(str(path.parent))
    clean_modules.append("hooked")

    module = importlib.import_module("hooked")

    assert isinstance(import_hook, CbitFinder)
    assert module.__file__ == str(path)
    assert module.launch() == "liftoff"


def test_import_hook_in_package(make_file, monkeypatch, import_hook, clean_modules):
    make_file("launchpad/__init__.py", "")
    path = make_file("launchpad/rocket.cbit", MODULE_SOURCE)
    monkeypatch.syspath_prepend(str(path.parent.parent))
    clean_modules.extend(["launchpad", "launchpad.rocket"])

    from launchpad import rocket

    assert rocket.launch(abort_at=1) == "aborted"


def test_install_import_hook_is_idempotent(import_hook):
    assert install_import_hook() is import_hook
    assert sum(isinstance(f, CbitFinder) for f in sys.meta_path) == 1
