import textwrap
import types

import hypothesis
import pytest

import cbit
from cbit.compiler.settings import Settings
from cbit.runtime import Break, Continue

############
# PATCHING #
############


# disable hypothesis deadline globally
hypothesis.settings.register_profile("ci", deadline=None)
hypothesis.settings.load_profile("ci")


def pytest_addoption(parser):
    parser.addoption(
        "--enable-compiler-debug-mode",
        action="store_true",
        help="check the iterator protocol at runtime in every compiled module",
    )


@pytest.fixture(scope="session")
def debug(pytestconfig):
    debug = pytestconfig.getoption("enable_compiler_debug_mode")
    assert isinstance(debug, bool)
    return debug


######################
# ITERATOR FUNCTIONS #
######################


def up_to(n, callback, *, start=0):
    for i in range(start, n):
        flow = callback(i)
        if flow.is_break:
            return flow
    return Continue()


def each(items, callback):
    for item in items:
        flow = callback(item)
        if flow.is_break:
            return flow
    return Continue()


def tracked(items, seen, callback):
    # like `each`, recording every element delivered to the callback
    for item in items:
        seen.append(item)
        flow = callback(item)
        if flow.is_break:
            return flow
    return Continue()


def fold(init, items, callback):
    # the callback receives `(acc, item)` and continues with the new `acc`
    acc = init
    for item in items:
        flow = callback((acc, item))
        if flow.is_break:
            return flow
        acc = flow.value
    return Continue(acc)


class Tree:
    def __init__(self, value, *children):
        self.value = value
        self.children = children

    def walk(self, callback):
        flow = callback(self.value)
        if flow.is_break:
            return flow
        for child in self.children:
            flow = child.walk(callback)
            if flow.is_break:
                return flow
        return Continue()


def keeps_going(items, callback):
    # ignores `Break`
    for item in items:
        callback(item)
    return Continue()


def returns_garbage(callback):
    callback(None)
    return 42


def forges_break(callback):
    return Break("not an escape reason")


ITERATORS = {
    "up_to": up_to,
    "each": each,
    "tracked": tracked,
    "fold": fold,
    "Tree": Tree,
    "keeps_going": keeps_going,
    "returns_garbage": returns_garbage,
    "forges_break": forges_break,
    "Continue": Continue,
    "Break": Break,
}


############
# FIXTURES #
############


@pytest.fixture(scope="session")
def iterators():
    return dict(ITERATORS)


@pytest.fixture
def get_module(debug, iterators):
    """
    Compile and execute cbit source code in a fresh module which has the
    iterator functions above in scope.
    """

    def get_module(source_code, settings=None, **namespace):
        module = types.ModuleType("cbit_test_module")
        module.__dict__.update(iterators)
        module.__dict__.update(namespace)

        if settings is None and debug:
            settings = Settings(debug=True)

        cbit.exec_code(textwrap.dedent(source_code), module.__dict__, settings=settings)
        return module

    return get_module


@pytest.fixture
def compile_source():
    def compile_source(source_code, output_formats=("source",), **kwargs):
        return cbit.compile_code(textwrap.dedent(source_code), output_formats, **kwargs)

    return compile_source


@pytest.fixture
def make_file(tmp_path):
    def fn(name, contents):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(contents))
        return path

    return fn
