import pytest

from cbit.compiler.phases import CompilerData
from cbit.compiler.settings import Settings, get_global_settings, merge_settings


def test_merge_settings():
    assert merge_settings(Settings(), Settings(debug=True)).debug is True
    assert merge_settings(Settings(debug=True), Settings()).debug is True
    assert merge_settings(Settings(debug=False), Settings(debug=False)).debug is False


def test_merge_settings_conflict():
    with pytest.raises(ValueError, match="settings conflict!"):
        merge_settings(Settings(debug=False), Settings(debug=True))


def test_settings_drop_compiler_version():
    settings = merge_settings(Settings(), Settings(compiler_version=">=0.1", debug=True))
    assert settings.compiler_version is None
    assert settings == Settings(debug=True)


def test_debug_from_environment(monkeypatch):
    monkeypatch.setattr("cbit.compiler.settings.CBIT_DEBUG", True)
    assert Settings().get_debug() is True
    assert Settings(debug=False).get_debug() is False


def test_compiler_settings_from_pragma():
    data = CompilerData("# pragma debug\nx = 1\n")
    assert data.settings.debug is True


def test_compiler_settings_conflict_with_pragma():
    data = CompilerData("# pragma debug\nx = 1\n", settings=Settings(debug=False))
    with pytest.raises(ValueError, match="settings conflict!"):
        data.settings


def test_settings_are_anchored_during_compilation():
    data = CompilerData("x = 1\n", settings=Settings(debug=True))
    data.python_module
    assert get_global_settings() is None
