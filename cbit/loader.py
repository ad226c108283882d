"""
Import support for cbit source files (`*.cbit`).
"""

import importlib.abc
import importlib.util
import sys
from pathlib import Path
from typing import Optional

from cbit.compiler.phases import CompilerData
from cbit.compiler.settings import Settings

SOURCE_SUFFIX = ".cbit"


class CbitLoader(importlib.abc.SourceLoader):
    """
    Loader compiling a cbit source file to python on import. Compiled code is
    not cached.
    """

    def __init__(self, fullname: str, path: str, settings: Optional[Settings] = None):
        self.name = fullname
        self.path = str(path)
        self.settings = settings

    def get_filename(self, fullname):
        return self.path

    def get_data(self, path):
        with open(path, "rb") as f:
            return f.read()

    def source_to_code(self, data, path, *, _optimize=-1):
        source_code = importlib.util.decode_source(data)
        return CompilerData(source_code, path=path, settings=self.settings).bytecode


class CbitFinder(importlib.abc.MetaPathFinder):
    """
    Finds `<name>.cbit` modules on `sys.path`, or on the `__path__` of the
    parent package.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings

    def find_spec(self, fullname, path, target=None):
        name = fullname.rpartition(".")[2]
        for entry in path if path is not None else sys.path:
            candidate = Path(entry or ".") / f"{name}{SOURCE_SUFFIX}"
            if candidate.is_file():
                loader = CbitLoader(fullname, str(candidate), settings=self.settings)
                return importlib.util.spec_from_file_location(
                    fullname, str(candidate), loader=loader
                )
        return None


def install_import_hook(settings: Optional[Settings] = None) -> CbitFinder:
    """
    Make `*.cbit` files importable. Returns the installed finder, which can
    be removed from `sys.meta_path` again.
    """
    for finder in sys.meta_path:
        if isinstance(finder, CbitFinder):
            return finder

    finder = CbitFinder(settings=settings)
    sys.meta_path.append(finder)
    return finder


def load_module(path, name: Optional[str] = None, settings: Optional[Settings] = None):
    """
    Import the cbit source file at `path` as module `name` (by default the
    file name without its suffix).
    """
    path = Path(path)
    if name is None:
        name = path.stem

    loader = CbitLoader(name, str(path), settings=settings)
    spec = importlib.util.spec_from_file_location(name, str(path), loader=loader)
    assert spec is not None
    module = importlib.util.module_from_spec(spec)

    sys.modules[name] = module
    try:
        loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module
