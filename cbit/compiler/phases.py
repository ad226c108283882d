import ast as python_ast
import copy
from functools import cached_property
from pathlib import PurePath
from typing import Optional

from cbit import ast as cb_ast
from cbit.codegen.expansion import expand_loops
from cbit.codegen.labels import lower_labels
from cbit.compiler.settings import Settings, anchor_settings, merge_settings
from cbit.exceptions import SyntaxException, _BaseCbitException
from cbit.semantics import resolve_labels
from cbit.utils import NameGenerator

DEFAULT_SOURCE_PATH = PurePath("<cbit>")


class CompilerData:
    """
    Object for fetching and storing compiler data for a cbit module.

    This object acts as a wrapper over the pure compiler functions, triggering
    compilation phases as needed and providing the data for use when generating
    the final compiler outputs.

    Attributes
    ----------
    cbit_module : ast.Module
        Parsed cbit AST, with `CbitFor` and `Block` nodes
    resolved_module : ast.Module
        cbit AST with all labels resolved
    python_module : ast.Module
        Plain python AST the cbit module compiles to
    python_source : str
        Source code of `python_module`
    bytecode : types.CodeType
        Code object of `python_module`
    loops : list
        Summary of every expanded cbit loop
    """

    def __init__(
        self, source_code: str, path: Optional[str] = None, settings: Optional[Settings] = None
    ) -> None:
        """
        Initialization method.

        Arguments
        ---------
        source_code: str
            cbit source code to compile.
        path: str, optional
            Path of the source, used in error messages and as the filename
            of the code object.
        settings: Settings, optional
            Compiler settings. Conflicting pragmas in the source are an error.
        """
        self.source_code = source_code
        self.path = path
        self.original_settings = settings

    @cached_property
    def source_path(self) -> str:
        return str(self.path) if self.path is not None else str(DEFAULT_SOURCE_PATH)

    def _tag_path(self, e: _BaseCbitException) -> None:
        if e.path is None and self.path is not None:
            e.path = str(self.path)

    @cached_property
    def cbit_module(self):
        try:
            return cb_ast.parse_to_ast(self.source_code, source_path=self.path)
        except _BaseCbitException as e:
            self._tag_path(e)
            raise e

    @cached_property
    def settings(self) -> Settings:
        settings = self.cbit_module.settings

        if self.original_settings:
            og_settings = self.original_settings
            settings = merge_settings(og_settings, settings)
            assert self.original_settings == og_settings  # be paranoid
        else:
            # merge with empty Settings(), doesn't do much but it does
            # remove the compiler version
            settings = merge_settings(Settings(), settings)

        if settings.debug is None:
            settings.debug = Settings().get_debug()

        return settings

    @cached_property
    def resolved_module(self):
        # deepcopy so as to not interfere with the parsed module
        module = copy.deepcopy(self.cbit_module)
        with anchor_settings(self.settings):
            try:
                resolve_labels(module)
            except _BaseCbitException as e:
                self._tag_path(e)
                raise e
        return module

    @cached_property
    def _generate_python(self):
        module = copy.deepcopy(self.resolved_module)
        names = NameGenerator()
        with anchor_settings(self.settings):
            try:
                loops = expand_loops(module, debug=self.settings.get_debug(), names=names)
                lower_labels(module, names=names)
            except _BaseCbitException as e:
                self._tag_path(e)
                raise e
        return module, loops

    @cached_property
    def python_module(self):
        return self._generate_python[0]

    @cached_property
    def loops(self) -> list:
        return self._generate_python[1]

    @cached_property
    def python_source(self) -> str:
        return python_ast.unparse(self.python_module) + "\n"

    @cached_property
    def bytecode(self):
        try:
            return compile(self.python_module, self.source_path, "exec")
        except SyntaxError as e:
            # errors python only detects past parsing, e.g. `nonlocal` at
            # module level
            offset = (e.offset or 1) - 1
            exc = SyntaxException(e.msg, self.source_code, e.lineno, offset)
            self._tag_path(exc)
            raise exc from None
