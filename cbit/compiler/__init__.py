import types
from typing import Callable, Optional, Sequence

import cbit.ast as cb_ast  # noqa: F401  break an import cycle
import cbit.compiler.output as output
from cbit.compiler.phases import CompilerData
from cbit.compiler.settings import Settings

OUTPUT_FORMATS = {
    # requires python_module
    "source": output.build_source_output,
    "loops": output.build_loops_output,
    "ast": output.build_ast_output,
    "ast_dump": output.build_ast_dump_output,
    # requires bytecode
    "code": output.build_code_output,
}

UNKNOWN_SOURCE_NAME = "<unknown>"


def compile_code(
    source_code: str,
    output_formats: Optional[Sequence[str]] = None,
    settings: Optional[Settings] = None,
    path: Optional[str] = None,
    exc_handler: Optional[Callable] = None,
) -> dict:
    """
    Main entry point into the compiler.

    Generate consumable compiler output(s) from a single cbit source.
    Basically, a wrapper around CompilerData which munges the output
    data into the requested output formats.

    Arguments
    ---------
    source_code: str
        cbit source code to be compiled.
    output_formats: List, optional
        List of compiler outputs to generate. Possible options are all the keys
        in `OUTPUT_FORMATS`. If not given, the generated python source is
        returned.
    settings: Settings, optional
        Compiler settings.
    path: str, optional
        Path of the source, used in error messages.
    exc_handler: Callable, optional
        Callable used to handle exceptions if the compilation fails. Should accept
        two arguments - the path of the source, and the exception that was raised

    Returns
    -------
    Dict
        Compiler output as `{'output key': "output data"}`
    """
    if output_formats is None:
        output_formats = ("source",)

    compiler_data = CompilerData(source_code, path=path, settings=settings)

    ret = {}
    for output_format in output_formats:
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported format type {repr(output_format)}")
        try:
            formatter = OUTPUT_FORMATS[output_format]
            ret[output_format] = formatter(compiler_data)
        except Exception as exc:
            if exc_handler is not None:
                exc_handler(str(path or UNKNOWN_SOURCE_NAME), exc)
            else:
                raise exc

    return ret


def exec_code(
    source_code: str,
    namespace: Optional[dict] = None,
    settings: Optional[Settings] = None,
    path: Optional[str] = None,
) -> dict:
    """
    Compile cbit source code and execute it in `namespace` (a fresh module
    namespace if not given). Returns the namespace.
    """
    code = compile_code(source_code, ("code",), settings=settings, path=path)["code"]

    if namespace is None:
        module = types.ModuleType("__cbit__")
        namespace = module.__dict__
    namespace.setdefault("__name__", "__cbit__")
    if path is not None:
        namespace.setdefault("__file__", str(path))

    exec(code, namespace)
    return namespace
