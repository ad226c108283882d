#!/usr/bin/env python3
import argparse
import json
import sys
import warnings
from pathlib import Path

import cbit
from cbit.compiler.settings import CBIT_TRACEBACK_LIMIT, Settings
from cbit.utils import uniq
from cbit.warnings import warnings_filter

format_options_help = """Format to print, one or more of:
source (default) - Generated python source code
loops            - Summary of every cbit loop in JSON format
ast_dump         - Generated python AST
"""

CLI_FORMATS = ("source", "loops", "ast_dump")


def _parse_cli_args():
    return _parse_args(sys.argv[1:])


def _cli_helper(f, output_formats, compiled):
    for source_data in compiled.values():
        for fmt in output_formats:
            data = source_data[fmt]
            if isinstance(data, (list, dict)):
                print(json.dumps(data), file=f)
            else:
                print(data, file=f, end="" if data.endswith("\n") else "\n")


def _parse_args(argv):
    warnings.simplefilter("always")

    parser = argparse.ArgumentParser(
        description="Compile cbit source (python with labels and callback-driven loops) "
        "to plain python",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("input_files", help="cbit sourcecode to compile", nargs="+")
    parser.add_argument("--version", action="version", version=cbit.__version__)
    parser.add_argument("-f", help=format_options_help, default="source", dest="format")
    parser.add_argument(
        "--debug",
        help="Check the callback protocol of iterator functions at runtime",
        action="store_true",
    )
    parser.add_argument(
        "--traceback-limit",
        help="Set the traceback limit for error messages reported by the compiler",
        type=int,
    )
    parser.add_argument(
        "-W",
        help="Control warnings: `error` turns warnings into errors, `none` silences them",
        choices=["error", "none"],
        dest="warnings_control",
    )
    parser.add_argument("-o", help="Set the output path", dest="output_path")

    args = parser.parse_args(argv)

    if args.traceback_limit is not None:
        sys.tracebacklimit = args.traceback_limit
    elif CBIT_TRACEBACK_LIMIT is not None:
        sys.tracebacklimit = CBIT_TRACEBACK_LIMIT
    else:
        # Python usually defaults sys.tracebacklimit to 1000.  We use a default
        # setting of zero so error printouts only include information about where
        # an error occurred in a cbit source file.
        sys.tracebacklimit = 0

    output_formats = tuple(uniq(args.format.split(",")))
    for fmt in output_formats:
        if fmt not in CLI_FORMATS:
            raise ValueError(f"Unsupported format type {repr(fmt)}")

    settings = Settings()
    if args.debug:
        settings.debug = True

    with warnings_filter(args.warnings_control):
        compiled = compile_files(args.input_files, output_formats, settings)

    if args.output_path:
        with open(args.output_path, "w") as f:
            _cli_helper(f, output_formats, compiled)
    else:
        f = sys.stdout
        _cli_helper(f, output_formats, compiled)


def exc_handler(source_path: str, exception: Exception) -> None:
    print(f"Error compiling: {source_path}", file=sys.stderr)
    raise exception


def compile_files(input_files, output_formats, settings: Settings = None) -> dict:
    ret = {}
    for file_name in input_files:
        file_path = Path(file_name)
        source_code = file_path.read_text()

        ret[file_path] = cbit.compile_code(
            source_code,
            output_formats,
            settings=settings,
            path=str(file_path),
            exc_handler=exc_handler,
        )

    return ret


if __name__ == "__main__":
    _parse_args(sys.argv[1:])
