import ast as python_ast

from cbit.compiler.phases import CompilerData


def build_source_output(compiler_data: CompilerData) -> str:
    return compiler_data.python_source


def build_loops_output(compiler_data: CompilerData) -> list:
    return compiler_data.loops


def build_ast_output(compiler_data: CompilerData) -> python_ast.Module:
    return compiler_data.python_module


def build_ast_dump_output(compiler_data: CompilerData) -> str:
    return python_ast.dump(compiler_data.python_module, indent=2)


def build_code_output(compiler_data: CompilerData):
    return compiler_data.bytecode
