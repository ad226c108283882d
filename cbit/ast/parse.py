import ast as python_ast
import tokenize
from typing import Optional

from cbit.ast import nodes as cb_ast
from cbit.ast.pre_parser import PreParser
from cbit.exceptions import StructureException, SyntaxException

# prefix used to turn the tokens of a `with <value>` tail into a statement
# python can parse
_VALUE_PREFIX = "_ ="


def parse_to_ast(source_code: str, source_path: Optional[str] = None) -> python_ast.Module:
    try:
        return _parse_to_ast(source_code, source_path)
    except SyntaxException as e:
        e.path = source_path
        raise e


def _parse_to_ast(source_code: str, source_path: Optional[str] = None) -> python_ast.Module:
    """
    Parses a cbit source string into an annotated python AST.

    Parameters
    ----------
    source_code : str
        The cbit source code to parse.
    source_path : str, optional
        The path of the source code, used in error messages.

    Returns
    -------
    ast.Module
        Python AST in which `cbit for` statements are `CbitFor` nodes and
        labeled blocks are `Block` nodes. Labels and jump values are attached
        to the stock loop and jump nodes (see `cbit.ast.nodes`). Line and
        column information refers to the original source.
    """
    if "\x00" in source_code:
        raise SyntaxException(
            "No null bytes (\\x00) allowed in the source code.", source_code, 1, 0
        )
    pre_parser = PreParser()
    pre_parser.parse(source_code)

    try:
        py_ast = python_ast.parse(pre_parser.reformatted_code)
    except SyntaxError as e:
        offset = e.offset
        if offset is not None:
            # SyntaxError offset is 1-based, not 0-based
            offset -= 1

            # adjust the column of the error if it was modified by the pre-parser
            if e.lineno is not None:
                offset += pre_parser.adjustments.get(e.lineno, 0)

        raise SyntaxException(e.msg, source_code, e.lineno, offset) from None

    annotate_python_ast(py_ast, source_code, pre_parser, source_path=source_path)

    # postcondition: consumed everything the pre-parser stripped
    assert len(pre_parser.loop_labels) == 0, pre_parser.loop_labels
    assert len(pre_parser.cbit_loops) == 0, pre_parser.cbit_loops
    assert len(pre_parser.blocks) == 0, pre_parser.blocks
    assert len(pre_parser.jumps) == 0, pre_parser.jumps

    py_ast.settings = pre_parser.settings
    py_ast.source_path = source_path

    return py_ast


def annotate_python_ast(
    parsed_ast: python_ast.Module,
    source_code: str,
    pre_parser: PreParser,
    source_path: Optional[str] = None,
) -> python_ast.AST:
    """
    Annotate a python AST parsed from pre-parser output with the dialect
    information the pre-parser stripped.

    Parameters
    ----------
    parsed_ast : AST
        The AST to be annotated.
    source_code : str
        The original cbit source code
    pre_parser : PreParser
        PreParser object.

    Returns
    -------
        The annotated AST.
    """
    visitor = AnnotatingVisitor(source_code, pre_parser, source_path=source_path)
    visitor.visit(parsed_ast)

    return parsed_ast


class AnnotatingVisitor(python_ast.NodeTransformer):
    _source_code: str
    _pre_parser: PreParser
    _parents: list[python_ast.AST]

    def __init__(self, source_code: str, pre_parser: PreParser, source_path: Optional[str] = None):
        self._source_code = source_code
        self._pre_parser = pre_parser
        self._source_path = source_path
        self._parents = []
        self._fn_names: list[str] = []

    def generic_visit(self, node):
        """
        Move the location info of every node back to the original source and
        decorate nodes with what error messages need to point into it.
        """
        if "lineno" in node._attributes:
            for field in cb_ast.LINE_INFO_FIELDS:
                if getattr(node, field, None) is None and len(self._parents) > 0:
                    setattr(node, field, getattr(self._parents[-1], field, None))

            adjustments = self._pre_parser.adjustments
            if node.lineno is not None:
                node.col_offset += adjustments.get(node.lineno, 0)
            if node.end_lineno is not None and node.end_col_offset is not None:
                node.end_col_offset += adjustments.get(node.end_lineno, 0)

            # decorate every node with the original source code to allow
            # pretty-printing errors
            node.full_source_code = self._source_code
            node.source_path = self._source_path
            if self._fn_names:
                node.fn_name = self._fn_names[-1]

        # keep track of the current path thru the AST
        self._parents.append(node)
        try:
            node = super().generic_visit(node)
        finally:
            self._parents.pop()

        return node

    def visit_Module(self, node):
        return self.generic_visit(node)

    def _visit_function(self, node):
        self._fn_names.append(node.name)
        try:
            return self.generic_visit(node)
        finally:
            self._fn_names.pop()

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def _syntax_error(self, msg, node, hint=None):
        return SyntaxException(msg, self._source_code, node.lineno, node.col_offset, hint=hint)

    def visit_For(self, node):
        """
        Visit a For node. Plain loops get their label (if any); loops the
        pre-parser stripped a `cbit` header from become `CbitFor` nodes.
        """
        key = (node.lineno, node.col_offset)
        header = self._pre_parser.cbit_loops.pop(key, None)
        label = self._pre_parser.loop_labels.pop(key, None)

        node = self.generic_visit(node)

        if header is None:
            if label is not None:
                node.label = label[0]
            return node

        if node.orelse:
            raise self._syntax_error("a cbit loop cannot have an `else` clause", node.orelse[0])

        source_call = cb_ast.call_from_ast(node.iter)
        if source_call is None:
            raise StructureException("expected a function or method call", node.iter)

        spec = cb_ast.LoopSpec(
            loop_label=header.loop_label,
            binding=node.target,
            source_call=source_call,
            escape_labels=header.escape_labels,
            result=header.result,
            body=node.body,
        )
        return cb_ast.make_cbit_for(spec, node)

    def visit_While(self, node):
        key = (node.lineno, node.col_offset)
        label = self._pre_parser.loop_labels.pop(key, None)

        node = self.generic_visit(node)
        if label is not None:
            node.label = label[0]
        return node

    def visit_If(self, node):
        """
        Visit an If node, turning the `if 1:` the pre-parser wrote for a
        labeled block back into a `Block`.
        """
        key = (node.lineno, node.col_offset)
        header = self._pre_parser.blocks.pop(key, None)

        node = self.generic_visit(node)
        if header is None:
            return node

        if node.orelse:
            raise self._syntax_error("a labeled block cannot have an `else` clause", node.orelse[0])

        return cb_ast.make_block(header.label, header.target, node.body, node)

    def visit_Break(self, node):
        return self._visit_jump(node)

    def visit_Continue(self, node):
        return self._visit_jump(node)

    def _visit_jump(self, node):
        key = (node.lineno, node.col_offset)
        tail = self._pre_parser.jumps.pop(key, None)

        node = self.generic_visit(node)
        node.label = None
        if tail is None:
            return node

        node.label = tail.label
        if tail.has_value:
            value = self._parse_value(tail.value_tokens)
            self._parents.append(node)
            try:
                node.value = self.visit(value)
            finally:
                self._parents.pop()
        return node

    def _parse_value(self, value_tokens):
        # untokenize preserves the line and column offsets of the tokens,
        # giving something like `\
        # \
        #            x + 1`
        # which is not valid python by itself. prefixed with an assignment
        # target it is, and the value keeps the position it had in the
        # reformatted source. only tokens on the first line are pushed right
        # by the prefix.
        value_str = _VALUE_PREFIX + tokenize.untokenize(value_tokens)
        first = value_tokens[0]

        try:
            fake_node = python_ast.parse(value_str).body[0]
        except SyntaxError as e:
            raise SyntaxException(
                "invalid value for `break ... with`",
                self._source_code,
                first.start[0],
                first.start[1] + self._pre_parser.adjustments.get(first.start[0], 0),
            ) from e

        if not isinstance(fake_node, python_ast.Assign) or len(fake_node.targets) != 1:
            raise SyntaxException(
                "invalid value for `break ... with`",
                self._source_code,
                first.start[0],
                first.start[1] + self._pre_parser.adjustments.get(first.start[0], 0),
            )

        value = fake_node.value
        if first.start[0] == 1:
            for n in python_ast.walk(value):
                if getattr(n, "lineno", None) == 1:
                    n.col_offset -= len(_VALUE_PREFIX)
                if getattr(n, "end_lineno", None) == 1:
                    n.end_col_offset -= len(_VALUE_PREFIX)
        return value
