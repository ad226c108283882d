import contextlib
import copy
import textwrap
import types

from cbit.compiler.settings import CBIT_ERROR_CONTEXT_LINES, CBIT_ERROR_LINE_NUMBERS


def source_location(source_code, lineno, col_offset):
    """
    A stand-in for an ast node, for errors which point into source code that
    has no node (yet).
    """
    return types.SimpleNamespace(
        lineno=lineno, col_offset=col_offset, full_source_code=source_code
    )


class ExceptionList(list):
    """
    List subclass for storing exceptions.
    To deliver multiple compilation errors to the user at once, append each
    raised Exception to this list and call raise_if_not_empty once the task
    is completed.
    """

    def raise_if_not_empty(self):
        if len(self) == 1:
            raise self[0]
        elif len(self) > 1:
            err_msg = ["Compilation failed with the following errors:"]
            err_msg += [f"{type(i).__name__}: {i}" for i in self]
            raise CbitException("\n\n".join(err_msg))


class _BaseCbitException(Exception):
    """
    Base cbit exception class.

    This exception is not raised directly. Other exceptions inherit it in
    order to display source annotations in the error string.
    """

    def __init__(self, message="Error Message not found.", *items, hint=None, prev_decl=None):
        """
        Exception initializer.

        Arguments
        ---------
        message : str
            Error message to display with the exception.
        *items : ast.AST | Tuple[str, ast.AST], optional
            Annotated ast node(s), or tuple of (description, node) indicating
            where the exception occurred. Source annotations are generated in
            the order the nodes are given.
        """
        self._message = message
        self._hint = hint
        self.prev_decl = prev_decl
        self.path = None

        self.lineno = None
        self.col_offset = None
        self.annotations = [k for k in items if k is not None]

        if self.annotations:
            node = self.annotations[0]
            node = node[1] if isinstance(node, tuple) else node
            self.lineno = getattr(node, "lineno", None)
            self.col_offset = getattr(node, "col_offset", None)

    def with_annotation(self, *annotations):
        """
        Creates a copy of this exception with a modified source annotation.

        Arguments
        ---------
        *annotations : ast.AST | Tuple[str, ast.AST]
            AST node(s), or tuple of (description, node) to use in the annotation.

        Returns
        -------
        A copy of the exception with the new node offset(s) applied.
        """
        exc = copy.copy(self)
        exc.annotations = list(annotations)
        return exc

    @property
    def hint(self):
        if callable(self._hint):
            return self._hint()
        return self._hint

    @property
    def message(self):
        msg = self._message
        if self.hint:
            msg += f"\n\n  (hint: {self.hint})"
        return msg

    def format_annotation(self, value):
        from cbit.utils import annotate_source_code

        node = value[1] if isinstance(value, tuple) else value
        node_msg = ""

        source_code = getattr(node, "full_source_code", None)
        if source_code is None:
            return None

        try:
            source_annotation = annotate_source_code(
                # add trailing space because EOF exceptions point one char beyond the length
                f"{source_code} ",
                node.lineno,
                node.col_offset,
                context_lines=CBIT_ERROR_CONTEXT_LINES,
                line_numbers=CBIT_ERROR_LINE_NUMBERS,
            )
        except ValueError:
            # line information outside of the source, e.g. for EOF errors
            return None

        path = getattr(node, "source_path", None) or self.path
        if path not in (None, "<unknown>"):
            node_msg = f'{node_msg}file "{path}:{node.lineno}", '

        fn_name = getattr(node, "fn_name", None)
        if fn_name:
            node_msg = f'{node_msg}function "{fn_name}", '

        col_offset_str = "" if node.col_offset is None else str(node.col_offset)
        node_msg = f"{node_msg}line {node.lineno}:{col_offset_str} \n{source_annotation}\n"

        if isinstance(value, tuple):
            # if annotation includes a message, apply it at the start and further indent
            node_msg = textwrap.indent(node_msg, "  ")
            node_msg = f"{value[0]}\n{node_msg}"

        node_msg = textwrap.indent(node_msg, "  ")
        return node_msg

    def __str__(self):
        if not self.annotations:
            if self.lineno is not None and self.col_offset is not None:
                return f"line {self.lineno}:{self.col_offset} {self.message}"
            else:
                return self.message

        annotation_list = []

        if self.prev_decl is not None:
            formatted_decl = self.format_annotation(self.prev_decl)
            if formatted_decl is not None:
                annotation_list.append(f" (previously declared at):\n{formatted_decl}")

        for value in self.annotations:
            annotation_list.append(self.format_annotation(value))

        annotation_list = [s for s in annotation_list if s is not None]
        if not annotation_list:
            return f"line {self.lineno}:{self.col_offset} {self.message}"

        annotation_msg = "\n".join(annotation_list)
        return f"{self.message}\n\n{annotation_msg}"


class CbitException(_BaseCbitException):
    pass


class SyntaxException(CbitException):

    """Invalid syntax."""

    def __init__(self, message, source_code, lineno, col_offset, hint=None):
        super().__init__(message, source_location(source_code, lineno, col_offset), hint=hint)


class StructureException(CbitException):
    """Invalid structure for parsable syntax."""


class LabelResolutionException(CbitException):
    """A labeled jump or label declaration that cannot be resolved."""


class VersionException(CbitException):
    """Version string is malformed or incompatible with this compiler version."""


class PragmaException(CbitException):
    """Invalid pragma directive."""


class CbitInternalException(_BaseCbitException):
    """
    Base cbit internal exception class.

    This exception is not raised directly, it is subclassed by other internal
    exceptions.

    Internal exceptions are raised as a means of telling the user that the
    compiler has panicked, and that filing a bug report would be appropriate.
    """

    def __str__(self):
        return f"{super().__str__()}\n\nThis is an unhandled internal compiler error."


class CompilerPanic(CbitInternalException):
    """General unexpected error during compilation."""


@contextlib.contextmanager
def tag_exceptions(node, fallback_exception_type=CompilerPanic, note=None):
    try:
        yield
    except _BaseCbitException as e:
        if not e.annotations and not e.lineno:
            tb = e.__traceback__
            raise e.with_annotation(node).with_traceback(tb) from None
        raise e from None
    except Exception as e:
        tb = e.__traceback__
        fallback_message = f"unhandled exception {e}"
        if note:
            fallback_message += f", {note}"
        raise fallback_exception_type(fallback_message, node).with_traceback(tb)
