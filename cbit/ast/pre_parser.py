import io
import keyword
import re
from collections import defaultdict
from dataclasses import dataclass, field
from tokenize import (
    COMMENT,
    DEDENT,
    ENCODING,
    ENDMARKER,
    INDENT,
    NAME,
    NEWLINE,
    NL,
    NUMBER,
    OP,
    TokenError,
    TokenInfo,
    tokenize,
    untokenize,
)
from typing import Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet

from cbit.ast.nodes import ExternalLabel
from cbit.compiler.settings import Settings
from cbit.exceptions import PragmaException, SyntaxException, VersionException, source_location

RESERVED_PREFIX = "_cbit_"


def validate_version_pragma(version_str: str, location=None) -> None:
    """
    Validates a version pragma directive against the current compiler version.
    """
    from cbit import __version__

    if len(version_str) == 0:
        raise VersionException("Version specification cannot be empty", location)

    # X.Y.Z or vX.Y.Z => ==X.Y.Z, ==vX.Y.Z
    if re.match("[v0-9]", version_str):
        version_str = "==" + version_str
    # convert npm to pep440
    version_str = re.sub("^\\^", "~=", version_str)

    try:
        spec = SpecifierSet(version_str)
    except InvalidSpecifier:
        raise VersionException(
            f'Version specification "{version_str}" is not a valid PEP440 specifier', location
        )

    if not spec.contains(__version__, prereleases=True):
        raise VersionException(
            f'Version specification "{version_str}" is not compatible '
            f'with compiler version "{__version__}"',
            location,
        )


def _parse_pragma(comment_contents, settings, code, start):
    pragma = comment_contents.removeprefix("pragma ").strip()

    # location for error messages
    location = code, *start

    if pragma.startswith("version "):
        if settings.compiler_version is not None:
            raise _pragma_exception("pragma version specified twice!", location)
        compiler_version = pragma.removeprefix("version ").strip()
        validate_version_pragma(compiler_version, source_location(*location))
        settings.compiler_version = compiler_version
        return

    if pragma == "debug":
        if settings.debug is not None:
            raise _pragma_exception("pragma debug specified twice!", location)
        settings.debug = True
        return

    raise _pragma_exception(f"Unknown pragma `{pragma.split()[0]}`", location)


def _pragma_exception(msg, location):
    return PragmaException(msg, source_location(*location))


@dataclass
class CbitHeader:
    """
    Everything the pre-parser strips from a `cbit for` header.
    """

    loop_label: Optional[str]
    escape_labels: tuple
    result: Optional[str]


@dataclass
class BlockHeader:
    label: str
    target: Optional[str]


@dataclass
class JumpTail:
    """
    The part of a `break`/`continue` statement python does not understand:
    the target label and the tokens of the `with <value>` expression.
    """

    label: Optional[str]
    value_tokens: list = field(default_factory=list)

    @property
    def has_value(self):
        return len(self.value_tokens) > 0


_OPEN_BRACKETS = ("(", "[", "{")
_CLOSE_BRACKETS = (")", "]", "}")

# tokens after which a new statement (and so a label) may start
_STATEMENT_BOUNDARIES = (ENCODING, NEWLINE, NL, INDENT, DEDENT)


def _is_name(token, string=None):
    return token.type == NAME and (string is None or token.string == string)


def _is_op(token, string):
    return token.type == OP and token.string == string


def _is_label_name(token):
    return token.type == NAME and not keyword.iskeyword(token.string)


class PreParser:
    # Compilation settings based on the directives in the source code
    settings: Settings

    # Map from line numbers in the reformatted code to the number of columns
    # removed from the start of that line
    adjustments: dict[int, int]

    # labels of native `for`/`while` loops, keyed by the (reformatted)
    # position of the loop keyword
    loop_labels: dict[tuple[int, int], tuple[str, object]]
    # stripped `cbit for` headers, keyed by the position of `for`
    cbit_loops: dict[tuple[int, int], CbitHeader]
    # labeled blocks, keyed by the position of the `if` they are rewritten to
    blocks: dict[tuple[int, int], BlockHeader]
    # labels and values of `break`/`continue` statements
    jumps: dict[tuple[int, int], JumpTail]
    # Reformatted python source string.
    reformatted_code: str

    def parse(self, code: str):
        """
        Re-formats a cbit source string into a python source string and
        performs some validation. More specifically,

        * Strips loop labels (`label: for ...`) into `loop_labels`
        * Strips the `cbit` keyword and the `break`/`as` clauses of cbit loop
          headers into `cbit_loops`
        * Rewrites `label: block [as name]:` into `if 1:` and records it in
          `blocks`
        * Strips labels and `with <value>` tails of `break`/`continue` into
          `jumps`
        * Parses `# pragma` directives into `settings`
        * Prevents use of the reserved `_cbit_` name prefix

        Parameters
        ----------
        code : str
            The cbit source code to be re-formatted.
        """
        try:
            self._parse(code)
        except TokenError as e:
            raise SyntaxException(e.args[0], code, e.args[1][0], e.args[1][1]) from e
        except SyntaxError as e:
            # IndentationError, or an error of the C tokenizer
            col = (e.offset or 1) - 1
            raise SyntaxException(e.msg, code, e.lineno, col) from e

    def _parse(self, code: str):
        self._code = code
        self._tokens = list(tokenize(io.BytesIO(code.encode("utf-8")).readline))
        self._result: list[TokenInfo] = []
        self._shifts: dict[int, int] = defaultdict(lambda: 0)
        self._depth = 0

        self.settings = Settings()
        self.loop_labels = {}
        self.cbit_loops = {}
        self.blocks = {}
        self.jumps = {}

        i = 0
        while i < len(self._tokens):
            i = self._consume(i)

        self.adjustments = {k: v for k, v in self._shifts.items() if v}
        self.reformatted_code = untokenize(self._result).decode("utf-8")

    # helpers

    def _error(self, msg, token, hint=None):
        return SyntaxException(msg, self._code, token.start[0], token.start[1], hint=hint)

    def _peek(self, i, offset=0):
        j = i + offset
        if j < len(self._tokens):
            return self._tokens[j]
        return self._tokens[-1]  # ENDMARKER

    def _at_statement_start(self, i):
        if self._depth > 0:
            return False
        return i == 0 or self._tokens[i - 1].type in _STATEMENT_BOUNDARIES

    def _shift(self, token):
        # move a token left by however many columns have been removed from
        # the start of its line
        (srow, scol), (erow, ecol) = token.start, token.end
        start = srow, scol - self._shifts[srow]
        end = erow, ecol - (self._shifts[erow] if erow == srow else 0)
        return token._replace(start=start, end=end)

    def _emit(self, token):
        if token.type == OP and token.string in _OPEN_BRACKETS:
            self._depth += 1
        elif token.type == OP and token.string in _CLOSE_BRACKETS:
            self._depth -= 1

        token = self._shift(token)
        self._result.append(token)
        return token

    def _drop_leading(self, first, keep):
        # drop tokens from the start of a line, up to (not including) `keep`
        row = first.start[0]
        if keep.start[0] != row:
            raise self._error("a label must be on the same line as the statement it labels", first)
        self._shifts[row] += keep.start[1] - first.start[1]

    def _check_name(self, token):
        if token.type == NAME and token.string.startswith(RESERVED_PREFIX):
            raise self._error(f"Names starting with `{RESERVED_PREFIX}` are reserved", token)

    # state machine

    def _consume(self, i):
        token = self._tokens[i]

        if token.type == COMMENT:
            contents = token.string[1:].strip()
            if contents.startswith("pragma "):
                _parse_pragma(contents, self.settings, self._code, token.start)

        self._check_name(token)

        if token.type == NAME and self._at_statement_start(i):
            nxt = self._peek(i, 1)

            if _is_label_name(token) and _is_op(nxt, ":"):
                after = self._peek(i, 2)
                if _is_name(after, "for") or _is_name(after, "while"):
                    return self._consume_labeled_loop(i)
                if _is_name(after, "cbit") and _is_name(self._peek(i, 3), "for"):
                    return self._consume_cbit_for(i, label_token=token)
                if _is_name(after, "block") and self._is_block_header(i + 3):
                    return self._consume_block(i)

            if _is_name(token, "cbit") and _is_name(nxt, "for"):
                return self._consume_cbit_for(i, label_token=None)

        if _is_name(token, "break") or _is_name(token, "continue"):
            return self._consume_jump(i)

        self._emit(token)
        return i + 1

    def _is_block_header(self, i):
        nxt = self._peek(i)
        if _is_op(nxt, ":"):
            return True
        return _is_name(nxt, "as") and _is_op(self._peek(i, 2), ":")

    def _consume_labeled_loop(self, i):
        label, _colon, loop_kw = self._tokens[i : i + 3]
        self._drop_leading(label, loop_kw)
        new_kw = self._emit(loop_kw)

        self.loop_labels[new_kw.start] = (label.string, self._location(label))
        return i + 3

    def _consume_block(self, i):
        label, _colon, block_kw = self._tokens[i : i + 3]
        self._drop_leading(label, block_kw)

        # `block` -> `if 1`. both fit in the five columns of `block`, so the
        # rest of the line does not move.
        row, col = block_kw.start
        if_tok = self._emit(TokenInfo(NAME, "if", (row, col), (row, col + 2), block_kw.line))
        self._emit(TokenInfo(NUMBER, "1", (row, col + 3), (row, col + 4), block_kw.line))

        i += 3
        target = None
        if _is_name(self._tokens[i], "as"):
            target_tok = self._tokens[i + 1]
            if not _is_label_name(target_tok):
                raise self._error("expected a name after `as`", target_tok)
            self._check_name(target_tok)
            target = target_tok.string
            i += 2

        self.blocks[if_tok.start] = BlockHeader(label.string, target)
        return i

    def _consume_cbit_for(self, i, label_token):
        if label_token is not None:
            i += 2  # label and colon
        cbit_kw = self._tokens[i]
        for_kw = self._tokens[i + 1]
        self._drop_leading(label_token or cbit_kw, for_kw)
        new_for = self._emit(for_kw)
        i += 2

        # target and iterator are left to the python parser. scan up to the
        # first top-level `break`, `as` or `:`.
        depth = 0
        while True:
            token = self._tokens[i]
            if token.type in (NEWLINE, ENDMARKER):
                raise self._error("expected `:` at the end of the cbit loop header", token)
            if token.type == OP and token.string in _OPEN_BRACKETS:
                depth += 1
            elif token.type == OP and token.string in _CLOSE_BRACKETS:
                depth -= 1
            elif depth == 0 and (
                _is_name(token, "break") or _is_name(token, "as") or _is_op(token, ":")
            ):
                break
            self._check_name(token)
            self._emit(token)
            i += 1

        escape_labels: tuple = ()
        if _is_name(self._tokens[i], "break"):
            i, escape_labels = self._consume_break_clause(i)

        result = None
        if _is_name(self._tokens[i], "as"):
            target_tok = self._tokens[i + 1]
            if not _is_label_name(target_tok):
                raise self._error("expected a name after `as`", target_tok)
            self._check_name(target_tok)
            result = target_tok.string
            i += 2

        if not _is_op(self._tokens[i], ":"):
            raise self._error("expected `:` at the end of the cbit loop header", self._tokens[i])

        loop_label = label_token.string if label_token is not None else None
        self.cbit_loops[new_for.start] = CbitHeader(loop_label, escape_labels, result)
        return i

    def _consume_break_clause(self, i):
        break_kw = self._tokens[i]
        i += 1

        entries: list[ExternalLabel] = []
        seen: dict[str, TokenInfo] = {}
        while True:
            token = self._tokens[i]
            accepts_continue = False
            if _is_name(token, "loop"):
                accepts_continue = True
                i += 1
                token = self._tokens[i]

            if not _is_label_name(token) or token.string in ("as", "loop"):
                if not entries and not accepts_continue:
                    raise self._error("expected at least one label after `break`", break_kw)
                raise self._error("expected a label", token)

            self._check_name(token)
            if token.string in seen:
                raise self._error(f"label `{token.string}` declared twice", token)
            seen[token.string] = token
            entries.append(ExternalLabel(token.string, accepts_continue, self._location(token)))
            i += 1

            if not _is_op(self._tokens[i], ","):
                break
            i += 1

        return i, tuple(entries)

    def _consume_jump(self, i):
        jump_kw = self._tokens[i]
        new_kw = self._emit(jump_kw)
        i += 1

        tail = JumpTail(label=None)
        token = self._tokens[i]
        if _is_label_name(token):
            self._check_name(token)
            tail.label = token.string
            i += 1
            token = self._tokens[i]

        if _is_name(token, "with"):
            if jump_kw.string == "continue":
                raise self._error("`continue` cannot carry a value", token)
            i, tail.value_tokens = self._consume_value(i + 1, token)
            token = self._tokens[i]

        if not self._at_simple_statement_end(token):
            raise self._error(
                f"expected a label or `with <value>` after `{jump_kw.string}`",
                token,
                hint=f"`{jump_kw.string} <label>`, `break [<label>] with <value>`",
            )

        if tail.label is not None or tail.has_value:
            self.jumps[new_kw.start] = tail
        return i

    def _consume_value(self, i, with_kw):
        depth = 0
        value_tokens = []
        while True:
            token = self._tokens[i]
            if token.type == OP and token.string in _OPEN_BRACKETS:
                depth += 1
            elif token.type == OP and token.string in _CLOSE_BRACKETS:
                depth -= 1
            elif depth == 0 and self._at_simple_statement_end(token):
                break
            if token.type == ENDMARKER:
                break
            self._check_name(token)
            if token.type != COMMENT:
                value_tokens.append(self._shift(token))
            i += 1

        if not value_tokens:
            raise self._error("expected a value after `with`", with_kw)
        return i, value_tokens

    @staticmethod
    def _at_simple_statement_end(token):
        return token.type in (NEWLINE, COMMENT, ENDMARKER) or _is_op(token, ";")

    def _location(self, token):
        return source_location(self._code, *token.start)
