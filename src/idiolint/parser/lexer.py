"""
JavaScript Lexer (Tokenizer)

Converts raw JavaScript source into a lazy stream of tokens.
Handles: identifiers, keywords, punctuators, strings, template literals,
numbers, regex literals, comments, indentation, whitespace and newlines.

Unlike a compiler lexer, nothing is skipped: every character of the input
belongs to exactly one token, so layout (indentation, trailing whitespace,
comment placement) can be checked from the token stream alone.
"""

import re
import threading
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Iterator, List, Optional, Union


class TokenType(Enum):
    """Types of tokens in JavaScript source."""
    IDENTIFIER = auto()      # foo, $el, _private, #field
    KEYWORD = auto()         # var, function, if, true, null
    PUNCTUATOR = auto()      # { ( === => ...
    STRING = auto()          # "double", 'single', `template`
    NUMBER = auto()          # 42, 0.5, 0xff, 1e3, 10n
    REGEX = auto()           # /ab+c/gi
    LINE_COMMENT = auto()    # // comment to end of line
    BLOCK_COMMENT = auto()   # /* comment */
    WHITESPACE = auto()      # spaces/tabs between tokens
    INDENT = auto()          # spaces/tabs at the start of a physical line
    NEWLINE = auto()         # \n, \r\n or \r
    EOF = auto()             # End of file


TRIVIA = frozenset({
    TokenType.WHITESPACE,
    TokenType.INDENT,
    TokenType.NEWLINE,
    TokenType.LINE_COMMENT,
    TokenType.BLOCK_COMMENT,
})

KEYWORDS = frozenset({
    "break", "case", "catch", "class", "const", "continue", "debugger",
    "default", "delete", "do", "else", "export", "extends", "finally",
    "for", "function", "if", "import", "in", "instanceof", "let", "new",
    "return", "super", "switch", "this", "throw", "try", "typeof", "var",
    "void", "while", "with", "yield", "true", "false", "null",
})

# A '/' after one of these keywords starts a regex, not a division
REGEX_AFTER_KEYWORDS = frozenset({
    "return", "typeof", "instanceof", "in", "new", "delete", "void",
    "throw", "case", "do", "else", "yield",
})

PUNCTUATORS = tuple(sorted((
    ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", ">>>", "&&=", "||=",
    "??=", "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "**", "<<", ">>",
    "{", "}", "(", ")", "[", "]", ";", ",", "<", ">", "+", "-", "*", "/",
    "%", "&", "|", "^", "!", "~", "?", ":", "=", ".", "@",
), key=len, reverse=True))

NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]+n?"
    r"|0[oO][0-7_]+n?"
    r"|0[bB][01_]+n?"
    r"|(?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)(?:[eE][+-]?\d[\d_]*)?n?",
    re.ASCII,
)

LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# str.isdigit() also accepts superscripts and circled digits
DIGITS = frozenset("0123456789")


class AnalysisCancelled(Exception):
    """Raised when a run-wide cancellation signal is observed mid-file."""


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: str
    start: int              # offset of first character
    end: int                # offset one past the last character
    line: int
    column: int
    quote: Optional[str] = None   # quote character used by STRING tokens
    trailing: bool = False        # whitespace run followed by a line break or EOF

    def __repr__(self):
        if self.type == TokenType.NEWLINE:
            return f"Token({self.type.name}, '\\n', L{self.line}:{self.column})"
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.column})"

    @property
    def is_trivia(self) -> bool:
        return self.type in TRIVIA

    @property
    def is_comment(self) -> bool:
        return self.type in (TokenType.LINE_COMMENT, TokenType.BLOCK_COMMENT)

    @property
    def is_significant(self) -> bool:
        """True for tokens that are code (not layout, comments or EOF)."""
        return self.type not in TRIVIA and self.type != TokenType.EOF

    def is_punct(self, *values: str) -> bool:
        return self.type == TokenType.PUNCTUATOR and self.value in values

    def is_keyword(self, *values: str) -> bool:
        return self.type == TokenType.KEYWORD and self.value in values

    @property
    def end_line(self) -> int:
        """Line on which the token's last character sits."""
        if self.type == TokenType.NEWLINE:
            return self.line
        return self.line + len(LINE_BREAK_RE.findall(self.value))

    @property
    def end_column(self) -> int:
        """Column just past the token's last character."""
        if self.type == TokenType.NEWLINE:
            return self.column + len(self.value)
        parts = LINE_BREAK_RE.split(self.value)
        if len(parts) == 1:
            return self.column + len(self.value)
        return len(parts[-1]) + 1


class LexError(Exception):
    """Unterminated literal; scanning of the file cannot continue."""
    def __init__(self, message: str, offset: int, line: int, column: int):
        self.message = message
        self.offset = offset
        self.line = line
        self.column = column
        super().__init__(f"Lex error at line {line}, column {column}: {message}")


class Lexer:
    """
    Tokenizer for JavaScript source.

    Usage:
        lexer = Lexer(source_text)
        tokens = list(lexer.tokenize())

    tokenize() always rescans from the beginning, so the same Lexer can be
    iterated repeatedly with identical results.
    """

    WHITESPACE_CHARS = frozenset(" \t\f\v\u00a0\ufeff")

    @staticmethod
    def _is_ident_start(ch: Optional[str]) -> bool:
        """Check if character can start an identifier."""
        return ch is not None and (ch in "_$" or ch.isalpha())

    @staticmethod
    def _is_ident_cont(ch: Optional[str]) -> bool:
        """Check if character can continue an identifier."""
        return ch is not None and (ch.isalnum() or ch in "_$\u200c\u200d")

    def __init__(self, source: str, filename: str = "<unknown>",
                 cancel: Optional[threading.Event] = None):
        self.source = source
        self.filename = filename
        self.cancel = cancel
        self.length = len(source)
        self._reset()

    def _reset(self) -> None:
        self.pos = 0
        self.line = 1
        self.column = 1
        self._at_line_start = True
        self._last_significant: Optional[Token] = None

    def _current(self) -> Optional[str]:
        """Get current character or None if at end."""
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead by offset characters."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def _advance(self) -> Optional[str]:
        """Advance one character and return it."""
        ch = self._current()
        if ch is not None:
            self.pos += 1
            # \r\n counts as one line break, taken at the \n
            if ch == '\n' or (ch == '\r' and self._current() != '\n'):
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ch

    def _make(self, token_type: TokenType, start: int, line: int, column: int,
              **meta) -> Token:
        return Token(token_type, self.source[start:self.pos], start, self.pos,
                     line, column, **meta)

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise AnalysisCancelled(self.filename)

    def _read_string(self, quote: str, start: int, line: int, column: int) -> Token:
        """Read a single or double quoted string, keeping the raw text."""
        self._advance()  # opening quote
        while True:
            ch = self._current()
            if ch is None or ch in ('\n', '\r'):
                raise LexError("Unterminated string literal", start, line, column)
            self._advance()
            if ch == '\\':
                esc = self._advance()
                if esc is None:
                    raise LexError("Unterminated string literal", start, line, column)
                # Line continuation with \r\n
                if esc == '\r' and self._current() == '\n':
                    self._advance()
            elif ch == quote:
                break
        return self._make(TokenType.STRING, start, line, column, quote=quote)

    def _scan_template(self, start: int, line: int, column: int) -> None:
        """Consume a template literal up to and including its closing backtick."""
        self._advance()  # opening backtick
        while True:
            ch = self._current()
            if ch is None:
                raise LexError("Unterminated template literal", start, line, column)
            if ch == '\\':
                self._advance()
                self._advance()
            elif ch == '`':
                self._advance()
                return
            elif ch == '$' and self._peek() == '{':
                self._advance()
                self._advance()
                self._scan_substitution(start, line, column)
            else:
                self._advance()

    def _scan_substitution(self, start: int, line: int, column: int) -> None:
        """Consume a ${...} substitution, including nested literals."""
        depth = 1
        while depth:
            ch = self._current()
            if ch is None:
                raise LexError("Unterminated template literal", start, line, column)
            if ch == '`':
                self._scan_template(self.pos, self.line, self.column)
                continue
            if ch in ('"', "'"):
                self._read_string(ch, self.pos, self.line, self.column)
                continue
            if ch == '{':
                depth += 1
            elif ch == '}':
                depth -= 1
            self._advance()

    def _read_template(self, start: int, line: int, column: int) -> Token:
        self._scan_template(start, line, column)
        return self._make(TokenType.STRING, start, line, column, quote='`')

    def _read_number(self, start: int, line: int, column: int) -> Token:
        match = NUMBER_RE.match(self.source, self.pos)
        for _ in range(match.end() - self.pos):
            self._advance()
        return self._make(TokenType.NUMBER, start, line, column)

    def _after_member_access(self) -> bool:
        """True when the previous token makes the next word a property name."""
        prev = self._last_significant
        return prev is not None and prev.is_punct('.', '?.')

    def _read_identifier(self, start: int, line: int, column: int) -> Token:
        """Read an identifier or keyword (including #private names)."""
        self._advance()
        while self._is_ident_cont(self._current()):
            self._advance()
        word = self.source[start:self.pos]
        if word in KEYWORDS and not self._after_member_access():
            return self._make(TokenType.KEYWORD, start, line, column)
        return self._make(TokenType.IDENTIFIER, start, line, column)

    def _read_line_comment(self, start: int, line: int, column: int) -> Token:
        """Read a comment from // to end of line."""
        while self._current() is not None and self._current() not in ('\n', '\r'):
            self._advance()
        return self._make(TokenType.LINE_COMMENT, start, line, column)

    def _read_block_comment(self, start: int, line: int, column: int) -> Token:
        """Read a /* ... */ comment, which may span lines."""
        self._advance()
        self._advance()
        while True:
            ch = self._current()
            if ch is None:
                raise LexError("Unterminated block comment", start, line, column)
            if ch == '*' and self._peek() == '/':
                self._advance()
                self._advance()
                break
            self._advance()
        return self._make(TokenType.BLOCK_COMMENT, start, line, column)

    def _regex_allowed(self) -> bool:
        """Decide whether '/' starts a regex literal or is the division operator."""
        prev = self._last_significant
        if prev is None:
            return True
        if prev.type in (TokenType.IDENTIFIER, TokenType.NUMBER, TokenType.STRING, TokenType.REGEX):
            return False
        if prev.type == TokenType.KEYWORD:
            return prev.value in REGEX_AFTER_KEYWORDS
        return prev.value not in (')', ']', '}', '++', '--')

    def _read_regex(self, start: int, line: int, column: int) -> Token:
        self._advance()  # opening slash
        in_class = False
        while True:
            ch = self._current()
            if ch is None or ch in ('\n', '\r'):
                raise LexError("Unterminated regular expression", start, line, column)
            self._advance()
            if ch == '\\':
                if self._current() is not None and self._current() not in ('\n', '\r'):
                    self._advance()
            elif ch == '[':
                in_class = True
            elif ch == ']':
                in_class = False
            elif ch == '/' and not in_class:
                break
        # Flags
        while self._is_ident_cont(self._current()):
            self._advance()
        return self._make(TokenType.REGEX, start, line, column)

    def _read_punctuator(self, start: int, line: int, column: int) -> Token:
        for punct in PUNCTUATORS:
            if self.source.startswith(punct, self.pos):
                # a?.5:1 is a conditional, not optional chaining
                if punct == '?.' and self._peek(2) in DIGITS:
                    continue
                for _ in punct:
                    self._advance()
                break
        else:
            # Unknown character: keep it as a one-character token
            self._advance()
        return self._make(TokenType.PUNCTUATOR, start, line, column)

    def _read_token(self, ch: str, start: int, line: int, column: int) -> Token:
        """Read one non-whitespace, non-newline token starting at ch."""
        if ch == '/':
            nxt = self._peek()
            if nxt == '/':
                return self._read_line_comment(start, line, column)
            if nxt == '*':
                return self._read_block_comment(start, line, column)
            if self._regex_allowed():
                return self._read_regex(start, line, column)
            return self._read_punctuator(start, line, column)

        if ch in ('"', "'"):
            return self._read_string(ch, start, line, column)

        if ch == '`':
            return self._read_template(start, line, column)

        if ch in DIGITS or (ch == '.' and self._peek() in DIGITS):
            return self._read_number(start, line, column)

        if self._is_ident_start(ch) or (ch == '#' and self._is_ident_start(self._peek())):
            return self._read_identifier(start, line, column)

        return self._read_punctuator(start, line, column)

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source.

        The final token is always EOF. Raises LexError on an unterminated
        string, template, regex or block comment; tokens yielded before the
        error remain valid. Raises AnalysisCancelled at the next line break
        once the cancel event is set.
        """
        self._reset()
        while True:
            ch = self._current()
            start, line, column = self.pos, self.line, self.column

            if ch is None:
                yield Token(TokenType.EOF, '', start, start, line, column)
                return

            # Newline
            if ch in ('\n', '\r'):
                self._advance()
                if ch == '\r' and self._current() == '\n':
                    self._advance()
                self._at_line_start = True
                yield self._make(TokenType.NEWLINE, start, line, column)
                self._check_cancelled()
                continue

            # Whitespace run (indentation when it opens the line)
            if ch in self.WHITESPACE_CHARS:
                while self._current() in self.WHITESPACE_CHARS:
                    self._advance()
                nxt = self._current()
                trailing = nxt is None or nxt in ('\n', '\r')
                token_type = TokenType.INDENT if self._at_line_start else TokenType.WHITESPACE
                self._at_line_start = False
                yield self._make(token_type, start, line, column, trailing=trailing)
                continue

            self._at_line_start = False
            token = self._read_token(ch, start, line, column)
            if token.is_significant:
                self._last_significant = token
            yield token

    def tokenize_all(self) -> List[Token]:
        """Convenience method to get all tokens as a list."""
        return list(self.tokenize())


def tokenize(source: str, filename: str = "<unknown>",
             cancel: Optional[threading.Event] = None) -> Iterator[Token]:
    """Lazily tokenize source text. Pure function of the input."""
    return Lexer(source, filename, cancel).tokenize()


def tokenize_all(source: str, filename: str = "<unknown>") -> List[Token]:
    return Lexer(source, filename).tokenize_all()


def read_source(filepath: Union[str, Path]) -> str:
    """Read a UTF-8 source file (a leading BOM is dropped)."""
    with open(filepath, 'r', encoding='utf-8-sig', newline='') as f:
        return f.read()
