"""
Tests for the JavaScript lexer.
"""

import threading

import pytest

from idiolint.parser import AnalysisCancelled, Lexer, LexError, TokenType, tokenize, tokenize_all


def kinds(source):
    return [(t.type, t.value) for t in tokenize_all(source) if t.type != TokenType.EOF]


def significant(source):
    return [t for t in tokenize_all(source) if t.is_significant]


class TestBasicTokens:
    """Test token classification."""

    def test_empty_source(self):
        """Empty input produces a single EOF token."""
        tokens = tokenize_all("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_declaration(self):
        """Keywords, identifiers, punctuators and numbers."""
        assert kinds("var x = 42;") == [
            (TokenType.KEYWORD, "var"),
            (TokenType.WHITESPACE, " "),
            (TokenType.IDENTIFIER, "x"),
            (TokenType.WHITESPACE, " "),
            (TokenType.PUNCTUATOR, "="),
            (TokenType.WHITESPACE, " "),
            (TokenType.NUMBER, "42"),
            (TokenType.PUNCTUATOR, ";"),
        ]

    def test_positions(self):
        """Offsets are 0-based, lines and columns 1-based."""
        tokens = tokenize_all("a\n  bb")
        bb = [t for t in tokens if t.value == "bb"][0]
        assert (bb.start, bb.end, bb.line, bb.column) == (4, 6, 2, 3)

    def test_longest_punctuator(self):
        """=== and !== are single tokens."""
        values = [t.value for t in significant("a === b !== c")]
        assert values == ["a", "===", "b", "!==", "c"]

    def test_numbers(self):
        """Hex, exponent, BigInt and leading-dot numbers."""
        values = [t.value for t in significant("0x1F 1e3 10n .5") if t.type == TokenType.NUMBER]
        assert values == ["0x1F", "1e3", "10n", ".5"]

    def test_keyword_after_dot_is_identifier(self):
        """Property names spelled like keywords are identifiers."""
        tokens = significant("obj.default")
        assert tokens[2].type == TokenType.IDENTIFIER

    def test_unknown_character(self):
        """Odd characters do not abort tokenizing."""
        tokens = significant("a \\ b")
        assert tokens[1].type == TokenType.PUNCTUATOR
        assert tokens[1].value == "\\"

    @pytest.mark.parametrize("odd", ["²", "①", "٣"])
    def test_non_ascii_digit_is_punctuator(self, odd):
        """Unicode digits outside 0-9 are single-character punctuators."""
        tokens = significant(f"var x = 1 + {odd};")
        assert [t.value for t in tokens] == ["var", "x", "=", "1", "+", odd, ";"]
        assert tokens[5].type == TokenType.PUNCTUATOR


class TestStrings:
    """Test string literals."""

    def test_quote_metadata(self):
        """STRING tokens record the quote character used."""
        tokens = significant("'a' \"b\" `c`")
        assert [t.quote for t in tokens] == ["'", '"', "`"]
        assert all(t.type == TokenType.STRING for t in tokens)

    def test_escaped_quote(self):
        """An escaped quote does not end the string."""
        tokens = significant(r"'it\'s'")
        assert len(tokens) == 1
        assert tokens[0].value == r"'it\'s'"

    def test_template_spans_lines(self):
        """Template literals may contain newlines and substitutions."""
        tokens = significant("`a\n${b + `c`}\nd`;")
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].end_line == 3
        assert tokens[1].value == ";"

    def test_unterminated_string(self):
        """Unterminated string raises LexError at its start."""
        with pytest.raises(LexError) as exc:
            tokenize_all('var s = "abc\n')
        assert exc.value.offset == 8
        assert (exc.value.line, exc.value.column) == (1, 9)

    def test_unterminated_block_comment(self):
        """Unterminated block comment raises LexError."""
        with pytest.raises(LexError):
            tokenize_all("a; /* never closed")


class TestRegex:
    """Test regex versus division."""

    def test_division(self):
        """Slash after an identifier is division."""
        tokens = significant("a / b")
        assert tokens[1].type == TokenType.PUNCTUATOR

    def test_regex_after_operator(self):
        """Slash after = starts a regex."""
        tokens = significant("x = /ab+c/gi;")
        assert tokens[2].type == TokenType.REGEX
        assert tokens[2].value == "/ab+c/gi"

    def test_regex_with_slash_in_class(self):
        """A slash inside a character class does not end the regex."""
        tokens = significant("return /[/]x/;")
        assert tokens[1].value == "/[/]x/"


class TestLayout:
    """Test whitespace, indentation and comments."""

    def test_indent_versus_whitespace(self):
        """Leading whitespace is INDENT; inner whitespace is WHITESPACE."""
        types = [t.type for t in tokenize_all("\tfoo bar")]
        assert types[0] == TokenType.INDENT
        assert types[2] == TokenType.WHITESPACE

    def test_trailing_flag(self):
        """A whitespace run before a newline is marked trailing."""
        tokens = tokenize_all("a;  \nb; ")
        runs = [t for t in tokens if t.type == TokenType.WHITESPACE]
        assert [(r.value, r.trailing) for r in runs] == [("  ", True), (" ", True)]

    def test_crlf_is_one_newline(self):
        """\\r\\n is a single NEWLINE token."""
        tokens = tokenize_all("a\r\nb")
        newlines = [t for t in tokens if t.type == TokenType.NEWLINE]
        assert len(newlines) == 1
        assert newlines[0].value == "\r\n"
        assert tokens[-2].line == 2

    def test_comments_preserved(self):
        """Comments keep their full text."""
        tokens = tokenize_all("// hi\n/* a\n b */")
        comments = [t for t in tokens if t.is_comment]
        assert [t.type for t in comments] == [TokenType.LINE_COMMENT, TokenType.BLOCK_COMMENT]
        assert comments[1].value == "/* a\n b */"
        assert (comments[1].end_line, comments[1].end_column) == (3, 6)

    def test_full_coverage(self):
        """Every character belongs to exactly one token."""
        source = "function f(a) {\n\treturn a === 'x'; // c\n}\n"
        tokens = tokenize_all(source)
        assert "".join(t.value for t in tokens) == source
        for prev, cur in zip(tokens, tokens[1:]):
            assert prev.end == cur.start


class TestLexerContract:
    """Test laziness, restartability and cancellation."""

    def test_idempotent(self):
        """Tokenizing the same text twice gives equal tokens."""
        source = "var a = 1;\nif (a == '1') { b(); }\n"
        assert list(tokenize(source)) == list(tokenize(source))

    def test_restartable(self):
        """The same Lexer can be iterated more than once."""
        lexer = Lexer("a + b\n")
        assert list(lexer.tokenize()) == list(lexer.tokenize())

    def test_lazy(self):
        """Tokens are produced on demand."""
        stream = tokenize("a b c")
        assert next(stream).value == "a"

    def test_cancellation(self):
        """A set cancel event stops tokenizing at the next line break."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(AnalysisCancelled):
            list(tokenize("a;\nb;\n", cancel=cancel))
