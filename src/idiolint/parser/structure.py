"""
Structural Indexer

Builds a lightweight nesting model from the token stream: brace, paren and
bracket regions, statements, and function boundaries. This is not a parser;
it knows just enough about JavaScript to tell which statements belong to
which function and where each statement starts and ends.

Nodes live in a flat arena (Structure.nodes) and refer to each other by
index, so a Structure can be dropped as soon as a file has been checked.
"""

import bisect
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from idiolint.parser.lexer import AnalysisCancelled, Token, TokenType


class NodeKind(Enum):
    """Kinds of structural nodes."""
    FILE = "file"            # Root, one per file
    BLOCK = "block"          # { ... }
    PAREN = "paren"          # ( ... )
    BRACKET = "bracket"      # [ ... ]
    STATEMENT = "statement"  # one statement inside a file or statement block
    FUNCTION = "function"    # function keyword through closing brace of the body


OPENERS = {'{': NodeKind.BLOCK, '(': NodeKind.PAREN, '[': NodeKind.BRACKET}
CLOSERS = {'}': NodeKind.BLOCK, ')': NodeKind.PAREN, ']': NodeKind.BRACKET}
OPENER_TEXT = {kind: text for text, kind in OPENERS.items()}
BRACKET_KINDS = frozenset(OPENERS.values())

# Tokens after a closed brace block that keep the statement going
CONTINUATION_KEYWORDS = frozenset({"else", "catch", "finally", "in", "instanceof"})

# Keywords that can be the last token of a statement (for ASI at line breaks)
ENDING_KEYWORDS = frozenset({
    "return", "break", "continue", "this", "super", "true", "false", "null", "debugger",
})

# `)` closing the head of these constructs is never the end of a statement
CONTROL_HEADS = frozenset({"if", "for", "while", "with", "switch", "catch"})


@dataclass
class StructuralNode:
    """A nested region of the token stream. start/end are inclusive token indices."""
    index: int
    kind: NodeKind
    start: int
    end: int = -1
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    statement_context: bool = False   # contents are statements, not object members
    body: Optional[int] = None        # FUNCTION only: index of the body block

    def contains(self, token_index: int) -> bool:
        return self.start <= token_index <= self.end

    def __repr__(self):
        return f"Node({self.kind.value}#{self.index}, {self.start}..{self.end})"


@dataclass
class StructureDiagnostic:
    """A bracket problem found while indexing. Never fatal."""
    message: str
    token: Token


@dataclass
class Structure:
    """Result of structural indexing for one file."""
    tokens: List[Token]
    nodes: List[StructuralNode]
    owner: List[int]                 # token index -> innermost node index
    diagnostics: List[StructureDiagnostic]
    significant: List[int]           # indices of code tokens, ascending

    @property
    def root(self) -> StructuralNode:
        return self.nodes[0]

    def node(self, index: int) -> StructuralNode:
        return self.nodes[index]

    def node_at(self, token_index: int) -> StructuralNode:
        """Innermost node owning a token."""
        return self.nodes[self.owner[token_index]]

    def parent_of(self, node: StructuralNode) -> Optional[StructuralNode]:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def walk(self, node: Optional[StructuralNode] = None) -> Iterator[StructuralNode]:
        """Pre-order traversal; yields nodes in source order."""
        stack = [node or self.root]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(self.nodes[c] for c in reversed(current.children))

    def statements(self) -> List[StructuralNode]:
        return [n for n in self.walk() if n.kind == NodeKind.STATEMENT]

    def scope_of(self, node: StructuralNode) -> StructuralNode:
        """Nearest enclosing FUNCTION node, or the FILE root."""
        current = self.parent_of(node)
        while current is not None and current.kind not in (NodeKind.FUNCTION, NodeKind.FILE):
            current = self.parent_of(current)
        return current or self.root

    def first_significant(self, node: StructuralNode) -> Optional[int]:
        pos = bisect.bisect_left(self.significant, node.start)
        if pos < len(self.significant) and self.significant[pos] <= node.end:
            return self.significant[pos]
        return None

    def significant_in(self, node: StructuralNode) -> List[int]:
        lo = bisect.bisect_left(self.significant, node.start)
        hi = bisect.bisect_right(self.significant, node.end)
        return self.significant[lo:hi]

    def prev_significant(self, token_index: int) -> Optional[int]:
        pos = bisect.bisect_left(self.significant, token_index)
        return self.significant[pos - 1] if pos > 0 else None

    def next_significant(self, token_index: int) -> Optional[int]:
        pos = bisect.bisect_right(self.significant, token_index)
        return self.significant[pos] if pos < len(self.significant) else None


class StructureBuilder:
    """
    Single forward pass over the tokens, keeping a stack of open nodes.

    Usage:
        structure = StructureBuilder(tokens).build()
    """

    def __init__(self, tokens: List[Token], cancel: Optional[threading.Event] = None,
                 truncated: bool = False):
        self.tokens = tokens
        self.cancel = cancel
        self.truncated = truncated
        self.nodes: List[StructuralNode] = []
        self.stack: List[int] = []
        self.owner: List[int] = [0] * len(tokens)
        self.diagnostics: List[StructureDiagnostic] = []
        self.significant = [i for i, t in enumerate(tokens) if t.is_significant]

    # -- helpers ----------------------------------------------------------

    def _prev_sig(self, index: int) -> Optional[int]:
        pos = bisect.bisect_left(self.significant, index)
        return self.significant[pos - 1] if pos > 0 else None

    def _next_sig(self, index: int) -> Optional[int]:
        pos = bisect.bisect_right(self.significant, index)
        return self.significant[pos] if pos < len(self.significant) else None

    @property
    def _top(self) -> StructuralNode:
        return self.nodes[self.stack[-1]]

    def _open(self, kind: NodeKind, start: int, statement_context: bool = False) -> int:
        parent = self.stack[-1] if self.stack else None
        node = StructuralNode(index=len(self.nodes), kind=kind, start=start,
                              parent=parent, statement_context=statement_context)
        self.nodes.append(node)
        if parent is not None:
            self.nodes[parent].children.append(node.index)
        self.stack.append(node.index)
        return node.index

    def _close_top(self, end: int) -> StructuralNode:
        node = self.nodes[self.stack.pop()]
        node.end = end
        if node.kind == NodeKind.STATEMENT and node.parent == 0:
            self._check_cancelled()
        return node

    def _assign(self, index: int) -> None:
        self.owner[index] = self.stack[-1]

    def _diagnose(self, message: str, token: Token) -> None:
        self.diagnostics.append(StructureDiagnostic(message, token))

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise AnalysisCancelled("structure indexing cancelled")

    def _in_statement_context(self) -> bool:
        top = self._top
        return top.kind in (NodeKind.FILE, NodeKind.BLOCK) and top.statement_context

    # -- statements -------------------------------------------------------

    def _can_end_statement(self, index: int) -> bool:
        token = self.tokens[index]
        if token.type in (TokenType.IDENTIFIER, TokenType.NUMBER, TokenType.STRING, TokenType.REGEX):
            return True
        if token.type == TokenType.KEYWORD:
            return token.value in ENDING_KEYWORDS
        if token.is_punct(')'):
            paren = self.nodes[self.owner[index]]
            head = self._prev_sig(paren.start)
            return not (head is not None and self.tokens[head].is_keyword(*CONTROL_HEADS))
        return token.is_punct(']', '}', '++', '--')

    def _ends_at_newline(self, index: int) -> bool:
        """Automatic semicolon insertion at a line break, approximated."""
        prev = self._prev_sig(index)
        nxt = self._next_sig(index)
        if prev is None or nxt is None or prev < self._top.start:
            return False
        if not self._can_end_statement(prev):
            return False
        following = self.tokens[nxt]
        if following.type in (TokenType.IDENTIFIER, TokenType.NUMBER):
            return True
        if following.type == TokenType.STRING:
            # `tag\n`...`` is a tagged template, not a new statement
            return following.quote != '`'
        if following.type == TokenType.KEYWORD:
            return following.value not in CONTINUATION_KEYWORDS
        return following.is_punct('++', '--')

    def _ends_clause_head(self, index: int) -> bool:
        """`:` ending a `case x:` or `default:` clause head, or a `label:`."""
        statement = self._top
        head = self.tokens[statement.start]
        if head.is_keyword('case', 'default'):
            # case a ? b : c: -- only the colon after the last ternary counts
            owned = [self.tokens[i] for i in range(statement.start, index)
                     if self.owner[i] == statement.index]
            questions = sum(1 for t in owned if t.is_punct('?'))
            colons = sum(1 for t in owned if t.is_punct(':'))
            return questions == colons
        return head.type == TokenType.IDENTIFIER and self._prev_sig(index) == statement.start

    def _continues_after_block(self, statement: StructuralNode, index: int) -> bool:
        """Whether the token at index continues a statement after a closed brace block."""
        token = self.tokens[index]
        if token.type == TokenType.PUNCTUATOR:
            return token.value not in ('{', '}')
        if token.type == TokenType.KEYWORD:
            if token.value in CONTINUATION_KEYWORDS:
                return True
            if token.value == 'while':
                first = self._next_sig(statement.start - 1)
                return first is not None and self.tokens[first].is_keyword('do')
        return False

    def _after_block_closed(self, index: int, closed: StructuralNode) -> None:
        if not self.stack:
            return
        top = self._top
        if top.kind != NodeKind.STATEMENT or closed.parent != top.index:
            return
        nxt = self._next_sig(index)
        if nxt is None or not self._continues_after_block(top, nxt):
            self._close_top(index)

    # -- functions --------------------------------------------------------

    def _function_keyword_before(self, brace: int) -> Optional[int]:
        """Index of `function` when brace opens `function [*] [name] (params) {`."""
        prev = self._prev_sig(brace)
        if prev is None or not self.tokens[prev].is_punct(')'):
            return None
        params = self.nodes[self.owner[prev]]
        if params.kind != NodeKind.PAREN or params.end != prev or params.parent != self.stack[-1]:
            return None
        j = self._prev_sig(params.start)
        if j is not None and self.tokens[j].type == TokenType.IDENTIFIER:
            j = self._prev_sig(j)
        if j is not None and self.tokens[j].is_punct('*'):
            j = self._prev_sig(j)
        if j is not None and self.tokens[j].is_keyword('function') and self.owner[j] == self.stack[-1]:
            return j
        return None

    def _open_function(self, keyword: int, brace: int) -> int:
        """Insert a FUNCTION node around tokens already assigned to the current node."""
        current = self.stack[-1]
        parent = self.nodes[current]
        fn = StructuralNode(index=len(self.nodes), kind=NodeKind.FUNCTION,
                            start=keyword, parent=current)
        self.nodes.append(fn)
        fn.children = [c for c in parent.children if self.nodes[c].start >= keyword]
        parent.children = [c for c in parent.children if self.nodes[c].start < keyword]
        parent.children.append(fn.index)
        for child in fn.children:
            self.nodes[child].parent = fn.index
        for i in range(keyword, brace):
            if self.owner[i] == current:
                self.owner[i] = fn.index
        self.stack.append(fn.index)
        return fn.index

    def _starts_statement_block(self, brace: int) -> bool:
        """A brace block holds statements unless it looks like an object literal."""
        top = self._top
        if top.kind == NodeKind.STATEMENT and top.start == brace:
            return True
        prev = self._prev_sig(brace)
        if prev is None:
            return True
        token = self.tokens[prev]
        if token.type == TokenType.PUNCTUATOR:
            return token.value in (')', ';', '{', '}', '=>')
        if token.type == TokenType.KEYWORD:
            return token.value in ('else', 'do', 'try', 'finally')
        return False

    def _open_brace(self, index: int) -> None:
        keyword = self._function_keyword_before(index)
        fn = self._open_function(keyword, index) if keyword is not None else None
        block = self._open(NodeKind.BLOCK, index,
                           statement_context=fn is not None or self._starts_statement_block(index))
        if fn is not None:
            self.nodes[fn].body = block

    # -- closers ----------------------------------------------------------

    def _close_through(self, target: int, index: int) -> StructuralNode:
        """Close every node above target, then target itself, at the closer token."""
        while self.stack[-1] != target:
            # Unclosed inner nodes (statements, or brackets in a mismatch) end before the closer
            self._close_top(index - 1)
        self.owner[index] = target
        closed = self._close_top(index)
        if self.stack and self._top.kind == NodeKind.FUNCTION and self._top.body == target:
            closed = self._close_top(index)
        return closed

    def _close_bracket(self, index: int) -> None:
        token = self.tokens[index]
        kind = CLOSERS[token.value]
        open_brackets = [i for i in self.stack if self.nodes[i].kind in BRACKET_KINDS]
        if not open_brackets:
            self._diagnose(f"Unmatched '{token.value}' with no open bracket", token)
            self._assign(index)
            return

        innermost = self.nodes[open_brackets[-1]]
        if innermost.kind == kind:
            target = innermost.index
        else:
            matching = [i for i in open_brackets if self.nodes[i].kind == kind]
            opener = self.tokens[innermost.start]
            if not matching:
                self._diagnose(
                    f"Unexpected '{token.value}' inside '{opener.value}' opened at line {opener.line}",
                    token)
                self._assign(index)
                return
            self._diagnose(
                f"'{token.value}' closes '{OPENER_TEXT[kind]}' while '{opener.value}' "
                f"opened at line {opener.line} is still open",
                token)
            target = matching[-1]

        closed = self._close_through(target, index)
        if kind == NodeKind.BLOCK:
            self._after_block_closed(index, closed)

    def _finish(self, eof: Optional[int]) -> None:
        last = eof if eof is not None else len(self.tokens)
        while len(self.stack) > 1:
            node = self._close_top(max(last - 1, self._top.start))
            if node.kind in BRACKET_KINDS and not self.truncated:
                opener = self.tokens[node.start]
                self._diagnose(f"Unclosed '{opener.value}' opened at line {opener.line}", opener)
        if eof is not None:
            self.owner[eof] = 0
        self.nodes[0].end = len(self.tokens) - 1

    # -- main loop --------------------------------------------------------

    def build(self) -> Structure:
        self._open(NodeKind.FILE, 0, statement_context=True)
        eof = None

        for i, token in enumerate(self.tokens):
            if token.type == TokenType.EOF:
                eof = i
                break

            if token.is_trivia:
                if (token.type == TokenType.NEWLINE and self._top.kind == NodeKind.STATEMENT
                        and self._ends_at_newline(i)):
                    self._close_top(i - 1)
                self._assign(i)
                continue

            if token.type == TokenType.PUNCTUATOR and token.value in CLOSERS:
                self._close_bracket(i)
                continue

            if self._in_statement_context():
                self._open(NodeKind.STATEMENT, i)

            if token.type == TokenType.PUNCTUATOR and token.value in OPENERS:
                if token.value == '{':
                    self._open_brace(i)
                else:
                    self._open(OPENERS[token.value], i)
                self._assign(i)
                continue

            self._assign(i)
            if self._top.kind == NodeKind.STATEMENT and (
                    token.is_punct(';') or (token.is_punct(':') and self._ends_clause_head(i))):
                self._close_top(i)

        self._finish(eof)
        return Structure(
            tokens=self.tokens,
            nodes=self.nodes,
            owner=self.owner,
            diagnostics=self.diagnostics,
            significant=self.significant,
        )


def build_structure(tokens: List[Token], cancel: Optional[threading.Event] = None,
                    truncated: bool = False) -> Structure:
    """
    Index the nesting structure of a token list.

    Args:
        tokens: Full token list (normally ending with EOF)
        cancel: Checked after every top-level statement
        truncated: Input was cut short by a LexError; brackets still open at
            the end are not reported as unclosed

    Returns:
        Structure; bracket problems are in .diagnostics, never raised
    """
    return StructureBuilder(tokens, cancel, truncated).build()
