"""
Style Rules

Each rule is an independent check over the token list and the structural
index of one file. Rules keep no state between files and never look at
each other's findings.

Rules register themselves on DEFAULT_REGISTRY; registration order is the
order in which they run and breaks ties between findings at the same
position.
"""

import re
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Tuple

from idiolint.config import LintConfig
from idiolint.findings import Finding, Position, Severity
from idiolint.parser.lexer import LINE_BREAK_RE, Token, TokenType
from idiolint.parser.structure import NodeKind, Structure, StructuralNode


DECLARATION_KEYWORDS = ("var", "let", "const")
EQUALITY_OPERATORS = ("==", "===", "!=", "!==")

CAMEL_CASE = re.compile(r"^[_$]*[a-z][A-Za-z0-9$]*$")
PASCAL_CASE = re.compile(r"^[_$]*[A-Z][A-Za-z0-9$]*$")
CONSTANT_CASE = re.compile(r"^[_$]*[A-Z][A-Z0-9_$]*$")

INLINE_WHITESPACE = " \t\f\v\u00a0\ufeff"
SEGMENT_RE = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+\Z")


# ============================================================================
# RULE BASE & REGISTRY
# ============================================================================

class LintRule:
    """Base class for lint rules."""

    id: str = "rule"
    description: str = ""
    severity: Severity = Severity.WARNING

    def check(self, tokens: List[Token], structure: Structure, config: LintConfig) -> List[Finding]:
        """Check one file and return any findings."""
        raise NotImplementedError

    def finding(self, config: LintConfig, message: str, start: Token,
                end: Optional[Token] = None) -> Finding:
        """Finding spanning start..end tokens at the configured severity."""
        return self.finding_at(config, message, Position.start_of(start), Position.end_of(end or start))

    def finding_at(self, config: LintConfig, message: str, start: Position, end: Position) -> Finding:
        return Finding(
            rule_id=self.id,
            severity=config.severity_for(self.id, self.severity),
            message=message,
            start=start,
            end=end,
        )

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"


class RuleRegistry:
    """
    Ordered collection of rule instances keyed by id.

    Built once at startup, then frozen and shared read-only.
    """

    def __init__(self, rules=()):
        self._rules: Dict[str, LintRule] = {}
        self._frozen = False
        for rule in rules:
            self.add(rule)

    def add(self, rule: LintRule) -> LintRule:
        if self._frozen:
            raise RuntimeError("Rule registry is frozen")
        if rule.id in self._rules:
            raise ValueError(f"Duplicate rule id '{rule.id}'")
        self._rules[rule.id] = rule
        return rule

    def register(self, rule_cls):
        """Class decorator: instantiate and add a rule."""
        self.add(rule_cls())
        return rule_cls

    def freeze(self) -> "RuleRegistry":
        self._frozen = True
        return self

    def extended(self, *rules: LintRule) -> "RuleRegistry":
        """A new registry with these rules appended after the existing ones."""
        return RuleRegistry(list(self._rules.values()) + list(rules))

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._rules)

    def get(self, rule_id: str) -> LintRule:
        return self._rules[rule_id]

    def __iter__(self) -> Iterator[LintRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules


DEFAULT_REGISTRY = RuleRegistry()


# ============================================================================
# SHARED HELPERS
# ============================================================================

def _first_token(structure: Structure, node: StructuralNode) -> Optional[Token]:
    index = structure.first_significant(node)
    return structure.tokens[index] if index is not None else None


def declaration_start(structure: Structure, statement: StructuralNode) -> Optional[int]:
    """
    Token index of the keyword that makes a statement a declaration.

    That is the leading var/let/const, or the var of a `for (var ...)` head.
    let and const in a loop head belong to the loop, not the enclosing scope.
    """
    tokens = structure.tokens
    first = structure.first_significant(statement)
    if first is None:
        return None
    if tokens[first].is_keyword(*DECLARATION_KEYWORDS):
        return first
    if not tokens[first].is_keyword('for'):
        return None
    paren = structure.next_significant(first)
    if paren is not None and tokens[paren].type == TokenType.IDENTIFIER and tokens[paren].value == 'await':
        paren = structure.next_significant(paren)
    if paren is None or not tokens[paren].is_punct('('):
        return None
    head = structure.next_significant(paren)
    if head is not None and tokens[head].is_keyword('var'):
        return head
    return None


def is_directive(structure: Structure, statement: StructuralNode) -> bool:
    """A directive prologue entry such as "use strict";"""
    code = [structure.tokens[i] for i in structure.significant_in(statement)]
    if code and code[-1].is_punct(';'):
        code = code[:-1]
    return len(code) == 1 and code[0].type == TokenType.STRING


def statements_by_scope(structure: Structure) -> Dict[int, List[StructuralNode]]:
    """Statements grouped by nearest enclosing function (or the file), in source order."""
    groups: Dict[int, List[StructuralNode]] = defaultdict(list)
    for statement in structure.statements():
        groups[structure.scope_of(statement).index].append(statement)
    return groups


def _describe_indent(char: str) -> str:
    return "tabs" if char == '\t' else "spaces"


# ============================================================================
# LAYOUT RULES
# ============================================================================

@DEFAULT_REGISTRY.register
class IndentationConsistencyRule(LintRule):
    """Mixed tabs/spaces, or indentation drifting from the file's baseline unit."""

    id = "indentation-consistency"
    description = ("Indentation must not mix tabs and spaces, and must follow the unit "
                   "set by the first indented line of the file.")
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        baseline: Optional[Tuple[str, int, int]] = None  # (char, width, line)
        expected = config.indent_unit.char

        for token in tokens:
            if token.type != TokenType.INDENT or token.trailing:
                continue
            has_tab = '\t' in token.value
            has_space = ' ' in token.value
            if has_tab and has_space:
                findings.append(self.finding(config, "Indentation mixes tabs and spaces", token))
                continue
            if not (has_tab or has_space):
                continue
            char = '\t' if has_tab else ' '
            width = len(token.value)

            if baseline is None:
                baseline = (char, width, token.line)
                if char != expected:
                    findings.append(self.finding(
                        config,
                        f"Indentation uses {_describe_indent(char)} but "
                        f"{_describe_indent(expected)} are configured",
                        token))
                continue

            base_char, base_width, base_line = baseline
            if char != base_char:
                findings.append(self.finding(
                    config,
                    f"Indentation uses {_describe_indent(char)} but the file is indented "
                    f"with {_describe_indent(base_char)} (line {base_line})",
                    token))
            elif char == ' ' and width % base_width:
                findings.append(self.finding(
                    config,
                    f"Indentation of {width} spaces is not a multiple of the file's "
                    f"{base_width}-space unit",
                    token))
        return findings


@DEFAULT_REGISTRY.register
class QuoteStyleRule(LintRule):
    """String literals must use the configured quote character."""

    id = "quote-style"
    description = "String literals use one quote style throughout (template literals are exempt)."
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        preferred = config.preferred_quote
        name = "double" if preferred == '"' else "single"
        return [
            self.finding(config, f"Use {name} quotes ({preferred}) for string literals", token)
            for token in tokens
            if token.type == TokenType.STRING and token.quote in ('"', "'") and token.quote != preferred
        ]


@DEFAULT_REGISTRY.register
class TrailingWhitespaceRule(LintRule):
    """Whitespace at the end of a line, in code or inside comments."""

    id = "trailing-whitespace"
    description = "Lines must not end with whitespace."
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        for token in tokens:
            if token.type in (TokenType.WHITESPACE, TokenType.INDENT) and token.trailing:
                findings.append(self.finding(config, "Trailing whitespace", token))
            elif token.is_comment:
                findings.extend(self._check_comment(token, config))
        return findings

    def _check_comment(self, token: Token, config: LintConfig) -> List[Finding]:
        findings = []
        offset, line, column = token.start, token.line, token.column
        for match in SEGMENT_RE.finditer(token.value):
            segment = match.group()
            body = LINE_BREAK_RE.sub('', segment)
            content = body.rstrip(INLINE_WHITESPACE)
            if len(content) < len(body):
                findings.append(self.finding_at(
                    config, "Trailing whitespace",
                    Position(line, column + len(content), offset + len(content)),
                    Position(line, column + len(body), offset + len(body))))
            offset += len(segment)
            line += 1
            column = 1
        return findings


@DEFAULT_REGISTRY.register
class EolCommentRule(LintRule):
    """Comments go on their own line, above the code they describe."""

    id = "eol-comment-prohibited"
    description = "Comments must not share a line with preceding code."
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        for i, token in enumerate(tokens):
            if not token.is_comment:
                continue
            j = i - 1
            while j >= 0:
                prev = tokens[j]
                if prev.type == TokenType.NEWLINE or prev.end_line != token.line:
                    break
                if prev.is_significant:
                    findings.append(self.finding(
                        config, "Comment follows code on the same line; put it on its own line",
                        token))
                    break
                j -= 1
        return findings


# ============================================================================
# DECLARATION RULES
# ============================================================================

@DEFAULT_REGISTRY.register
class SingleVarPerScopeRule(LintRule):
    """One declaration statement per function (or file) scope."""

    id = "single-var-per-scope"
    description = ("Use a single var statement per scope; comma-separated declarators "
                   "in one statement are fine.")
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        for statements in statements_by_scope(structure).values():
            starts = [declaration_start(structure, s) for s in statements]
            declarations = [tokens[i] for i in starts if i is not None]
            if len(declarations) < 2:
                continue
            first_line = declarations[0].line
            for first in declarations[1:]:
                findings.append(self.finding(
                    config,
                    f"Multiple declaration statements in one scope; merge into the "
                    f"'{first.value}' statement on line {first_line}",
                    first))
        return findings


@DEFAULT_REGISTRY.register
class VarDeclarationsTopRule(LintRule):
    """Declarations form one leading run of statements in their scope."""

    id = "var-declarations-top"
    description = "Declaration statements belong at the top of their function or file."
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        for statements in statements_by_scope(structure).values():
            leading = True
            for statement in statements:
                start = declaration_start(structure, statement)
                if start is not None and not leading:
                    findings.append(self.finding(
                        config,
                        f"'{tokens[start].value}' declaration after other statements; "
                        f"declare at the top of the scope",
                        tokens[start]))
                # A for loop ends the leading run even when its head declares
                if start != statement.start and not is_directive(structure, statement):
                    leading = False
        return findings


@DEFAULT_REGISTRY.register
class NamingConventionRule(LintRule):
    """camelCase for functions and variables, PascalCase for constructors."""

    id = "naming-convention"
    description = ("Names used with 'new' must be PascalCase; other declared names must be "
                   "camelCase (UPPER_CASE constants allowed).")
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        constructors: Dict[str, List[int]] = defaultdict(list)
        for i in structure.significant:
            if tokens[i].is_keyword('new'):
                target = self._new_target(structure, i)
                if target is not None:
                    constructors[tokens[target].value].append(target)

        for name, sites in constructors.items():
            if not PASCAL_CASE.match(name):
                for site in sites:
                    findings.append(self.finding(
                        config, f"Constructor '{name}' should be PascalCase", tokens[site]))

        for index, is_function in self._declared_names(structure):
            name = tokens[index].value
            if name.strip("_$") == "":
                continue
            if name in constructors:
                if not PASCAL_CASE.match(name):
                    findings.append(self.finding(
                        config, f"'{name}' is used as a constructor and should be PascalCase",
                        tokens[index]))
            elif CAMEL_CASE.match(name) or CONSTANT_CASE.match(name):
                continue
            elif is_function and PASCAL_CASE.match(name):
                # Constructor declared here, instantiated in another file
                continue
            else:
                findings.append(self.finding(config, f"'{name}' should be camelCase", tokens[index]))
        return findings

    @staticmethod
    def _new_target(structure: Structure, index: int) -> Optional[int]:
        """Last identifier of the (possibly dotted) name after `new`."""
        tokens = structure.tokens
        current = structure.next_significant(index)
        if current is None or tokens[current].type != TokenType.IDENTIFIER:
            return None
        while True:
            dot = structure.next_significant(current)
            if dot is None or not tokens[dot].is_punct('.'):
                return current
            member = structure.next_significant(dot)
            if member is None or tokens[member].type != TokenType.IDENTIFIER:
                return current
            current = member

    @staticmethod
    def _declared_names(structure: Structure) -> List[Tuple[int, bool]]:
        """(token index, is function name) for names introduced by declarations."""
        tokens = structure.tokens
        names = []
        for statement in structure.statements():
            start = declaration_start(structure, statement)
            if start is None:
                continue
            # Declarators sit directly in the statement, or in the for head
            region = structure.owner[start]
            expect_name = False
            for i in structure.significant_in(statement):
                if i < start or structure.owner[i] != region:
                    continue
                token = tokens[i]
                if token.is_punct(';'):
                    break
                if token.is_keyword(*DECLARATION_KEYWORDS) or token.is_punct(','):
                    expect_name = True
                    continue
                if expect_name and token.type == TokenType.IDENTIFIER:
                    names.append((i, False))
                expect_name = False

        for i in structure.significant:
            if tokens[i].is_keyword('function'):
                j = structure.next_significant(i)
                if j is not None and tokens[j].is_punct('*'):
                    j = structure.next_significant(j)
                if j is not None and tokens[j].type == TokenType.IDENTIFIER:
                    names.append((j, True))
        return sorted(names)


# ============================================================================
# CONTROL FLOW RULES
# ============================================================================

@DEFAULT_REGISTRY.register
class BraceStyleRule(LintRule):
    """Braced bodies for if/else/for/while/try, opening brace on the same line."""

    id = "brace-style"
    description = ("if/else/for/while/try bodies are always braced, with the opening brace "
                   "on the line that ends the condition or keyword.")
    severity = Severity.WARNING

    def check(self, tokens, structure, config):
        findings = []
        for i in structure.significant:
            token = tokens[i]
            if not token.is_keyword("if", "else", "for", "while", "try"):
                continue

            if token.value in ("if", "for", "while"):
                head = structure.next_significant(i)
                if head is None or not tokens[head].is_punct('('):
                    continue
                if token.value == "while" and self._ends_do_loop(structure, i):
                    continue
                paren = structure.node_at(head)
                if paren.kind != NodeKind.PAREN or not tokens[paren.end].is_punct(')'):
                    continue
                anchor = paren.end
            elif token.value == "else":
                prev = structure.prev_significant(i)
                if prev is not None and tokens[prev].is_punct('}') and tokens[prev].line != token.line:
                    findings.append(self.finding(
                        config, "'else' should be on the same line as the preceding '}'", token))
                    continue
                nxt = structure.next_significant(i)
                if nxt is not None and tokens[nxt].is_keyword("if"):
                    # The if is checked on its own
                    continue
                anchor = i
            else:
                anchor = i

            body = structure.next_significant(anchor)
            if body is None:
                continue
            if not tokens[body].is_punct('{'):
                findings.append(self.finding(
                    config, f"'{token.value}' body must be wrapped in braces", token))
            elif tokens[body].line != tokens[anchor].end_line:
                findings.append(self.finding(
                    config, f"Opening brace of '{token.value}' must be on the same line",
                    token, tokens[body]))
        return findings

    @staticmethod
    def _ends_do_loop(structure: Structure, index: int) -> bool:
        """`while` that closes a do { } while (...) loop."""
        prev = structure.prev_significant(index)
        if prev is None or not structure.tokens[prev].is_punct('}'):
            return False
        statement = structure.parent_of(structure.node_at(prev))
        if statement is None or statement.kind != NodeKind.STATEMENT:
            return False
        first = _first_token(structure, statement)
        return first is not None and first.is_keyword("do")


@DEFAULT_REGISTRY.register
class StrictEqualityRule(LintRule):
    """Flags every == and !=."""

    id = "strict-equality"
    description = ("Use === and !== instead of == and !=. Heuristic: every loose comparison "
                   "is reported, including ones that rely on coercion on purpose.")
    severity = Severity.ERROR

    def check(self, tokens, structure, config):
        return [
            self.finding(config, f"Use '{token.value}=' instead of '{token.value}'", token)
            for token in tokens
            if token.is_punct('==', '!=')
        ]


@DEFAULT_REGISTRY.register
class TruthinessPreferredRule(LintRule):
    """Comparisons against true/false/0/"" or length === 0."""

    id = "truthiness-preferred"
    description = ("Prefer truthiness checks over comparing with true, false, 0, an empty "
                   "string, or comparing .length with 0.")
    severity = Severity.INFO

    def check(self, tokens, structure, config):
        findings = []
        for i in structure.significant:
            operator = tokens[i]
            if not operator.is_punct(*EQUALITY_OPERATORS):
                continue
            left = structure.prev_significant(i)
            right = structure.next_significant(i)
            if left is None or right is None:
                continue

            if self._is_length(structure, left) and self._literal(tokens[right]) == "0":
                findings.append(self.finding(
                    config, "Check '.length' for truthiness instead of comparing it with 0",
                    operator, tokens[right]))
                continue

            literal = self._literal(tokens[right]) or self._literal(tokens[left])
            if literal is not None:
                findings.append(self.finding(
                    config, f"Use a truthiness check instead of comparing with {literal}",
                    operator, tokens[right]))
        return findings

    @staticmethod
    def _literal(token: Token) -> Optional[str]:
        if token.is_keyword("true", "false"):
            return token.value
        if token.type == TokenType.NUMBER and token.value == "0":
            return "0"
        if token.type == TokenType.STRING and len(token.value) == 2:
            return "an empty string"
        return None

    @staticmethod
    def _is_length(structure: Structure, index: int) -> bool:
        token = structure.tokens[index]
        if token.type != TokenType.IDENTIFIER or token.value != "length":
            return False
        prev = structure.prev_significant(index)
        return prev is not None and structure.tokens[prev].is_punct('.', '?.')


@DEFAULT_REGISTRY.register
class SwitchAvoidanceRule(LintRule):
    """Advisory: object lookups usually read better than switch."""

    id = "switch-avoidance"
    description = "Consider an object lookup instead of a switch statement (advisory)."
    severity = Severity.INFO

    def check(self, tokens, structure, config):
        return [
            self.finding(config, "Consider an object lookup instead of 'switch'", token)
            for token in tokens
            if token.is_keyword("switch")
        ]


DEFAULT_REGISTRY.freeze()
