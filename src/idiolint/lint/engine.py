"""
Lint Engine

Runs the per-file pipeline: tokenize, index structure, run the enabled
rules, aggregate their findings into a FileReport.

Usage:
    from idiolint.lint import Linter

    linter = Linter(load_config())
    report = linter.lint_file("app.js")
    for finding in report.findings:
        print(finding)

A file never aborts the run: lexer errors, bracket problems and rule
crashes all end up as findings in that file's report.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from idiolint.config import LintConfig
from idiolint.findings import (
    LEX_ERROR,
    RULE_INTERNAL_ERROR,
    STRUCTURE,
    FileReport,
    Finding,
    Position,
    Severity,
    aggregate,
)
from idiolint.lint.rules import DEFAULT_REGISTRY, RuleRegistry
from idiolint.parser.lexer import LINE_BREAK_RE, AnalysisCancelled, LexError, Token, TokenType, read_source, tokenize
from idiolint.parser.structure import Structure, build_structure

logger = logging.getLogger(__name__)


def _internal_error(rule_id: str, error: Exception) -> Finding:
    origin = Position(1, 1, 0)
    return Finding(
        rule_id=RULE_INTERNAL_ERROR,
        severity=Severity.ERROR,
        message=f"Rule '{rule_id}' failed: {type(error).__name__}: {error}",
        start=origin,
        end=origin,
    )


def run_rules(tokens: List[Token], structure: Structure, config: LintConfig,
              registry: Optional[RuleRegistry] = None,
              enabled_rule_ids: Optional[Iterable[str]] = None) -> Dict[str, List[Finding]]:
    """
    Run rules in registration order.

    Returns:
        rule id -> findings of that rule. A rule that raises contributes a
        single rule-internal-error finding instead.
    """
    registry = registry or DEFAULT_REGISTRY
    enabled = config.enabled_ids(registry.ids()) if enabled_rule_ids is None else set(enabled_rule_ids)
    results: Dict[str, List[Finding]] = {}

    for rule in registry:
        if rule.id not in enabled:
            continue
        try:
            results[rule.id] = list(rule.check(tokens, structure, config))
        except AnalysisCancelled:
            raise
        except Exception as e:
            logger.exception("Rule %s failed", rule.id)
            results[rule.id] = [_internal_error(rule.id, e)]
    return results


def evaluate(tokens: List[Token], structure: Structure, enabled_rule_ids: Iterable[str],
             config: Optional[LintConfig] = None,
             registry: Optional[RuleRegistry] = None) -> List[Finding]:
    """Findings of the enabled rules, stably sorted by (line, column)."""
    per_rule = run_rules(tokens, structure, config or LintConfig(), registry, enabled_rule_ids)
    findings = [f for bucket in per_rule.values() for f in bucket]
    findings.sort(key=lambda f: (f.start.line, f.start.column))
    return findings


def _end_of_input(source: str) -> Position:
    breaks = list(LINE_BREAK_RE.finditer(source))
    if not breaks:
        return Position(1, len(source) + 1, len(source))
    return Position(len(breaks) + 1, len(source) - breaks[-1].end() + 1, len(source))


class Linter:
    """
    Lints JavaScript files with a fixed configuration and rule registry.

    A Linter holds no per-file state and can be shared between threads.
    """

    def __init__(self, config: Optional[LintConfig] = None,
                 registry: Optional[RuleRegistry] = None):
        self.config = config or LintConfig()
        self.registry = registry or DEFAULT_REGISTRY
        self.config.validate(self.registry.ids())
        self.enabled_rule_ids = self.config.enabled_ids(self.registry.ids())

    def lint_source(self, source: str, path: str = "<unknown>",
                    cancel: Optional[threading.Event] = None) -> FileReport:
        """
        Lint source text.

        Raises:
            AnalysisCancelled: cancel was set while tokenizing or indexing
        """
        tokens: List[Token] = []
        lex_findings: List[Finding] = []
        try:
            for token in tokenize(source, path, cancel):
                tokens.append(token)
        except LexError as e:
            logger.debug("%s: %s", path, e)
            start = Position(e.line, e.column, e.offset)
            lex_findings.append(Finding(LEX_ERROR, Severity.ERROR, e.message, start, _end_of_input(source)))
            tokens.append(Token(TokenType.EOF, '', e.offset, e.offset, e.line, e.column))

        structure = build_structure(tokens, cancel, truncated=bool(lex_findings))
        if cancel is not None and cancel.is_set():
            raise AnalysisCancelled(f"{path}: cancelled before rules ran")

        per_rule: Dict[str, List[Finding]] = {LEX_ERROR: lex_findings}
        per_rule[STRUCTURE] = [
            Finding(STRUCTURE, Severity.ERROR, d.message, Position.start_of(d.token), Position.end_of(d.token))
            for d in structure.diagnostics
        ]
        per_rule.update(run_rules(tokens, structure, self.config, self.registry, self.enabled_rule_ids))
        return aggregate(per_rule, path, self.registry.ids())

    def lint_file(self, path: Union[str, Path],
                  cancel: Optional[threading.Event] = None) -> FileReport:
        """
        Lint one file.

        Raises:
            OSError, UnicodeDecodeError: the file cannot be read as UTF-8
            AnalysisCancelled: see lint_source
        """
        source = read_source(path)
        return self.lint_source(source, str(path), cancel)
