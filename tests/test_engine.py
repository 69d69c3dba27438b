"""
Tests for the lint engine and finding aggregation.
"""

import threading

import pytest

from idiolint.config import ConfigError, LintConfig
from idiolint.findings import Finding, Position, Severity, aggregate
from idiolint.lint import DEFAULT_REGISTRY, Linter, LintRule, evaluate, run_rules
from idiolint.parser import AnalysisCancelled, build_structure, tokenize_all


SAMPLE = """\
var total = 0;
function add(items) {
  var i;
  for (i = 0; i < items.length; i++) {
    if (items[i] == null) {
      continue;
    }
    total += items[i]; // accumulate
  }
  var done = 'yes';
  switch (done) {
    case 'yes':
      break;
  }
}
"""


class BrokenRule(LintRule):
    id = "always-broken"
    description = "Raises on every file"

    def check(self, tokens, structure, config):
        raise ValueError("boom")


def analyse(source):
    tokens = tokenize_all(source)
    return tokens, build_structure(tokens)


class TestEvaluate:
    """Test rule evaluation."""

    def test_deterministic(self):
        """Evaluating the same input twice gives identical findings."""
        tokens, structure = analyse(SAMPLE)
        ids = DEFAULT_REGISTRY.ids()
        assert evaluate(tokens, structure, ids) == evaluate(tokens, structure, ids)

    def test_sorted_by_position(self):
        """Findings come back ordered by line and column."""
        tokens, structure = analyse(SAMPLE)
        findings = evaluate(tokens, structure, DEFAULT_REGISTRY.ids())
        keys = [(f.start.line, f.start.column) for f in findings]
        assert keys == sorted(keys)

    def test_enabled_subset(self):
        """Only the enabled rules run."""
        tokens, structure = analyse(SAMPLE)
        findings = evaluate(tokens, structure, {"switch-avoidance"})
        assert {f.rule_id for f in findings} == {"switch-avoidance"}

    def test_rule_isolation(self):
        """A raising rule adds one internal-error finding and changes nothing else."""
        tokens, structure = analyse(SAMPLE)
        registry = DEFAULT_REGISTRY.extended(BrokenRule())
        config = LintConfig()

        before = run_rules(tokens, structure, config)
        after = run_rules(tokens, structure, config, registry, registry.ids())

        for rule_id, findings in before.items():
            assert after[rule_id] == findings
        broken = after["always-broken"]
        assert len(broken) == 1
        assert broken[0].rule_id == "rule-internal-error"
        assert "always-broken" in broken[0].message


class TestLinter:
    """Test the per-file pipeline."""

    def test_report_contents(self, linter):
        """The sample file trips the expected rules."""
        report = linter.lint_source(SAMPLE, "sample.js")
        rules = {f.rule_id for f in report.findings}
        assert {"strict-equality", "eol-comment-prohibited", "quote-style",
                "single-var-per-scope", "var-declarations-top", "switch-avoidance"} <= rules
        assert report.path == "sample.js"
        assert report.has_errors

    def test_clean_file(self, linter):
        """Idiomatic code produces no findings."""
        source = "var total = 0;\n\nfunction add(a, b) {\n  return a + b;\n}\n"
        assert linter.lint_source(source).findings == []

    def test_internal_error_in_report(self):
        """A broken rule shows up in the report without hiding other rules."""
        linter = Linter(registry=DEFAULT_REGISTRY.extended(BrokenRule()))
        report = linter.lint_source("if (a == b) {}\n")
        assert len(report.by_rule("rule-internal-error")) == 1
        assert len(report.by_rule("strict-equality")) == 1

    def test_unicode_digits_are_not_numbers(self, linter):
        """Superscript and circled digits are linted without errors."""
        report = linter.lint_source("var x = 1 + ²;\nvar y = ①;\n", "odd.js")
        assert report.by_rule("lex-error") == []
        assert report.by_rule("structure") == []
        assert report.by_rule("rule-internal-error") == []

    def test_lex_error(self, linter):
        """An unterminated string becomes a lex-error finding; earlier code is still checked."""
        report = linter.lint_source("if (a == b) {}\nvar s = \"open\nvar t = 1;\n")
        lex = report.by_rule("lex-error")
        assert len(lex) == 1
        assert lex[0].severity == Severity.ERROR
        assert (lex[0].start.line, lex[0].start.column) == (2, 9)
        assert lex[0].end.line == 4
        assert len(report.by_rule("strict-equality")) == 1
        assert report.by_rule("structure") == []

    def test_structure_error(self, linter):
        """A mismatched closer is one structure finding and the file still completes."""
        report = linter.lint_source("function f() { ) }")
        structure = report.by_rule("structure")
        assert len(structure) == 1
        assert structure[0].severity == Severity.ERROR

    def test_severity_override(self):
        """Configured severities replace rule defaults."""
        linter = Linter(LintConfig(severity_overrides={"switch-avoidance": "error"}))
        report = linter.lint_source("switch (x) { case 1: break; }")
        assert report.by_rule("switch-avoidance")[0].severity == Severity.ERROR

    def test_invalid_config_rejected(self):
        """Unknown rule ids fail when the linter is built."""
        with pytest.raises(ConfigError):
            Linter(LintConfig(disabled_rules=["no-such-rule"]))

    def test_cancelled(self, linter):
        """A set cancel event aborts the file."""
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(AnalysisCancelled):
            linter.lint_source("a();\nb();\n", cancel=cancel)

    def test_lint_file(self, linter, write_js):
        """Files are read as UTF-8 and reported under their path."""
        path = write_js("app.js", "var s = 'café';\n")
        report = linter.lint_file(path)
        assert report.path == str(path)
        assert len(report.by_rule("quote-style")) == 1


class TestAggregate:
    """Test merging and ordering of findings."""

    @staticmethod
    def finding(rule_id, line, column, offset, end_offset=None, severity=Severity.WARNING):
        end = end_offset if end_offset is not None else offset + 1
        return Finding(rule_id, severity, "msg", Position(line, column, offset),
                       Position(line, column + end - offset, end))

    def test_tie_broken_by_registration_order(self):
        """Findings at the same position follow rule registration order."""
        per_rule = {
            "switch-avoidance": [self.finding("switch-avoidance", 1, 1, 0)],
            "quote-style": [self.finding("quote-style", 1, 1, 0)],
        }
        report = aggregate(per_rule, "a.js", DEFAULT_REGISTRY.ids())
        assert [f.rule_id for f in report.findings] == ["quote-style", "switch-avoidance"]

    def test_duplicates_dropped_per_rule(self):
        """Overlapping findings of one rule collapse to the first."""
        per_rule = {"quote-style": [
            self.finding("quote-style", 1, 1, 0, 5),
            self.finding("quote-style", 1, 3, 2, 4),
            self.finding("quote-style", 1, 9, 8),
        ]}
        report = aggregate(per_rule, "a.js", DEFAULT_REGISTRY.ids())
        assert [f.start.offset for f in report.findings] == [0, 8]

    def test_severity_unchanged(self):
        """Aggregation never changes severities."""
        per_rule = {"quote-style": [self.finding("quote-style", 2, 1, 5, severity=Severity.INFO)]}
        report = aggregate(per_rule, "a.js")
        assert report.findings[0].severity == Severity.INFO
        assert report.count(Severity.INFO) == 1
        assert not report.has_errors
