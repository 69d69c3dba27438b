"""
Findings and per-file reports.

A Finding is one rule violation with a position range and a severity.
aggregate() merges the findings of every rule for one file into a
FileReport, dropping same-rule duplicates and ordering by position.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from idiolint.parser.lexer import Token


class Severity(Enum):
    """Finding severity levels."""
    ERROR = "error"         # Fails the run (exit code 1)
    WARNING = "warning"     # Style violation
    INFO = "info"           # Advisory

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown severity {value!r} (expected error, warning or info)"
            ) from None

    @property
    def rank(self) -> int:
        return {"error": 0, "warning": 1, "info": 2}[self.value]


# Findings that do not come from a registered rule
LEX_ERROR = "lex-error"
STRUCTURE = "structure"
RULE_INTERNAL_ERROR = "rule-internal-error"
PSEUDO_RULES = (LEX_ERROR, STRUCTURE, RULE_INTERNAL_ERROR)


@dataclass(frozen=True)
class Position:
    """1-based line/column plus character offset."""
    line: int
    column: int
    offset: int

    @classmethod
    def start_of(cls, token: Token) -> "Position":
        return cls(token.line, token.column, token.start)

    @classmethod
    def end_of(cls, token: Token) -> "Position":
        return cls(token.end_line, token.end_column, token.end)

    def to_dict(self) -> Dict[str, int]:
        return {"line": self.line, "column": self.column, "offset": self.offset}


@dataclass(frozen=True)
class Finding:
    """A single rule violation."""
    rule_id: str
    severity: Severity
    message: str
    start: Position
    end: Position

    def __str__(self):
        return f"{self.start.line}:{self.start.column} {self.severity.value} {self.rule_id}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
        }


@dataclass
class FileReport:
    """All findings for one analyzed file, sorted by position."""
    path: str
    findings: List[Finding] = field(default_factory=list)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)

    @property
    def error_count(self) -> int:
        return self.count(Severity.ERROR)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def by_rule(self, rule_id: str) -> List[Finding]:
        return [f for f in self.findings if f.rule_id == rule_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "findings": [f.to_dict() for f in self.findings],
            "counts": {s.value: self.count(s) for s in Severity},
        }


def _drop_overlaps(findings: Iterable[Finding]) -> List[Finding]:
    """Keep the first of any findings whose ranges overlap."""
    kept: List[Finding] = []
    reach = -1
    last_start = None
    for finding in sorted(findings, key=lambda f: (f.start.offset, f.end.offset)):
        if finding.start.offset < reach or finding.start.offset == last_start:
            continue
        kept.append(finding)
        reach = max(reach, finding.end.offset)
        last_start = finding.start.offset
    return kept


def aggregate(per_rule_findings: Mapping[str, Sequence[Finding]], path: str = "<unknown>",
              rule_order: Sequence[str] = ()) -> FileReport:
    """
    Merge per-rule findings into a FileReport.

    Args:
        per_rule_findings: rule id -> findings produced by that rule's check
        path: File path recorded on the report
        rule_order: Registration order of the rules; breaks position ties

    Overlapping findings of the same rule are collapsed to the first one.
    Severities are passed through unchanged.
    """
    rank = {rule_id: n for n, rule_id in enumerate(PSEUDO_RULES + tuple(rule_order))}
    merged: List[Finding] = []
    for bucket in per_rule_findings.values():
        by_id: Dict[str, List[Finding]] = defaultdict(list)
        for finding in bucket:
            by_id[finding.rule_id].append(finding)
        for findings in by_id.values():
            merged.extend(_drop_overlaps(findings))

    merged.sort(key=lambda f: (f.start.line, f.start.column, rank.get(f.rule_id, len(rank))))
    return FileReport(path=path, findings=merged)
