"""
Report rendering for the command line.

Consumes FileReports as produced by the engine (already sorted and
deduplicated) and renders them as human-readable text or JSON.
"""

import json
from typing import Dict, Iterable, List, Sequence, Tuple

from idiolint.findings import FileReport, Finding, Severity


def format_finding(finding: Finding, path: str) -> str:
    loc = f"{path}:{finding.start.line}:{finding.start.column}"
    return f"[{finding.severity.name}] {finding.rule_id} {loc}: {finding.message}"


def summarize(reports: Iterable[FileReport]) -> Dict[str, int]:
    reports = list(reports)
    totals = {"files": len(reports)}
    for severity in Severity:
        totals[severity.value] = sum(r.count(severity) for r in reports)
    return totals


def render_text(reports: Sequence[FileReport], cancelled: Sequence[str] = (),
                failures: Sequence[Tuple[str, str]] = ()) -> str:
    out: List[str] = []
    for report in reports:
        for finding in report.findings:
            out.append(format_finding(finding, report.path))

    for path, message in failures:
        out.append(f"[FAILED] {path}: {message}")
    for path in cancelled:
        out.append(f"[CANCELLED] {path}: not finished before the timeout")

    totals = summarize(reports)
    if out:
        out.append("")
    out.append(
        f"{totals['files']} file(s) checked: {totals['error']} error(s), "
        f"{totals['warning']} warning(s), {totals['info']} info"
    )
    return "\n".join(out)


def render_json(reports: Sequence[FileReport], cancelled: Sequence[str] = (),
                failures: Sequence[Tuple[str, str]] = ()) -> str:
    document = {
        "files": [report.to_dict() for report in reports],
        "cancelled": list(cancelled),
        "failures": [{"path": path, "message": message} for path, message in failures],
        "totals": summarize(reports),
    }
    return json.dumps(document, indent=2, ensure_ascii=False)
