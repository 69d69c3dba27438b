"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from idiolint.config import LintConfig
from idiolint.lint import Linter


# =============================================================================
# LINTER FIXTURES
# =============================================================================

@pytest.fixture
def linter():
    """Linter with the default configuration and every rule."""
    return Linter()


@pytest.fixture
def lint():
    """
    Lint a snippet and return its findings.

    lint(source, rule_id=None, **config_fields) -> list of Finding
    """
    def _lint(source, rule_id=None, **config_fields):
        report = Linter(LintConfig(**config_fields)).lint_source(source, "snippet.js")
        if rule_id is None:
            return report.findings
        return report.by_rule(rule_id)
    return _lint


# =============================================================================
# FILE FIXTURES
# =============================================================================

@pytest.fixture
def write_js(tmp_path):
    """Write a JavaScript file under tmp_path and return its path."""
    def _write(name, source):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path
    return _write
