"""
idiolint.lint - rules, engine and worker pool
"""

from idiolint.lint.engine import Linter, evaluate, run_rules
from idiolint.lint.pool import RunResult, lint_paths
from idiolint.lint.rules import DEFAULT_REGISTRY, LintRule, RuleRegistry

__all__ = [
    "DEFAULT_REGISTRY",
    "LintRule",
    "Linter",
    "RuleRegistry",
    "RunResult",
    "evaluate",
    "lint_paths",
    "run_rules",
]
