"""
idiolint - JavaScript style linter

Mechanically enforces idiomatic JavaScript conventions: whitespace,
quoting, declaration placement, equality operators, truthiness checks,
naming and comment placement.
"""

__version__ = "0.1.0"
__author__ = "idiolint contributors"

from idiolint.config import LintConfig, load_config
from idiolint.lint import Linter, lint_paths
