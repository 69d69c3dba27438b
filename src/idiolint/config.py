"""
Linter Configuration

Loads configuration from a YAML file or environment variables.
The resulting LintConfig is immutable and is passed explicitly through the
engine to the rules; nothing reads configuration from global state.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

import yaml

from idiolint.findings import Severity

logger = logging.getLogger(__name__)


CONFIG_FILENAME = ".idiolint.yaml"

# Environment variable -> config key
ENV_OVERRIDES = {
    "IDIOLINT_INDENT_UNIT": "indent_unit",
    "IDIOLINT_PREFERRED_QUOTE": "preferred_quote",
}

KNOWN_KEYS = frozenset({
    "indent_unit", "preferred_quote", "enabled_rules", "disabled_rules", "severity_overrides",
})

QUOTE_ALIASES = {"double": '"', "single": "'", '"': '"', "'": "'"}


def config_search_paths() -> list:
    """Default configuration file locations (checked in order)."""
    return [
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / ".idiolint" / "config.yaml",
    ]


class ConfigError(Exception):
    """Invalid configuration. Aborts the run before any file is analyzed."""


class IndentUnit(Enum):
    TAB = "tab"
    SPACE = "space"

    @property
    def char(self) -> str:
        return '\t' if self is IndentUnit.TAB else ' '


def _rule_id_set(value: Any, key: str) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ConfigError(f"'{key}' must be a list of rule ids, got {value!r}")
    ids = frozenset(value)
    if not all(isinstance(rule_id, str) for rule_id in ids):
        raise ConfigError(f"'{key}' must contain only rule id strings")
    return ids


@dataclass(frozen=True)
class LintConfig:
    """
    Immutable linter configuration.

    enabled_rules=None means every registered rule; disabled_rules is
    subtracted afterwards. severity_overrides replaces a rule's default
    severity.
    """
    indent_unit: IndentUnit = IndentUnit.SPACE
    preferred_quote: str = '"'
    enabled_rules: Optional[FrozenSet[str]] = None
    disabled_rules: FrozenSet[str] = frozenset()
    severity_overrides: Mapping[str, Severity] = field(default_factory=dict)

    def __post_init__(self):
        try:
            indent_unit = IndentUnit(self.indent_unit) if not isinstance(self.indent_unit, IndentUnit) \
                else self.indent_unit
        except ValueError:
            raise ConfigError(
                f"Invalid indent_unit {self.indent_unit!r} (expected 'tab' or 'space')"
            ) from None
        quote = QUOTE_ALIASES.get(self.preferred_quote) if isinstance(self.preferred_quote, str) else None
        if quote is None:
            raise ConfigError(
                f"Invalid preferred_quote {self.preferred_quote!r} (expected '\"' or \"'\")"
            )
        if not isinstance(self.severity_overrides, Mapping):
            raise ConfigError("'severity_overrides' must be a mapping of rule id to severity")
        overrides: Dict[str, Severity] = {}
        for rule_id, severity in self.severity_overrides.items():
            try:
                overrides[rule_id] = Severity.parse(severity)
            except ValueError as e:
                raise ConfigError(f"Severity override for '{rule_id}': {e}") from None

        object.__setattr__(self, "indent_unit", indent_unit)
        object.__setattr__(self, "preferred_quote", quote)
        object.__setattr__(self, "enabled_rules", _rule_id_set(self.enabled_rules, "enabled_rules"))
        object.__setattr__(self, "disabled_rules",
                           _rule_id_set(self.disabled_rules, "disabled_rules") or frozenset())
        object.__setattr__(self, "severity_overrides", overrides)

    def enabled_ids(self, known_rule_ids: Iterable[str]) -> FrozenSet[str]:
        """Rule ids that should run, given the registered rules."""
        known = frozenset(known_rule_ids)
        enabled = known if self.enabled_rules is None else self.enabled_rules & known
        return enabled - self.disabled_rules

    def severity_for(self, rule_id: str, default: Severity) -> Severity:
        return self.severity_overrides.get(rule_id, default)

    def validate(self, known_rule_ids: Iterable[str]) -> None:
        """
        Check the configuration against the registered rules.

        Raises:
            ConfigError: unknown rule ids, a rule both enabled and disabled,
                or a severity override for a rule that will not run.
        """
        known = frozenset(known_rule_ids)
        for key, ids in (("enabled_rules", self.enabled_rules or frozenset()),
                         ("disabled_rules", self.disabled_rules),
                         ("severity_overrides", frozenset(self.severity_overrides))):
            unknown = sorted(ids - known)
            if unknown:
                raise ConfigError(f"Unknown rule id(s) in '{key}': {', '.join(unknown)}")

        if self.enabled_rules is not None:
            both = sorted(self.enabled_rules & self.disabled_rules)
            if both:
                raise ConfigError(f"Rule(s) both enabled and disabled: {', '.join(both)}")

        enabled = self.enabled_ids(known)
        inactive = sorted(set(self.severity_overrides) - enabled)
        if inactive:
            raise ConfigError(
                f"Severity override for disabled rule(s): {', '.join(inactive)}"
            )

    def with_changes(self, **changes) -> "LintConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indent_unit": self.indent_unit.value,
            "preferred_quote": self.preferred_quote,
            "enabled_rules": sorted(self.enabled_rules) if self.enabled_rules is not None else None,
            "disabled_rules": sorted(self.disabled_rules),
            "severity_overrides": {k: v.value for k, v in sorted(self.severity_overrides.items())},
        }


def config_from_dict(data: Mapping[str, Any]) -> LintConfig:
    """Build a LintConfig from a plain mapping (e.g. parsed YAML)."""
    unknown = sorted(set(data) - KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")
    kwargs = {k: v for k, v in data.items() if v is not None}
    return LintConfig(**kwargs)


def load_config(config_path: Optional[Union[str, Path]] = None,
                environ: Optional[Mapping[str, str]] = None) -> LintConfig:
    """
    Load configuration from YAML, then apply environment overrides.

    Args:
        config_path: Explicit file; must exist. When omitted the default
            search paths are tried and defaults are used if none exists.
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: unreadable or malformed file, or invalid values
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if config_path is not None:
        search_paths = [Path(config_path)]
        if not search_paths[0].exists():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        search_paths = config_search_paths()

    for path in search_paths:
        if not path.is_file():
            continue
        try:
            with open(path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {path} must contain a mapping, got {type(loaded).__name__}")
        data.update(loaded)
        logger.debug("Loaded configuration from %s", path)
        break

    for env_var, key in ENV_OVERRIDES.items():
        if env_var in environ:
            data[key] = environ[env_var]

    return config_from_dict(data)


DEFAULT_CONFIG_TEMPLATE = """\
# idiolint configuration
#
# Any setting can also be given on the command line; indent_unit and
# preferred_quote can be overridden with IDIOLINT_INDENT_UNIT and
# IDIOLINT_PREFERRED_QUOTE.

# "space" or "tab"
indent_unit: space

# "double" or "single"
preferred_quote: double

# Omit to run every rule
# enabled_rules:
#   - strict-equality
#   - trailing-whitespace

disabled_rules: []

# rule id -> error | warning | info
severity_overrides: {}
"""


def write_default_config(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Write a default configuration file.

    Returns the path where config was written.
    """
    path = Path(path) if path is not None else Path.cwd() / CONFIG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(DEFAULT_CONFIG_TEMPLATE)
    return path
