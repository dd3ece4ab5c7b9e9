"""
idiomcheck.config
=================

Immutable rule configuration.

A configuration maps a rule id to a :class:`RuleSetting`::

    {
      "CONST-duplicated-overload": {"enabled": true, "severity": "info"},
      "INHERIT-violation": {"options": {"patterns": ["unconditional-failure"]}},
      "SEQ-unsequenced-ownership": {"enabled": false}
    }

Absent entries, and absent keys inside an entry, fall back to the rule's
built-in default.  A :class:`RuleConfig` is passed explicitly into every
analysis run; there is no module-level configuration state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from idiomcheck.diagnostics import Severity
from idiomcheck.errors import ConfigError

logger = logging.getLogger(__name__)

_ALLOWED_KEYS = frozenset({"enabled", "severity", "options"})


@dataclass(frozen=True)
class RuleSetting:
    """Enablement, severity and free-form options for one rule."""
    enabled: bool = True
    severity: Severity = Severity.WARNING
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


@dataclass(frozen=True)
class _Override:
    enabled: Optional[bool] = None
    severity: Optional[Severity] = None
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


class RuleConfig:
    """Read-only mapping from rule id to caller overrides."""

    __slots__ = ("_overrides",)

    def __init__(self, overrides: Optional[Mapping[str, _Override]] = None) -> None:
        self._overrides: Mapping[str, _Override] = MappingProxyType(dict(overrides or {}))

    # ----- construction -----------------------------------------------------

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RuleConfig":
        """Validate and freeze a rule-id → setting mapping."""
        if not isinstance(raw, Mapping):
            raise ConfigError("rule configuration must be a mapping of rule id to settings")
        overrides: Dict[str, _Override] = {}
        for rule_id, entry in raw.items():
            if not isinstance(rule_id, str) or not rule_id:
                raise ConfigError(f"invalid rule id {rule_id!r}")
            if not isinstance(entry, Mapping):
                raise ConfigError(f"{rule_id}: setting must be a mapping")
            unknown = set(entry) - _ALLOWED_KEYS
            if unknown:
                raise ConfigError(f"{rule_id}: unknown keys {sorted(unknown)}")

            enabled = entry.get("enabled")
            if enabled is not None and not isinstance(enabled, bool):
                raise ConfigError(f"{rule_id}: 'enabled' must be a boolean")

            severity = None
            if "severity" in entry:
                if not isinstance(entry["severity"], str):
                    raise ConfigError(f"{rule_id}: 'severity' must be a string")
                try:
                    severity = Severity.from_string(entry["severity"])
                except ValueError as exc:
                    raise ConfigError(f"{rule_id}: {exc}") from exc

            options = entry.get("options", {})
            if not isinstance(options, Mapping):
                raise ConfigError(f"{rule_id}: 'options' must be a mapping")

            overrides[rule_id] = _Override(
                enabled=enabled,
                severity=severity,
                options=MappingProxyType(_freeze(options)),
            )
        return cls(overrides)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RuleConfig":
        """Load a JSON rule configuration file."""
        p = Path(path)
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"cannot read rule configuration {p}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{p}: invalid JSON: {exc}") from exc
        config = cls.from_mapping(raw)
        logger.debug("Loaded rule configuration from %s (%d entries)", p, len(config.rule_ids))
        return config

    # ----- queries ----------------------------------------------------------

    def resolve(self, rule_id: str, default: RuleSetting) -> RuleSetting:
        """Merge the caller override for *rule_id* over *default*."""
        ov = self._overrides.get(rule_id)
        if ov is None:
            return default
        options = dict(default.options)
        options.update(ov.options)
        return RuleSetting(
            enabled=default.enabled if ov.enabled is None else ov.enabled,
            severity=ov.severity or default.severity,
            options=MappingProxyType(options),
        )

    @property
    def rule_ids(self):
        return sorted(self._overrides)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._overrides

    def __repr__(self) -> str:
        return f"RuleConfig({self.rule_ids!r})"


def _freeze(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy *options*, turning lists into tuples so settings stay read-only."""
    frozen: Dict[str, Any] = {}
    for key, value in options.items():
        if isinstance(value, list):
            value = tuple(value)
        frozen[key] = value
    return frozen


DEFAULT_CONFIG = RuleConfig()


__all__ = ["RuleSetting", "RuleConfig", "DEFAULT_CONFIG"]
