"""
idiomcheck/checkers.py
══════════════════════

Checker framework shared by the four analyzers.

Architecture
────────────

  ┌───────────────────────────────────────────────────────────────┐
  │                        runner.analyze_unit                    │
  │  ┌────────────┐ ┌────────────┐ ┌──────────────┐ ┌──────────┐  │
  │  │Inheritance │ │ Constness  │ │ Construction │ │Sequencing│  │
  │  │  Checker   │ │  Checker   │ │   Checker    │ │ Checker  │  │
  │  └─────┬──────┘ └─────┬──────┘ └──────┬───────┘ └────┬─────┘  │
  │        │   read-only  │ SemanticModel │  + CallGraph │        │
  │  ┌─────▼──────────────▼───────────────▼──────────────▼─────┐  │
  │  │                  aggregator.aggregate_unit              │  │
  │  └─────────────────────────────────────────────────────────┘  │
  └───────────────────────────────────────────────────────────────┘

Each Checker follows a three-phase lifecycle:

  1. **configure()**        — resolve rule settings against the RuleConfig
  2. **collect_evidence()** — walk the model, gather suspicious sites
  3. **diagnose()**         — turn evidence into Findings

A checker instance is created per unit and owns its output buffer; the
model and call graph it reads are shared and never mutated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, Type

from idiomcheck.callgraph import CallGraph
from idiomcheck.config import DEFAULT_CONFIG, RuleConfig, RuleSetting
from idiomcheck.diagnostics import Finding, Severity, SourceLocation
from idiomcheck.errors import ConfigError
from idiomcheck.model import SemanticModel


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — CONTEXT
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CheckerContext:
    """
    Read-only context passed to every checker of one unit.

    Attributes
    ----------
    model     : the frozen SemanticModel
    callgraph : CallGraph derived from the model
    config    : caller-supplied RuleConfig
    """
    model: SemanticModel
    callgraph: CallGraph
    config: RuleConfig = DEFAULT_CONFIG

    @classmethod
    def for_model(cls, model: SemanticModel,
                  config: RuleConfig = DEFAULT_CONFIG) -> "CheckerContext":
        return cls(model=model, callgraph=CallGraph(model), config=config)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

class Checker(ABC):
    """
    Abstract base class for all analyzers.

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description`` and ``rules`` (rule id →
        built-in default RuleSetting)
      - Implement ``collect_evidence()`` and ``diagnose()``
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    rules: ClassVar[Mapping[str, RuleSetting]] = {}

    def __init__(self) -> None:
        self._findings: List[Finding] = []
        self._settings: Dict[str, RuleSetting] = {}

    @classmethod
    def rule_ids(cls) -> FrozenSet[str]:
        return frozenset(cls.rules)

    @property
    def findings(self) -> List[Finding]:
        return list(self._findings)

    def configure(self, ctx: CheckerContext) -> None:
        """Resolve every rule this checker owns against ``ctx.config``."""
        self._settings = {
            rule_id: ctx.config.resolve(rule_id, default)
            for rule_id, default in self.rules.items()
        }

    def setting(self, rule_id: str) -> RuleSetting:
        return self._settings.get(rule_id) or self.rules[rule_id]

    def enabled(self, rule_id: str) -> bool:
        return self.setting(rule_id).enabled

    @property
    def active(self) -> bool:
        """Whether at least one of this checker's rules is enabled."""
        return any(self.enabled(r) for r in self.rules)

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        """Walk the model and store intermediate results."""
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """Turn evidence into findings via :meth:`_emit`."""
        ...

    def run(self, ctx: CheckerContext) -> List[Finding]:
        """Full lifecycle; returns this checker's findings."""
        self.configure(ctx)
        if not self.active:
            return []
        self.collect_evidence(ctx)
        self.diagnose(ctx)
        return self.findings

    def _emit(
        self,
        rule_id: str,
        message: str,
        location: SourceLocation,
        suggested_fix: Optional[str] = None,
        severity: Optional[Severity] = None,
    ) -> None:
        """Create and store a finding, honouring enablement and severity."""
        setting = self.setting(rule_id)
        if not setting.enabled:
            return
        self._findings.append(Finding(
            rule_id=rule_id,
            severity=severity or setting.severity,
            location=location,
            message=message,
            suggested_fix=suggested_fix,
        ))

    # ----- configuration validation ------------------------------------------

    @classmethod
    def validate_config(cls, config: RuleConfig) -> None:
        """Raise ``ConfigError`` if *config* sets an option of this checker wrongly.

        Option values must have the shape of the built-in default: a list of
        strings where the default is a tuple, a string where it is a string.
        """
        for rule_id, default in cls.rules.items():
            setting = config.resolve(rule_id, default)
            unknown = set(setting.options) - set(default.options)
            if unknown:
                raise ConfigError(f"{rule_id}: unknown options {sorted(unknown)}")
            for key, value in setting.options.items():
                _check_option_shape(rule_id, key, value, default.options[key])
            cls.check_options(rule_id, setting)

    @classmethod
    def check_options(cls, rule_id: str, setting: RuleSetting) -> None:
        """Checker-specific option checks; raise ``ConfigError``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available checkers.

    Usage
    -----
    >>> registry = CheckerRegistry()
    >>> registry.register(ConstnessChecker)
    >>> registry.get_all()
    [<class 'idiomcheck.constness.ConstnessChecker'>]
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}

    def register(self, checker_cls: Type[Checker]) -> Type[Checker]:
        """Register a checker class; usable as a decorator."""
        self._checkers[checker_cls.name] = checker_cls
        return checker_cls

    def get_all(self) -> List[Type[Checker]]:
        """Registered checker classes, in registration order."""
        return list(self._checkers.values())

    def all_rules(self) -> Dict[str, RuleSetting]:
        """Every rule id with its built-in default, sorted by id."""
        merged: Dict[str, RuleSetting] = {}
        for cls in self._checkers.values():
            merged.update(cls.rules)
        return dict(sorted(merged.items()))

    def validate(self, config: RuleConfig) -> None:
        """Check *config* against every registered checker's options."""
        for cls in self._checkers.values():
            cls.validate_config(config)


def _check_option_shape(rule_id: str, key: str, value: Any, default: Any) -> None:
    if isinstance(default, tuple):
        if not isinstance(value, tuple) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{rule_id}: option '{key}' must be a list of strings")
    elif isinstance(default, str) and not isinstance(value, str):
        raise ConfigError(f"{rule_id}: option '{key}' must be a string")


def default_rule(severity: Severity, enabled: bool = True, **options) -> RuleSetting:
    """Shorthand for a checker's built-in rule default."""
    return RuleSetting(enabled=enabled, severity=severity,
                       options=MappingProxyType(options))


__all__ = [
    "CheckerContext",
    "Checker",
    "CheckerRegistry",
    "default_rule",
]
