"""
idiomcheck/runner.py
════════════════════

Per-unit orchestration and the batch driver.

Per unit
────────
  1. build the SemanticModel (``ModelError`` → unit skipped)
  2. derive the CallGraph once and share it read-only
  3. run every registered checker concurrently, each with its own
     output buffer
  4. join all of them, or none: on deadline expiry the partial results
     are discarded and one ``UNIT-timeout`` finding replaces them
  5. hand the outputs to the Aggregator

A checker raising on a well-formed model becomes a ``RuleInternalError``;
the other checkers' findings for that unit are still reported.

Per batch
─────────
Units run independently on a thread pool of ``jobs`` workers.  The only
state they share is the immutable RuleConfig.  No unit's failure stops
the batch.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from idiomcheck.aggregator import (
    BatchResult,
    UnitResult,
    aggregate_unit,
    merge_batch,
    model_error_result,
    timeout_result,
)
from idiomcheck.builder import build_model
from idiomcheck.checkers import Checker, CheckerContext, CheckerRegistry
from idiomcheck.config import DEFAULT_CONFIG, RuleConfig
from idiomcheck.constness import ConstnessChecker
from idiomcheck.construction import ConstructionChecker
from idiomcheck.diagnostics import Finding
from idiomcheck.errors import AnalysisTimeout, ModelError, RuleInternalError
from idiomcheck.frontend import FrontEnd, JsonFrontEnd
from idiomcheck.inheritance import InheritanceChecker
from idiomcheck.model import SemanticModel
from idiomcheck.sequencing import SequencingChecker

logger = logging.getLogger(__name__)

Source = Union[str, Mapping[str, Any]]


def default_registry() -> CheckerRegistry:
    """A registry holding the four built-in analyzers."""
    registry = CheckerRegistry()
    for cls in (InheritanceChecker, ConstnessChecker, ConstructionChecker, SequencingChecker):
        registry.register(cls)
    return registry


DEFAULT_REGISTRY = default_registry()


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — ONE UNIT
# ═════════════════════════════════════════════════════════════════════════

def _run_checker(checker_cls: Type[Checker], ctx: CheckerContext) -> Tuple[List[Finding], float]:
    t0 = time.monotonic()
    findings = checker_cls().run(ctx)
    return findings, (time.monotonic() - t0) * 1000.0


def analyze_model(
    model: SemanticModel,
    config: RuleConfig = DEFAULT_CONFIG,
    timeout: Optional[float] = None,
    registry: Optional[CheckerRegistry] = None,
) -> UnitResult:
    """Run every registered checker on *model* and aggregate the results.

    *timeout* bounds the checker phase in seconds (``None`` = unbounded).
    """
    registry = registry or DEFAULT_REGISTRY
    ctx = CheckerContext.for_model(model, config)
    logger.debug("%s: call graph %s", model.unit, ctx.callgraph.statistics())

    checker_classes = registry.get_all()
    if not checker_classes:
        return aggregate_unit(model.unit, [])

    pool = ThreadPoolExecutor(max_workers=len(checker_classes),
                              thread_name_prefix="idiomcheck-checker")
    futures: Dict[Future, Type[Checker]] = {
        pool.submit(_run_checker, cls, ctx): cls for cls in checker_classes
    }
    try:
        _done, not_done = wait(futures, timeout=timeout)
    finally:
        # running checkers are abandoned, not joined
        pool.shutdown(wait=False, cancel_futures=True)

    if not_done:
        err = AnalysisTimeout(model.unit, timeout or 0.0)
        logger.warning("%s; %d checker(s) unfinished", err, len(not_done))
        return timeout_result(model.unit, err)

    outputs: List[List[Finding]] = []
    internal: List[RuleInternalError] = []
    stats: Dict[str, Any] = {}
    for future, cls in futures.items():
        try:
            findings, elapsed_ms = future.result()
        except Exception as exc:
            err = RuleInternalError(cls.name, exc, rules=sorted(cls.rules))
            logger.warning("%s: %s", model.unit, err, exc_info=exc)
            internal.append(err)
            continue
        outputs.append(findings)
        stats[f"{cls.name}_elapsed_ms"] = elapsed_ms
        logger.debug("%s: %s produced %d finding(s) in %.1fms",
                     model.unit, cls.name, len(findings), elapsed_ms)
    return aggregate_unit(model.unit, outputs, internal, stats)


def analyze_unit(
    representation: Mapping[str, Any],
    config: RuleConfig = DEFAULT_CONFIG,
    timeout: Optional[float] = None,
    registry: Optional[CheckerRegistry] = None,
) -> UnitResult:
    """Build the model of one unit and analyze it.

    A malformed representation yields a skipped :class:`UnitResult`
    carrying one ``MODEL-error`` finding rather than an exception.
    Option values that do not fit a checker raise ``ConfigError``.
    """
    (registry or DEFAULT_REGISTRY).validate(config)
    unit = _unit_name(representation)
    started = time.monotonic()
    try:
        model = build_model(representation)
    except ModelError as exc:
        logger.warning("Skipping %s: %s", unit, exc)
        return model_error_result(unit, exc)

    remaining = None
    if timeout is not None:
        remaining = timeout - (time.monotonic() - started)
        if remaining <= 0:
            err = AnalysisTimeout(unit, timeout)
            logger.warning("%s (during model construction)", err)
            return timeout_result(unit, err)
    return analyze_model(model, config, remaining, registry)


def _unit_name(representation: Any) -> str:
    if isinstance(representation, Mapping):
        unit = representation.get("unit")
        if isinstance(unit, str) and unit:
            return unit
    return "<unknown>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — BATCH
# ═════════════════════════════════════════════════════════════════════════

def _analyze_source(
    unit: str,
    source: Source,
    frontend: FrontEnd,
    config: RuleConfig,
    timeout: Optional[float],
    registry: Optional[CheckerRegistry],
) -> UnitResult:
    if isinstance(source, Mapping):
        representation: Mapping[str, Any] = source
        if "unit" not in representation:
            representation = dict(source, unit=unit)
    else:
        try:
            representation = frontend.parse(source, unit)
        except ModelError as exc:  # ParseFailure
            logger.warning("Skipping %s: %s", unit, exc)
            return model_error_result(unit, exc)
    return analyze_unit(representation, config, timeout, registry)


def analyze_batch(
    sources: Mapping[str, Source],
    frontend: Optional[FrontEnd] = None,
    config: RuleConfig = DEFAULT_CONFIG,
    jobs: int = 1,
    timeout: Optional[float] = None,
    registry: Optional[CheckerRegistry] = None,
) -> BatchResult:
    """Analyze many units.

    Parameters
    ----------
    sources  : unit path → source text for *frontend*, or an already
               parsed representation mapping
    frontend : defaults to :class:`JsonFrontEnd`
    jobs     : number of units analyzed at once
    timeout  : per-unit deadline in seconds (``None`` = unbounded)

    Raises ``ConfigError`` before any unit runs if *config* sets an
    option a registered checker cannot use.
    """
    frontend = frontend or JsonFrontEnd()
    (registry or DEFAULT_REGISTRY).validate(config)
    results: List[UnitResult] = []
    started = time.monotonic()
    with ThreadPoolExecutor(max_workers=max(1, jobs),
                            thread_name_prefix="idiomcheck-unit") as pool:
        futures: Dict[Future, str] = {
            pool.submit(_analyze_source, unit, source, frontend, config, timeout, registry): unit
            for unit, source in sources.items()
        }
        for future in wait(futures).done:
            unit = futures[future]
            try:
                results.append(future.result())
            except Exception as exc:
                # a defect outside the checkers must not stop the batch
                logger.exception("Analysis of %s failed", unit)
                results.append(aggregate_unit(unit, [], [RuleInternalError("builder", exc)]))

    batch = merge_batch(results)
    logger.info("Analyzed %d unit(s) in %.2fs", len(results), time.monotonic() - started)
    return batch


__all__ = [
    "DEFAULT_REGISTRY",
    "default_registry",
    "analyze_model",
    "analyze_unit",
    "analyze_batch",
]
