"""
idiomcheck.frontend
===================

Front-end adapters.

Tokenizing and parsing C++ is not done here.  A front-end turns whatever
it consumes into the structured program representation that
:func:`idiomcheck.builder.build_model` accepts, or raises
:class:`~idiomcheck.errors.ParseFailure`.

:class:`JsonFrontEnd` reads that representation serialized as JSON, which
is what the command line consumes.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Protocol, runtime_checkable

from idiomcheck.errors import ParseFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class FrontEnd(Protocol):
    """Anything that can produce a unit representation from source text."""

    def parse(self, source_text: str, unit: str) -> Mapping[str, Any]:
        """Return the representation of *unit*, or raise ParseFailure."""
        ...


def _count(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    return len(value) if isinstance(value, list) else 0


class JsonFrontEnd:
    """Front-end for the JSON serialization of the program representation.

    A document without a ``"unit"`` key is attributed to the path it was
    read from.
    """

    name = "json"

    def parse(self, source_text: str, unit: str) -> Dict[str, Any]:
        try:
            data = json.loads(source_text)
        except json.JSONDecodeError as exc:
            raise ParseFailure(f"invalid JSON: {exc.msg}", unit, exc.lineno, exc.colno) from exc
        if not isinstance(data, dict):
            raise ParseFailure(
                f"representation must be a JSON object, got {type(data).__name__}", unit
            )
        data.setdefault("unit", unit)
        logger.debug("Parsed %s: %d type(s), %d free function(s)", unit,
                     _count(data, "types"), _count(data, "functions"))
        return data


__all__ = ["FrontEnd", "JsonFrontEnd"]
