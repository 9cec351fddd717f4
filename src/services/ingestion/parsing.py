"""Tolerant parsing of extraction output.

Extraction backends return free text that should contain one JSON
object, often wrapped in prose or a markdown fence.  This module finds
the first top-level object by brace matching, decodes it with
``orjson`` and converts the ``results`` array into typed
:class:`~src.models.reconciliation.ReportedConstituency` entries.

Nothing here raises on bad input: a response with no object, invalid
JSON, or a missing/non-list ``results`` yields ``None``, and individual
entries that fail validation are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

import orjson
import structlog
from pydantic import ValidationError

from src.models.reconciliation import ConfidenceLevel, ReportedConstituency

logger = structlog.get_logger(__name__)

RESULT_SCHEMA_HINT: Final[str] = """\
{
  "results": [
    {
      "constituencyNumber": <number>,
      "constituencyName": "<name>",
      "division": "<division>",
      "district": "<district>",
      "status": "counting" | "declared" | "result_confirmed",
      "candidates": [
        {
          "name": "<candidate name>",
          "party": "<party name>",
          "partyId": "bnp" | "jamaat" | "jp-ershad" | "gonoforum" | "jasod" | "workers-party" | "islami-andolan" | "ncp" | "independent" | "others",
          "votes": <number>,
          "isWinner": <boolean>,
          "isLeading": <boolean>
        }
      ],
      "totalVotes": <number>,
      "winMargin": <number>
    }
  ],
  "sourcesUsed": ["<source1>", "<source2>"],
  "confidenceLevel": "high" | "medium" | "low"
}"""

# Extraction output field -> ReportedConstituency field.
_FIELD_ALIASES: Final[dict[str, str]] = {
    "constituencyNumber": "number",
    "constituencyName": "name",
}


@dataclass(slots=True)
class ParsedEnvelope:
    """Validated contents of a results envelope."""

    results: list[ReportedConstituency]
    sources_used: list[str] = field(default_factory=list)
    confidence: ConfidenceLevel = ConfidenceLevel.UNKNOWN
    dropped: int = 0


def extract_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` span in *text*.

    Braces inside JSON string literals (including escaped quotes) are
    ignored while matching.  An object left unclosed at the end of the
    text yields ``None``; nested objects inside it are not considered.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Decode the first JSON object embedded in *text*, or ``None``."""
    if not text:
        return None
    candidate = extract_json_object(text)
    if candidate is None:
        return None
    try:
        decoded = orjson.loads(candidate)
    except orjson.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _normalise_entry(raw: dict[str, Any]) -> dict[str, Any]:
    entry = dict(raw)
    for source_key, target_key in _FIELD_ALIASES.items():
        if source_key in entry and target_key not in entry:
            entry[target_key] = entry.pop(source_key)

    candidates = entry.get("candidates")
    if isinstance(candidates, list):
        normalised = []
        for candidate in candidates:
            if isinstance(candidate, dict):
                candidate = dict(candidate)
                party_id = candidate.pop("partyId", None)
                if isinstance(party_id, str) and party_id.strip():
                    candidate["party"] = party_id
            normalised.append(candidate)
        entry["candidates"] = normalised
    return entry


def parse_results_envelope(text: str) -> ParsedEnvelope | None:
    """Parse ``{results, sourcesUsed, confidenceLevel}`` out of free text.

    Returns
    -------
    ParsedEnvelope | None
        ``None`` when the text holds no JSON object or the object has no
        ``results`` list.  Otherwise the valid entries, with a count of
        the ones dropped by validation.
    """
    payload = parse_json_object(text)
    if payload is None:
        return None
    raw_results = payload.get("results")
    if not isinstance(raw_results, list):
        return None

    results: list[ReportedConstituency] = []
    dropped = 0
    for raw in raw_results:
        if not isinstance(raw, dict):
            dropped += 1
            continue
        try:
            results.append(ReportedConstituency.model_validate(_normalise_entry(raw)))
        except ValidationError as exc:
            dropped += 1
            logger.debug("parsing.entry_dropped", errors=exc.error_count())
        except (TypeError, ValueError, OverflowError) as exc:
            dropped += 1
            logger.debug("parsing.entry_dropped", error=str(exc), error_type=type(exc).__name__)

    raw_sources = payload.get("sourcesUsed")
    sources_used = (
        [s.strip() for s in raw_sources if isinstance(s, str) and s.strip()]
        if isinstance(raw_sources, list)
        else []
    )
    return ParsedEnvelope(
        results=results,
        sources_used=sources_used,
        confidence=ConfidenceLevel.parse(payload.get("confidenceLevel")),
        dropped=dropped,
    )
