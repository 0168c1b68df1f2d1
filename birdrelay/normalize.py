"""
Turns the language model's reply into an identification record.

The model is asked for JSON but may wrap it in a Markdown code block, add
prose, or ignore the format entirely. ``normalize_result`` always hands back
a usable record: either the parsed object as-is (``Parsed``) or a degraded
record carrying the raw text in the narrative field (``Fallback``).
"""
import json
import math
import re
from dataclasses import dataclass
from typing import Union

AUDIO = "audio"
IMAGE = "image"

# Free-text field that receives the raw reply when it is not JSON.
NARRATIVE_FIELDS = {
    AUDIO: "reasoning",
    IMAGE: "habitat",
}

UNPARSED_BIRD_NAME = "Unable to parse result"
FALLBACK_CONFIDENCE = 0.5

FENCE = "```"
# A language tag only counts when it ends the fence line, except "json" which
# some models run straight into the payload.
_OPENING_FENCE = re.compile(r"^```(?:json\b|[\w+-]*[ \t]*(?:\r?\n|$))?", re.IGNORECASE)


@dataclass(frozen=True)
class Parsed:
    record: dict


@dataclass(frozen=True)
class Fallback:
    record: dict
    reason: str


NormalizationResult = Union[Parsed, Fallback]


def strip_code_fences(text) -> str:
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    text = text.strip()
    while True:
        stripped = text
        if stripped.startswith(FENCE):
            stripped = _OPENING_FENCE.sub("", stripped, count=1).strip()
        if stripped.endswith(FENCE):
            stripped = stripped[: -len(FENCE)].strip()
        if stripped == text:
            return text
        text = stripped


def _reject_constant(name: str):
    raise ValueError(f"{name} is not allowed in strict JSON")


def _finite_float(value: str) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{value} is out of range for a JSON number")
    return number


def _check_serializable(record: dict):
    # Raises ValueError for out-of-range floats and UnicodeEncodeError for lone surrogates.
    json.dumps(record, allow_nan=False, ensure_ascii=False).encode("utf-8")


def _utf8_safe(text: str) -> str:
    return text.encode("utf-8", errors="replace").decode("utf-8")


def fallback_record(text: str, kind: str) -> dict:
    return {
        "birdName": UNPARSED_BIRD_NAME,
        "confidence": FALLBACK_CONFIDENCE,
        NARRATIVE_FIELDS[kind]: _utf8_safe(text),
        "alternatives": [],
    }


def normalize_result(raw, kind: str) -> NormalizationResult:
    if kind not in NARRATIVE_FIELDS:
        raise ValueError(f"Unknown identification kind: {kind!r}")

    text = strip_code_fences(raw)
    try:
        parsed = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
        if isinstance(parsed, dict):
            _check_serializable(parsed)
    except (ValueError, RecursionError) as e:
        return Fallback(fallback_record(text, kind), f"invalid JSON: {e}")

    if not isinstance(parsed, dict):
        return Fallback(
            fallback_record(text, kind),
            f"expected a JSON object, got {type(parsed).__name__}",
        )
    return Parsed(parsed)


def normalize(raw, kind: str) -> dict:
    return normalize_result(raw, kind).record
