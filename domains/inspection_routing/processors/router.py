"""Turn a classifier answer into PASS/FAIL routing decisions."""

from __future__ import annotations

import json
import re
from typing import Iterator, Tuple

from pydantic import ValidationError

from aoi_relay.models.schemas import Category, ClassificationResponse, RoutingDecision

# Scores strictly above this value are failures. Fixed policy.
FAIL_THRESHOLD = 0.5

_decoder = json.JSONDecoder()
_whitespace = re.compile(r"[ \t\n\r]*")

# (start, end) offsets of a JSON value inside the body
Span = Tuple[int, int]


class ResponseShapeError(ValueError):
    """The classifier answer is not the expected prediction document."""


def categorize(score: float) -> Category:
    """Map a predicted score onto a category (0.5 itself passes)."""

    return Category.FAIL if score > FAIL_THRESHOLD else Category.PASS


def _skip(text: str, pos: int) -> int:
    return _whitespace.match(text, pos).end()


def _members(text: str, pos: int) -> Iterator[Tuple[str, Span]]:
    """Yield ``(key, span)`` for each member of the object opening at ``pos``."""

    pos = _skip(text, pos + 1)
    if text[pos] == "}":
        return
    while True:
        key, pos = _decoder.raw_decode(text, pos)
        pos = _skip(text, _skip(text, pos) + 1)  # past ':'
        _, end = _decoder.raw_decode(text, pos)
        yield key, (pos, end)
        pos = _skip(text, end)
        if text[pos] == "}":
            return
        pos = _skip(text, pos + 1)  # past ','


def _elements(text: str, pos: int) -> Iterator[Span]:
    """Yield the span of each element of the array opening at ``pos``."""

    pos = _skip(text, pos + 1)
    if text[pos] == "]":
        return
    while True:
        _, end = _decoder.raw_decode(text, pos)
        yield pos, end
        pos = _skip(text, end)
        if text[pos] == "]":
            return
        pos = _skip(text, pos + 1)


def _member_start(text: str, pos: int, name: str) -> int:
    # json.loads keeps the last duplicate key, so do the same.
    starts = [span[0] for key, span in _members(text, pos) if key == name]
    return starts[-1]


def entry_sources(body: str) -> list[str]:
    """
    Exact source text of every ``predict_results`` entry.

    Only valid for a body that already passed validation.
    """
    root = _skip(body, 0)
    container = _member_start(body, root, "predict_result_data")
    results = _member_start(body, container, "predict_results")
    return [body[start:end] for start, end in _elements(body, results)]


def parse(body: str) -> list[RoutingDecision]:
    """
    Parse a response body into one decision per prediction entry.

    Args:
        body: Raw response text from the classifier

    Returns:
        Decisions in the order the entries appear

    Raises:
        ResponseShapeError: If the body is not JSON or lacks a score
    """
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ResponseShapeError(f"response is not valid JSON: {e}") from e

    try:
        response = ClassificationResponse.model_validate(payload)
    except ValidationError as e:
        raise ResponseShapeError(
            f"unexpected response shape ({e.error_count()} errors): {e.errors()[0]['msg']}"
        ) from e

    entries = response.predict_result_data.predict_results
    raw_entries = payload["predict_result_data"]["predict_results"]
    sources = entry_sources(body)

    decisions = []
    for index, (entry, raw, source) in enumerate(zip(entries, raw_entries, sources)):
        score = float(entry.meta.predicted_score)
        decisions.append(
            RoutingDecision(index=index, score=score, category=categorize(score), raw=raw, source=source)
        )
    return decisions
