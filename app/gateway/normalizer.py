"""Response normalizer: turns raw provider text into structured results.

Applies post-processing to the text returned by an adapter:
  - Trims whitespace and unwraps Markdown code fences
  - Parses list-shaped JSON answers (duplicate candidates, label names)
  - Drops entries that do not match the expected shape

Parse failures raise ``ResponseParseError``; callers decide whether that is
fatal (it never is for the advisory operations).
"""

from __future__ import annotations

import json
import logging
import math
import re

from app.gateway.types import (
    DUPLICATE_SIMILARITY_THRESHOLD,
    MAX_DUPLICATES,
    DuplicateCandidate,
)

logger = logging.getLogger(__name__)

# ```json ... ``` or ``` ... ```
_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


class ResponseParseError(ValueError):
    """Provider text could not be read as the expected structure."""


def clean_text(text: str) -> str:
    text = (text or "").strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1).strip()
    return text


def parse_json_list(text: str) -> list:
    """Parse a JSON array from provider output."""
    cleaned = clean_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ResponseParseError(f"Expected a JSON array, got {type(data).__name__}")
    return data


def parse_duplicates(text: str, candidate_ids: set[int]) -> list[DuplicateCandidate]:
    """Extract duplicates above the similarity threshold, best first, at most MAX_DUPLICATES."""
    results: list[DuplicateCandidate] = []
    for item in parse_json_list(text):
        if not isinstance(item, dict):
            continue
        try:
            issue_id = int(item["id"])
            similarity = float(item["similarity"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed duplicate entry: %r", item)
            continue
        if not math.isfinite(similarity):
            logger.debug("Skipping duplicate entry with non-finite similarity: %r", item)
            continue
        if issue_id not in candidate_ids or similarity <= DUPLICATE_SIMILARITY_THRESHOLD:
            continue
        results.append(
            DuplicateCandidate(
                id=issue_id,
                similarity=min(similarity, 1.0),
                reason=str(item.get("reason") or ""),
            )
        )

    results.sort(key=lambda d: d.similarity, reverse=True)
    return results[:MAX_DUPLICATES]


def parse_label_names(text: str) -> set[str]:
    return {name.strip() for name in parse_json_list(text) if isinstance(name, str) and name.strip()}
