"""
Turn raw completion text into a validated list of review comments.

The normalizer is total: whatever the backend sends (prose, markdown-fenced
JSON, truncated JSON, an empty string) it returns a usable comment list and
never raises.
"""

import json
import logging
from collections import Counter
from typing import Any, Optional

from ai_review.models import (
    VALID_COMMENT_TYPES,
    Malformed,
    ParseResult,
    ReviewComment,
    ReviewMetadata,
    ReviewResponse,
    Valid,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500

PARSE_FALLBACK = ReviewComment(
    id="fallback_1",
    content="Unable to parse AI response. Please try again.",
    type="warning",
)
NO_COMMENTS_FALLBACK = ReviewComment(
    id="no_comments",
    content="No review comments generated. Please try again.",
    type="info",
)
INVALID_COMMENTS_FALLBACK = ReviewComment(
    id="invalid_comments",
    content="Invalid response format. Please try again.",
    type="warning",
)


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


# ── JSON extraction ───────────────────────────────────────────────────────────


def find_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` span in ``text``, or None.

    Braces inside JSON string literals are ignored, so a ``}`` inside a
    comment's content does not end the span early.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    return None


def parse_completion(raw_text: str) -> ParseResult:
    """Direct JSON parse first, then the first balanced object embedded in the text."""
    try:
        return Valid(payload=json.loads(raw_text))
    except (TypeError, ValueError, RecursionError):
        logger.info("Direct JSON parsing failed, attempting to extract JSON from response")
        logger.debug("Raw response preview: %s", _preview(raw_text or ""))

    span = find_balanced_object(raw_text or "")
    if span is None:
        logger.info("No JSON object found in response")
        return Malformed(raw_text=raw_text or "")

    try:
        return Valid(payload=json.loads(span))
    except (ValueError, RecursionError) as exc:
        logger.warning("Failed to parse extracted JSON: %s", exc)
        return Malformed(raw_text=raw_text)


# ── Coercion ──────────────────────────────────────────────────────────────────


def _coerce_line_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _coerce_comment(item: Any, index: int) -> ReviewComment:
    data = item if isinstance(item, dict) else {}

    comment_id = data.get("id")
    content = data.get("content")
    comment_type = data.get("type")
    file_name = data.get("fileName", data.get("file_name"))

    return ReviewComment(
        id=str(comment_id) if comment_id else f"comment_{index}",
        file_name=file_name if isinstance(file_name, str) and file_name else None,
        line_number=_coerce_line_number(data.get("lineNumber", data.get("line_number"))),
        content=str(content) if content else "No content provided",
        type=comment_type if comment_type in VALID_COMMENT_TYPES else "suggestion",
    )


def count_comment_types(comments: list[ReviewComment]) -> dict[str, int]:
    return dict(Counter(c.type for c in comments))


# ── Public API ────────────────────────────────────────────────────────────────


def normalize_response(
    raw_text: str,
    template_name: str = "",
    review_mode: str = "general",
) -> ReviewResponse:
    """
    Normalize raw completion text into a ``ReviewResponse`` with metadata.

    ``review_mode`` is reported as-is for a well-formed response and switches
    to ``"fallback"`` when the payload had no usable ``comments`` list.
    """
    result = parse_completion(raw_text)

    if isinstance(result, Malformed):
        logger.warning("Unparseable AI response, returning fallback comment")
        comments = [PARSE_FALLBACK]
        mode = "fallback"
    else:
        payload = result.payload
        raw_comments = payload.get("comments") if isinstance(payload, dict) else None

        if raw_comments is None:
            logger.info("No comments array found, creating fallback response")
            comments = [NO_COMMENTS_FALLBACK]
            mode = "fallback"
        elif not isinstance(raw_comments, list):
            logger.info("Comments is not an array, creating fallback response")
            comments = [INVALID_COMMENTS_FALLBACK]
            mode = "fallback"
        else:
            comments = [_coerce_comment(item, i) for i, item in enumerate(raw_comments)]
            mode = review_mode

    logger.info("Generated %d comments", len(comments))
    return ReviewResponse(
        comments=comments,
        metadata=ReviewMetadata(
            template_used=template_name,
            review_mode=mode,
            total_comments=len(comments),
            comment_types=count_comment_types(comments),
        ),
    )


def normalize(raw_text: str) -> list[ReviewComment]:
    """Normalize raw completion text into review comments."""
    return normalize_response(raw_text).comments
