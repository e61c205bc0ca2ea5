"""Prompt selection → completion backend → normalizer."""

import logging
from typing import Optional

from ai_review.completion import CompletionBackend
from ai_review.models import PromptConfig, ReviewComment, ReviewMetadata, ReviewResponse
from ai_review.normalizer import normalize_response
from ai_review.prompts import format_prompt, select_prompt_template
from common.errors import AIInvocationError

logger = logging.getLogger(__name__)


def degraded_response(error: AIInvocationError) -> ReviewResponse:
    """Single synthetic comment standing in for a failed backend call."""
    comment = ReviewComment(
        id=error.comment_id,
        content=error.comment_content,
        type=error.comment_type,
    )
    return ReviewResponse(
        comments=[comment],
        metadata=ReviewMetadata(
            template_used="error",
            review_mode="error",
            total_comments=1,
            comment_types={comment.type: 1},
        ),
    )


async def review_code_with_ai(
    diff: str,
    backend: CompletionBackend,
    prompt_config: Optional[PromptConfig] = None,
) -> ReviewResponse:
    """
    Review ``diff`` with the completion backend.

    Backend failures in the AIInvocationError taxonomy never propagate: they
    come back as a one-comment response with ``review_mode == "error"``.
    Anything else (e.g. a missing API key) is raised to the caller.
    """
    template = select_prompt_template(prompt_config)
    prompt = format_prompt(template, diff)

    logger.info(
        "Using prompt template: %s, model: %s, diff length: %d",
        template.name,
        backend.model_name,
        len(diff),
    )

    try:
        raw = await backend.complete(prompt.system, prompt.user)
    except AIInvocationError as exc:
        logger.warning("AI review degraded (%s): %s", type(exc).__name__, exc)
        return degraded_response(exc)

    review_mode = (prompt_config.focus if prompt_config else None) or "general"
    return normalize_response(raw, template_name=template.name, review_mode=review_mode)
