"""Direct diff review and prompt template listing."""

import logging
from typing import get_args

from fastapi import APIRouter, Depends, HTTPException

from ai_review.completion import CompletionBackend
from ai_review.models import Detail, Focus, PromptConfig, ReviewResponse, Tone
from ai_review.prompts import PROMPT_TEMPLATES
from ai_review.review import review_code_with_ai
from api.dependencies import get_completion_backend
from api.models.schemas import PromptTemplateInfo, PromptTemplateList, ReviewRequest

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_DIFF_CHARS = 8000


def _validate_prompt_config(raw: dict | None) -> PromptConfig | None:
    """Check tone / focus / detail by hand so bad values answer 400 with a readable message."""
    if raw is None:
        return None

    checks = (("tone", Tone, "tone"), ("focus", Focus, "focus"), ("detail", Detail, "detail level"))
    for key, allowed_type, label in checks:
        value = raw.get(key)
        allowed = get_args(allowed_type)
        if value and value not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid {label}. Must be one of: {', '.join(allowed)}",
            )

    template = raw.get("template")
    return PromptConfig(
        template=template if isinstance(template, str) else None,
        tone=raw.get("tone") or None,
        focus=raw.get("focus") or None,
        detail=raw.get("detail") or None,
    )


@router.post("/review", response_model=ReviewResponse, response_model_exclude_none=True)
async def review_code(
    body: ReviewRequest,
    backend: CompletionBackend = Depends(get_completion_backend),
):
    """Review a raw diff and return normalized comments with metadata."""
    diff = body.diff
    if not isinstance(diff, str) or not diff.strip():
        raise HTTPException(
            status_code=400,
            detail="Invalid input: diff is required and must be a non-empty string",
        )
    if len(diff) > MAX_DIFF_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Diff is too large. Please provide a smaller code diff (max {MAX_DIFF_CHARS:,} characters).",
        )

    prompt_config = _validate_prompt_config(body.prompt_config)

    try:
        return await review_code_with_ai(diff.strip(), backend, prompt_config)
    except Exception as exc:
        logger.exception("Review request failed")
        raise HTTPException(status_code=500, detail="Failed to review code") from exc


@router.get("/prompt-templates", response_model=PromptTemplateList)
def list_prompt_templates():
    return PromptTemplateList(
        templates=[
            PromptTemplateInfo(key=key, name=template.name, description=template.description)
            for key, template in PROMPT_TEMPLATES.items()
        ]
    )
