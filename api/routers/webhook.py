"""GitHub webhook and manual review trigger."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_app_settings, get_orchestrator
from api.models.schemas import ManualReviewRequest, ManualReviewResponse
from api.services.review_service import ReviewOrchestrator
from common.config import AppSettings
from common.errors import AuthenticationError, NotFoundError, PayloadError
from common.models import Failed, Posted

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure_response(outcome: Failed, settings: AppSettings) -> JSONResponse:
    content = {"error": "Internal server error", "stage": outcome.stage.value}
    if not settings.is_production:
        content["details"] = outcome.detail
    return JSONResponse(status_code=500, content=content)


@router.post("/github/webhook")
async def github_webhook(
    request: Request,
    orchestrator: ReviewOrchestrator = Depends(get_orchestrator),
    settings: AppSettings = Depends(get_app_settings),
):
    """
    Receive GitHub webhook deliveries.

    The signature is checked against the raw body before anything else;
    ``pull_request`` events (opened / synchronize / reopened) trigger a review.
    """
    raw_body = await request.body()
    try:
        outcome = await orchestrator.handle_webhook(
            raw_body,
            request.headers.get("x-hub-signature-256"),
            request.headers.get("x-github-event"),
        )
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail="Invalid signature") from exc
    except PayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if isinstance(outcome, Failed):
        return _failure_response(outcome, settings)
    return {"status": "ok", "outcome": outcome.model_dump(mode="json")}


@router.post("/github/manual-review", response_model=ManualReviewResponse)
async def manual_review(
    body: ManualReviewRequest,
    orchestrator: ReviewOrchestrator = Depends(get_orchestrator),
    settings: AppSettings = Depends(get_app_settings),
):
    """Review a pull request on demand and post a single summary review."""
    logger.info("Manual review request received for %s/%s#%s", body.owner, body.repo, body.pull_number)

    if not body.owner or not body.repo or not body.pull_number:
        raise HTTPException(status_code=400, detail="Missing required fields: owner, repo, pullNumber")

    try:
        outcome = await orchestrator.review_manual_request(body.owner, body.repo, body.pull_number)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if isinstance(outcome, Failed):
        return _failure_response(outcome, settings)

    if not isinstance(outcome, Posted):
        return ManualReviewResponse(
            success=True,
            comments_posted=0,
            message=f"No review posted to PR #{body.pull_number}: {outcome.reason.value}",
        )

    return ManualReviewResponse(
        success=True,
        comments_posted=outcome.count,
        message=(
            f"Successfully posted general review comment with {outcome.count} AI comments "
            f"to PR #{body.pull_number}"
        ),
        review_mode=outcome.review_mode,
    )
