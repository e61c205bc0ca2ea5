"""
PR Review Service
=================
Drives one review run from an inbound event to a posted GitHub review:
  1. Verify the webhook signature (webhook runs only)
  2. Filter by pull request action
  3. Skip pull requests the bot already reviewed
  4. Fetch the diff
  5. Review it with the AI backend and normalize the result
  6. Map comments onto GitHub's review-comment shape
  7. Post the review

Every run ends in exactly one ReviewOutcome: Skipped, Posted or Failed.
Nothing is retried inside a run.
"""

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from ai_review.completion import CompletionBackend
from ai_review.models import DEFAULT_PROMPT_CONFIG, PromptConfig, ReviewResponse
from ai_review.review import review_code_with_ai
from api.services.github_service import PullRequestGateway
from api.utils.comment_formatter import (
    format_review_body,
    format_summary_body,
    to_github_comments,
)
from common.errors import AuthenticationError, NotFoundError, PayloadError
from common.github_auth import verify_webhook_signature
from common.models import (
    AppCredentials,
    Failed,
    FailureStage,
    Posted,
    PullRequestContext,
    ReviewOutcome,
    SkipReason,
    Skipped,
)

logger = logging.getLogger(__name__)

RELEVANT_ACTIONS = frozenset({"opened", "synchronize", "reopened"})
REVIEW_EVENT = "COMMENT"


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _context_from_event(payload: dict[str, Any], installation_id: Any) -> PullRequestContext:
    pull_request = _mapping(payload.get("pull_request"))
    repository = _mapping(payload.get("repository"))
    head_sha = _mapping(pull_request.get("head")).get("sha")
    try:
        return PullRequestContext(
            owner=_mapping(repository.get("owner")).get("login", ""),
            repo=repository.get("name", ""),
            pull_number=pull_request.get("number"),
            installation_id=installation_id,
            head_sha=head_sha if isinstance(head_sha, str) else "",
        )
    except ValidationError as exc:
        raise PayloadError(f"Malformed pull_request event: {exc.error_count()} invalid field(s)") from exc


class ReviewOrchestrator:
    """One canonical pipeline shared by webhook-triggered and manual runs."""

    def __init__(
        self,
        credentials: AppCredentials,
        gateway: PullRequestGateway,
        backend: CompletionBackend,
        bot_username: str,
        prompt_config: PromptConfig = DEFAULT_PROMPT_CONFIG,
    ):
        self.credentials = credentials
        self.gateway = gateway
        self.backend = backend
        self.bot_username = bot_username
        self.prompt_config = prompt_config

    # ── Entry points ──────────────────────────────────────────────────────

    async def handle_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
        event_type: Optional[str],
    ) -> ReviewOutcome:
        """
        Authenticate and dispatch a GitHub webhook delivery.

        Raises:
            AuthenticationError: signature missing or wrong; nothing else ran.
            PayloadError: the verified body is not a JSON object.
        """
        if not verify_webhook_signature(raw_body, signature, self.credentials.webhook_secret):
            logger.error("Invalid webhook signature")
            raise AuthenticationError("Invalid signature")

        logger.info("Received %s event", event_type)

        if event_type != "pull_request":
            logger.info("Unhandled event type: %s", event_type)
            return Skipped(reason=SkipReason.EVENT_NOT_HANDLED)

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise PayloadError("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise PayloadError("Webhook body is not a JSON object")

        return await self.review_pull_request_event(payload)

    async def review_pull_request_event(self, payload: dict[str, Any]) -> ReviewOutcome:
        action = payload.get("action", "")
        if not isinstance(action, str) or action not in RELEVANT_ACTIONS:
            logger.info("Skipping PR event with action: %s", action)
            return Skipped(reason=SkipReason.ACTION_NOT_RELEVANT)

        installation_id = _mapping(payload.get("installation")).get("id")
        if not installation_id:
            logger.error("No installation ID found in webhook payload")
            return Failed(
                stage=FailureStage.MISSING_INSTALLATION,
                detail="No installation ID found in webhook payload",
            )

        context = _context_from_event(payload, installation_id)
        logger.info("Processing %s (action=%s)", context.label, action)

        if await self.gateway.has_bot_reviewed(
            context.owner,
            context.repo,
            context.pull_number,
            context.installation_id,
            self.bot_username,
        ):
            logger.info("Bot has already reviewed %s", context.label)
            return Skipped(reason=SkipReason.ALREADY_REVIEWED)

        try:
            diff = await self.gateway.get_diff(
                context.owner, context.repo, context.pull_number, context.installation_id
            )
        except Exception as exc:
            logger.error("Diff fetch failed for %s: %s", context.label, exc)
            return Failed(stage=FailureStage.DIFF_FETCH, detail=str(exc))

        if not diff or not diff.strip():
            logger.info("No diff found for %s", context.label)
            return Skipped(reason=SkipReason.NO_DIFF)

        review = await self._review_diff(diff, context.label)
        if isinstance(review, Failed):
            return review
        if not review.comments:
            logger.info("No AI comments generated for %s", context.label)
            return Skipped(reason=SkipReason.NO_COMMENTS)

        github_comments = to_github_comments(review.comments, context.head_sha)
        if not github_comments:
            logger.info("All AI comments for %s were empty", context.label)
            return Skipped(reason=SkipReason.NO_COMMENTS)

        try:
            review_id = await self.gateway.create_review(
                context.owner,
                context.repo,
                context.pull_number,
                context.installation_id,
                event=REVIEW_EVENT,
                body=format_review_body(len(review.comments)),
                comments=github_comments,
                commit_id=context.head_sha or None,
            )
        except Exception as exc:
            logger.error("Posting review failed for %s: %s", context.label, exc)
            return Failed(stage=FailureStage.POST_REVIEW, detail=str(exc))

        logger.info("Successfully posted %d comments to %s", len(github_comments), context.label)
        return Posted(count=len(github_comments), review_id=review_id, review_mode=review.review_mode)

    async def review_manual_request(self, owner: str, repo: str, pull_number: int) -> ReviewOutcome:
        """
        Review a pull request on operator request and post one summary review.

        No signature or duplicate check: access to the manual endpoint is the
        authorization.

        Raises:
            NotFoundError: App not installed, pull request missing, or empty diff.
        """
        label = f"{owner}/{repo}#{pull_number}"

        try:
            installation_id = await self.gateway.resolve_installation(owner, repo)
        except Exception as exc:
            logger.error("Installation lookup failed for %s/%s: %s", owner, repo, exc)
            return Failed(stage=FailureStage.INSTALLATION_LOOKUP, detail=str(exc))
        if installation_id is None:
            raise NotFoundError("GitHub App not installed on this repository")
        logger.info("Installation ID for %s/%s: %s", owner, repo, installation_id)

        try:
            details = await self.gateway.get_details(owner, repo, pull_number, installation_id)
        except NotFoundError:
            raise
        except Exception as exc:
            logger.error("Fetching PR details failed for %s: %s", label, exc)
            return Failed(stage=FailureStage.PR_DETAILS, detail=str(exc))
        logger.info("Head SHA for %s: %s", label, details.head_sha)

        try:
            diff = await self.gateway.get_diff(owner, repo, pull_number, installation_id)
        except Exception as exc:
            logger.error("Diff fetch failed for %s: %s", label, exc)
            return Failed(stage=FailureStage.DIFF_FETCH, detail=str(exc))
        if not diff or not diff.strip():
            raise NotFoundError("No diff found for this PR")

        review = await self._review_diff(diff, label)
        if isinstance(review, Failed):
            return review
        if not review.comments:
            return Skipped(reason=SkipReason.NO_COMMENTS)

        try:
            review_id = await self.gateway.create_review(
                owner,
                repo,
                pull_number,
                installation_id,
                event=REVIEW_EVENT,
                body=format_summary_body(review.comments),
                comments=[],
            )
        except Exception as exc:
            logger.error("Posting summary review failed for %s: %s", label, exc)
            return Failed(stage=FailureStage.POST_REVIEW, detail=str(exc))

        logger.info("General review comment posted to %s", label)
        return Posted(count=len(review.comments), review_id=review_id, review_mode=review.review_mode)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _review_diff(self, diff: str, label: str) -> ReviewResponse | Failed:
        try:
            review = await review_code_with_ai(diff, self.backend, self.prompt_config)
        except Exception as exc:
            logger.exception("AI review failed for %s", label)
            return Failed(stage=FailureStage.AI_REVIEW, detail=str(exc))
        logger.info(
            "AI review for %s: %d comments (mode=%s)",
            label,
            len(review.comments),
            review.review_mode,
        )
        return review
