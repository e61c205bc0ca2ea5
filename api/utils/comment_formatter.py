from ai_review.models import ReviewComment
from common.models import GitHubComment

# Inline comments are anchored at a fixed diff position; no line mapping is done.
DEFAULT_POSITION = 1

_TYPE_EMOJI = {
    "suggestion": "💡",
    "warning": "⚠️",
    "error": "❌",
    "info": "ℹ️",
}


def to_github_comments(comments: list[ReviewComment], head_sha: str) -> list[GitHubComment]:
    """Map review comments 1:1 onto the review-comment wire shape, dropping blank ones."""
    return [
        GitHubComment(
            path=comment.file_name or "",
            position=DEFAULT_POSITION,
            body=comment.content,
            commit_id=head_sha or "",
        )
        for comment in comments
        if comment.content and comment.content.strip()
    ]


def format_review_body(comment_count: int) -> str:
    """Short review body used when the comments are posted inline."""
    return f"🤖 AI Code Review\n\n{comment_count} comments generated."


def _render_comment_line(index: int, comment: ReviewComment) -> str:
    emoji = _TYPE_EMOJI.get(comment.type, "")
    file_name = comment.file_name or "N/A"
    line = comment.line_number if comment.line_number is not None else "N/A"
    return (
        f"{index}. `{file_name}` - `Line: {line}` `{emoji} {comment.type.upper()}`\n"
        f"    {comment.content}"
    )


def format_summary_body(comments: list[ReviewComment]) -> str:
    """Single aggregated review body listing every comment (no inline comments)."""
    parts = [f"🤖 AI Code Reviewer\n\n{len(comments)} comments generated:"]
    for index, comment in enumerate(comments, start=1):
        parts.append(_render_comment_line(index, comment))
    return "\n\n".join(parts)
