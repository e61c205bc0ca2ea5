"""Pydantic models for AI review requests and results."""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

CommentType = Literal["error", "warning", "suggestion", "info"]
VALID_COMMENT_TYPES: tuple[str, ...] = ("error", "warning", "suggestion", "info")

Tone = Literal["professional", "friendly", "strict"]
Focus = Literal["general", "security", "performance", "clean-code"]
Detail = Literal["brief", "detailed", "comprehensive"]


class ReviewComment(BaseModel):
    """One normalized review comment."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    file_name: Optional[str] = Field(None, alias="fileName")
    line_number: Optional[int] = Field(None, alias="lineNumber")
    content: str
    type: CommentType = "suggestion"


class ReviewMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_used: str = Field(alias="templateUsed")
    review_mode: str = Field(alias="reviewMode")
    total_comments: int = Field(alias="totalComments")
    comment_types: dict[str, int] = Field(default_factory=dict, alias="commentTypes")


class ReviewResponse(BaseModel):
    comments: list[ReviewComment] = Field(default_factory=list)
    metadata: Optional[ReviewMetadata] = None

    @property
    def review_mode(self) -> Optional[str]:
        return self.metadata.review_mode if self.metadata else None


class PromptConfig(BaseModel):
    """Prompt selection: a named template, or a custom tone/focus/detail mix."""

    template: Optional[str] = None
    tone: Optional[Tone] = None
    focus: Optional[Focus] = None
    detail: Optional[Detail] = None


DEFAULT_PROMPT_CONFIG = PromptConfig(
    template="professional",
    tone="professional",
    focus="general",
    detail="detailed",
)


# ── Parse result of the raw completion text ───────────────────────────────────


class Valid(BaseModel):
    kind: Literal["valid"] = "valid"
    payload: Any


class Malformed(BaseModel):
    kind: Literal["malformed"] = "malformed"
    raw_text: str


ParseResult = Union[Valid, Malformed]
