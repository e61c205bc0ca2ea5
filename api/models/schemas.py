from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ManualReviewRequest(BaseModel):
    """Body of the manual review trigger. Fields are checked by the handler (400, not 422)."""

    model_config = ConfigDict(populate_by_name=True)

    owner: Optional[str] = None
    repo: Optional[str] = None
    pull_number: Optional[int] = Field(None, alias="pullNumber")


class ManualReviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    comments_posted: int = Field(serialization_alias="commentsPosted")
    message: str
    review_mode: Optional[str] = Field(None, serialization_alias="reviewMode")


class ReviewRequest(BaseModel):
    """Body of the direct diff review endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    diff: Any = None
    prompt_config: Optional[dict[str, Any]] = Field(None, alias="promptConfig")


class PromptTemplateInfo(BaseModel):
    key: str
    name: str
    description: str


class PromptTemplateList(BaseModel):
    templates: list[PromptTemplateInfo]
    message: str = "Available prompt templates"
