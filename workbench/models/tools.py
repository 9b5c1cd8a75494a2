"""Request bodies for the one-shot tool endpoints.

Responses are tool-specific and handled as plain dicts.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ExportFormat = Literal["csv", "json", "excel", "xml", "html"]
ExplainLevel = Literal["beginner", "intermediate", "advanced"]


class CodeGenerateRequest(BaseModel):
    description: str
    language: str = "python"
    context: str | None = None


class CodeReviewRequest(BaseModel):
    code: str
    language: str = "python"
    focus: str | None = None


class CodeExplainRequest(BaseModel):
    code: str
    language: str = "python"
    level: ExplainLevel = "beginner"


class CodeFixRequest(BaseModel):
    code: str
    error: str
    language: str = "python"


class ScrapeRequest(BaseModel):
    url: str


class ResearchRequest(BaseModel):
    query: str
    urls: list[str] | None = None
    max_sources: int = 5


class InstructionRequest(BaseModel):
    """Natural-language transformation applied to extracted data."""

    instruction: str
    extracted_data: dict[str, Any] = Field(default_factory=dict)
