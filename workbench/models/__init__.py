"""
Pydantic models for Workbench.

All data shapes defined here. No imports from services or cli.
"""

from workbench.models.conversation import (
    ChatResponse,
    ConversationDetail,
    ConversationSummary,
    Message,
    TokenStats,
)
from workbench.models.tools import (
    CodeExplainRequest,
    CodeFixRequest,
    CodeGenerateRequest,
    CodeReviewRequest,
    ExportFormat,
    InstructionRequest,
    ResearchRequest,
    ScrapeRequest,
)
from workbench.models.user import LoginRequest, RegisterRequest, TokenResponse, User

__all__ = [
    # Conversation models
    "ChatResponse",
    "ConversationDetail",
    "ConversationSummary",
    "Message",
    "TokenStats",
    # User / auth models
    "LoginRequest",
    "RegisterRequest",
    "TokenResponse",
    "User",
    # Tool request models
    "CodeExplainRequest",
    "CodeFixRequest",
    "CodeGenerateRequest",
    "CodeReviewRequest",
    "ExportFormat",
    "InstructionRequest",
    "ResearchRequest",
    "ScrapeRequest",
]
