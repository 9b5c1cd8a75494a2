"""HTTP client for the Workbench API."""

from __future__ import annotations

import logging
import mimetypes
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import httpx

from workbench.config import Config, settings
from workbench.errors import ApiError, AuthenticationError, TransportError, detail_from_body
from workbench.models import (
    ChatResponse,
    CodeExplainRequest,
    CodeFixRequest,
    CodeGenerateRequest,
    CodeReviewRequest,
    ConversationDetail,
    ConversationSummary,
    ExportFormat,
    InstructionRequest,
    LoginRequest,
    Message,
    RegisterRequest,
    ResearchRequest,
    ScrapeRequest,
    TokenResponse,
    User,
)

logger = logging.getLogger(__name__)

# Calls slower than this are logged as warnings
SLOW_CALL_SECONDS = 1.0


class ApiClient:
    """
    Async HTTP client for the Workbench API.

    Injects the bearer token from the shared Config on every call and
    clears stored tokens on any 401.
    """

    def __init__(
        self,
        config: Config,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.base_url = config.api_url
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout if timeout is not None else settings.TIMEOUT),
            transport=transport,
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the underlying connection pool."""
        await self.http.aclose()

    def headers(self, accept: str = "application/json") -> dict[str, str]:
        """Build request headers."""
        headers = {"Accept": accept}
        token = self.config.access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def ensure_success(self, response: httpx.Response):
        """
        Raise for a non-2xx response whose body has already been read.

        A 401 clears stored tokens first.
        """
        if response.is_success:
            return

        try:
            detail = detail_from_body(response.json())
        except ValueError:
            detail = None

        if response.status_code == 401:
            logger.info("401 from %s, clearing stored tokens", response.request.url.path)
            self.config.clear_tokens()
            raise AuthenticationError(401, detail)

        raise ApiError(response.status_code, detail)

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, map transport failures and error statuses to client errors."""
        started = time.monotonic()
        try:
            response = await self.http.request(method, path, headers=self.headers(), **kwargs)
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {path} failed: {e}") from e

        elapsed = time.monotonic() - started
        if elapsed > SLOW_CALL_SECONDS:
            logger.warning("Slow API call: %s %s took %.2fs", method, path, elapsed)
        else:
            logger.debug("%s %s -> %d (%.2fs)", method, path, response.status_code, elapsed)

        self.ensure_success(response)
        return response

    async def get(self, path: str, params: dict | None = None) -> Any:
        """Make GET request."""
        res = await self.request("GET", path, params=params or {})
        return res.json()

    async def post(self, path: str, data: dict | None = None) -> Any:
        """Make POST request with a JSON body."""
        res = await self.request("POST", path, json=data if data is not None else {})
        return res.json()

    async def delete(self, path: str) -> None:
        """Make DELETE request."""
        await self.request("DELETE", path)

    # ── auth ────────────────────────────────────────────────────────────────

    async def _store_tokens(self, data: dict) -> TokenResponse:
        tokens = TokenResponse(**data)
        if tokens.access_token:
            self.config.set_tokens(tokens.access_token, tokens.refresh_token)
        return tokens

    async def login(self, email: str, password: str) -> TokenResponse:
        """Exchange credentials for tokens and store them."""
        body = LoginRequest(email=email, password=password)
        return await self._store_tokens(await self.post("/auth/login", body.model_dump()))

    async def register(self, email: str, password: str, name: str | None = None) -> TokenResponse:
        """Create an account and store the issued tokens."""
        body = RegisterRequest(email=email, password=password, name=name)
        return await self._store_tokens(await self.post("/auth/register", body.model_dump()))

    async def get_current_user(self) -> User:
        return User(**await self.get("/auth/me"))

    def logout(self):
        """Forget stored tokens. The backend keeps no session to revoke."""
        self.config.clear_tokens()

    # ── chat ────────────────────────────────────────────────────────────────

    async def list_conversations(
        self, limit: int = settings.CONVERSATION_PAGE_SIZE, offset: int = 0
    ) -> list[ConversationSummary]:
        rows = await self.get("/chat/conversations", params={"limit": limit, "offset": offset})
        return [ConversationSummary(**row) for row in rows]

    async def create_conversation(self, title: str | None = None) -> ConversationSummary:
        return ConversationSummary(**await self.post("/chat/conversations", {"title": title}))

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        return ConversationDetail(**await self.get(f"/chat/conversations/{conversation_id}"))

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.delete(f"/chat/conversations/{conversation_id}")

    async def send_message(self, conversation_id: str, content: str) -> Message:
        """
        Send a message without streaming.

        Returns the assistant message the backend persisted.
        """
        data = await self.post(
            f"/chat/conversations/{conversation_id}/messages", {"content": content}
        )
        return ChatResponse(**data).message

    # ── code assistant ─────────────────────────────────────────────────────

    async def generate_code(
        self, description: str, language: str = "python", context: str | None = None
    ) -> dict:
        body = CodeGenerateRequest(description=description, language=language, context=context)
        return await self.post("/code/generate", body.model_dump(exclude_none=True))

    async def review_code(self, code: str, language: str = "python", focus: str | None = None) -> dict:
        body = CodeReviewRequest(code=code, language=language, focus=focus)
        return await self.post("/code/review", body.model_dump(exclude_none=True))

    async def explain_code(self, code: str, language: str = "python", level: str = "beginner") -> dict:
        body = CodeExplainRequest(code=code, language=language, level=level)
        return await self.post("/code/explain", body.model_dump(exclude_none=True))

    async def fix_code(self, code: str, error: str, language: str = "python") -> dict:
        body = CodeFixRequest(code=code, error=error, language=language)
        return await self.post("/code/fix", body.model_dump(exclude_none=True))

    # ── research ───────────────────────────────────────────────────────────

    async def scrape_url(self, url: str) -> dict:
        return await self.post("/research/scrape", ScrapeRequest(url=url).model_dump())

    async def research_topic(
        self, query: str, urls: list[str] | None = None, max_sources: int = 5
    ) -> dict:
        body = ResearchRequest(query=query, urls=urls, max_sources=max_sources)
        return await self.post("/research/topic", body.model_dump(exclude_none=True))

    async def upload_research_file(self, path: Path) -> dict:
        return await self._upload("/research/upload", "file", [path])

    # ── extraction / processing ────────────────────────────────────────────

    async def extract_data(self, path: Path) -> dict:
        """Upload a document for extraction. The result may carry a job_id to poll."""
        return await self._upload("/extraction/extract", "file", [path])

    async def processing_status(self, job_id: str) -> dict:
        return await self.get(f"/processing/status/{job_id}")

    async def export_data(self, data: dict, fmt: ExportFormat) -> bytes:
        """Render extracted data server-side and return the file bytes."""
        res = await self.request("POST", f"/export/{fmt}", json=data)
        return res.content

    # ── batch ──────────────────────────────────────────────────────────────

    async def batch_upload(self, paths: list[Path], batch_name: str) -> dict:
        return await self._upload("/batch/upload", "files", paths, {"batch_name": batch_name})

    async def batch_status(self, batch_job_id: str) -> dict:
        return await self.get(f"/batch/status/{batch_job_id}")

    # ── instructions ───────────────────────────────────────────────────────

    async def process_instruction(self, instruction: str, extracted_data: dict) -> dict:
        body = InstructionRequest(instruction=instruction.strip(), extracted_data=extracted_data)
        return await self.post("/instruction/process", body.model_dump())

    async def preview_instruction(self, instruction: str, extracted_data: dict) -> dict:
        body = InstructionRequest(instruction=instruction.strip(), extracted_data=extracted_data)
        return await self.post("/instruction/preview", body.model_dump())

    async def instruction_examples(self) -> Any:
        return await self.get("/instruction/examples")

    async def _upload(
        self, path: str, field: str, files: list[Path], data: dict | None = None
    ) -> dict:
        """POST files as multipart/form-data."""
        with ExitStack() as stack:
            parts = []
            for file_path in files:
                file_path = Path(file_path)
                mime = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
                handle = stack.enter_context(open(file_path, "rb"))
                parts.append((field, (file_path.name, handle, mime)))
            res = await self.request("POST", path, files=parts, data=data or {})
        return res.json()
