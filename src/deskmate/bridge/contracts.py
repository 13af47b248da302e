"""Wire types exchanged over the command/event bridge.

Responses and push payloads cross the bridge as plain JSON-like data. The
controllers validate them here, at the boundary, so everything past this module
works with typed objects.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from deskmate.bridge.core import BridgeError

# Commands
INIT_KNOWLEDGE_BASE = "init_knowledge_base"
LIST_DOCUMENTS = "list_documents"
ADD_DOCUMENT = "add_document_to_kb"
DELETE_DOCUMENT = "delete_document"
SEARCH_KNOWLEDGE_BASE = "search_knowledge_base"
CHAT_WITH_AI = "chat_with_ai"
CHECK_ASR_MODEL = "check_asr_model"
DOWNLOAD_ASR_MODEL = "download_asr_model"
TRANSCRIBE_VIDEO = "transcribe_video"

# Push events
MODEL_DOWNLOAD_PROGRESS = "model-download-progress"

Role = Literal["user", "assistant", "system"]


class Document(BaseModel):
    id: str
    name: str
    category: str
    content: str
    source_path: str | None = None
    backup_path: str | None = None
    file_type: str = "txt"
    created_at: str


class SearchResult(BaseModel):
    document: Document
    relevance: float = Field(ge=0.0, le=1.0)
    snippet: str


class ChatMessage(BaseModel):
    role: Role
    content: str


class ModelStatus(BaseModel):
    name: str
    description: str
    size_mb: int
    is_installed: bool
    model_dir: str


class TranscriptResult(BaseModel):
    text: str


class _ProgressBase(BaseModel):
    file_name: str
    progress: float = 0.0
    downloaded_bytes: int = Field(default=0, ge=0)
    total_bytes: int = Field(default=0, ge=0)

    @field_validator("progress")
    @classmethod
    def _clamp_progress(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)


class DownloadingProgress(_ProgressBase):
    status: Literal["downloading"] = "downloading"


class CompletedProgress(_ProgressBase):
    status: Literal["completed"] = "completed"
    progress: float = 1.0


class FailedProgress(_ProgressBase):
    status: Literal["failed"] = "failed"
    error: str | None = None


DownloadProgress = Annotated[
    Union[DownloadingProgress, CompletedProgress, FailedProgress],
    Field(discriminator="status"),
]

DOWNLOAD_PROGRESS = TypeAdapter(DownloadProgress)
DOCUMENT = TypeAdapter(Document)
DOCUMENT_LIST = TypeAdapter(list[Document])
SEARCH_RESULT_LIST = TypeAdapter(list[SearchResult])
MODEL_STATUS = TypeAdapter(ModelStatus)
TRANSCRIPT_RESULT = TypeAdapter(TranscriptResult)
REPLY_TEXT = TypeAdapter(str)

T = TypeVar("T")


def parse_response(adapter: TypeAdapter[T], raw: Any, *, command: str) -> T:
    """Validate a bridge response, reporting malformed data as a bridge failure."""
    try:
        return adapter.validate_python(raw)
    except ValidationError as exc:
        raise BridgeError(f"Malformed response for '{command}': {exc}") from exc
