from __future__ import annotations

import uuid
from typing import Any

import pytest

from deskmate.bridge import contracts
from deskmate.bridge.contracts import Document, SearchResult
from deskmate.bridge.core import LocalBridge
from deskmate.config import get_settings


class RecordingBridge(LocalBridge):
    """Local bridge that remembers every command it was asked to run."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, command: str, **params: Any) -> Any:
        self.calls.append((command, params))
        return await super().invoke(command, **params)

    def called(self, command: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == command]


class FakeKnowledgeBase:
    """Backend-side document list; commands named in ``failing`` raise."""

    def __init__(self) -> None:
        self.documents: list[Document] = []
        self.failing: set[str] = set()

    def _check(self, command: str) -> None:
        if command in self.failing:
            raise RuntimeError(f"{command} exploded")

    def register(self, bridge: LocalBridge) -> None:
        async def init_knowledge_base(db_path: str = "") -> None:
            self._check(contracts.INIT_KNOWLEDGE_BASE)

        async def list_documents() -> list[Document]:
            self._check(contracts.LIST_DOCUMENTS)
            return list(self.documents)

        async def add_document_to_kb(file_path=None, content=None, category="default") -> Document:
            self._check(contracts.ADD_DOCUMENT)
            if file_path is None and content is None:
                raise ValueError("Either a file path or content must be provided.")
            document = Document(
                id=uuid.uuid4().hex,
                name=file_path.rsplit("/", 1)[-1] if file_path else "Note",
                category=category,
                content=content or "",
                source_path=file_path,
                created_at="2026-01-01T00:00:00+00:00",
            )
            self.documents.append(document)
            return document

        async def delete_document(document_id: str) -> None:
            self._check(contracts.DELETE_DOCUMENT)
            before = len(self.documents)
            self.documents = [item for item in self.documents if item.id != document_id]
            if len(self.documents) == before:
                raise ValueError(f"Document not found: {document_id}")

        async def search_knowledge_base(query: str, limit: int) -> list[SearchResult]:
            self._check(contracts.SEARCH_KNOWLEDGE_BASE)
            hits = [item for item in self.documents if query.lower() in item.content.lower()]
            return [SearchResult(document=item, relevance=0.5, snippet=item.content[:40]) for item in hits[:limit]]

        bridge.register(contracts.INIT_KNOWLEDGE_BASE, init_knowledge_base)
        bridge.register(contracts.LIST_DOCUMENTS, list_documents)
        bridge.register(contracts.ADD_DOCUMENT, add_document_to_kb)
        bridge.register(contracts.DELETE_DOCUMENT, delete_document)
        bridge.register(contracts.SEARCH_KNOWLEDGE_BASE, search_knowledge_base)


@pytest.fixture
def bridge() -> RecordingBridge:
    return RecordingBridge()


@pytest.fixture
def knowledge_base(bridge: RecordingBridge) -> FakeKnowledgeBase:
    kb = FakeKnowledgeBase()
    kb.register(bridge)
    return kb


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DESKMATE_DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
