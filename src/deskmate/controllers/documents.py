from __future__ import annotations

import enum
import logging

from deskmate.bridge import contracts
from deskmate.bridge.contracts import Document, SearchResult
from deskmate.bridge.core import BridgeError, CommandBridge

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
DEFAULT_CATEGORY = "default"


class StoreState(enum.Enum):
    IDLE = "idle"
    ADDING = "adding"


class DocumentStoreBusyError(RuntimeError):
    """Raised when an add is attempted while another add is outstanding."""


class DocumentStoreController:
    """Client-side view over the backend knowledge base.

    The local document list is only ever replaced by a full snapshot fetched
    from the backend, never patched locally after a mutation. ``last_error``
    describes the most recent operation itself; a failed snapshot fetch after
    a successful mutation lands in ``refresh_error`` instead.
    """

    def __init__(self, bridge: CommandBridge) -> None:
        self.bridge = bridge
        self.documents: list[Document] = []
        self.search_results: list[SearchResult] = []
        self.state = StoreState.IDLE
        self.last_error: str | None = None
        self.refresh_error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state is StoreState.ADDING

    async def init(self, db_path: str = "") -> None:
        self.last_error = None
        try:
            await self.bridge.invoke(contracts.INIT_KNOWLEDGE_BASE, db_path=db_path)
        except BridgeError as exc:
            logger.warning("Failed to init knowledge base: %s", exc)
            self.last_error = str(exc)
            return
        if not await self._refresh():
            self.last_error = self.refresh_error

    async def list_documents(self) -> None:
        self.last_error = None
        if not await self._refresh():
            self.last_error = self.refresh_error

    async def _refresh(self) -> bool:
        try:
            raw = await self.bridge.invoke(contracts.LIST_DOCUMENTS)
            documents = contracts.parse_response(contracts.DOCUMENT_LIST, raw, command=contracts.LIST_DOCUMENTS)
        except BridgeError as exc:
            logger.warning("Failed to list documents: %s", exc)
            self.refresh_error = str(exc)
            return False
        self.refresh_error = None
        self.documents = documents
        return True

    async def add(
        self,
        source_path: str | None = None,
        content: str | None = None,
        category: str = DEFAULT_CATEGORY,
    ) -> None:
        if self.state is not StoreState.IDLE:
            raise DocumentStoreBusyError("Another document is still being added.")
        self.state = StoreState.ADDING
        self.last_error = None
        try:
            await self.bridge.invoke(
                contracts.ADD_DOCUMENT,
                file_path=source_path,
                content=content,
                category=category,
            )
            # A failed refresh here leaves the list stale but the add itself succeeded.
            await self._refresh()
        except BridgeError as exc:
            logger.error("Failed to add document: %s", exc)
            self.last_error = str(exc)
            raise
        finally:
            self.state = StoreState.IDLE

    async def remove(self, document_id: str) -> bool:
        """Delete a document; True when the backend deleted it, even if the refresh failed."""
        self.last_error = None
        try:
            await self.bridge.invoke(contracts.DELETE_DOCUMENT, document_id=document_id)
        except BridgeError as exc:
            logger.warning("Failed to delete document %s: %s", document_id, exc)
            self.last_error = str(exc)
            return False
        await self._refresh()
        return True

    async def search(self, query: str) -> None:
        if not query.strip():
            return
        self.last_error = None
        try:
            raw = await self.bridge.invoke(
                contracts.SEARCH_KNOWLEDGE_BASE,
                query=query,
                limit=SEARCH_LIMIT,
            )
            results = contracts.parse_response(
                contracts.SEARCH_RESULT_LIST, raw, command=contracts.SEARCH_KNOWLEDGE_BASE
            )
        except BridgeError as exc:
            logger.warning("Search failed: %s", exc)
            self.last_error = str(exc)
            return
        self.search_results = results
