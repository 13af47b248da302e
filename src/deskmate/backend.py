"""In-process backend serving every bridge command."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Any

import httpx

from deskmate.asr.models import AsrModelManager
from deskmate.asr.transcriber import VideoTranscriber
from deskmate.bridge import contracts
from deskmate.bridge.contracts import ChatMessage, Document, ModelStatus, SearchResult, TranscriptResult
from deskmate.bridge.core import LocalBridge
from deskmate.config import Settings
from deskmate.nlp.chat import ChatEngine
from deskmate.storage.db import KnowledgeBaseDB
from deskmate.storage.loaders import file_type_for, load_document_text

logger = logging.getLogger(__name__)

TRANSCRIPT_NAME = "Video transcript"
VIDEO_TRANSCRIPT_CATEGORY = "video-transcript"
BACKUP_DIRNAME = "kb_files"


class LocalBackend:
    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        transcriber: VideoTranscriber | None = None,
        chat_engine: ChatEngine | None = None,
    ) -> None:
        self.settings = settings
        self.kb: KnowledgeBaseDB | None = None
        self.backup_dir: Path | None = None
        self.models = AsrModelManager(settings, http_client=http_client)
        self.transcriber = transcriber or VideoTranscriber(settings)
        self.chat_engine = chat_engine or ChatEngine(
            settings.llm_model,
            search=self._search_if_ready,
            context_limit=settings.chat_context_limit,
        )
        self._bridge: LocalBridge | None = None

    def register(self, bridge: LocalBridge) -> LocalBridge:
        self._bridge = bridge
        bridge.register(contracts.INIT_KNOWLEDGE_BASE, self.init_knowledge_base)
        bridge.register(contracts.LIST_DOCUMENTS, self.list_documents)
        bridge.register(contracts.ADD_DOCUMENT, self.add_document)
        bridge.register(contracts.DELETE_DOCUMENT, self.delete_document)
        bridge.register(contracts.SEARCH_KNOWLEDGE_BASE, self.search_knowledge_base)
        bridge.register(contracts.CHAT_WITH_AI, self.chat_with_ai)
        bridge.register(contracts.CHECK_ASR_MODEL, self.check_asr_model)
        bridge.register(contracts.DOWNLOAD_ASR_MODEL, self.download_asr_model)
        bridge.register(contracts.TRANSCRIBE_VIDEO, self.transcribe_video)
        return bridge

    # knowledge base

    def _require_kb(self) -> KnowledgeBaseDB:
        if self.kb is None:
            raise RuntimeError("Knowledge base is not initialized.")
        return self.kb

    def _search_if_ready(self, query: str, limit: int) -> list[SearchResult]:
        if self.kb is None:
            return []
        return self.kb.search(query, limit=limit)

    def init_knowledge_base(self, db_path: str = "") -> None:
        path = Path(db_path) if db_path else self.settings.kb_path
        kb = KnowledgeBaseDB(path)
        kb.initialize()
        self.kb = kb
        self.backup_dir = path.parent / BACKUP_DIRNAME
        logger.info("Knowledge base ready at %s", path)

    def list_documents(self) -> list[Document]:
        return self._require_kb().list_documents()

    def add_document(
        self,
        file_path: str | None = None,
        content: str | None = None,
        category: str = "default",
    ) -> Document:
        kb = self._require_kb()
        if file_path:
            path = Path(file_path)
            # Inline content wins over the file, e.g. a transcript for a video path.
            text = content if content is not None else load_document_text(path)
            name, source_path, file_type = path.name, str(path), file_type_for(path)
        elif content is not None:
            path = None
            text = content
            name = TRANSCRIPT_NAME if category == VIDEO_TRANSCRIPT_CATEGORY else "Note"
            source_path, file_type = None, "txt"
        else:
            raise ValueError("Either a file path or content must be provided.")

        document_id = str(uuid.uuid4())
        return kb.add_document(
            document_id=document_id,
            name=name,
            category=category,
            content=text,
            source_path=source_path,
            file_type=file_type,
            backup_path=self._write_backup(document_id, path, text, category),
        )

    def _write_backup(self, document_id: str, source: Path | None, text: str, category: str) -> str | None:
        """Keep a copy of the source file, or the text itself, next to the database."""

        if self.backup_dir is None:
            return None
        prefix = document_id[:8]
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            if source is not None and source.is_file():
                backup = self.backup_dir / f"{prefix}_{source.name}"
                shutil.copy2(source, backup)
                if category == VIDEO_TRANSCRIPT_CATEGORY:
                    (self.backup_dir / f"{prefix}_{source.stem}.txt").write_text(text, encoding="utf-8")
            else:
                backup = self.backup_dir / f"{prefix}_transcript.txt"
                backup.write_text(text, encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not back up document %s: %s", document_id, exc)
            return None
        return str(backup)

    def delete_document(self, document_id: str) -> None:
        self._require_kb().delete_document(document_id)

    def search_knowledge_base(self, query: str, limit: int = 5) -> list[SearchResult]:
        return self._require_kb().search(query, limit=limit)

    # chat

    def chat_with_ai(self, messages: list[dict[str, Any]]) -> str:
        parsed = [ChatMessage.model_validate(item) for item in messages]
        return self.chat_engine.reply(parsed)

    # speech model and transcription

    def check_asr_model(self) -> ModelStatus:
        return self.models.status()

    async def download_asr_model(self) -> None:
        bridge = self._bridge

        def emit(event: contracts.DownloadProgress) -> None:
            if bridge is not None:
                bridge.emit(contracts.MODEL_DOWNLOAD_PROGRESS, event)

        await self.models.download(emit)

    def transcribe_video(self, video_path: str) -> TranscriptResult:
        return self.transcriber.transcribe(Path(video_path))
