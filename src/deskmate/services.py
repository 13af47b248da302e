from __future__ import annotations

from dataclasses import dataclass

from deskmate.backend import LocalBackend
from deskmate.bridge.core import CommandBridge, LocalBridge
from deskmate.config import Settings, get_settings
from deskmate.controllers.conversations import ConversationSessionManager
from deskmate.controllers.documents import DocumentStoreController
from deskmate.controllers.model_download import DownloadProgressTracker
from deskmate.controllers.transcription import TranscriptionWorkflow


@dataclass(slots=True)
class AppContext:
    """Controllers built once per application and handed to every consumer."""

    settings: Settings
    bridge: CommandBridge
    documents: DocumentStoreController
    conversations: ConversationSessionManager
    model: DownloadProgressTracker
    transcription: TranscriptionWorkflow


def build_context(
    settings: Settings | None = None,
    bridge: CommandBridge | None = None,
) -> AppContext:
    settings = settings or get_settings()
    if bridge is None:
        settings.ensure_dirs()
        bridge = LocalBackend(settings).register(LocalBridge())

    documents = DocumentStoreController(bridge)
    return AppContext(
        settings=settings,
        bridge=bridge,
        documents=documents,
        conversations=ConversationSessionManager(bridge),
        model=DownloadProgressTracker(bridge),
        transcription=TranscriptionWorkflow(bridge, documents),
    )
