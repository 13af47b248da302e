from __future__ import annotations

import enum
import logging
from pathlib import Path

from deskmate.bridge import contracts
from deskmate.bridge.core import BridgeError, CommandBridge
from deskmate.controllers.documents import DocumentStoreBusyError, DocumentStoreController

logger = logging.getLogger(__name__)

VIDEO_TRANSCRIPT_CATEGORY = "video-transcript"


class TranscriptionState(enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    TRANSCRIBING = "transcribing"
    REVIEW = "review"
    COMMITTING = "committing"


class TranscriptionWorkflow:
    """Drives select media -> transcribe -> review -> commit.

    A failed transcription still lands in REVIEW, with the error as the
    transcript text, so the operator keeps the dialog context. Committing goes
    through the document store's ``add`` like any other document.
    """

    def __init__(self, bridge: CommandBridge, documents: DocumentStoreController) -> None:
        self.bridge = bridge
        self.documents = documents
        self.state = TranscriptionState.IDLE
        self.media_path: Path | None = None
        self.transcript = ""
        self.error: str | None = None

    @property
    def is_busy(self) -> bool:
        return self.state in (TranscriptionState.TRANSCRIBING, TranscriptionState.COMMITTING)

    @property
    def can_commit(self) -> bool:
        return self.state is TranscriptionState.REVIEW and bool(self.transcript.strip())

    def _reset(self) -> None:
        self.media_path = None
        self.transcript = ""
        self.error = None

    def open(self) -> None:
        if self.state is not TranscriptionState.IDLE:
            return
        self._reset()
        self.state = TranscriptionState.SELECTING

    def cancel(self) -> bool:
        """Close the dialog; refused while a backend call is outstanding."""
        if self.is_busy:
            return False
        self._reset()
        self.state = TranscriptionState.IDLE
        return True

    async def select(self, media_path: str | Path) -> None:
        if self.state not in (TranscriptionState.SELECTING, TranscriptionState.REVIEW):
            return
        self.media_path = Path(media_path)
        self.transcript = ""
        self.error = None
        self.state = TranscriptionState.TRANSCRIBING
        try:
            raw = await self.bridge.invoke(contracts.TRANSCRIBE_VIDEO, video_path=str(self.media_path))
            result = contracts.parse_response(contracts.TRANSCRIPT_RESULT, raw, command=contracts.TRANSCRIBE_VIDEO)
        except BridgeError as exc:
            logger.warning("Transcription of %s failed: %s", self.media_path, exc)
            self.error = f"Transcription failed: {exc}"
            self.transcript = self.error
        else:
            self.transcript = result.text
        self.state = TranscriptionState.REVIEW

    def edit(self, text: str) -> None:
        if self.state is TranscriptionState.REVIEW:
            self.transcript = text

    async def commit(self) -> bool:
        if not self.can_commit:
            return False
        self.state = TranscriptionState.COMMITTING
        self.error = None
        try:
            await self.documents.add(
                source_path=str(self.media_path) if self.media_path is not None else None,
                content=self.transcript,
                category=VIDEO_TRANSCRIPT_CATEGORY,
            )
        except (BridgeError, DocumentStoreBusyError) as exc:
            self.error = f"Saving to the knowledge base failed: {exc}"
            self.state = TranscriptionState.REVIEW
            return False
        self._reset()
        self.state = TranscriptionState.IDLE
        return True
