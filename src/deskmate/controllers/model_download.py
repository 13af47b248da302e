from __future__ import annotations

import asyncio
import enum
import logging
import math
from typing import Any

from pydantic import ValidationError

from deskmate.bridge import contracts
from deskmate.bridge.contracts import (
    CompletedProgress,
    DownloadProgress,
    FailedProgress,
    ModelStatus,
)
from deskmate.bridge.core import BridgeError, CommandBridge, Subscription
from deskmate.config import ASR_TERMINAL_FILE

logger = logging.getLogger(__name__)


class ModelState(enum.Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    NOT_INSTALLED = "not_installed"
    DOWNLOADING = "downloading"
    INSTALLED = "installed"


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def to_percent(progress: float) -> int:
    return math.floor(progress * 100 + 0.5)


class DownloadProgressTracker:
    """Reduces ``model-download-progress`` events plus the status probe into UI state.

    Progress fields are last-write-wins: an out-of-order event only moves the
    displayed percentage, it never changes the state machine. Only the
    terminal file's completion or a failure event does that, and only while a
    download is in progress.
    """

    def __init__(self, bridge: CommandBridge, *, terminal_file: str = ASR_TERMINAL_FILE) -> None:
        self.bridge = bridge
        self.terminal_file = terminal_file
        self.state = ModelState.UNKNOWN
        self.status: ModelStatus | None = None
        self.current_file: str | None = None
        self.percent = 0
        self.byte_label: str | None = None
        self.error: str | None = None
        self.pending_probe: asyncio.Task[None] | None = None
        self._download_in_flight = False
        self._subscription: Subscription | None = None

    # subscription lifetime

    def open(self) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.bridge.listen(contracts.MODEL_DOWNLOAD_PROGRESS, self.handle_event)
        return self._subscription

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def __enter__(self) -> "DownloadProgressTracker":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # commands

    @property
    def is_installed(self) -> bool:
        return self.state is ModelState.INSTALLED

    async def check_model(self) -> None:
        # While a download command is outstanding its terminal event triggers the re-probe.
        if self._download_in_flight:
            return
        await self._probe()

    async def _probe(self) -> None:
        self.state = ModelState.CHECKING
        try:
            raw = await self.bridge.invoke(contracts.CHECK_ASR_MODEL)
            status = contracts.parse_response(contracts.MODEL_STATUS, raw, command=contracts.CHECK_ASR_MODEL)
        except BridgeError as exc:
            logger.warning("Model status probe failed: %s", exc)
            self.error = f"Model check failed: {exc}"
            self.state = ModelState.UNKNOWN
            return
        self.status = status
        self.state = ModelState.INSTALLED if status.is_installed else ModelState.NOT_INSTALLED

    async def download_model(self) -> None:
        if self.state is not ModelState.NOT_INSTALLED or self._download_in_flight:
            return
        self._download_in_flight = True
        self.state = ModelState.DOWNLOADING
        self.current_file = None
        self.percent = 0
        self.byte_label = None
        self.error = None
        try:
            await self.bridge.invoke(contracts.DOWNLOAD_ASR_MODEL)
        except BridgeError as exc:
            logger.warning("Model download failed: %s", exc)
            # A failure event may already have moved us out of DOWNLOADING with a
            # more specific message naming the file.
            if self.state is ModelState.DOWNLOADING:
                self.state = ModelState.NOT_INSTALLED
            if self.error is None:
                self.error = f"Download failed: {exc}"
        finally:
            self._download_in_flight = False

    # push events

    def handle_event(self, payload: Any) -> None:
        try:
            event: DownloadProgress = contracts.DOWNLOAD_PROGRESS.validate_python(payload)
        except ValidationError as exc:
            logger.warning("Ignoring malformed download progress event: %s", exc)
            return

        self.current_file = event.file_name
        self.percent = to_percent(event.progress)
        if event.total_bytes > 0:
            self.byte_label = f"{format_bytes(event.downloaded_bytes)} / {format_bytes(event.total_bytes)}"
        else:
            self.byte_label = None

        if self.state is not ModelState.DOWNLOADING:
            return
        if isinstance(event, FailedProgress):
            detail = f": {event.error}" if event.error else ""
            self.error = f"Download failed for {event.file_name}{detail}"
            self.state = ModelState.NOT_INSTALLED
        elif isinstance(event, CompletedProgress) and event.file_name == self.terminal_file:
            self._schedule_probe()

    def _schedule_probe(self) -> None:
        if self.pending_probe is not None and not self.pending_probe.done():
            return
        self.pending_probe = asyncio.get_running_loop().create_task(self._probe())
