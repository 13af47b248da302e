"""Speech model installation: status probe and streaming download."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

import httpx

from deskmate.bridge.contracts import (
    CompletedProgress,
    DownloadingProgress,
    DownloadProgress,
    FailedProgress,
    ModelStatus,
)
from deskmate.config import ASR_MODEL_FILES, ASR_MODEL_SIZES_MB, Settings

logger = logging.getLogger(__name__)

# Progress is published roughly every 100 KiB, plus once at the end of each file.
PROGRESS_STEP_BYTES = 100 * 1024

Emit = Callable[[DownloadProgress], None]


class AsrModelManager:
    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        files: tuple[str, ...] = ASR_MODEL_FILES,
    ) -> None:
        self.settings = settings
        self.files = files
        self._http_client = http_client

    @property
    def model_dir(self) -> Path:
        return self.settings.resolve_asr_model_path()

    def status(self) -> ModelStatus:
        model_name = self.settings.resolve_asr_model_name()
        model_dir = self.model_dir
        return ModelStatus(
            name=f"faster-whisper {model_name}",
            description="Whisper speech recognition (CTranslate2), multilingual",
            size_mb=ASR_MODEL_SIZES_MB.get(model_name, 0),
            is_installed=all((model_dir / name).exists() for name in self.files),
            model_dir=str(model_dir),
        )

    async def download(self, emit: Emit) -> None:
        model_dir = self.model_dir
        model_dir.mkdir(parents=True, exist_ok=True)

        client = self._http_client or httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        try:
            for file_name in self.files:
                try:
                    await self._download_file(client, file_name, emit)
                except Exception as exc:
                    emit(FailedProgress(file_name=file_name, error=str(exc)))
                    raise
        finally:
            if self._http_client is None:
                await client.aclose()

    async def _download_file(self, client: httpx.AsyncClient, file_name: str, emit: Emit) -> None:
        dest_path = self.model_dir / file_name
        if dest_path.exists():
            logger.info("Model file already present, skipping: %s", file_name)
            emit(CompletedProgress(file_name=file_name))
            return

        emit(DownloadingProgress(file_name=file_name))
        url = self.settings.asr_download_url(file_name)
        part_path = dest_path.with_name(dest_path.name + ".part")
        downloaded = 0
        total = 0

        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise RuntimeError(f"Download failed: HTTP {response.status_code} for {url}")
            total = int(response.headers.get("content-length") or 0)
            # Disk I/O stays off the event loop thread.
            handle = await asyncio.to_thread(part_path.open, "wb")
            try:
                async for chunk in response.aiter_bytes():
                    await asyncio.to_thread(handle.write, chunk)
                    previous = downloaded
                    downloaded += len(chunk)
                    if downloaded // PROGRESS_STEP_BYTES != previous // PROGRESS_STEP_BYTES or downloaded == total:
                        emit(
                            DownloadingProgress(
                                file_name=file_name,
                                downloaded_bytes=downloaded,
                                total_bytes=total,
                                progress=downloaded / total if total > 0 else 0.0,
                            )
                        )
            finally:
                await asyncio.to_thread(handle.close)

        await asyncio.to_thread(part_path.replace, dest_path)
        emit(
            CompletedProgress(
                file_name=file_name,
                downloaded_bytes=downloaded,
                total_bytes=total or downloaded,
            )
        )
        logger.info("Downloaded model file %s (%d bytes)", file_name, downloaded)
