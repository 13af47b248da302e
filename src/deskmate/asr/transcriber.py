from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Callable

from deskmate.asr.base import ASRBackend
from deskmate.asr.faster_whisper_backend import FasterWhisperBackend
from deskmate.audio.ffmpeg import extract_audio
from deskmate.bridge.contracts import TranscriptResult
from deskmate.config import Settings

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Path], ASRBackend]


class VideoTranscriber:
    """Media file -> extracted WAV -> speech model -> transcript text."""

    def __init__(self, settings: Settings, backend_factory: BackendFactory | None = None) -> None:
        self.settings = settings
        self._backend_factory = backend_factory or self._default_backend
        self._backend: ASRBackend | None = None

    def _default_backend(self, model_path: Path) -> ASRBackend:
        return FasterWhisperBackend(model_path, compute_type=self.settings.asr_compute_type)

    def _get_backend(self) -> ASRBackend:
        if self._backend is None:
            model_path = self.settings.resolve_asr_model_path()
            if not model_path.exists():
                raise FileNotFoundError(
                    f"Speech model is not installed at {model_path}. Download it before transcribing."
                )
            self._backend = self._backend_factory(model_path)
        return self._backend

    def transcribe(self, video_path: Path, language: str | None = None) -> TranscriptResult:
        if not video_path.exists():
            raise FileNotFoundError(f"Media file does not exist: {video_path}")

        backend = self._get_backend()
        run_dir = self.settings.temp_dir / f"transcribe_{uuid.uuid4().hex[:8]}"
        run_dir.mkdir(parents=True, exist_ok=True)
        try:
            wav_path = extract_audio(video_path, run_dir / "audio_16k.wav", ffmpeg_path=self.settings.ffmpeg_path)
            result = backend.transcribe(wav_path, language=language)
        finally:
            shutil.rmtree(run_dir, ignore_errors=True)

        logger.info(
            "Transcribed %s: %d segments, language=%s",
            video_path.name,
            len(result.segments),
            result.language or "unknown",
        )
        return TranscriptResult(text=result.text)
