from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from deskmate.asr.models import AsrModelManager
from deskmate.audio.ffmpeg import get_ffmpeg_version, project_ffmpeg_candidates, resolve_ffmpeg_command
from deskmate.config import Settings


@dataclass(slots=True)
class DoctorCheck:
    name: str
    status: str
    detail: str


def _check_ffmpeg(settings: Settings) -> DoctorCheck:
    if settings.ffmpeg_path is not None and not settings.ffmpeg_path.exists():
        return DoctorCheck(
            "ffmpeg",
            "fail",
            f"Configured DESKMATE_FFMPEG_PATH does not exist: {settings.ffmpeg_path}",
        )
    version = get_ffmpeg_version(settings.ffmpeg_path)
    if version:
        return DoctorCheck("ffmpeg", "ok", version)
    local_candidates = ", ".join(str(path) for path in project_ffmpeg_candidates())
    return DoctorCheck(
        "ffmpeg",
        "fail",
        f"ffmpeg not found. Tried command '{resolve_ffmpeg_command(settings.ffmpeg_path)}'. "
        f"Install ffmpeg on PATH, place it in the project (candidates: {local_candidates}), "
        "or set DESKMATE_FFMPEG_PATH.",
    )


def _check_knowledge_base(settings: Settings) -> DoctorCheck:
    try:
        settings.ensure_dirs()
        with sqlite3.connect(settings.kb_path) as conn:
            conn.execute("CREATE VIRTUAL TABLE IF NOT EXISTS temp.doctor_fts USING fts5(text, tokenize = 'trigram')")
        return DoctorCheck("Knowledge base", "ok", f"SQLite with FTS5 trigram search writable at {settings.kb_path}")
    except Exception as exc:  # pragma: no cover - environment dependent
        return DoctorCheck("Knowledge base", "fail", f"Cannot open {settings.kb_path}: {exc}")


def _check_speech_model(settings: Settings) -> DoctorCheck:
    try:
        status = AsrModelManager(settings).status()
    except ValueError as exc:
        return DoctorCheck("Speech model", "fail", str(exc))
    if status.is_installed:
        return DoctorCheck("Speech model", "ok", f"{status.name} at {status.model_dir}")
    return DoctorCheck(
        "Speech model",
        "warn",
        f"{status.name} missing at {status.model_dir} (~{status.size_mb} MB). Run 'deskmate model download'.",
    )


def _check_llm(settings: Settings) -> DoctorCheck:
    model_path = settings.llm_model
    if model_path is None:
        return DoctorCheck(
            "LLM model",
            "warn",
            "No DESKMATE_LLM_MODEL set. Chat replies will be acknowledgements only.",
        )
    if Path(model_path).exists():
        return DoctorCheck("LLM model", "ok", f"Found: {model_path}")
    return DoctorCheck("LLM model", "warn", f"Configured path missing: {model_path}")


def run_doctor(settings: Settings) -> list[DoctorCheck]:
    return [
        _check_ffmpeg(settings),
        _check_knowledge_base(settings),
        _check_speech_model(settings),
        _check_llm(settings),
    ]
