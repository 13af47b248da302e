from __future__ import annotations

import os
import subprocess
from pathlib import Path


class FfmpegError(RuntimeError):
    """Raised when ffmpeg cannot be run or fails to decode the input."""


def _ffmpeg_executable_name() -> str:
    return "ffmpeg.exe" if os.name == "nt" else "ffmpeg"


def project_ffmpeg_candidates() -> list[Path]:
    exe_name = _ffmpeg_executable_name()
    cwd = Path.cwd()
    return [
        cwd / "resources" / "ffmpeg" / exe_name,
        cwd / "tools" / "ffmpeg" / "bin" / exe_name,
        cwd / "ffmpeg" / "bin" / exe_name,
    ]


def resolve_ffmpeg_command(ffmpeg_path: Path | None = None) -> str:
    if ffmpeg_path is not None:
        return str(Path(ffmpeg_path).expanduser())

    for candidate in project_ffmpeg_candidates():
        if candidate.exists():
            return str(candidate)

    return _ffmpeg_executable_name()


def get_ffmpeg_version(ffmpeg_path: Path | None = None) -> str | None:
    command = resolve_ffmpeg_command(ffmpeg_path)
    try:
        completed = subprocess.run(
            [command, "-version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return None
    if completed.returncode != 0:
        return None
    first_line = completed.stdout.splitlines()[0] if completed.stdout else "ffmpeg detected"
    return f"{first_line.strip()} (command: {command})"


def extract_audio(
    media_path: Path,
    output_wav: Path,
    ffmpeg_path: Path | None = None,
) -> Path:
    """Decode the audio track of ``media_path`` into mono 16 kHz PCM WAV."""
    command = resolve_ffmpeg_command(ffmpeg_path)
    output_wav.parent.mkdir(parents=True, exist_ok=True)
    try:
        subprocess.run(
            [
                command,
                "-hide_banner",
                "-loglevel",
                "error",
                "-y",
                "-i",
                str(media_path),
                "-vn",
                "-acodec",
                "pcm_s16le",
                "-ac",
                "1",
                "-ar",
                "16000",
                str(output_wav),
            ],
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise FfmpegError(
            f"ffmpeg not found (command: {command}). "
            "Install ffmpeg, place it under ./resources/ffmpeg/, or set DESKMATE_FFMPEG_PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.strip() if exc.stderr else "Unknown ffmpeg error."
        raise FfmpegError(f"Audio extraction failed: {stderr}") from exc
    return output_wav
