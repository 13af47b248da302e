from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ASR_MODEL_ALIASES: dict[str, str] = {
    "small": "small",
    "medium": "medium",
    "large": "large-v3",
}

ASR_MODEL_SIZES_MB: dict[str, int] = {
    "small": 484,
    "medium": 1530,
    "large-v3": 3090,
}

# Download order matters: the last file is the terminal file whose completion
# event marks the install set as complete.
ASR_MODEL_FILES: tuple[str, ...] = (
    "model.bin",
    "tokenizer.json",
    "config.json",
    "vocabulary.txt",
)
ASR_TERMINAL_FILE = ASR_MODEL_FILES[-1]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".deskmate")
    models_dir: Path | None = None
    temp_dir: Path | None = None
    kb_filename: str = "knowledge_base.db"

    asr_model: str = "small"
    asr_compute_type: str = "int8"
    asr_download_base_url: str = "https://huggingface.co/Systran/faster-whisper-{model}/resolve/main"
    ffmpeg_path: Path | None = None

    llm_model: Path | None = None
    chat_context_limit: int = 3

    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="DESKMATE_", extra="ignore")

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if "models_dir" not in self.model_fields_set or self.models_dir is None:
            self.models_dir = self.data_dir / "models"
        if "temp_dir" not in self.model_fields_set or self.temp_dir is None:
            self.temp_dir = self.data_dir / "tmp"
        return self

    @property
    def kb_path(self) -> Path:
        return self.data_dir / self.kb_filename

    def ensure_dirs(self) -> None:
        for path in (self.data_dir, self.models_dir, self.temp_dir):
            path.mkdir(parents=True, exist_ok=True)

    def resolve_asr_model_name(self, model_name: str | None = None) -> str:
        key = (model_name or self.asr_model).lower().strip()
        if key not in ASR_MODEL_ALIASES:
            allowed = ", ".join(sorted(ASR_MODEL_ALIASES))
            raise ValueError(f"Unsupported ASR model '{model_name or self.asr_model}'. Allowed: {allowed}")
        return ASR_MODEL_ALIASES[key]

    def resolve_asr_model_path(self, model_name: str | None = None) -> Path:
        return self.models_dir / "faster-whisper" / self.resolve_asr_model_name(model_name)

    def asr_download_url(self, file_name: str, model_name: str | None = None) -> str:
        base = self.asr_download_base_url.format(model=self.resolve_asr_model_name(model_name))
        return f"{base.rstrip('/')}/{file_name}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
