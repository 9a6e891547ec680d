"""Centralized configuration for looker using Pydantic Settings."""

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``LOOKER_*`` environment variables.

    Values are validated at construction; an optional ``.env`` file in the
    working directory is read as well.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOOKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Index location
    index_dir: str = Field(default=".looker", description="Index directory, relative to the root unless absolute")

    # Discovery
    extensions: str = Field(default="c,h", description="Comma-separated source file suffixes to index")
    skip_dirs: str = Field(default=".git,.hg,.svn", description="Comma-separated directory names never descended")
    max_file_bytes: int = Field(
        default=16 * 1024 * 1024, ge=1, description="Files larger than this are skipped as too_large"
    )

    # Build
    max_workers: int = Field(default=0, ge=0, description="Tokenizer threads; 0 picks min(32, cpu_count + 4)")

    # Search
    search_limit: int = Field(default=0, ge=0, description="Default cap on rendered hits; 0 means unlimited")

    # Logging
    log_level: str = Field(default="warning", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of plain text")

    # Telemetry export
    otlp_endpoint: str | None = Field(
        default=None, description="OTLP/HTTP traces endpoint, e.g. http://localhost:4318/v1/traces; unset disables export"
    )
    otlp_timeout_s: float = Field(default=10.0, gt=0, description="OTLP exporter timeout in seconds")
    metrics_file: str | None = Field(
        default=None, description="Write Prometheus metrics here after each command (textfile collector format)"
    )

    @model_validator(mode="after")
    def _check_extensions(self) -> "Settings":
        if not self.get_extensions():
            raise ValueError("LOOKER_EXTENSIONS must name at least one file suffix (e.g. 'c,h')")
        return self

    def get_extensions(self) -> list[str]:
        """Get normalized source suffixes, each with a leading dot.

        Returns:
            Lower-cased suffixes such as ``[".c", ".h"]``
        """
        suffixes = []
        for raw in self.extensions.split(","):
            suffix = raw.strip().lower()
            if not suffix:
                continue
            suffixes.append(suffix if suffix.startswith(".") else f".{suffix}")
        return suffixes

    def get_skip_dirs(self) -> list[str]:
        """Get directory names excluded from discovery."""
        if not self.skip_dirs:
            return []
        return [name.strip() for name in self.skip_dirs.split(",") if name.strip()]

    def resolve_index_dir(self, root: str | Path) -> Path:
        """Resolve the index directory against a codebase root."""
        index_dir = Path(self.index_dir).expanduser()
        if index_dir.is_absolute():
            return index_dir
        return Path(root) / index_dir

    def resolved_max_workers(self) -> int:
        if self.max_workers:
            return self.max_workers
        return min(32, (os.cpu_count() or 1) + 4)

    def resolved_search_limit(self) -> int | None:
        return self.search_limit or None
