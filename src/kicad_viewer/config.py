"""Configuration management using Pydantic Settings."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class TransportType(str, Enum):
    STDIO = "stdio"
    SSE = "sse"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class KiCadViewerConfig(BaseSettings):
    """Configuration for the KiCad viewer, loaded from environment variables."""

    model_config = {"env_prefix": "KICAD_VIEWER_", "env_file": ".env", "extra": "ignore"}

    transport: TransportType = Field(
        default=TransportType.STDIO,
        description="MCP transport: stdio or sse",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file. Defaults to ~/.kicad-viewer/logs/viewer.log",
    )
    sse_host: str = Field(default="127.0.0.1", description="SSE server host")
    sse_port: int = Field(default=8766, description="SSE server port")

    schematic_hit_tolerance: float = Field(
        default=2.0,
        description="Padding (mm) added to schematic bounding boxes for hit-testing",
    )
    board_hit_tolerance: float = Field(
        default=0.5,
        description="Padding (mm) added to board bounding boxes for hit-testing",
    )
    fit_margin: float = Field(
        default=2.0,
        description="Margin (mm) around the document when fitting it to the viewport",
    )
    viewport_width: float = Field(default=1280.0, description="Viewport width in pixels")
    viewport_height: float = Field(default=720.0, description="Viewport height in pixels")

    details_on_reselect: bool = Field(
        default=True,
        description="Selecting the selected entity again requests its detail view",
    )
    descend_on_reselect: bool = Field(
        default=True,
        description="Selecting a selected sheet instance again descends into it",
    )

    gitlab_base_url: str = Field(
        default="https://gitlab.com",
        description="Base URL of the GitLab instance used for remote files",
    )
    fetch_timeout: float = Field(default=30.0, description="Remote fetch timeout in seconds")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for name in (
            "schematic_hit_tolerance",
            "board_hit_tolerance",
            "viewport_width",
            "viewport_height",
            "fetch_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.fit_margin < 0:
            raise ValueError(f"fit_margin must not be negative, got {self.fit_margin}")
        if not self.gitlab_base_url.startswith(("http://", "https://")):
            raise ValueError(f"gitlab_base_url must be an http(s) URL: {self.gitlab_base_url}")
        self.gitlab_base_url = self.gitlab_base_url.rstrip("/")

    def get_data_dir(self) -> Path:
        """Get the platform-appropriate data directory."""
        if os.name == "nt":
            base = Path(os.environ.get("USERPROFILE", Path.home()))
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
        data_dir = base / ".kicad-viewer"
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def get_log_dir(self) -> Path:
        """Get the log directory, creating it if needed."""
        log_dir = self.get_data_dir() / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir

    def get_log_file_path(self) -> Path:
        """Resolve the log file path."""
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            return self.log_file
        return self.get_log_dir() / "viewer.log"
