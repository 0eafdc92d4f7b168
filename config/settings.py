"""
ScorePad Cloud Configuration Module

Central configuration for the cloud backup engine: OAuth client settings,
Drive endpoints, folder naming and trash retention.
"""

import json
import logging
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


DEFAULT_SCOPES = "https://www.googleapis.com/auth/drive.file"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[Config] Ignoring non-integer %s=%r", name, raw)
        return default


@dataclass
class CloudConfig:
    """Google Drive access and backup layout configuration."""
    client_id: Optional[str] = field(
        default_factory=lambda: os.environ.get("SCOREPAD_CLIENT_ID")
    )
    client_secret: Optional[str] = field(
        default_factory=lambda: os.environ.get("SCOREPAD_CLIENT_SECRET")
    )
    scopes: str = DEFAULT_SCOPES

    # Credentials: a pre-issued bearer token, or a refresh token to mint one
    access_token: Optional[str] = field(
        default_factory=lambda: os.environ.get("SCOREPAD_DRIVE_TOKEN")
    )
    refresh_token: Optional[str] = field(
        default_factory=lambda: os.environ.get("SCOREPAD_REFRESH_TOKEN")
    )

    api_base_url: str = "https://www.googleapis.com/drive/v3"
    upload_base_url: str = "https://www.googleapis.com/upload/drive/v3"
    token_url: str = "https://oauth2.googleapis.com/token"
    revoke_url: str = "https://oauth2.googleapis.com/revoke"

    root_folder_name: str = "BoardGameScorePad"
    trash_retention_count: int = field(
        default_factory=lambda: _env_int("SCOREPAD_TRASH_RETENTION", 20)
    )
    page_size: int = 1000

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "scopes": self.scopes,
            "refresh_token": self.refresh_token,
            "api_base_url": self.api_base_url,
            "upload_base_url": self.upload_base_url,
            "root_folder_name": self.root_folder_name,
            "trash_retention_count": self.trash_retention_count,
            "page_size": self.page_size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CloudConfig':
        config = cls()
        # Environment wins over the saved file for secrets
        if data.get("client_id") and not config.client_id:
            config.client_id = data["client_id"]
        if data.get("refresh_token") and not config.refresh_token:
            config.refresh_token = data["refresh_token"]
        config.scopes = data.get("scopes", config.scopes)
        config.api_base_url = data.get("api_base_url", config.api_base_url)
        config.upload_base_url = data.get("upload_base_url", config.upload_base_url)
        config.root_folder_name = data.get("root_folder_name", config.root_folder_name)
        if "SCOREPAD_TRASH_RETENTION" not in os.environ:
            config.trash_retention_count = data.get(
                "trash_retention_count", config.trash_retention_count
            )
        config.page_size = data.get("page_size", config.page_size)
        return config


@dataclass
class ScorePadConfig:
    """Main configuration container."""
    cloud: CloudConfig = field(default_factory=CloudConfig)

    data_path: Path = field(
        default_factory=lambda: Path(
            os.environ.get("SCOREPAD_HOME", str(Path.home() / ".scorepad"))
        )
    )

    @property
    def config_file(self) -> Path:
        return self.data_path / "config.json"

    def save(self) -> None:
        """Save configuration to file."""
        self.data_path.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump({"cloud": self.cloud.to_dict()}, f, indent=2)

    @classmethod
    def load(cls) -> 'ScorePadConfig':
        """Load configuration from file or create default."""
        config = cls()
        if config.config_file.exists():
            try:
                with open(config.config_file) as f:
                    data = json.load(f)
                if "cloud" in data:
                    config.cloud = CloudConfig.from_dict(data["cloud"])
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning("[Config] Could not load config, using defaults: %s", e)
        return config


# Global configuration instance
_config: Optional[ScorePadConfig] = None


def get_config() -> ScorePadConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ScorePadConfig.load()
    return _config


def reset_config() -> None:
    """Reset global configuration (useful for testing)."""
    global _config
    _config = None
