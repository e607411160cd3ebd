# taskboard: configuration
# Override endpoints and paths via taskboard.yaml or environment variables.

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "taskboard" / "taskboard.yaml"

LOG_FORMAT = "%(asctime)s [taskboard] %(levelname)s: %(message)s"


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the taskboard client."""

    # Backend that proxies to the notification service
    backend_url: str = "http://localhost:3002"
    request_timeout: float = 10.0

    # Base for task deep links and the preferences/unsubscribe page
    app_url: str = "http://localhost:3000"

    # Local storage
    storage_path: str = "~/.local/share/taskboard/storage.db"
    storage_quota_bytes: int = 5 * 1024 * 1024

    # Notifications
    preference_cache_ttl: float = 30.0
    workflows: Dict[str, str] = field(default_factory=dict)

    def apply_env(self):
        """Environment variables win over the file."""
        self.backend_url = os.environ.get("TASKBOARD_BACKEND_URL", self.backend_url)
        self.app_url = os.environ.get("TASKBOARD_APP_URL", self.app_url)
        self.storage_path = os.environ.get("TASKBOARD_DATA", self.storage_path)

    def resolve_paths(self):
        self.storage_path = str(Path(self.storage_path).expanduser())

    def validate(self):
        if not self.backend_url.startswith(("http://", "https://")):
            raise ConfigError(f"backend_url must be an http(s) URL, got: {self.backend_url!r}")
        if self.storage_quota_bytes < 0:
            raise ConfigError("storage_quota_bytes must be >= 0")
        if not isinstance(self.workflows, dict):
            raise ConfigError("workflows must be a mapping of event → workflow slug")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else Path(os.environ.get("TASKBOARD_CONFIG", CONFIG_PATH))
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                known = {fld.name for fld in fields(cls)}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve_paths()
        cfg.validate()
        return cfg
