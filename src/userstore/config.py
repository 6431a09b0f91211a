"""Configuration file for the userstore CLI.

Stored at ~/.config/userstore/config.yaml (honors XDG_CONFIG_HOME):

    uri: sqlite:////var/lib/userstore/data.db
    batch_size: 100
    auto_create_user: false
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .db import DEFAULT_BATCH_SIZE
from .options import StoreOptions


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "userstore"


def get_config_path() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.yaml"


@dataclass
class StoreConfig:
    """Persisted store settings."""

    uri: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    auto_create_user: bool | None = None
    """Unset leaves the choice to the URI parameter or environment."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        data: dict[str, Any] = {}
        if self.uri:
            data["uri"] = self.uri
        data["batch_size"] = self.batch_size
        if self.auto_create_user is not None:
            data["auto_create_user"] = self.auto_create_user
        return data

    def save(self, path: Path | None = None) -> Path:
        """Save config to file. Returns the path written."""
        path = path or get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        return path

    @classmethod
    def load(cls, path: Path | None = None) -> "StoreConfig":
        """Load config from file, or return defaults."""
        path = path or get_config_path()

        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        auto_create_user = data.get("auto_create_user")
        return cls(
            uri=data.get("uri"),
            batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
            auto_create_user=None if auto_create_user is None else bool(auto_create_user),
        )

    def to_options(self, uri: str | None = None) -> StoreOptions:
        """Build StoreOptions, letting an explicit `uri` win over the file."""
        return StoreOptions(
            uri=uri or self.uri,
            batch_size=self.batch_size,
            auto_create_user=self.auto_create_user,
        )
