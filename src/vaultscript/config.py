"""Runtime configuration loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .runtime.crypto import AesCbcCipher, DEFAULT_IV, DEFAULT_KEY
from .runtime.scheduler import DEFAULT_DATETIME_FORMAT


@dataclass
class RuntimeConfig:
    """
    Settings for one interpreter run.

    YAML layout (every key optional):

        encryption:
          key: "a 16, 24 or 32 byte key"
          iv: "a 16 byte iv"
        scheduler:
          datetime_format: "%Y-%m-%d %H:%M:%S"
        log_level: INFO
    """

    encryption_key: Optional[str] = None
    encryption_iv: Optional[str] = None
    datetime_format: str = DEFAULT_DATETIME_FORMAT
    log_level: Optional[str] = None

    def build_cipher(self) -> AesCbcCipher:
        return AesCbcCipher(
            self.encryption_key if self.encryption_key is not None else DEFAULT_KEY,
            self.encryption_iv if self.encryption_iv is not None else DEFAULT_IV,
        )

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "RuntimeConfig":
        encryption = data.get("encryption", {}) or {}
        scheduler = data.get("scheduler", {}) or {}
        if not isinstance(encryption, dict):
            raise ValueError(f"'encryption' must be a mapping, got {type(encryption)!r}")
        if not isinstance(scheduler, dict):
            raise ValueError(f"'scheduler' must be a mapping, got {type(scheduler)!r}")

        key = encryption.get("key")
        iv = encryption.get("iv")
        log_level = data.get("log_level")
        return cls(
            encryption_key=str(key) if key is not None else None,
            encryption_iv=str(iv) if iv is not None else None,
            datetime_format=str(scheduler.get("datetime_format") or DEFAULT_DATETIME_FORMAT),
            log_level=str(log_level).upper() if log_level is not None else None,
        )


def load_config(path: Path | str) -> RuntimeConfig:
    """Load a YAML config file and return the ``RuntimeConfig``."""

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")
    import yaml

    with config_path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config must be a mapping, got {type(data)!r}")
    return RuntimeConfig.from_mapping(data)
