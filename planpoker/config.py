"""
Configuration - Environment-driven settings.

Variables:
    PLANPOKER_ENV          development | production
    PLANPOKER_STORE        memory | file
    PLANPOKER_DATA_DIR     directory for the file store
    ALLOWED_ORIGINS        comma-separated CORS origins
    PLANPOKER_ADMIN_TOKENS comma-separated token:uid[:email] entries
    PLANPOKER_LOG_LEVEL    logging level name
    PLANPOKER_HOST / PLANPOKER_PORT   bind address for `planpoker serve`
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import os


@dataclass
class Settings:
    env: str = "development"
    store: str = "memory"
    data_dir: Path = field(default_factory=lambda: Path.home() / ".planpoker" / "data")
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    admin_tokens: str = ""
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> Settings:
        defaults = cls()
        return cls(
            env=os.getenv("PLANPOKER_ENV", defaults.env),
            store=os.getenv("PLANPOKER_STORE", defaults.store).lower(),
            data_dir=Path(os.getenv("PLANPOKER_DATA_DIR", str(defaults.data_dir))).expanduser(),
            allowed_origins=[
                origin.strip()
                for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
                if origin.strip()
            ],
            admin_tokens=os.getenv("PLANPOKER_ADMIN_TOKENS", ""),
            log_level=os.getenv("PLANPOKER_LOG_LEVEL", defaults.log_level).upper(),
            host=os.getenv("PLANPOKER_HOST", defaults.host),
            port=int(os.getenv("PLANPOKER_PORT", str(defaults.port))),
        )

    def create_kv_store(self):
        """Build the key-value engine named by PLANPOKER_STORE."""
        from .store import MemoryKeyValueStore, FileKeyValueStore

        if self.store == "file":
            return FileKeyValueStore(data_dir=self.data_dir)
        if self.store == "memory":
            return MemoryKeyValueStore()
        raise ValueError(f"Unknown store type: {self.store}")
