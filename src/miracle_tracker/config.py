"""Layered configuration lookup and validated tracker settings.

Resolution order for every key: on-device override (preference store,
``tm_config_`` prefix) -> process environment -> bundled manifest -> default.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError
from .storage import MemoryPreferenceStore, PreferenceStore

ANALYTICS_BASE_URL = "ANALYTICS_BASE_URL"
ANALYTICS_SDK_ID = "ANALYTICS_SDK_ID"
ANALYTICS_DISTRIBUTOR = "ANALYTICS_DISTRIBUTOR"
BENEFITS_API_BASE_URL = "BENEFITS_API_BASE_URL"
BENEFITS_API_KEY = "BENEFITS_API_KEY"

REQUIRED_KEYS = (ANALYTICS_BASE_URL, ANALYTICS_SDK_ID, ANALYTICS_DISTRIBUTOR)


class AppConfig:
    OVERRIDE_PREFIX = "tm_config_"

    def __init__(
        self,
        *,
        overrides: Optional[PreferenceStore] = None,
        environ: Optional[Mapping[str, str]] = None,
        manifest: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.overrides = overrides if overrides is not None else MemoryPreferenceStore()
        self._environ = environ if environ is not None else os.environ
        self._manifest: Dict[str, Any] = dict(manifest or {})

    @classmethod
    def from_manifest_file(
        cls,
        path: str | Path,
        *,
        overrides: Optional[PreferenceStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        manifest_path = Path(path)
        manifest: Dict[str, Any] = {}
        if manifest_path.exists():
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        return cls(overrides=overrides, environ=environ, manifest=manifest)

    def string(self, key: str, default: str = "") -> str:
        stored = self.overrides.get(self.OVERRIDE_PREFIX + key)
        if isinstance(stored, str) and stored:
            return stored
        env = self._environ.get(key)
        if env:
            return env
        bundled = self._manifest.get(key)
        if isinstance(bundled, str) and bundled:
            return bundled
        return default

    def set(self, key: str, value: str) -> None:
        if not value:
            self.clear(key)
            return
        self.overrides.set(self.OVERRIDE_PREFIX + key, value)

    def clear(self, key: str) -> None:
        self.overrides.remove(self.OVERRIDE_PREFIX + key)

    def missing(self, keys: tuple[str, ...] = REQUIRED_KEYS) -> List[str]:
        return [key for key in keys if not self.string(key).strip()]


class TrackerSettings(BaseModel):
    base_url: str = Field(..., min_length=1)
    sdk_id: str = Field(..., min_length=1)
    distributor: str = Field(..., min_length=1)
    benefits_api_base_url: str = ""
    benefits_api_key: str = ""
    request_timeout: float = Field(default=10.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("benefits_api_key")
    @classmethod
    def _strip_quotes(cls, value: str) -> str:
        return value.strip().strip("\"'")

    @classmethod
    def from_config(cls, config: AppConfig) -> "TrackerSettings":
        missing = config.missing()
        if missing:
            raise ConfigurationError(
                f"Missing required tracker settings: {', '.join(missing)}"
            )
        return cls(
            base_url=config.string(ANALYTICS_BASE_URL),
            sdk_id=config.string(ANALYTICS_SDK_ID),
            distributor=config.string(ANALYTICS_DISTRIBUTOR),
            benefits_api_base_url=config.string(BENEFITS_API_BASE_URL),
            benefits_api_key=config.string(BENEFITS_API_KEY),
        )

    @property
    def ingest_url(self) -> str:
        return f"{self.base_url}/api/v1/dist-sdk-events/add"
