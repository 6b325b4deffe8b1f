"""
Configuration for the offline sync service.

Settings can come from code, from the ``sync`` section of a YAML file,
or from ``OFFLINE_SYNC_*`` environment variables:

```yaml
sync:
  max_retries: 3
  base_delay_ms: 1000
  max_delay_ms: 30000
  default_strategy: server-wins
  persistence: jsonl
  queue_path: ~/.offline_sync/queue.jsonl
  connectivity_check_url: https://example.supabase.co
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .models import ConflictStrategy
from .retry import RetryPolicy

DEFAULT_HOME = Path.home() / ".offline_sync"
DEFAULT_SETTINGS_PATH = DEFAULT_HOME / "settings.yaml"
PERSISTENCE_BACKENDS = ("jsonl", "sqlite", "memory")

_ENV_PREFIX = "OFFLINE_SYNC_"


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(name, "expected a boolean", str(value))


@dataclass
class SyncConfig:
    """Configuration for the offline sync service."""

    # Retry settings
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter: bool = True

    # Sync behavior
    default_strategy: str = ConflictStrategy.SERVER_WINS.value
    sync_on_enqueue: bool = True
    sync_on_reconnect: bool = True

    # Row conventions
    id_field: str = "id"
    version_field: str = "updated_at"

    # Queue persistence
    persistence: str = "jsonl"
    queue_path: Path = field(default_factory=lambda: DEFAULT_HOME / "queue.jsonl")

    # Network detection; None means the host drives online/offline state
    connectivity_check_url: str | None = None
    probe_interval_s: float = 15.0

    # Remote calls; None leaves the transport's own timeout in charge
    request_timeout_s: float | None = None

    def __post_init__(self) -> None:
        self.queue_path = Path(self.queue_path).expanduser()
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: On the first invalid value
        """
        if self.max_retries < 0:
            raise ConfigurationError("max_retries", "must be >= 0", str(self.max_retries))
        if self.base_delay_ms < 0:
            raise ConfigurationError("base_delay_ms", "must be >= 0", str(self.base_delay_ms))
        if self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError(
                "max_delay_ms", "must be >= base_delay_ms", str(self.max_delay_ms)
            )
        valid = {s.value for s in ConflictStrategy}
        if self.default_strategy not in valid:
            raise ConfigurationError(
                "default_strategy", f"must be one of {sorted(valid)}", self.default_strategy
            )
        if self.persistence not in PERSISTENCE_BACKENDS:
            raise ConfigurationError(
                "persistence", f"must be one of {list(PERSISTENCE_BACKENDS)}", self.persistence
            )
        if self.probe_interval_s <= 0:
            raise ConfigurationError("probe_interval_s", "must be > 0", str(self.probe_interval_s))

    @property
    def strategy(self) -> ConflictStrategy:
        return ConflictStrategy(self.default_strategy)

    def retry_policy(self) -> RetryPolicy:
        """Backoff settings for the retry scheduler."""
        return RetryPolicy(
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            jitter=self.jitter,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Create from a mapping, coercing scalar types and ignoring unknown keys."""
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            try:
                if f.name in ("max_retries", "base_delay_ms", "max_delay_ms"):
                    value = int(value)
                elif f.name in ("probe_interval_s", "request_timeout_s"):
                    value = float(value)
                elif f.name in ("jitter", "sync_on_enqueue", "sync_on_reconnect"):
                    value = _parse_bool(f.name, value)
                elif f.name == "queue_path":
                    value = Path(value)
                else:
                    value = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f.name, str(e), str(value)) from e
            kwargs[f.name] = value
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> SyncConfig:
        """Load the ``sync`` section of a YAML settings file.

        A missing file yields the defaults.

        Raises:
            ConfigurationError: If the file is not valid YAML or values are invalid
        """
        config_path = Path(path).expanduser() if path else DEFAULT_SETTINGS_PATH
        if not config_path.exists():
            return cls()

        try:
            content = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError("settings", f"invalid YAML: {e}", str(config_path)) from e

        if not isinstance(content, dict):
            raise ConfigurationError("settings", "expected a mapping", str(config_path))
        section = content.get("sync") or {}
        if not isinstance(section, dict):
            raise ConfigurationError("sync", "expected a mapping", str(config_path))
        return cls.from_dict(section)

    @classmethod
    def from_env(cls, base: SyncConfig | None = None) -> SyncConfig:
        """Overlay ``OFFLINE_SYNC_<FIELD>`` environment variables on a base config."""
        data: dict[str, Any] = {}
        if base is not None:
            data = {f.name: getattr(base, f.name) for f in fields(cls)}
        for f in fields(cls):
            value = os.environ.get(f"{_ENV_PREFIX}{f.name.upper()}")
            if value is not None:
                data[f.name] = value
        return cls.from_dict(data)
