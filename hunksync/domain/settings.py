"""Tunable settings for diff capture and status synchronization.

Defaults match the values the synchronizer was designed around. A YAML file
may override any subset:

    debounce_ms: 400
    max_concurrent_operations: 2
    default_upstream: develop
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

MAX_UNTRACKED_FILE_BYTES = 1024 * 1024


@dataclass(frozen=True)
class SyncSettings:
    """Timing, concurrency and size limits.

    Attributes:
        debounce_ms: Quiet period before a refresh request triggers a fetch
        event_throttle_ms: Window during which outbound events are buffered
        max_concurrent_operations: Global cap on concurrent status fetches
        initial_load_stagger_ms: Pause between initial-load batches
        cache_ttl_ms: Age below which a cached snapshot is served as-is
        max_untracked_file_bytes: Untracked files above this size are not read
        read_timeout_ms: Timeout for diff/show/log calls
        probe_timeout_ms: Timeout for existence probes and content reads
        default_upstream: Upstream branch used when a workspace names none
    """

    debounce_ms: int = 250
    event_throttle_ms: int = 100
    max_concurrent_operations: int = 3
    initial_load_stagger_ms: int = 200
    cache_ttl_ms: int = 5000
    max_untracked_file_bytes: int = MAX_UNTRACKED_FILE_BYTES
    read_timeout_ms: int = 120_000
    probe_timeout_ms: int = 15_000
    default_upstream: str = "main"

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict | None) -> SyncSettings:
        """Build settings from a mapping, ignoring unknown keys.

        Args:
            data: Mapping of field name to value, or None for defaults

        Returns:
            SyncSettings instance

        Raises:
            ValueError: If a numeric value is not a positive integer or the
                upstream name is blank
        """
        if not data:
            return cls()

        known = {f.name: f for f in fields(cls)}
        values: dict = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "default_upstream":
                if not isinstance(value, str) or not value.strip():
                    raise ValueError("default_upstream must be a non-empty string")
                values[key] = value.strip()
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{key} must be a positive integer, got {value!r}")
            values[key] = value
        return cls(**values)

    @classmethod
    def from_file(cls, file_path: Path) -> SyncSettings:
        """Load settings from a YAML file.

        Args:
            file_path: Path to the YAML document

        Returns:
            SyncSettings instance; an empty document yields the defaults

        Raises:
            ValueError: If the document is not valid YAML, not a mapping, or
                holds invalid values
        """
        content = Path(file_path).read_text()
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}") from e
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping: {file_path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    # --------------------------------------------------------
    # Derived values
    # --------------------------------------------------------

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def event_throttle_seconds(self) -> float:
        return self.event_throttle_ms / 1000

    @property
    def initial_load_stagger_seconds(self) -> float:
        return self.initial_load_stagger_ms / 1000

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000
