# === NAVMAP v1 ===
# {
#   "module": "FundCatalog.SearchIndex.config",
#   "purpose": "Configuration models for catalog ingestion, indexing, querying and loading",
#   "sections": [
#     {"id": "streamconfig", "name": "StreamConfig", "anchor": "class-streamconfig", "kind": "class"},
#     {"id": "indexconfig", "name": "IndexConfig", "anchor": "class-indexconfig", "kind": "class"},
#     {"id": "queryconfig", "name": "QueryConfig", "anchor": "class-queryconfig", "kind": "class"},
#     {"id": "loaderconfig", "name": "LoaderConfig", "anchor": "class-loaderconfig", "kind": "class"},
#     {"id": "fundsearchconfig", "name": "FundSearchConfig", "anchor": "class-fundsearchconfig", "kind": "class"},
#     {"id": "fundsearchconfigmanager", "name": "FundSearchConfigManager", "anchor": "class-fundsearchconfigmanager", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""
Configuration models and manager for the fund catalog search subsystem.

Each component reads a dedicated frozen dataclass: ``StreamConfig`` controls
chunked reads of the source catalog, ``IndexConfig`` the token and prefix
derivation, ``QueryConfig`` paging limits, fuzzy matching and scoring weights,
and ``LoaderConfig`` checkpointed batch processing. ``FundSearchConfig``
aggregates them and ``FundSearchConfigManager`` loads the aggregate from a JSON
or YAML file with thread-safe reloads.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Mapping

__all__ = (
    "FundSearchConfig",
    "FundSearchConfigManager",
    "IndexConfig",
    "LoaderConfig",
    "QueryConfig",
    "StreamConfig",
)


@dataclass(frozen=True)
class StreamConfig:
    """Configuration for chunked reads of the source catalog.

    Key fields:
    - ``chunk_size``: Bytes read from the source per call (64 KiB default).
    - ``progress_interval``: Emit a progress event every N objects (0 disables).

    Examples:
        >>> StreamConfig(chunk_size=8192).chunk_size
        8192
    """

    chunk_size: int = 64 * 1024
    progress_interval: int = 5000

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("StreamConfig.chunk_size must be positive")
        if self.progress_interval < 0:
            raise ValueError("StreamConfig.progress_interval must be non-negative")


@dataclass(frozen=True)
class IndexConfig:
    """Token derivation settings shared by the classifier and the query engine.

    Key fields:
    - ``min_token_length``: Shortest word token kept (2 default).
    - ``prefix_min_length`` / ``prefix_max_length``: Prefix lengths indexed for
      every token at least ``prefix_min_length`` long (3 to 6 default).
    """

    min_token_length: int = 2
    prefix_min_length: int = 3
    prefix_max_length: int = 6

    def __post_init__(self) -> None:
        if self.min_token_length <= 0:
            raise ValueError("IndexConfig.min_token_length must be positive")
        if not 0 < self.prefix_min_length <= self.prefix_max_length:
            raise ValueError(
                "IndexConfig prefix lengths must satisfy 0 < prefix_min_length <= prefix_max_length"
            )


@dataclass(frozen=True)
class QueryConfig:
    """Paging, fuzzy matching and relevance weights for searches.

    Key fields:
    - ``default_limit`` / ``max_limit``: Page size when unspecified and its cap.
    - ``fuzzy_min_length`` / ``fuzzy_max_distance``: Query tokens at least this
      long also match indexed tokens within this Levenshtein distance.
    - ``weights``: Score contributed per query token for each match kind.

    Examples:
        >>> QueryConfig().weights["exact_name"]
        100.0
    """

    default_limit: int = 50
    max_limit: int = 1000
    fuzzy_min_length: int = 4
    fuzzy_max_distance: int = 1
    weights: Mapping[str, float] = field(
        default_factory=lambda: {
            "exact_name": 100.0,
            "name_prefix": 50.0,
            "name_substring": 25.0,
            "fund_house": 15.0,
            "category": 10.0,
            "sub_category": 10.0,
        }
    )

    def __post_init__(self) -> None:
        if not 0 < self.default_limit <= self.max_limit:
            raise ValueError("QueryConfig.default_limit must be positive and at most max_limit")
        if self.fuzzy_max_distance < 0:
            raise ValueError("QueryConfig.fuzzy_max_distance must be non-negative")


@dataclass(frozen=True)
class LoaderConfig:
    """Checkpointed loader settings.

    Key fields:
    - ``batch_size``: Default records per ``process_next_batch`` call.
    - ``estimate_after``: Records read before extrapolating the total count.
    - ``lock_timeout_s``: Seconds to wait for the state directory lock.
    """

    batch_size: int = 10
    estimate_after: int = 100
    lock_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("LoaderConfig.batch_size must be positive")
        if self.estimate_after < 0:
            raise ValueError("LoaderConfig.estimate_after must be non-negative")


@dataclass(frozen=True)
class FundSearchConfig:
    """Complete configuration for catalog ingestion and search.

    Components:
    - ``stream``: Source reading configuration.
    - ``index``: Token derivation configuration.
    - ``query``: Query engine configuration.
    - ``loader``: Checkpointed loader configuration.
    """

    stream: StreamConfig = StreamConfig()
    index: IndexConfig = IndexConfig()
    query: QueryConfig = QueryConfig()
    loader: LoaderConfig = LoaderConfig()

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> FundSearchConfig:
        """Construct a config object from a dictionary payload.

        Args:
            payload: Nested mapping containing optional `stream`, `index`,
                `query` and `loader` sections compatible with dataclass fields.

        Returns:
            Fully populated `FundSearchConfig` instance.

        Raises:
            ValueError: If the payload or one of its sections is not a mapping.
        """
        if not isinstance(payload, Mapping):
            raise ValueError(
                "FundSearchConfig.from_dict expected a mapping payload, "
                f"received {type(payload).__name__}"
            )

        def coerce_section(name: str) -> dict[str, Any]:
            section = payload.get(name)
            if section is None:
                return {}
            if not isinstance(section, Mapping):
                raise ValueError(
                    f"FundSearchConfig.{name} must be a mapping or null, "
                    f"received {type(section).__name__}"
                )
            return dict(section)

        query_payload = coerce_section("query")
        if "weights" in query_payload:
            # Partial weight overrides keep the remaining defaults.
            merged = dict(QueryConfig().weights)
            merged.update({key: float(value) for key, value in query_payload["weights"].items()})
            query_payload["weights"] = merged
        return FundSearchConfig(
            stream=StreamConfig(**coerce_section("stream")),
            index=IndexConfig(**coerce_section("index")),
            query=QueryConfig(**query_payload),
            loader=LoaderConfig(**coerce_section("loader")),
        )


class FundSearchConfigManager:
    """File-backed configuration manager with reload support.

    Internals:
    - ``_path``: Path to the JSON/YAML configuration file.
    - ``_lock``: Threading lock guarding concurrent reloads.
    - ``_config``: Cached :class:`FundSearchConfig` instance.

    Examples:
        >>> manager = FundSearchConfigManager(Path("search.yaml"))  # doctest: +SKIP
        >>> isinstance(manager.get(), FundSearchConfig)  # doctest: +SKIP
        True
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = RLock()
        self._config = self._load()

    def get(self) -> FundSearchConfig:
        """Return the currently cached configuration."""

        with self._lock:
            return self._config

    def reload(self) -> FundSearchConfig:
        """Reload configuration from disk, replacing the cached instance.

        Returns:
            Freshly loaded `FundSearchConfig`.

        Raises:
            FileNotFoundError: If the configuration path is missing.
            ValueError: If the config file is invalid JSON or YAML.
        """
        with self._lock:
            self._config = self._load()
            return self._config

    def _load(self) -> FundSearchConfig:
        if not self._path.exists():
            raise FileNotFoundError(f"Configuration file {self._path} not found")
        raw = self._path.read_text(encoding="utf-8")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            payload = self._load_yaml(raw)
        return FundSearchConfig.from_dict(payload)

    def _load_yaml(self, raw: str) -> dict[str, Any]:
        """Parse YAML configuration content into a dictionary.

        Raises:
            ValueError: If the content is not valid YAML or not a mapping.
        """
        import yaml

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValueError(f"Failed to parse YAML configuration at {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("YAML configuration must define a mapping")
        return data
