"""Immutable run configuration for the fiber and schools pipelines.

Defaults live here as frozen data; pipelines receive a config object at
construction so tests can substitute other regions and endpoints.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple


DEFAULT_OVERPASS_ENDPOINTS: Tuple[str, ...] = (
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass-api.de/api/interpreter",
    "https://overpass.openstreetmap.fr/api/interpreter",
    "https://overpass.openstreetmap.ru/api/interpreter",
)

DEFAULT_SCHOOLS_ENDPOINT = "https://overpass-api.de/api/interpreter"

OFFICIAL_SCHOOLS_BASENAME = "official_secondary_schools"
OFFICIAL_SCHOOLS_SUFFIXES: Tuple[str, ...] = (".geojson", ".json", ".csv")


@dataclass(frozen=True)
class BoundingBox:
    """Lon/lat bounds in GeoJSON order (west, south, east, north)."""

    west: float
    south: float
    east: float
    north: float

    def overpass_bbox(self) -> str:
        # Overpass wants south,west,north,east
        return f"{self.south},{self.west},{self.north},{self.east}"


UGANDA_BOUNDS = BoundingBox(west=29.573433, south=-1.482317, east=35.03599, north=4.234076)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 1.5
    jitter: Tuple[float, float] = (0.7, 1.3)
    request_timeout_s: float = 300.0
    # Overall wall-clock ceiling; None disables it.
    deadline_s: Optional[float] = None

    def delay_for(self, attempt: int, jitter_factor: float) -> float:
        return self.base_delay_s * (2 ** (attempt - 1)) * jitter_factor


def _project_root(env: Mapping[str, str]) -> Path:
    return Path(env.get("ETL_PROJECT_ROOT") or os.getcwd()).resolve()


@dataclass(frozen=True)
class FiberConfig:
    project_root: Path
    endpoints: Tuple[str, ...] = DEFAULT_OVERPASS_ENDPOINTS
    country: str = "Uganda"
    collection_name: str = "uganda_telecom_fiber"
    cache_prefix: str = "uganda-fiber"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    raw_dir: Optional[Path] = None
    output_path: Optional[Path] = None

    @property
    def resolved_raw_dir(self) -> Path:
        return self.raw_dir or self.project_root / "data" / "raw"

    @property
    def resolved_output_path(self) -> Path:
        return self.output_path or self.project_root / "public" / "data" / "fiber.geojson"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides) -> "FiberConfig":
        env = os.environ if env is None else env
        config = cls(project_root=_project_root(env))
        custom = (env.get("OVERPASS_URL") or "").strip()
        if custom and custom not in config.endpoints:
            config = replace(config, endpoints=(custom,) + config.endpoints)
        return replace(config, **overrides) if overrides else config


@dataclass(frozen=True)
class SchoolsConfig:
    project_root: Path
    bbox: BoundingBox = UGANDA_BOUNDS
    overpass_endpoint: str = DEFAULT_SCHOOLS_ENDPOINT
    official_url: Optional[str] = None
    data_dir: Optional[Path] = None
    regions_path: Optional[Path] = None
    output_path: Optional[Path] = None
    request_timeout_s: float = 120.0

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or self.project_root / "data"

    @property
    def resolved_regions_path(self) -> Path:
        return self.regions_path or self.resolved_data_dir / "regions.json"

    @property
    def resolved_output_path(self) -> Path:
        return self.output_path or self.project_root / "public" / "data" / "schools.geojson"

    def official_candidates(self) -> Tuple[Path, ...]:
        base = self.resolved_data_dir
        return tuple(base / f"{OFFICIAL_SCHOOLS_BASENAME}{suffix}" for suffix in OFFICIAL_SCHOOLS_SUFFIXES)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides) -> "SchoolsConfig":
        env = os.environ if env is None else env
        official_url = (env.get("OFFICIAL_SCHOOLS_URL") or env.get("SECONDARY_SCHOOLS_URL") or "").strip()
        endpoint = (env.get("OVERPASS_URL") or "").strip() or DEFAULT_SCHOOLS_ENDPOINT
        config = cls(
            project_root=_project_root(env),
            overpass_endpoint=endpoint,
            official_url=official_url or None,
        )
        return replace(config, **overrides) if overrides else config
