"""ETL pipelines producing the telecom fiber and secondary schools GeoJSON."""
from .config import BoundingBox, FiberConfig, RetryPolicy, SchoolsConfig  # noqa: F401
from .enrichment import (  # noqa: F401
    build_district_region_map,
    classify_gender,
    classify_ownership,
    normalize_district_name,
    resolve_region,
)
from .errors import (  # noqa: F401
    EtlError,
    NoUsableSourceError,
    OverpassRemarkError,
    RetryExhaustedError,
    SourceUnavailableError,
)
