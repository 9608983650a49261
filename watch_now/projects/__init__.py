"""Projects: YAML configuration and project auto-detection."""

from .config import (
    ApiConfig,
    CheckConfig,
    ConfigError,
    ServiceConfig,
    WatchConfig,
    build_checks,
    dump_config,
    load_config,
    parse_duration,
)
from .detector import ProjectDetector, ProjectInfo
