import os
import re
import logging
import sys
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse

import yaml


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return _as_bool(v)


def _split_csv(value: Optional[str]) -> List[str]:
    return [s.strip() for s in (value or "").split(",") if s.strip()]


# =============================================================================
# Kubernetes API
# =============================================================================
KUBECONFIG_PATH: Optional[str] = os.getenv("KUBECONFIG")
KUBE_CONTEXT: Optional[str] = os.getenv("KUBE_CONTEXT")

# Comma separated; empty means "namespace of the active kube context"
ADVISOR_NAMESPACES: str = os.getenv("ADVISOR_NAMESPACES", "")

# =============================================================================
# Prometheus
# =============================================================================
PROMETHEUS_URL: str = os.getenv("PROMETHEUS_URL", "http://localhost:9090")
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_VERIFY_TLS: bool = _env_bool("PROMETHEUS_VERIFY_TLS", True)

CPU_USAGE_METRIC: str = os.getenv(
    "CPU_USAGE_METRIC",
    "node_namespace_pod_container:container_cpu_usage_seconds_total:sum_irate"
)
MEMORY_USAGE_METRIC: str = os.getenv("MEMORY_USAGE_METRIC", "container_memory_working_set_bytes")

# =============================================================================
# Recommendation policy
# =============================================================================
# Trailing window, any Prometheus duration ("1w", "7d", "168h")
METRICS_WINDOW: str = os.getenv("METRICS_WINDOW", "1w")
REQUEST_QUANTILE: float = float(os.getenv("REQUEST_QUANTILE", "0.9"))
LIMIT_MARGIN: float = float(os.getenv("LIMIT_MARGIN", "1.2"))

# =============================================================================
# Output
# =============================================================================
OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "output")
REPORT_OUTPUT_PATH: str = os.getenv(
    "REPORT_OUTPUT_PATH", os.path.join(OUTPUT_DIR, "resource_advisor_report.json")
)


__all__ = [
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "KUBECONFIG_PATH",
    "KUBE_CONTEXT",
    "ADVISOR_NAMESPACES",
    "PROMETHEUS_URL",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_VERIFY_TLS",
    "CPU_USAGE_METRIC",
    "MEMORY_USAGE_METRIC",
    "METRICS_WINDOW",
    "REQUEST_QUANTILE",
    "LIMIT_MARGIN",
    "OUTPUT_DIR",
    "REPORT_OUTPUT_PATH",
    "AdvisorOptions",
    "load_config_file",
    "get_config_value",
    "build_options",
    "ConfigValidationError",
    "validate_options",
]


@dataclass
class AdvisorOptions:
    """Settings for one analysis pass"""
    namespaces: List[str] = field(default_factory=list)
    window: str = METRICS_WINDOW
    quantile: float = REQUEST_QUANTILE
    limit_margin: float = LIMIT_MARGIN
    prometheus_url: str = PROMETHEUS_URL
    prometheus_timeout_seconds: int = PROMETHEUS_TIMEOUT_SECONDS
    prometheus_verify_tls: bool = PROMETHEUS_VERIFY_TLS
    cpu_usage_metric: str = CPU_USAGE_METRIC
    memory_usage_metric: str = MEMORY_USAGE_METRIC
    kubeconfig_path: Optional[str] = KUBECONFIG_PATH
    kube_context: Optional[str] = KUBE_CONTEXT
    output_path: str = REPORT_OUTPUT_PATH


# =============================================================================
# Configuration file (optional, overrides environment defaults)
# =============================================================================
def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load a YAML configuration file. An empty file yields an empty dict."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigValidationError(f"{config_path}: top level must be a mapping")
    return config


def get_config_value(config: Dict[str, Any], *keys, default=None):
    """Safely get nested config value with default fallback"""
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def build_options(file_config: Optional[Dict[str, Any]] = None) -> AdvisorOptions:
    """Merge file values over the environment defaults.

    Recognised layout::

        namespaces: [team-a, team-b]   # or "team-a,team-b"
        window: 1w
        quantile: 0.9
        limit_margin: 1.2
        prometheus:
          url: http://prometheus:9090
          timeout_seconds: 30
          verify_tls: true
          cpu_metric: ...
          memory_metric: ...
        kubernetes:
          kubeconfig: ~/.kube/config
          context: prod
        output_path: output/report.json
    """
    cfg = file_config or {}

    namespaces = get_config_value(cfg, "namespaces", default=ADVISOR_NAMESPACES)
    if isinstance(namespaces, str):
        namespaces = _split_csv(namespaces)
    else:
        namespaces = [str(ns).strip() for ns in namespaces if str(ns).strip()]

    return AdvisorOptions(
        namespaces=namespaces,
        window=str(get_config_value(cfg, "window", default=METRICS_WINDOW)),
        quantile=float(get_config_value(cfg, "quantile", default=REQUEST_QUANTILE)),
        limit_margin=float(get_config_value(cfg, "limit_margin", default=LIMIT_MARGIN)),
        prometheus_url=get_config_value(cfg, "prometheus", "url", default=PROMETHEUS_URL),
        prometheus_timeout_seconds=int(
            get_config_value(cfg, "prometheus", "timeout_seconds", default=PROMETHEUS_TIMEOUT_SECONDS)
        ),
        prometheus_verify_tls=_as_bool(
            get_config_value(cfg, "prometheus", "verify_tls", default=PROMETHEUS_VERIFY_TLS)
        ),
        cpu_usage_metric=get_config_value(cfg, "prometheus", "cpu_metric", default=CPU_USAGE_METRIC),
        memory_usage_metric=get_config_value(cfg, "prometheus", "memory_metric", default=MEMORY_USAGE_METRIC),
        kubeconfig_path=get_config_value(cfg, "kubernetes", "kubeconfig", default=KUBECONFIG_PATH),
        kube_context=get_config_value(cfg, "kubernetes", "context", default=KUBE_CONTEXT),
        output_path=get_config_value(cfg, "output_path", default=REPORT_OUTPUT_PATH),
    )


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


_DURATION_RE = re.compile(r'^(\d+(ms|s|m|h|d|w|y))+$')
_METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_quantile(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        raise ConfigValidationError(f"{name} must be between 0 and 1, got {value}")


def _validate_margin(name: str, value: float) -> None:
    if value < 1.0:
        raise ConfigValidationError(f"{name} must be at least 1.0, got {value}")


def _validate_duration(name: str, value: str) -> None:
    if not _DURATION_RE.match(value or ""):
        raise ConfigValidationError(f"{name} is not a Prometheus duration: '{value}'")


def _validate_metric_name(name: str, value: str) -> None:
    if not _METRIC_NAME_RE.match(value or ""):
        raise ConfigValidationError(f"{name} is not a valid metric name: '{value}'")


def validate_options(options: AdvisorOptions) -> None:
    """Validate all option values before a pass

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    checks = [
        (_validate_positive_int, "PROMETHEUS_TIMEOUT_SECONDS", options.prometheus_timeout_seconds),
        (_validate_url, "PROMETHEUS_URL", options.prometheus_url),
        (_validate_quantile, "REQUEST_QUANTILE", options.quantile),
        (_validate_margin, "LIMIT_MARGIN", options.limit_margin),
        (_validate_duration, "METRICS_WINDOW", options.window),
        (_validate_metric_name, "CPU_USAGE_METRIC", options.cpu_usage_metric),
        (_validate_metric_name, "MEMORY_USAGE_METRIC", options.memory_usage_metric),
    ]
    errors = []
    for validator, name, value in checks:
        try:
            validator(name, value)
        except ConfigValidationError as e:
            errors.append(str(e))

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
