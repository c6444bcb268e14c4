"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_ENV_VAR = "CARBON_MARKET_CONFIG"
_DEFAULT_CONFIG_PATH = _BASE_DIR / "config.yml"

STORAGE_BACKENDS = {"local", "firestore"}
ENVIRONMENTS = {"development", "production", "test"}


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str = "Carbon Market API"
    environment: str = "development"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=list)
    storage_backend: str = "local"
    local_data_path: Optional[str] = None
    positions_collection: str = "lending_positions"
    credits_collection: str = "carbon_credits"
    activity_collection: str = "activity_log"
    counters_collection: str = "counters"
    firebase_project_id: Optional[str] = None
    firebase_credentials_path: Optional[str] = None
    web3_enabled: bool = False
    web3_timeout_sec: int = 10
    web3_rpc_urls: Dict[int, str] = field(default_factory=dict)
    default_interest_rate: float = 0.08
    default_liquidation_threshold: float = 0.75
    stream_poll_interval_sec: float = 5.0

    @property
    def is_production(self) -> bool:
        """Return True when detailed server errors must be hidden."""
        return self.environment == "production"


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_float(value: Any, default: float) -> float:
    """Convert value to float with a default fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float value '%s'. Using default=%s", value, default)
        return default


def _to_list(value: Any) -> List[str]:
    """Convert list-like or comma-separated value to list[str]."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _to_choice(value: Any, choices: set, default: str) -> str:
    """Normalize a string setting and fall back when it is not an allowed choice."""
    normalized = str(value or "").strip().lower()
    if normalized not in choices:
        logger.warning("Unsupported value '%s'. Expected one of %s. Using default=%s", value, sorted(choices), default)
        return default
    return normalized


def _to_rpc_map(value: Any) -> Dict[int, str]:
    """Convert `{chain_id: rpc_url}` mapping, expanding `${ENV}` references in urls."""
    if not isinstance(value, dict):
        if value is not None:
            logger.warning("web3.rpc_urls must be a mapping of chain id to url. Ignoring value '%s'", value)
        return {}
    rpc_urls: Dict[int, str] = {}
    for raw_chain_id, raw_url in value.items():
        try:
            chain_id = int(raw_chain_id)
        except (TypeError, ValueError):
            logger.warning("Ignoring RPC url for invalid chain id '%s'", raw_chain_id)
            continue
        url = os.path.expandvars(str(raw_url or "")).strip()
        if not url or url.startswith("$"):
            logger.info("No RPC url configured for chain_id=%s", chain_id)
            continue
        rpc_urls[chain_id] = url
    return rpc_urls


def _resolve_config_path(config_path: Optional[Path] = None) -> Path:
    """Return explicit path, environment override, or the packaged default."""
    if config_path is not None:
        return Path(config_path)
    override = os.environ.get(_CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return _DEFAULT_CONFIG_PATH


def _read_config(config_path: Path) -> dict:
    """Read and parse YAML configuration."""
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except Exception:
        logger.exception("Failed to load config file from %s", config_path)
        return {}


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    """Load and validate application settings from `config.yml`."""
    config = _read_config(_resolve_config_path(config_path))
    app_cfg = config.get("app") or {}
    storage_cfg = config.get("storage") or {}
    firebase_cfg = config.get("firebase") or {}
    web3_cfg = config.get("web3") or {}
    lending_cfg = config.get("lending") or {}
    defaults = AppSettings()

    local_data_path = storage_cfg.get("local_data_path", "local-data.json")

    return AppSettings(
        app_name=str(app_cfg.get("name", defaults.app_name)),
        environment=_to_choice(app_cfg.get("environment", defaults.environment), ENVIRONMENTS, defaults.environment),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", defaults.host)),
        port=_to_int(app_cfg.get("port", defaults.port), defaults.port),
        log_level=str(app_cfg.get("log_level", defaults.log_level)).upper(),
        cors_origins=_to_list(app_cfg.get("cors_origins", [])),
        storage_backend=_to_choice(storage_cfg.get("backend", "local"), STORAGE_BACKENDS, "local"),
        local_data_path=str(local_data_path) if local_data_path else None,
        positions_collection=str(storage_cfg.get("positions_collection", defaults.positions_collection)),
        credits_collection=str(storage_cfg.get("credits_collection", defaults.credits_collection)),
        activity_collection=str(storage_cfg.get("activity_collection", defaults.activity_collection)),
        counters_collection=str(storage_cfg.get("counters_collection", defaults.counters_collection)),
        firebase_project_id=firebase_cfg.get("project_id"),
        firebase_credentials_path=firebase_cfg.get("credentials_path"),
        web3_enabled=_to_bool(web3_cfg.get("enabled", False), False),
        web3_timeout_sec=_to_int(web3_cfg.get("timeout_sec", defaults.web3_timeout_sec), defaults.web3_timeout_sec),
        web3_rpc_urls=_to_rpc_map(web3_cfg.get("rpc_urls")),
        default_interest_rate=_to_float(
            lending_cfg.get("default_interest_rate", defaults.default_interest_rate),
            defaults.default_interest_rate,
        ),
        default_liquidation_threshold=_to_float(
            lending_cfg.get("default_liquidation_threshold", defaults.default_liquidation_threshold),
            defaults.default_liquidation_threshold,
        ),
        stream_poll_interval_sec=_to_float(
            lending_cfg.get("stream_poll_interval_sec", defaults.stream_poll_interval_sec),
            defaults.stream_poll_interval_sec,
        ),
    )
