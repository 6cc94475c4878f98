"""Configuration handling for the ranked-feed sampler."""

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

MODE_DISCOVERY = "discovery"
MODE_SNAPSHOT = "snapshot"
MODES = (MODE_DISCOVERY, MODE_SNAPSHOT)

DEFAULT_CATEGORIES: Dict[str, str] = {
    "new": "newstories.json",
    "top": "topstories.json",
    "best": "beststories.json",
}



def _coerce(current: Any, value: Any) -> Any:
    """Convert a YAML scalar to the type of the field it overrides, when it can."""
    if not isinstance(value, str):
        return value
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, (int, float)):
        for convert in (int, float):
            try:
                return convert(value)
            except ValueError:
                continue
        # Left as-is; validate() reports it
        return value
    if isinstance(current, list):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class ApiConfig:
    """Source API endpoints and transport settings."""

    base_url: str = "https://hacker-news.firebaseio.com/v0"
    item_path: str = "item/{id}.json"
    request_timeout_sec: float = 10.0
    max_concurrency: int = 20
    user_agent: str = "rank_sampler/0.1"


@dataclass
class RateLimitConfig:
    """Rate limiting and retry configuration."""

    max_requests_per_minute: int = 0  # 0 disables request spacing
    sleep_buffer_sec: int = 2
    max_retries: int = 2
    initial_backoff_sec: float = 0.5


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Application configuration combining YAML values and environment overrides."""

    mode: str = MODE_DISCOVERY
    sample_distance_sec: int = 60
    max_age_hours: float = 48
    max_rank: int = 500
    discovery_category: str = "new"
    rank_categories: List[str] = field(default_factory=lambda: ["top"])
    categories: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CATEGORIES))
    output_path: Optional[str] = None
    log_file: Optional[str] = None
    failure_threshold: int = 5
    api: ApiConfig = field(default_factory=ApiConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_files(cls, config_path: Optional[str] = None, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from a YAML file and environment variables.

        Environment variables win over YAML values, which win over defaults.

        Args:
            config_path: Path to YAML configuration file (missing file is not an error)
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        if config_path and os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                config.update_from_dict(yaml_config)

        config._apply_env()
        return config

    def update_from_dict(self, values: Dict[str, Any]) -> None:
        """Merge a (possibly partial) mapping, as read from YAML, into this config."""
        nested = {
            "api": self.api,
            "rate_limit": self.rate_limit,
            "monitoring": self.monitoring,
        }
        for key, value in values.items():
            if key in nested:
                if isinstance(value, dict):
                    section = nested[key]
                    for sub_key, sub_value in value.items():
                        if hasattr(section, sub_key):
                            setattr(section, sub_key, _coerce(getattr(section, sub_key), sub_value))
            elif key == "categories" and isinstance(value, dict):
                self.categories = {str(name): str(path) for name, path in value.items()}
            elif hasattr(self, key):
                setattr(self, key, _coerce(getattr(self, key), value))

    def _apply_env(self) -> None:
        self.mode = os.getenv("RANK_SAMPLER_MODE", self.mode)
        self.api.base_url = os.getenv("RANK_SAMPLER_BASE_URL", self.api.base_url)
        self.output_path = os.getenv("RANK_SAMPLER_OUTPUT", self.output_path)
        self.log_file = os.getenv("RANK_SAMPLER_LOG_FILE", self.log_file)

        if os.getenv("RANK_SAMPLER_SAMPLE_DISTANCE_SEC"):
            self.sample_distance_sec = int(os.environ["RANK_SAMPLER_SAMPLE_DISTANCE_SEC"])
        if os.getenv("RANK_SAMPLER_MAX_AGE_HOURS"):
            self.max_age_hours = float(os.environ["RANK_SAMPLER_MAX_AGE_HOURS"])
        if os.getenv("RANK_SAMPLER_MAX_RANK"):
            self.max_rank = int(os.environ["RANK_SAMPLER_MAX_RANK"])
        if os.getenv("RANK_SAMPLER_MAX_CONCURRENCY"):
            self.api.max_concurrency = int(os.environ["RANK_SAMPLER_MAX_CONCURRENCY"])
        if os.getenv("RANK_SAMPLER_RANK_CATEGORIES"):
            self.rank_categories = [
                name.strip()
                for name in os.environ["RANK_SAMPLER_RANK_CATEGORIES"].split(",")
                if name.strip()
            ]

    @property
    def tracks_ticks(self) -> bool:
        """Whether rows carry a tick column."""
        return self.mode == MODE_SNAPSHOT

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.mode not in MODES:
            errors.append(f"mode must be one of {', '.join(MODES)} (got {self.mode!r})")

        numbers = {
            "sample_distance_sec": self.sample_distance_sec,
            "max_age_hours": self.max_age_hours,
            "max_rank": self.max_rank,
            "failure_threshold": self.failure_threshold,
            "api.request_timeout_sec": self.api.request_timeout_sec,
            "api.max_concurrency": self.api.max_concurrency,
            "rate_limit.max_requests_per_minute": self.rate_limit.max_requests_per_minute,
            "rate_limit.sleep_buffer_sec": self.rate_limit.sleep_buffer_sec,
            "rate_limit.max_retries": self.rate_limit.max_retries,
            "rate_limit.initial_backoff_sec": self.rate_limit.initial_backoff_sec,
            "monitoring.prometheus_port": self.monitoring.prometheus_port,
        }
        mistyped = [
            f"{name} must be a number (got {value!r})"
            for name, value in numbers.items()
            if not _is_number(value)
        ]
        if mistyped:
            # Range checks below assume numbers
            return errors + mistyped

        if self.sample_distance_sec <= 0:
            errors.append("sample_distance_sec must be greater than 0")

        if self.max_rank <= 0:
            errors.append("max_rank must be greater than 0")

        if self.mode == MODE_DISCOVERY:
            if self.max_age_hours <= 0:
                errors.append("max_age_hours must be greater than 0")
            if self.discovery_category not in self.categories:
                errors.append(f"Unknown discovery_category: {self.discovery_category}")

        if self.mode == MODE_SNAPSHOT and not self.rank_categories:
            errors.append("No rank_categories specified for snapshot mode")

        if len(set(self.rank_categories)) != len(self.rank_categories):
            errors.append("rank_categories contains duplicates")

        for name in self.rank_categories:
            if name not in self.categories:
                errors.append(f"Unknown rank category: {name}")

        if self.api.max_concurrency < 1:
            errors.append("api.max_concurrency must be at least 1")

        if self.api.request_timeout_sec <= 0:
            errors.append("api.request_timeout_sec must be greater than 0")

        if "{id}" not in self.api.item_path:
            errors.append("api.item_path must contain an {id} placeholder")

        if self.rate_limit.max_requests_per_minute < 0:
            errors.append("rate_limit.max_requests_per_minute must not be negative")

        if self.rate_limit.max_retries < 0:
            errors.append("rate_limit.max_retries must not be negative")

        if self.failure_threshold <= 0:
            errors.append("failure_threshold must be greater than 0")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view of the effective configuration."""
        return asdict(self)
