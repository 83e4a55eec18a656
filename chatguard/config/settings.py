"""
chatguard configuration management using Pydantic Settings.

Configuration can be provided via:
1. chatguard.yaml config file
2. CHATGUARD_* env vars (nested with double underscore, e.g. CHATGUARD_STORE__URL)
3. .env file
4. Direct instantiation

Priority (highest wins): init kwargs > chatguard.yaml > env vars > .env > defaults

The chatguard.yaml format:
    log_level: INFO
    redis_url: redis://localhost:6379/0   # shortcut for store.backend/url
    checks:
      language_check: false               # disable a check
      input_length:                       # per-check options
        maxLength: 2000
      ai_content_analysis:
        enabled: true
        strictMode: true
    abuse:
      warning_limit: 5
      base_timeout_minutes: 30
    llm:
      analysis_model: groq/llama-3.1-8b-instant
    tracing:
      type: console
    display:
      rate_limit_user:
        title: Slow down
        description: Try again in {timeRemaining}.
        severity: warning
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

VALID_TIERS = (1, 2, 3, 4)


class StoreConfig(BaseModel):
    """Counter store configuration."""

    backend: Literal["memory", "redis"] = "memory"
    url: str = "redis://localhost:6379/0"


class AbuseConfig(BaseModel):
    """Warning → timeout → deny-list escalation settings."""

    # Warnings before an IP is put in timeout
    warning_limit: int = 5
    warning_window: str = "1 h"
    # Timeouts counted for escalation
    timeout_limit: int = 3
    timeout_window: str = "24 h"
    # Timeout duration doubles on each repeat, capped at max
    base_timeout_minutes: int = 30
    max_timeout_minutes: int = 1440
    # Per-IP request limit (sliding window)
    ip_limit: int = 50
    ip_window: str = "1 h"
    # Add IPs to the deny list once they exceed timeout_limit in the window
    auto_deny_list: bool = False
    # Consult the deny list before running any check
    enforce_deny_list: bool = False


class LLMConfig(BaseModel):
    """Models used by the network-calling checks."""

    analysis_model: str = "groq/llama-3.1-8b-instant"
    moderation_model: str = "omni-moderation-latest"
    temperature: float = 0.0
    max_tokens: int = 1024
    timeout: float = 10.0


class PreflightConfig(BaseModel):
    """Defaults applied to every preflight run.

    Per-call PreflightOptions override these.
    """

    tiers: List[int] = Field(default_factory=lambda: list(VALID_TIERS))
    # check name -> enabled override
    checks: Dict[str, bool] = Field(default_factory=dict)
    # check name -> option overrides, validated against the check's config model
    check_config: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    # Failure codes that count as an abuse warning. None means the built-in set.
    warning_codes: Optional[List[str]] = None
    run_all_checks: bool = False
    include_all_results: bool = False


class OTelConfig(BaseModel):
    """OpenTelemetry tracing configuration.

    Exporters:
    - otlp: OTLP gRPC endpoint (Jaeger, Tempo, collector, ...)
    - console: Print spans to stdout (for debugging)
    - none: Disable tracing
    """

    enabled: bool = False
    endpoint: str = "http://localhost:4317"
    service_name: str = "chatguard"
    exporter_type: Literal["otlp", "console", "none"] = "none"
    insecure: bool = True


class DisplayEntry(BaseModel):
    """User-facing error text for one failure code."""

    title: str
    description: str
    severity: Literal["info", "warning", "error"] = "error"


CONFIG_FILENAMES = ("chatguard.yaml", "chatguard.yml")

# Top-level YAML keys copied as-is onto GuardSettings fields
_SECTIONS = ("debug", "log_level", "store", "abuse", "llm", "preflight", "otel", "display")

# tracing.<key> -> otel.<field>
_TRACING_FIELDS = {"type": "exporter_type", "endpoint": "endpoint", "service_name": "service_name"}


def find_config_file(explicit: Optional[str] = None) -> Optional[Path]:
    """
    Locate the YAML config.

    An explicit path wins, then $CHATGUARD_CONFIG, then chatguard.yaml or
    chatguard.yml in the working directory. A named path that does not
    exist yields None rather than falling through to discovery.
    """
    named = explicit or os.environ.get("CHATGUARD_CONFIG")
    if named:
        candidates = [Path(named)]
    else:
        candidates = [Path(name) for name in CONFIG_FILENAMES]
    return next((p for p in candidates if p.is_file()), None)


def _split_check_entries(checks: Dict[str, Any]) -> Tuple[Dict[str, bool], Dict[str, Dict[str, Any]]]:
    enabled: Dict[str, bool] = {}
    options: Dict[str, Dict[str, Any]] = {}
    for name, entry in checks.items():
        if isinstance(entry, bool):
            enabled[name] = entry
            continue
        if not isinstance(entry, dict):
            raise ValueError(f"Invalid entry for check '{name}': expected a bool or a mapping")
        entry = dict(entry)
        if "enabled" in entry:
            enabled[name] = bool(entry.pop("enabled"))
        if entry:
            options[name] = entry
    return enabled, options


def expand_shortcuts(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn the flat YAML shortcuts into the nested GuardSettings shape."""
    mapped = {key: data[key] for key in _SECTIONS if key in data}

    if "redis_url" in data:
        mapped.setdefault("store", {}).update(backend="redis", url=data["redis_url"])

    checks = data.get("checks")
    if isinstance(checks, dict) and checks:
        enabled, options = _split_check_entries(checks)
        preflight = mapped.setdefault("preflight", {})
        preflight.setdefault("checks", {}).update(enabled)
        check_config = preflight.setdefault("check_config", {})
        for name, values in options.items():
            check_config.setdefault(name, {}).update(values)

    tracing = data.get("tracing")
    if isinstance(tracing, dict) and tracing:
        otel = mapped.setdefault("otel", {})
        for src, dest in _TRACING_FIELDS.items():
            if src in tracing:
                otel[dest] = tracing[src]
        if "type" in tracing:
            otel["enabled"] = tracing["type"] != "none"

    return mapped


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source backed by chatguard.yaml. See find_config_file for lookup order."""

    def __init__(self, settings_cls: Type[BaseSettings], config_path: Optional[str] = None):
        super().__init__(settings_cls)
        self.path = find_config_file(config_path)
        self._values = expand_shortcuts(self._read()) if self.path else {}

    def _read(self) -> Dict[str, Any]:
        # YAML errors propagate: a broken file must not fall back to defaults
        import yaml

        raw = yaml.safe_load(self.path.read_text())
        logger.debug(f"Loaded config from {self.path}")
        return raw if isinstance(raw, dict) else {}

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        value = self._values.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> Dict[str, Any]:
        return dict(self._values)


class GuardSettings(BaseSettings):
    """
    Main chatguard configuration.

    All settings can be overridden via environment variables with CHATGUARD_ prefix.
    Nested settings use double underscore: CHATGUARD_ABUSE__WARNING_LIMIT

    A chatguard.yaml config file is also supported (config takes priority).
    Pass _config_path to override the config file location.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATGUARD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Path to chatguard.yaml (set via _config_path kwarg, not a real setting field)
    _config_path: Optional[str] = None

    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    store: StoreConfig = Field(default_factory=StoreConfig)
    abuse: AbuseConfig = Field(default_factory=AbuseConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    preflight: PreflightConfig = Field(default_factory=PreflightConfig)
    otel: OTelConfig = Field(default_factory=OTelConfig)

    # failure code -> display text overrides
    display: Dict[str, DisplayEntry] = Field(default_factory=dict)

    def __init__(self, _config_path: Optional[str] = None, **kwargs: Any):
        self.__class__._config_path = _config_path
        super().__init__(**kwargs)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # init > yaml > env > dotenv > secrets
        yaml_source = YamlConfigSource(settings_cls, config_path=cls._config_path)
        return init_settings, yaml_source, env_settings, dotenv_settings, file_secret_settings

    def validate(self) -> None:
        """
        Check cross-field constraints that pydantic types cannot express.

        Per-check options are validated separately against the check registry
        when the service is built.

        Raises:
            ValueError: On the first invalid setting found
        """
        # Local import keeps config importable without the store layer
        from chatguard.store.ratelimit import parse_duration

        if not self.preflight.tiers:
            raise ValueError("preflight.tiers must name at least one tier")
        invalid = [t for t in self.preflight.tiers if t not in VALID_TIERS]
        if invalid:
            raise ValueError(
                f"Invalid preflight tiers: {invalid}. Expected values in {list(VALID_TIERS)}"
            )

        for name in ("warning_window", "timeout_window", "ip_window"):
            parse_duration(getattr(self.abuse, name))

        for name in ("warning_limit", "timeout_limit", "ip_limit"):
            if getattr(self.abuse, name) < 1:
                raise ValueError(f"abuse.{name} must be at least 1")

        if self.abuse.base_timeout_minutes < 1:
            raise ValueError("abuse.base_timeout_minutes must be at least 1")
        if self.abuse.max_timeout_minutes < self.abuse.base_timeout_minutes:
            raise ValueError(
                "abuse.max_timeout_minutes must be >= abuse.base_timeout_minutes"
            )

        if self.store.backend == "redis" and not self.store.url.startswith(
            ("redis://", "rediss://", "unix://")
        ):
            raise ValueError(
                f"Invalid Redis URL: '{self.store.url}'. "
                "Expected redis://, rediss:// or unix://"
            )
