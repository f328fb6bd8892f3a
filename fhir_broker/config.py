from enum import Enum
import configparser
import re
from os import environ
from os.path import exists
from typing import Any, Optional
import logging

from pydantic import BaseModel, Field, ValidationError, computed_field, field_validator

logger = logging.getLogger(__name__)

_PATH = "app{suffix}.conf"
_CONFIG = None


def _convert_conf_to_sec(value: str) -> int:
    conversion_map = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    match = re.match(r"^(\d+)([smhd])$", value)
    if not match:
        raise ValueError(
            f"Incorrect input, must be digits with {list(conversion_map.keys())}"
        )

    number = int(match.group(1))
    unit = match.group(2)

    return number * conversion_map[unit]


def _to_bool(v: Any, default: bool) -> bool:
    if v in (None, "", " "):
        return default
    if isinstance(v, str):
        return v.lower() in ("yes", "true", "t", "1")
    return bool(v)


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class ConfigApp(BaseModel):
    loglevel: LogLevel = Field(default=LogLevel.info)
    event_log_size: int = Field(default=200, ge=1)

    @field_validator("event_log_size", mode="before")
    def validate_event_log_size(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 200
        return int(v)


class ConfigBroker(BaseModel):
    # Placeholder key, signatures are never verified on decode
    signing_key: str = Field(default="demo-secret-key-not-for-production-use")
    ticket_issuer: str = Field(default="https://identity-provider.example.org")
    network_audience: str = Field(default="https://cms-network.example.org")
    default_scopes: list[str] = Field(default=["patient/Encounter.rs"])
    access_token_lifetime: str = Field(default="1h")
    ticket_lifetime: str = Field(default="1h")
    assertion_lifetime: str = Field(default="5m")

    @field_validator("default_scopes", mode="before")
    def validate_default_scopes(cls, v: Any) -> list[str]:
        if v in (None, "", " "):
            return ["patient/Encounter.rs"]
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v  # type: ignore

    @computed_field
    def access_token_lifetime_in_sec(self) -> int:
        return _convert_conf_to_sec(self.access_token_lifetime)

    @computed_field
    def ticket_lifetime_in_sec(self) -> int:
        return _convert_conf_to_sec(self.ticket_lifetime)

    @computed_field
    def assertion_lifetime_in_sec(self) -> int:
        return _convert_conf_to_sec(self.assertion_lifetime)


class ConfigDelivery(BaseModel):
    timeout: int = Field(default=5)
    # Parallelism for delivering one event to several subscribers (1 = sequential)
    max_concurrent_deliveries: int = Field(default=4, ge=1, le=32)
    content_type: str = Field(default="application/fhir+json")

    @field_validator("timeout", mode="before")
    def validate_timeout(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 5
        return int(v)

    @field_validator("max_concurrent_deliveries", mode="before")
    def validate_max_concurrent_deliveries(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 4
        return int(v)


class ConfigServices(BaseModel):
    """
    Base urls used for server to server calls between the three services.
    """
    broker_url: str = Field(default="http://localhost:8000/broker")
    data_source_url: str = Field(default="http://localhost:8000/mercy-ehr")
    client_url: str = Field(default="http://localhost:8000/client")
    client_id: str = Field(default="https://ias-client.example.com")
    timeout: int = Field(default=10)
    backoff: float = Field(default=0.1)
    retries: int = Field(default=1)

    @field_validator("timeout", mode="before")
    def validate_timeout(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 10
        return int(v)

    @field_validator("backoff", mode="before")
    def validate_backoff(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 0.1
        return float(v)

    @field_validator("retries", mode="before")
    def validate_retries(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 1
        return int(v)


class ConfigUvicorn(BaseModel):
    swagger_enabled: bool = Field(default=False)
    docs_url: str = Field(default="/docs")
    redoc_url: str = Field(default="/redoc")
    host: str = Field(default="127.0.0.1")
    port: Optional[int] = Field(default=8000, gt=0, lt=65535)
    reload: bool = Field(default=True)
    reload_delay: float = Field(default=1)
    reload_dirs: list[str] = Field(default=["fhir_broker"])
    use_ssl: bool = Field(default=False)
    ssl_base_dir: str | None = Field(default=None)
    ssl_cert_file: str | None = Field(default=None)
    ssl_key_file: str | None = Field(default=None)

    @field_validator("host", mode="before")
    def validate_host(cls, v: Any) -> str:
        if v in (None, "", " "):
            return "127.0.0.1"
        return str(v)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 8000
        return int(v)

    @field_validator("reload", mode="before")
    def validate_reload(cls, v: Any) -> bool:
        return _to_bool(v, True)

    @field_validator("reload_delay", mode="before")
    def validate_reload_delay(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 1.0
        return float(v)

    @field_validator("reload_dirs", mode="before")
    def validate_reload_dirs(cls, v: Any) -> list[str]:
        if v in (None, "", " "):
            return ["fhir_broker"]
        if isinstance(v, str):
            return [d.strip() for d in v.split(",")]
        return v  # type: ignore

    @field_validator("swagger_enabled", "use_ssl", mode="before")
    def validate_flags(cls, v: Any) -> bool:
        return _to_bool(v, False)


class ConfigStats(BaseModel):
    enabled: bool = Field(default=False)
    host: str | None = Field(default=None)
    port: int | None = Field(default=None)
    module_name: str | None = Field(default=None)

    @field_validator("enabled", mode="before")
    def validate_enabled(cls, v: Any) -> bool:
        return _to_bool(v, False)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int | None:
        if v in (None, "", " "):
            return None
        return int(v)


class Config(BaseModel):
    app: ConfigApp
    uvicorn: ConfigUvicorn
    broker: ConfigBroker
    delivery: ConfigDelivery
    services: ConfigServices
    stats: ConfigStats


def read_ini_file(path: str) -> Any:
    ini_data = configparser.ConfigParser()
    ini_data.read(path)

    ret = {}
    for section in ini_data.sections():
        ret[section] = dict(ini_data[section])

    return ret


def reset_config() -> None:
    global _CONFIG
    _CONFIG = None


def set_config(config: Config) -> None:
    global _CONFIG
    _CONFIG = config


def get_config(path: str | None = None) -> Config:
    global _CONFIG

    if _CONFIG is not None:
        return _CONFIG

    if path is None:
        suffix = environ.get("APP_ENV", "")
        if suffix:
            suffix = f".{suffix}"
        path = _PATH.replace("{suffix}", suffix)
        logger.info(f"Reading configuration using file: {path}")

    if not exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    # INI files are not a native pydantic source, so sections are read into dicts first.
    # Every section is optional and falls back to its defaults.
    ini_data = read_ini_file(path)
    for section in ("app", "uvicorn", "broker", "delivery", "services", "stats"):
        ini_data.setdefault(section, {})

    try:
        _CONFIG = Config(**ini_data)
    except ValidationError as e:
        logger.error(f"Configuration validation error: {e}")
        raise e

    return _CONFIG
