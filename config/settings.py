"""
Configuration management using Pydantic Settings.
Loads configuration from environment variables (and a .env file) with validation.
"""
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import Field, ValidationError, field_validator

from canister_prober.common.durations import parse_bind_address, parse_duration
from canister_prober.common.exceptions import ConfigurationError, ProberError
from canister_prober.extractor.rules import DEFAULT_CANISTER_HEIGHT_PATTERN, compile_pattern

# Load .env file into os.environ so all nested BaseSettings pick up values
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)


class ProberSettings(BaseSettings):
    """Poll loop and source endpoint configuration"""
    polling_interval: float = Field(default=10.0)
    target_height_endpoint: str = Field(default="https://blockchain.info/q/getblockcount")
    bitcoin_canister_metrics_endpoint: str = Field(
        default="https://g4xu7-jiaaa-aaaan-aaaaq-cai.raw.ic0.app/metrics"
    )
    canister_height_pattern: str = Field(default=DEFAULT_CANISTER_HEIGHT_PATTERN)
    metrics_addr: str = Field(default="0.0.0.0:9090")
    request_timeout_seconds: float = Field(default=10.0)
    fail_fast: bool = Field(default=True)

    class Config:
        env_prefix = "PROBER_"

    @field_validator("polling_interval", "request_timeout_seconds", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        try:
            return parse_duration(value)
        except ProberError as e:
            raise ValueError(str(e)) from e

    @field_validator("canister_height_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            compile_pattern(value)
        except ProberError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("metrics_addr")
    @classmethod
    def _check_metrics_addr(cls, value: str) -> str:
        try:
            parse_bind_address(value)
        except ProberError as e:
            raise ValueError(str(e)) from e
        return value


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Main settings aggregating all configuration sections"""
    prober: ProberSettings = Field(default_factory=ProberSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        extra = "ignore"


def load_settings() -> Settings:
    """
    Read settings from the environment.

    Raises:
        ConfigurationError: if any PROBER_* or LOG_* value is invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
