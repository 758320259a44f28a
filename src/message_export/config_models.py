"""
Pydantic models for YAML configuration validation.
Provides schema validation with clear error messages for export configurations.
"""

from __future__ import annotations
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from message_export.core.models import FetchStrategy
from message_export.transform.projection import MMS_PROPERTIES, SMS_PROPERTIES


class SqliteSourceConfig(BaseModel):
    """Configuration for the SQLite message store."""
    type: Literal["sqlite"]
    path: str = Field(..., description="Path to the SQLite database holding the messages table")
    page_size: int = Field(100, ge=1, le=10000, description="Rows fetched per cursor page")
    timeout_s: float = Field(5.0, gt=0, description="SQLite busy timeout in seconds")


class HttpSourceConfig(BaseModel):
    """Configuration for the paged HTTP message API."""
    type: Literal["http"]
    base_url: str = Field(..., description="Base URL exposing /messages and /threads")
    page_size: int = Field(100, ge=1, le=10000, description="Items requested per page")
    timeout_s: Optional[float] = Field(30, gt=0, description="HTTP request timeout in seconds")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must be a valid HTTP/HTTPS URL')
        return v


class DirectorySinkConfig(BaseModel):
    """Configuration for the directory sink."""
    type: Literal["directory"] = "directory"
    path: str = Field("output", description="Directory receiving exported artifacts")


class ExportSettings(BaseModel):
    """Configuration for the export itself."""
    base_name: str = Field("SMMS.json", description="Artifact base name, prefixed with a timestamp")
    strategy: FetchStrategy = Field(FetchStrategy.TIMELINE, description="timeline or by_thread")
    sms_properties: List[str] = Field(default_factory=lambda: list(SMS_PROPERTIES))
    mms_properties: List[str] = Field(default_factory=lambda: list(MMS_PROPERTIES))

    @field_validator('base_name')
    @classmethod
    def validate_base_name(cls, v):
        if not v or '/' in v or '\\' in v:
            raise ValueError('base_name must be a plain file name')
        return v

    @field_validator('sms_properties', 'mms_properties')
    @classmethod
    def validate_properties(cls, v):
        if not v:
            raise ValueError('property allow-lists cannot be empty')
        return list(dict.fromkeys(v))  # Remove duplicates, keep order


class RetryConfig(BaseModel):
    """Configuration for cursor reopen behavior."""
    max_retries: Optional[int] = Field(None, ge=0, description="Reopen attempts per run; null retries forever")
    base_delay_s: float = Field(0.0, ge=0, description="Initial backoff between reopen attempts")
    max_delay_s: float = Field(30.0, ge=0, description="Backoff cap")
    jitter_s: float = Field(0.0, ge=0, description="Random jitter added to each backoff")
    attempt_timeout_s: Optional[float] = Field(None, gt=0, description="Timeout for one advance call; null waits forever")

    @model_validator(mode='after')
    def validate_delays(self):
        if self.max_delay_s < self.base_delay_s:
            raise ValueError('max_delay_s must be greater than or equal to base_delay_s')
        return self


class LoggingConfig(BaseModel):
    """Configuration for logging setup."""
    config_path: str = Field("configs/logging.yaml", description="dictConfig YAML file")
    level: Optional[str] = Field(None, description="Overrides the message_export logger level when set")


class ExportConfig(BaseModel):
    """Root configuration model for message export jobs."""
    source: Union[SqliteSourceConfig, HttpSourceConfig] = Field(..., discriminator="type")
    sink: DirectorySinkConfig = Field(default_factory=DirectorySinkConfig)
    export: ExportSettings = Field(default_factory=ExportSettings)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_and_validate_config(config_path: str) -> ExportConfig:
    """
    Load and validate an export configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated ExportConfig object

    Raises:
        ValueError: If configuration is invalid or the YAML is malformed
        FileNotFoundError: If config file doesn't exist
    """
    import yaml

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")

    try:
        return ExportConfig(**(raw_config or {}))
    except ValidationError as e:
        # Format validation errors nicely
        error_messages = []
        for error in e.errors():
            field_path = '.'.join(str(loc) for loc in error['loc'])
            error_messages.append(f"  {field_path}: {error['msg']}")

        raise ValueError(
            f"Configuration validation failed for {config_path}:\n" +
            '\n'.join(error_messages)
        ) from e
