"""Configuration management for the deep learning API services.

Configuration sections are declared as lists of ``FieldDefinition`` entries and
loaded from environment variables with type conversion and validation.

Usage:
    from services.common.config import load_service_config

    config = load_service_config("api")
    print(config.server.port)
    print(config.models.asr_model)
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from services.common.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T", bound="BaseConfig")


class ConfigError(Exception):
    """Base exception for configuration-related errors."""


class ValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, field_name: str, value: Any, message: str) -> None:
        self.field = field_name
        self.value = value
        self.message = message
        super().__init__(f"Validation failed for field '{field_name}': {message}")


class RequiredFieldError(ConfigError):
    """Exception raised when a required field is missing."""

    def __init__(self, field_name: str) -> None:
        self.field = field_name
        super().__init__(f"Required field '{field_name}' is missing")


@dataclass
class FieldDefinition:
    """Definition for a configuration field with validation rules."""

    name: str
    field_type: type[Any]
    default: Any = None
    required: bool = False
    description: str = ""
    validator: Callable[[Any], bool] | None = None
    env_var: str | None = None
    choices: list[Any] | None = None
    min_value: int | float | None = None
    max_value: int | float | None = None
    pattern: str | None = None

    def __post_init__(self) -> None:
        if self.required and self.default is not None:
            raise ValueError(
                f"Field '{self.name}' cannot be both required and have a default value"
            )
        if (
            self.choices
            and self.default is not None
            and self.default not in self.choices
        ):
            raise ValueError(f"Default value for field '{self.name}' not in choices")


class BaseConfig:
    """Base class for configuration sections.

    Subclasses only declare ``get_field_definitions``; attribute defaults come
    from the definitions and keyword arguments override them.
    """

    def __init__(self, **kwargs: Any) -> None:
        for field_def in self.get_field_definitions():
            setattr(self, field_def.name, field_def.default)
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise ConfigError(
                    f"Unknown field '{key}' for {self.__class__.__name__}"
                )
            setattr(self, key, value)

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        """Return field definitions for this configuration section."""
        return []

    def validate(self) -> None:
        """Validate all fields in this configuration section."""
        for field_def in self.get_field_definitions():
            self._validate_field(field_def, getattr(self, field_def.name, None))

    def _validate_field(self, field_def: FieldDefinition, value: Any) -> None:
        if value is None:
            if field_def.required:
                raise RequiredFieldError(field_def.name)
            return

        expected = field_def.field_type
        # ints are acceptable wherever a float is declared
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if not isinstance(value, expected):
            raise ValidationError(
                field_def.name,
                value,
                f"Expected type {expected.__name__}, got {type(value).__name__}",
            )

        if field_def.choices and value not in field_def.choices:
            raise ValidationError(
                field_def.name, value, f"Value must be one of {field_def.choices}"
            )
        if field_def.min_value is not None and value < field_def.min_value:
            raise ValidationError(
                field_def.name, value, f"Value must be >= {field_def.min_value}"
            )
        if field_def.max_value is not None and value > field_def.max_value:
            raise ValidationError(
                field_def.name, value, f"Value must be <= {field_def.max_value}"
            )
        if (
            field_def.pattern
            and isinstance(value, str)
            and not re.match(field_def.pattern, value)
        ):
            raise ValidationError(
                field_def.name, value, f"Value must match pattern: {field_def.pattern}"
            )
        if field_def.validator and not field_def.validator(value):
            raise ValidationError(field_def.name, value, "Custom validation failed")

    def to_dict(self) -> dict[str, Any]:
        return {
            field_def.name: getattr(self, field_def.name, None)
            for field_def in self.get_field_definitions()
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({', '.join(f'{k}={v!r}' for k, v in self.to_dict().items())})"


class LoggingConfig(BaseConfig):
    """Logging configuration."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="level",
                field_type=str,
                default="INFO",
                description="Logging level",
                choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                env_var="LOG_LEVEL",
            ),
            FieldDefinition(
                name="json_logs",
                field_type=bool,
                default=True,
                description="Whether to use JSON logging format",
                env_var="LOG_JSON",
            ),
            FieldDefinition(
                name="log_file",
                field_type=str,
                description="Also write log records to this file",
                env_var="LOG_FILE",
            ),
        ]


class ServerConfig(BaseConfig):
    """HTTP server configuration."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="host",
                field_type=str,
                default="0.0.0.0",
                description="Bind address",
                env_var="HOST",
            ),
            FieldDefinition(
                name="port",
                field_type=int,
                default=3000,
                description="Listen port",
                min_value=1,
                max_value=65535,
                env_var="PORT",
            ),
            FieldDefinition(
                name="max_upload_mb",
                field_type=int,
                default=25,
                description="Largest accepted audio/image upload in megabytes",
                validator=validate_positive,
                env_var="MAX_UPLOAD_MB",
            ),
        ]


class ModelsConfig(BaseConfig):
    """Model identifiers and loading behaviour for the inference pipelines."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="asr_model",
                field_type=str,
                default="openai/whisper-tiny.en",
                env_var="ASR_MODEL",
            ),
            FieldDefinition(
                name="tts_model",
                field_type=str,
                default="microsoft/speecht5_tts",
                env_var="TTS_MODEL",
            ),
            FieldDefinition(
                name="text_generation_model",
                field_type=str,
                default="HuggingFaceTB/SmolLM-135M",
                env_var="TEXT_GENERATION_MODEL",
            ),
            FieldDefinition(
                name="qa_model",
                field_type=str,
                default="distilbert/distilbert-base-cased-distilled-squad",
                env_var="QA_MODEL",
            ),
            FieldDefinition(
                name="similarity_model",
                field_type=str,
                default="sentence-transformers/all-MiniLM-L6-v2",
                env_var="SIMILARITY_MODEL",
            ),
            FieldDefinition(
                name="image_classification_model",
                field_type=str,
                default="google/vit-base-patch16-224",
                env_var="IMAGE_CLASSIFICATION_MODEL",
            ),
            FieldDefinition(
                name="object_detection_model",
                field_type=str,
                default="facebook/detr-resnet-50",
                env_var="OBJECT_DETECTION_MODEL",
            ),
            FieldDefinition(
                name="image_segmentation_model",
                field_type=str,
                default="apple/deeplabv3-mobilevit-small",
                env_var="IMAGE_SEGMENTATION_MODEL",
            ),
            FieldDefinition(
                name="cache_dir",
                field_type=str,
                description="Hugging Face cache directory",
                env_var="HF_HOME",
            ),
            FieldDefinition(
                name="load_timeout",
                field_type=float,
                description="Seconds a request waits for a pipeline still loading",
                validator=validate_positive,
                env_var="MODEL_LOAD_TIMEOUT",
            ),
            FieldDefinition(
                name="load_audio",
                field_type=bool,
                default=False,
                description="Start loading the audio pipelines at startup",
                env_var="LOAD_AUDIO",
            ),
            FieldDefinition(
                name="load_nlp",
                field_type=bool,
                default=False,
                description="Start loading the NLP pipelines at startup",
                env_var="LOAD_NLP",
            ),
            FieldDefinition(
                name="load_vision",
                field_type=bool,
                default=False,
                description="Start loading the vision pipelines at startup",
                env_var="LOAD_VISION",
            ),
        ]


class EnvironmentLoader:
    """Loads configuration sections from environment variables."""

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def load_field(self, field_def: FieldDefinition) -> Any:
        env_var = field_def.env_var or field_def.name.upper()
        raw_value = self._environ.get(env_var)

        if raw_value is None or raw_value == "":
            if field_def.required:
                raise RequiredFieldError(field_def.name)
            return field_def.default

        try:
            return self._convert_value(raw_value, field_def.field_type)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                field_def.name,
                raw_value,
                f"Failed to convert environment variable {env_var}: {e}",
            ) from e

    @staticmethod
    def _convert_value(raw_value: str, target_type: type[Any]) -> Any:
        if target_type is bool:
            return raw_value.strip().lower() in ("1", "true", "yes", "on")
        if target_type is int:
            return int(raw_value)
        if target_type is float:
            return float(raw_value)
        if target_type is str:
            return raw_value
        return target_type(raw_value)

    def load_config(self, config_class: type[T]) -> T:
        kwargs = {}
        for field_def in config_class.get_field_definitions():
            try:
                kwargs[field_def.name] = self.load_field(field_def)
            except ConfigError as e:
                logger.error(
                    "config.load_field_failed",
                    section=config_class.__name__,
                    field=field_def.name,
                    error=str(e),
                )
                raise
        return config_class(**kwargs)


@dataclass
class ServiceConfig:
    """Complete configuration for a service."""

    service_name: str
    logging: LoggingConfig
    server: ServerConfig
    models: ModelsConfig

    def validate(self) -> None:
        for name in ("logging", "server", "models"):
            section: BaseConfig = getattr(self, name)
            try:
                section.validate()
            except ConfigError as e:
                logger.error(
                    "config.section_validation_failed",
                    service=self.service_name,
                    section=name,
                    error=str(e),
                )
                raise

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "logging": self.logging.to_dict(),
            "server": self.server.to_dict(),
            "models": self.models.to_dict(),
        }


def load_service_config(
    service_name: str, environ: dict[str, str] | None = None
) -> ServiceConfig:
    """Load and validate every configuration section from the environment."""
    loader = EnvironmentLoader(environ)
    config = ServiceConfig(
        service_name=service_name,
        logging=loader.load_config(LoggingConfig),
        server=loader.load_config(ServerConfig),
        models=loader.load_config(ModelsConfig),
    )
    config.validate()
    return config


def validate_positive(value: int | float) -> bool:
    """Validate that a value is positive."""
    return value > 0


__all__ = [
    "BaseConfig",
    "ConfigError",
    "EnvironmentLoader",
    "FieldDefinition",
    "LoggingConfig",
    "ModelsConfig",
    "RequiredFieldError",
    "ServerConfig",
    "ServiceConfig",
    "ValidationError",
    "load_service_config",
    "validate_positive",
]
