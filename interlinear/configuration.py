"""Prepper-backed configuration loader for Interlinear."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import EndpointConfigurationError

APP_NAME = "Interlinear"


class InterlinearConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    INTERLINEAR_ENDPOINT: Literal["google", "echo"] = Field(
        default="google",
        description="Translation endpoint selection.",
    )
    INTERLINEAR_ENDPOINT_URL: str | None = Field(default=None)
    INTERLINEAR_SOURCE_LANGUAGE: str = Field(default="en")
    INTERLINEAR_TARGET_LANGUAGE: str = Field(default="zh-CN")
    INTERLINEAR_MAX_SEGMENT_LENGTH: int = Field(default=4000)
    INTERLINEAR_MAX_CONCURRENT: int = Field(default=20)
    INTERLINEAR_MAX_RETRIES: int = Field(default=3)
    INTERLINEAR_REQUEST_TIMEOUT: float = Field(default=15.0)
    INTERLINEAR_RETRY_DELAY: float = Field(default=1.0)
    INTERLINEAR_REQUEST_INTERVAL: float = Field(
        default=0.0,
        description="Minimum seconds between the starts of two endpoint requests.",
    )
    INTERLINEAR_CACHE_SIZE: int = Field(
        default=1000,
        description="Translated units remembered per session; 0 disables the cache.",
    )
    INTERLINEAR_DEBOUNCE_SECONDS: float = Field(default=0.5)
    INTERLINEAR_SCAN_INTERVAL: float | None = Field(
        default=None,
        description="Seconds between safety-net rescans; unset disables the timer.",
    )
    INTERLINEAR_MIN_TEXT_LENGTH: int = Field(default=1)
    INTERLINEAR_SELECTORS: str = Field(
        default=".titleline > a:first-child, .commtext",
        description="CSS selector group identifying translatable elements.",
    )
    INTERLINEAR_RESET_ON_ERROR: bool = Field(default=False)
    INTERLINEAR_DEBUG_ENDPOINT: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_endpoint(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("INTERLINEAR_ENDPOINT")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower()
                synonyms = {
                    "gtx": "google",
                    "default": "google",
                    "noop": "echo",
                    "mock": "echo",
                }
                data["INTERLINEAR_ENDPOINT"] = synonyms.get(normalized, normalized)
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=InterlinearConfig,
        )

        model = InterlinearConfig.validate(combined, provenance=provenance)
        _validate_pipeline_settings(model)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=InterlinearConfig,
        )
    except IoError as exc:
        raise EndpointConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise EndpointConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise EndpointConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _validate_pipeline_settings(settings: InterlinearConfig) -> None:
    errors: list[str] = []

    minimums = {
        "INTERLINEAR_MAX_SEGMENT_LENGTH": (settings.INTERLINEAR_MAX_SEGMENT_LENGTH, 1),
        "INTERLINEAR_MAX_CONCURRENT": (settings.INTERLINEAR_MAX_CONCURRENT, 1),
        "INTERLINEAR_MAX_RETRIES": (settings.INTERLINEAR_MAX_RETRIES, 0),
        "INTERLINEAR_MIN_TEXT_LENGTH": (settings.INTERLINEAR_MIN_TEXT_LENGTH, 1),
        "INTERLINEAR_CACHE_SIZE": (settings.INTERLINEAR_CACHE_SIZE, 0),
    }
    for name, (value, minimum) in minimums.items():
        if value < minimum:
            errors.append(f"{name} must be at least {minimum} (got {value}).")

    for name, value in {
        "INTERLINEAR_REQUEST_TIMEOUT": settings.INTERLINEAR_REQUEST_TIMEOUT,
        "INTERLINEAR_RETRY_DELAY": settings.INTERLINEAR_RETRY_DELAY,
        "INTERLINEAR_REQUEST_INTERVAL": settings.INTERLINEAR_REQUEST_INTERVAL,
        "INTERLINEAR_DEBOUNCE_SECONDS": settings.INTERLINEAR_DEBOUNCE_SECONDS,
    }.items():
        if value < 0:
            errors.append(f"{name} must not be negative (got {value}).")
    if settings.INTERLINEAR_REQUEST_TIMEOUT == 0:
        errors.append("INTERLINEAR_REQUEST_TIMEOUT must be greater than zero.")

    if not settings.INTERLINEAR_SELECTORS.strip():
        errors.append("INTERLINEAR_SELECTORS must name at least one selector.")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise EndpointConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> InterlinearConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
