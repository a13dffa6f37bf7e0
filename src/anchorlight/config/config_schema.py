"""Typed configuration models and JSON Schema validation for anchorlight.

The JSON Schema is generated from the pydantic models below, so the schema and
the runtime model cannot drift apart. ``validate_config`` runs the schema first
(for readable, path-addressed errors) and then materializes the model.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from jsonschema import Draft202012Validator, ValidationError
from pydantic import BaseModel, ConfigDict, Field, PositiveFloat
from pydantic import ValidationError as ModelValidationError

logger = logging.getLogger(__name__)

LogLevel = Literal["debug", "info", "warn", "warning", "error", "crit", "critical"]


class TrustAnchorsConfig(BaseModel):
    """Brief: Where trust anchors come from.

    Inputs:
      - root: Install the built-in IANA root KSK anchors.
      - anchors: Inline DS/DNSKEY records in presentation format.
      - files: Paths to anchor files (presentation text or JSON list).

    Outputs:
      - TrustAnchorsConfig instance.
    """

    model_config = ConfigDict(extra="forbid")

    root: bool = True
    anchors: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)


class ResolverConfig(BaseModel):
    """Brief: Stub resolver used to fetch DNSKEY/DS records.

    Inputs:
      - nameservers: IP strings; omit to use the system configuration.
      - port: Destination port.
      - timeout: Per-query timeout in seconds.
      - payload_size: EDNS(0) UDP payload size.

    Outputs:
      - ResolverConfig instance.
    """

    model_config = ConfigDict(extra="forbid")

    nameservers: Optional[List[str]] = None
    port: int = Field(default=53, ge=1, le=65535)
    timeout: float = Field(default=2.0, gt=0)
    payload_size: int = Field(default=1232, ge=512, le=65535)


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_ttl: Optional[PositiveFloat] = None
    maxsize: int = Field(default=1024, ge=1)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: LogLevel = "info"
    stderr: bool = True
    file: Optional[str] = None


class AnchorlightConfig(BaseModel):
    """Brief: Root configuration model.

    Inputs:
      - trust_anchors, resolver, cache, logging: Section models; every
        section is optional and defaults to its model defaults.

    Outputs:
      - AnchorlightConfig instance.

    Example:
      >>> AnchorlightConfig.model_validate({"resolver": {"nameservers": ["9.9.9.9"]}})
    """

    model_config = ConfigDict(extra="forbid")

    trust_anchors: TrustAnchorsConfig = Field(default_factory=TrustAnchorsConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def config_json_schema() -> Dict[str, Any]:
    """Return the JSON Schema (draft 2020-12) for the YAML configuration."""
    schema = AnchorlightConfig.model_json_schema()
    schema.setdefault("$schema", "https://json-schema.org/draft/2020-12/schema")
    return schema


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"- {instance_path}: {err.message}")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any], *, config_path: Optional[str] = None
) -> AnchorlightConfig:
    """Brief: Validate a parsed YAML mapping and build the typed config.

    Inputs:
      - cfg: Dict loaded from YAML (top-level configuration mapping).
      - config_path: Optional path used only in error messages.

    Outputs:
      - AnchorlightConfig.

    Raises:
      - ValueError: when the mapping does not satisfy the schema.
    """

    if cfg is None:
        cfg = {}
    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    validator = Draft202012Validator(config_json_schema())
    errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if errors:
        raise ValueError(_format_errors(errors, config_path=config_path))

    try:
        return AnchorlightConfig.model_validate(cfg)
    except ModelValidationError as exc:  # pragma: no cover - schema catches these first
        raise ValueError(f"Invalid configuration in {config_path or '<config dict>'}: {exc}") from exc
