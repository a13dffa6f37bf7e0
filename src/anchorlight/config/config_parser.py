from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import yaml

from ..dnssec.errors import ConfigurationError
from ..dnssec.key_cache import KeyCache
from ..dnssec.resolver import Resolver, StubResolver
from ..dnssec.trust_anchors import TrustAnchor, load_anchor_file, parse_anchor_text
from ..dnssec.validator import Validator
from .config_schema import AnchorlightConfig, validate_config

logger = logging.getLogger("anchorlight.config")


def parse_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read a YAML config file into a plain mapping.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - dict: Parsed mapping (empty for an empty file).

    Raises:
      - ValueError: when the YAML is invalid or its root is not a mapping.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    return cfg


def load_config(config_path: Optional[str] = None) -> AnchorlightConfig:
    """Load and validate configuration; no path yields the defaults."""
    if not config_path:
        return AnchorlightConfig()
    return validate_config(parse_config_file(config_path), config_path=config_path)


def build_resolver(cfg: AnchorlightConfig) -> StubResolver:
    rc = cfg.resolver
    return StubResolver(
        rc.nameservers,
        port=rc.port,
        timeout=rc.timeout,
        payload_size=rc.payload_size,
    )


def collect_trust_anchors(cfg: AnchorlightConfig) -> List[TrustAnchor]:
    """Brief: Gather the non-built-in anchors named by the configuration.

    Inputs:
      - cfg: AnchorlightConfig.

    Outputs:
      - List of TrustAnchor from inline records and anchor files.

    Raises:
      - ValueError: when an inline record or file cannot be parsed.
    """

    anchors: List[TrustAnchor] = []
    try:
        anchors.extend(parse_anchor_text(cfg.trust_anchors.anchors))
        for path in cfg.trust_anchors.files:
            anchors.extend(load_anchor_file(path))
    except ConfigurationError as exc:
        raise ValueError(str(exc)) from exc
    return anchors


def build_validator(
    cfg: AnchorlightConfig, resolver: Optional[Resolver] = None
) -> Validator:
    """Brief: Assemble a Validator (resolver, key cache, anchors) from config.

    Inputs:
      - cfg: AnchorlightConfig.
      - resolver: Optional Resolver; built from cfg.resolver when omitted.

    Outputs:
      - Validator with every configured anchor installed.

    Raises:
      - ValueError: when no trust anchor ends up configured.
    """

    if resolver is None:
        resolver = build_resolver(cfg)
    key_cache = KeyCache(
        resolver, max_ttl=cfg.cache.max_ttl, maxsize=cfg.cache.maxsize
    )
    validator = Validator(resolver, key_cache=key_cache)
    if cfg.trust_anchors.root:
        validator.use_root_trust_anchor()
    for anchor in collect_trust_anchors(cfg):
        validator.add_trust_anchor(anchor)

    if not validator.trust_anchors:
        raise ValueError(
            "no trust anchors configured; enable trust_anchors.root or add anchors"
        )
    logger.debug(
        "validator ready with %d trust anchor tag(s)", len(validator.trust_anchors)
    )
    return validator
