"""Brief: Tests for YAML config loading, schema validation and builders.

Inputs:
  - None (pytest harness).

Outputs:
  - None (pytest assertions).
"""

from __future__ import annotations

import pathlib

import pytest

from anchorlight.config.config_parser import (
    build_resolver,
    build_validator,
    load_config,
    parse_config_file,
)
from anchorlight.config.config_schema import (
    AnchorlightConfig,
    config_json_schema,
    validate_config,
)
from anchorlight.dnssec.key_cache import KeyCache
from anchorlight.dnssec.trust_anchors import anchors_to_json, anchor_from_dnskey


def _write(tmp_path: pathlib.Path, text: str) -> str:
    path = tmp_path / "anchorlight.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_a_config_file() -> None:
    cfg = load_config(None)
    assert cfg.trust_anchors.root is True
    assert cfg.resolver.nameservers is None
    assert cfg.cache.max_ttl is None
    assert cfg.logging.level == "info"


def test_full_config_round_trip(tmp_path: pathlib.Path) -> None:
    """Brief: Every documented section loads into the typed model.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None; asserts parsed values.
    """

    path = _write(
        tmp_path,
        """
trust_anchors:
  root: false
  anchors: [". IN DS 20326 8 2 E06D44B80B8F1D39A95C0B0D7C65D08458E880409BBC683457104237C7F8EC8D"]
resolver:
  nameservers: [192.0.2.53]
  port: 5353
  timeout: 1.5
cache:
  max_ttl: 300
  maxsize: 16
logging:
  level: debug
  stderr: false
""",
    )
    cfg = load_config(path)
    assert cfg.trust_anchors.root is False
    assert cfg.resolver.nameservers == ["192.0.2.53"]
    assert cfg.resolver.port == 5353
    assert cfg.cache.max_ttl == 300
    assert cfg.logging.level == "debug"


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("resolver: {port: 70000}", "resolver/port"),
        ("cache: {max_ttl: -5}", "cache/max_ttl"),
        ("logging: {level: loud}", "logging/level"),
        ("bogus_section: {}", "<root>"),
        ("trust_anchors: {anchors: 5}", "trust_anchors/anchors"),
    ],
)
def test_schema_errors_name_the_offending_path(tmp_path, text, fragment) -> None:
    with pytest.raises(ValueError) as excinfo:
        load_config(_write(tmp_path, text))
    assert fragment in str(excinfo.value)


def test_non_mapping_root_is_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        parse_config_file(_write(tmp_path, "- just\n- a list\n"))
    with pytest.raises(ValueError):
        validate_config(["nope"])


def test_json_schema_is_draft_2020_12() -> None:
    schema = config_json_schema()
    assert schema["$schema"].endswith("2020-12/schema")
    assert set(schema["properties"]) == {"trust_anchors", "resolver", "cache", "logging"}


def test_build_resolver_uses_config() -> None:
    cfg = AnchorlightConfig.model_validate(
        {"resolver": {"nameservers": ["192.0.2.1", "192.0.2.2"], "timeout": 0.25}}
    )
    r = build_resolver(cfg)
    assert r.nameservers == ["192.0.2.1", "192.0.2.2"]
    assert r.timeout == 0.25


def test_build_validator_collects_all_anchor_sources(
    tmp_path, fake_resolver, namespace
) -> None:
    """Brief: Root, inline and file anchors are all installed."""

    anchor_file = tmp_path / "example.json"
    anchor_file.write_text(
        anchors_to_json([anchor_from_dnskey(namespace.example.ksk, "example.com.")]),
        encoding="utf-8",
    )
    cfg = AnchorlightConfig.model_validate(
        {
            "trust_anchors": {
                "root": True,
                "anchors": [f"com. IN DNSKEY {namespace.com.ksk.to_text()}"],
                "files": [str(anchor_file)],
            },
            "cache": {"max_ttl": 60},
        }
    )
    v = build_validator(cfg, fake_resolver)
    owners = {a.owner for anchors in v.trust_anchors.values() for a in anchors}
    assert owners == {".", "com.", "example.com."}
    assert isinstance(v.keys, KeyCache)
    assert v.keys.max_ttl == 60


def test_build_validator_without_anchors_is_rejected(fake_resolver) -> None:
    cfg = AnchorlightConfig.model_validate({"trust_anchors": {"root": False}})
    with pytest.raises(ValueError):
        build_validator(cfg, fake_resolver)


def test_build_validator_bad_anchor_file(tmp_path, fake_resolver) -> None:
    cfg = AnchorlightConfig.model_validate(
        {"trust_anchors": {"files": [str(tmp_path / "missing.key")]}}
    )
    with pytest.raises(ValueError):
        build_validator(cfg, fake_resolver)
