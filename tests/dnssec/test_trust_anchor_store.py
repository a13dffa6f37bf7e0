"""Brief: Unit tests for anchorlight.dnssec.trust_anchors.

Inputs:
  - None (pytest harness).

Outputs:
  - None (pytest assertions over anchor parsing and loading).
"""

from __future__ import annotations

import json
import pathlib

import dns.dnssec
import pytest

from anchorlight.dnssec.errors import ConfigurationError
from anchorlight.dnssec.trust_anchors import (
    ROOT_TRUST_ANCHORS,
    TrustAnchor,
    anchor_from_dnskey,
    anchor_from_ds,
    anchors_to_json,
    load_anchor_file,
    parse_anchor_text,
)


def test_root_trust_anchors_are_the_iana_ksks() -> None:
    """Brief: Built-in anchors are KSK-2017 and KSK-2024, RSASHA256/SHA-256."""

    assert {a.key_tag for a in ROOT_TRUST_ANCHORS} == {20326, 38696}
    for anchor in ROOT_TRUST_ANCHORS:
        assert anchor.owner == "."
        assert (anchor.algorithm, anchor.digest_type) == (8, 2)
        assert len(anchor.digest) == 64


def test_anchor_from_dnskey_matches_make_ds(namespace) -> None:
    """Brief: A DNSKEY anchor becomes a synthetic SHA-256 DS."""

    zone = namespace.com
    anchor = anchor_from_dnskey(zone.ksk, "COM")
    ds = dns.dnssec.make_ds(zone.origin, zone.ksk, dns.dnssec.DSDigest.SHA256)
    assert anchor == anchor_from_ds(ds, "com.")
    assert anchor.owner == "com."
    assert anchor.digest_type == 2


def test_trust_anchor_digest_match_is_case_insensitive() -> None:
    anchor = TrustAnchor(key_tag=1, algorithm=13, digest_type=2, digest="ABCDEF")
    assert anchor.matches("abcdef")
    assert not anchor.matches("abcdee")


def test_parse_anchor_text_ds_and_dnskey(namespace) -> None:
    """Brief: Presentation lines with optional TTL/class parse; comments skip."""

    zone = namespace.example
    ds = dns.dnssec.make_ds(zone.origin, zone.ksk, dns.dnssec.DSDigest.SHA256)
    text = "\n".join(
        [
            "; root anchors",
            "",
            f". IN DS {ROOT_TRUST_ANCHORS[0].key_tag} 8 2 {ROOT_TRUST_ANCHORS[0].digest}",
            f"example.com. 3600 IN DS {ds.to_text()}",
            f"example.com. DNSKEY {zone.ksk.to_text()}  # trailing comment",
        ]
    )
    anchors = parse_anchor_text(text)
    assert anchors[0] == TrustAnchor(
        key_tag=20326,
        algorithm=8,
        digest_type=2,
        digest=ROOT_TRUST_ANCHORS[0].digest.lower(),
    )
    assert anchors[1] == anchor_from_ds(ds, "example.com.")
    assert anchors[2] == anchors[1]


def test_parse_anchor_text_class_before_ttl_and_relative_owner(namespace) -> None:
    """Brief: Class may precede the TTL; relative owners are made absolute."""

    zone = namespace.com
    ds = dns.dnssec.make_ds(zone.origin, zone.ksk, dns.dnssec.DSDigest.SHA256)
    anchors = parse_anchor_text(
        [
            f"com IN 86400 DS {ds.to_text()}",
            f"COM. 86400 IN DS {ROOT_TRUST_ANCHORS[1].key_tag} 8 2 "
            f"{ROOT_TRUST_ANCHORS[1].digest}",
        ]
    )
    assert anchors[0] == anchor_from_ds(ds, "com.")
    assert [a.owner for a in anchors] == ["com.", "com."]
    assert anchors[1].key_tag == 38696


@pytest.mark.parametrize(
    "line",
    ["example.com. IN A 192.0.2.1", "example.com. IN", ". IN DS 1 8 2 zz"],
)
def test_parse_anchor_text_rejects_bad_lines(line) -> None:
    with pytest.raises(ValueError):
        parse_anchor_text([line])


def test_load_anchor_file_text_and_json(tmp_path: pathlib.Path) -> None:
    """Brief: Files hold presentation text or a JSON list; both round-trip."""

    text_path = tmp_path / "root.key"
    text_path.write_text(
        "\n".join(
            f". IN DS {a.key_tag} {a.algorithm} {a.digest_type} {a.digest}"
            for a in ROOT_TRUST_ANCHORS
        ),
        encoding="utf-8",
    )
    from_text = load_anchor_file(str(text_path))
    assert [a.key_tag for a in from_text] == [20326, 38696]

    json_path = tmp_path / "anchors.json"
    json_path.write_text(anchors_to_json(from_text), encoding="utf-8")
    assert load_anchor_file(str(json_path)) == from_text
    assert json.loads(json_path.read_text())[0]["owner"] == "."


def test_load_anchor_file_errors(tmp_path: pathlib.Path) -> None:
    with pytest.raises(ConfigurationError):
        load_anchor_file(str(tmp_path / "missing.key"))

    bad = tmp_path / "bad.json"
    bad.write_text('[{"key_tag": 1}]', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_anchor_file(str(bad))
