import json
import logging
import os
import re
from dataclasses import asdict, dataclass
from typing import Iterable, List, Union

import dns.dnssec
import dns.exception
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.rrset
import dns.zonefile

from .canonical import as_name, canonical_name_wire
from .errors import ConfigurationError
from .keytag import ds_digest, key_tag

logger = logging.getLogger("anchorlight.dnssec")


@dataclass(frozen=True)
class TrustAnchor:
    """Single DS-shaped trust anchor.

    Inputs/fields:
      - key_tag: Key tag of the anchored DNSKEY.
      - algorithm: DNSKEY algorithm number.
      - digest_type: DS digest type (1 SHA-1, 2 SHA-256, 4 SHA-384).
      - digest: Hex digest string; compared case-insensitively.
      - owner: Zone the anchor belongs to ("." for the root).
    Outputs:
      - Instances are JSON-serializable via asdict().
    """

    key_tag: int
    algorithm: int
    digest_type: int
    digest: str
    owner: str = "."

    def matches(self, computed_digest: str) -> bool:
        return self.digest.lower() == computed_digest.lower()


ROOT_TRUST_ANCHORS = (
    # KSK-2017
    TrustAnchor(
        key_tag=20326,
        algorithm=8,
        digest_type=2,
        digest="E06D44B80B8F1D39A95C0B0D7C65D08458E880409BBC683457104237C7F8EC8D",
    ),
    # KSK-2024
    TrustAnchor(
        key_tag=38696,
        algorithm=8,
        digest_type=2,
        digest="683D2D0ACB8C9B712A1948B27F741219298D0A450D612C483AF444A4C0FB2B16",
    ),
)


def owner_text(owner: Union[dns.name.Name, str, None]) -> str:
    """Return the lowercase absolute text form of an owner ("." for root)."""
    if owner is None:
        return "."
    return as_name(owner).canonicalize().to_text()


def anchor_from_ds(rdata, owner: Union[dns.name.Name, str, None] = None) -> TrustAnchor:
    """Build a TrustAnchor from DS rdata (owner defaults to the root)."""
    return TrustAnchor(
        key_tag=int(rdata.key_tag),
        algorithm=int(rdata.algorithm),
        digest_type=int(rdata.digest_type),
        digest=bytes(rdata.digest).hex(),
        owner=owner_text(owner),
    )


def anchor_from_dnskey(
    rdata, owner: Union[dns.name.Name, str, None] = None
) -> TrustAnchor:
    """Brief: Derive a synthetic SHA-256 DS anchor from a DNSKEY.

    Inputs:
      - rdata: DNSKEY rdata, normally a KSK.
      - owner: Zone owning the key; defaults to the root.

    Outputs:
      - TrustAnchor with digest_type 2.
    """

    name = owner_text(owner)
    digest_type = int(dns.dnssec.DSDigest.SHA256)
    return TrustAnchor(
        key_tag=key_tag(rdata),
        algorithm=int(rdata.algorithm),
        digest_type=digest_type,
        digest=ds_digest(rdata, canonical_name_wire(name), digest_type),
        owner=name,
    )


_HASH_COMMENT = re.compile(r"(?:^|\s)#.*$")


def _anchors_from_rrset(rrset: dns.rrset.RRset) -> List[TrustAnchor]:
    if rrset.rdtype == dns.rdatatype.DS:
        return [anchor_from_ds(rdata, rrset.name) for rdata in rrset]
    if rrset.rdtype == dns.rdatatype.DNSKEY:
        return [anchor_from_dnskey(rdata, rrset.name) for rdata in rrset]
    raise ValueError(
        "trust anchors must be DS or DNSKEY records, got "
        f"{rrset.name} {dns.rdatatype.to_text(rrset.rdtype)}"
    )


def parse_anchor_text(lines: Union[str, Iterable[str]]) -> List[TrustAnchor]:
    """Brief: Parse zone-file style DS or DNSKEY lines into anchors.

    Inputs:
      - lines: Text block or iterable of lines in presentation format. TTL and
        class are optional; comments (';' or '#') and blank lines are ignored.

    Outputs:
      - List of TrustAnchor, grouped by owner and type in first-seen order.

    Raises:
      - ValueError for unparsable lines or records that are not DS/DNSKEY.
    """

    if isinstance(lines, str):
        lines = lines.splitlines()
    text = "\n".join(_HASH_COMMENT.sub("", line) for line in lines)
    try:
        rrsets = dns.zonefile.read_rrsets(
            text, rdclass=None, default_rdclass=dns.rdataclass.IN, default_ttl=0
        )
    except dns.exception.DNSException as exc:
        raise ValueError(f"invalid trust anchor text: {exc}") from exc
    out: List[TrustAnchor] = []
    for rrset in rrsets:
        out.extend(_anchors_from_rrset(rrset))
    return out



def _anchor_from_obj(obj) -> TrustAnchor:
    if not isinstance(obj, dict):
        raise ValueError(f"trust anchor entry must be an object, got {obj!r}")
    try:
        return TrustAnchor(
            key_tag=int(obj["key_tag"]),
            algorithm=int(obj["algorithm"]),
            digest_type=int(obj["digest_type"]),
            digest=str(obj["digest"]),
            owner=owner_text(obj.get("owner", ".")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"invalid trust anchor entry {obj!r}: {exc}") from exc


def load_anchor_file(path: str) -> List[TrustAnchor]:
    """Brief: Load anchors from a presentation-format or JSON file.

    Inputs:
      - path: File containing DS/DNSKEY lines, or a JSON list of objects with
        key_tag, algorithm, digest_type, digest and optional owner.

    Outputs:
      - List of TrustAnchor.

    Raises:
      - ConfigurationError when the file is missing or unparsable.
    """

    if not path or not os.path.exists(path):
        raise ConfigurationError(f"trust anchor file not found: {path!r}")
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    try:
        if text.lstrip().startswith("["):
            anchors = [_anchor_from_obj(obj) for obj in json.loads(text)]
        else:
            anchors = parse_anchor_text(text)
    except ValueError as exc:
        raise ConfigurationError(f"failed to load trust anchors from {path}: {exc}") from exc
    logger.debug("loaded %d trust anchor(s) from %s", len(anchors), path)
    return anchors


def anchors_to_json(anchors: Iterable[TrustAnchor]) -> str:
    return json.dumps([asdict(a) for a in anchors], indent=2, sort_keys=True)
