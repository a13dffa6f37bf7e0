"""Canonical form and signed-data reconstruction (RFC 4034 sections 6.2/6.3).

The byte stream rebuilt here must match, octet for octet, what the zone
signer fed to its private key:

    RRSIG_RDATA(without signature) | RR(1) | RR(2) | ...

where every RR uses the canonical owner name, the RRSIG original TTL and the
canonical RDATA, and the RRs are ordered by their canonical RDATA.
"""

from __future__ import annotations

import calendar
import struct
import time
from typing import Iterable, Union

import dns.name

from .errors import BogusSignatureError, MalformedInputError, TimeWindowError

NameLike = Union[dns.name.Name, str]


def as_name(name: NameLike) -> dns.name.Name:
    """Return an absolute dns.name.Name for text or Name input ("" is root)."""
    if isinstance(name, dns.name.Name):
        return name if name.is_absolute() else name.concatenate(dns.name.root)
    text = str(name).strip()
    return dns.name.from_text(text or ".")


def canonical_name_wire(name: NameLike) -> bytes:
    """Lowercase, uncompressed wire form of a domain name."""
    return as_name(name).canonicalize().to_wire()


def sigtime_to_epoch(value: Union[int, str]) -> int:
    """Brief: Convert an RRSIG time field to 32-bit UTC epoch seconds.

    Inputs:
      - value: int epoch seconds (dnspython) or a decimal string, either
        YYYYMMDDHHMMSS or plain epoch seconds.

    Outputs:
      - int epoch seconds.

    Raises:
      - MalformedInputError for anything that is not a valid time value.
    """

    if isinstance(value, bool):
        raise MalformedInputError(f"invalid RRSIG time value: {value!r}")
    if isinstance(value, int):
        epoch = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise MalformedInputError(f"invalid RRSIG time value: {value!r}")
        if len(text) == 14:
            try:
                epoch = calendar.timegm(time.strptime(text, "%Y%m%d%H%M%S"))
            except ValueError as exc:
                raise MalformedInputError(
                    f"invalid RRSIG time value: {value!r}"
                ) from exc
        else:
            epoch = int(text)
    if not 0 <= epoch <= 0xFFFFFFFF:
        raise MalformedInputError(f"RRSIG time value out of range: {value!r}")
    return epoch


def rrsig_header(rrsig) -> bytes:
    """RRSIG RDATA up to and including the signer name, without the signature."""
    return struct.pack(
        "!HBBIIIH",
        int(rrsig.type_covered),
        int(rrsig.algorithm),
        int(rrsig.labels),
        int(rrsig.original_ttl),
        sigtime_to_epoch(rrsig.expiration),
        sigtime_to_epoch(rrsig.inception),
        int(rrsig.key_tag),
    ) + canonical_name_wire(rrsig.signer)


def signing_owner(owner: NameLike, rrsig) -> dns.name.Name:
    """Brief: Owner name the signer actually used (RFC 4035 section 5.3.2).

    Inputs:
      - owner: Owner name of the RRset as received.
      - rrsig: Covering RRSIG rdata.

    Outputs:
      - The owner itself, or "*." plus its rightmost ``rrsig.labels`` labels
        when the RRset was synthesized from a wildcard.
    """

    name = as_name(owner)
    count = len(name) - 1
    if count and name.labels[0] == b"*":
        count -= 1
    labels = int(rrsig.labels)
    if labels > count:
        raise BogusSignatureError(
            f"RRSIG labels={labels} exceeds label count of {name}"
        )
    if labels < count:
        return dns.name.Name((b"*",) + name.labels[-(labels + 1):])
    return name


def signed_data(
    rrsig, owner: NameLike, rdclass: int, rdtype: int, rdatas: Iterable
) -> bytes:
    """Brief: Rebuild the exact octets covered by an RRSIG.

    Inputs:
      - rrsig: Covering RRSIG rdata.
      - owner: RRset owner name.
      - rdclass, rdtype: RRset class and type.
      - rdatas: The RRset's rdata objects, in any order.

    Outputs:
      - bytes to hand to the signature verifier.
    """

    owner_wire = canonical_name_wire(signing_owner(owner, rrsig))
    fixed = struct.pack("!HHI", int(rdtype), int(rdclass), int(rrsig.original_ttl))

    entries = {}
    for rdata in rdatas:
        rd = rdata.to_digestable(dns.name.root)
        entries[rd] = owner_wire + fixed + struct.pack("!H", len(rd)) + rd

    # bytes ordering is the unsigned left-justified comparison of section 6.3
    return rrsig_header(rrsig) + b"".join(entries[rd] for rd in sorted(entries))


def check_time_window(rrsig, now: float) -> None:
    """Raise TimeWindowError unless inception <= now <= expiration."""
    inception = sigtime_to_epoch(rrsig.inception)
    expiration = sigtime_to_epoch(rrsig.expiration)
    if now < inception or now > expiration:
        raise TimeWindowError(
            "RRSIG time window violation: now=%d inception=%d expiration=%d"
            % (int(now), inception, expiration)
        )
