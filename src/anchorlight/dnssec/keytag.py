"""Key tag and DS digest primitives (RFC 4034 Appendix B and section 5.1.4)."""

from __future__ import annotations

import base64
import binascii
import hashlib
import struct
from typing import NamedTuple, Union

import dns.dnssec

from .errors import MalformedInputError, UnsupportedAlgorithmError

FLAG_ZONE = 0x0100
FLAG_REVOKE = 0x0080
FLAG_SEP = 0x0001

_DIGESTS = {
    int(dns.dnssec.DSDigest.SHA1): hashlib.sha1,
    int(dns.dnssec.DSDigest.SHA256): hashlib.sha256,
    int(dns.dnssec.DSDigest.SHA384): hashlib.sha384,
}


class KeyFlags(NamedTuple):
    """Boolean view of the DNSKEY flags the validator branches on."""

    zone: bool
    sep: bool
    revoke: bool


def key_flags(dnskey) -> KeyFlags:
    flags = int(dnskey.flags)
    return KeyFlags(
        zone=bool(flags & FLAG_ZONE),
        sep=bool(flags & FLAG_SEP),
        revoke=bool(flags & FLAG_REVOKE),
    )


def flags_word(flags: KeyFlags) -> int:
    """Rebuild the 16-bit flags field from its boolean bits."""
    word = 0
    if flags.zone:
        word |= FLAG_ZONE
    if flags.sep:
        word |= FLAG_SEP
    if flags.revoke:
        word |= FLAG_REVOKE
    return word


def key_material(value: Union[bytes, str]) -> bytes:
    """Brief: Return raw key/signature bytes from rdata or base64 text.

    Inputs:
      - value: bytes (dnspython rdata field) or base64 text, possibly split
        across whitespace as in presentation format.

    Outputs:
      - Raw bytes.

    Raises:
      - MalformedInputError when the text is not valid base64.
    """

    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    try:
        return base64.b64decode("".join(str(value).split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInputError(f"invalid base64 key material: {exc}") from exc


def dnskey_rdata_wire(dnskey) -> bytes:
    """DNSKEY rdata as hashed for key tags and DS digests."""
    return struct.pack(
        "!HBB",
        flags_word(key_flags(dnskey)),
        int(dnskey.protocol),
        int(dnskey.algorithm),
    ) + key_material(dnskey.key)


def key_tag(dnskey) -> int:
    """Brief: Compute the RFC 4034 Appendix B key tag of a DNSKEY.

    Inputs:
      - dnskey: DNSKEY rdata (flags, protocol, algorithm, key).

    Outputs:
      - int in [0, 65535].

    Notes:
      - Algorithm 1 (RSAMD5) keys use the Appendix B.1 rule: the tag is the
        most significant 16 of the least significant 24 bits of the modulus.
    """

    if int(dnskey.algorithm) == int(dns.dnssec.Algorithm.RSAMD5):
        key = key_material(dnskey.key)
        if len(key) < 3:
            raise MalformedInputError("RSAMD5 key material too short for key tag")
        return (key[-3] << 8) | key[-2]

    wire = dnskey_rdata_wire(dnskey)
    ac = 0
    for i, octet in enumerate(wire):
        ac += octet if i & 1 else octet << 8
    ac += (ac >> 16) & 0xFFFF
    return ac & 0xFFFF


def digest_supported(digest_type: int) -> bool:
    return int(digest_type) in _DIGESTS


def ds_digest(dnskey, owner_wire: bytes, digest_type: int) -> str:
    """Brief: Compute the DS digest of a DNSKEY as lowercase hex.

    Inputs:
      - dnskey: DNSKEY rdata.
      - owner_wire: Canonical wire form of the DNSKEY owner name.
      - digest_type: DS digest type (1 SHA-1, 2 SHA-256, 4 SHA-384).

    Outputs:
      - Lowercase hex digest string.

    Raises:
      - UnsupportedAlgorithmError for any other digest type.
    """

    try:
        factory = _DIGESTS[int(digest_type)]
    except KeyError:
        raise UnsupportedAlgorithmError(
            f"unsupported DS digest type: {int(digest_type)}"
        ) from None
    return factory(bytes(owner_wire) + dnskey_rdata_wire(dnskey)).hexdigest()
