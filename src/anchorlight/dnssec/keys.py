"""Adapters from raw DNSKEY key material to cryptography public keys.

DNSKEY records carry bare key material (RFC 3110 for RSA, RFC 6605 for ECDSA,
RFC 8080 for EdDSA). The helpers here wrap that material in a DER
SubjectPublicKeyInfo so the generic loader in ``cryptography`` can use it, and
re-encode fixed-width ECDSA signatures as DER.
"""

from __future__ import annotations

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .errors import MalformedInputError, UnsupportedAlgorithmError

OID_RSA_ENCRYPTION = b"\x06\x09\x2a\x86\x48\x86\xf7\x0d\x01\x01\x01"
OID_EC_PUBLIC_KEY = b"\x06\x07\x2a\x86\x48\xce\x3d\x02\x01"
OID_ED25519 = b"\x06\x03\x2b\x65\x70"
ASN1_NULL = b"\x05\x00"

# curve bits -> (named curve OID, coordinate length)
EC_CURVES = {
    256: (b"\x06\x08\x2a\x86\x48\xce\x3d\x03\x01\x07", 32),
    384: (b"\x06\x05\x2b\x81\x04\x00\x22", 48),
}

ED25519_KEY_LEN = 32


def der_length(length: int) -> bytes:
    """Encode a DER length field (short form below 128, long form above)."""
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _tlv(tag: int, value: bytes) -> bytes:
    return bytes([tag]) + der_length(len(value)) + value


def der_integer(value: bytes) -> bytes:
    """Brief: Encode unsigned big-endian bytes as a positive DER INTEGER.

    Inputs:
      - value: Unsigned magnitude bytes (leading zeros allowed).

    Outputs:
      - DER INTEGER TLV. A zero octet is prepended when the high bit is set so
        the value stays positive.
    """

    value = value.lstrip(b"\x00") or b"\x00"
    if value[0] & 0x80:
        value = b"\x00" + value
    return _tlv(0x02, value)


def _spki(algorithm_identifier: bytes, public_key: bytes) -> bytes:
    alg_seq = _tlv(0x30, algorithm_identifier)
    bit_string = _tlv(0x03, b"\x00" + public_key)
    return _tlv(0x30, alg_seq + bit_string)


def split_rsa_key(raw: bytes):
    """Brief: Split RFC 3110 key material into (exponent, modulus) bytes.

    Inputs:
      - raw: [exp_len (1 octet, or 0 followed by 2 octets)] exponent modulus.

    Outputs:
      - (exponent, modulus) tuple of bytes.
    """

    if len(raw) < 3:
        raise MalformedInputError("RSA key material too short")
    if raw[0] == 0:
        exp_len = int.from_bytes(raw[1:3], "big")
        offset = 3
    else:
        exp_len = raw[0]
        offset = 1
    exponent = raw[offset:offset + exp_len]
    modulus = raw[offset + exp_len:]
    if exp_len == 0 or len(exponent) != exp_len or not modulus:
        raise MalformedInputError("RSA key material is truncated")
    return exponent, modulus


def rsa_spki(raw: bytes) -> bytes:
    exponent, modulus = split_rsa_key(raw)
    rsa_public_key = _tlv(0x30, der_integer(modulus) + der_integer(exponent))
    return _spki(OID_RSA_ENCRYPTION + ASN1_NULL, rsa_public_key)


def ec_spki(raw: bytes, curve_bits: int) -> bytes:
    try:
        curve_oid, coord_len = EC_CURVES[curve_bits]
    except KeyError:
        raise UnsupportedAlgorithmError(
            f"unsupported EC curve bit length: {curve_bits}"
        ) from None
    if len(raw) != 2 * coord_len:
        raise MalformedInputError(
            f"EC P-{curve_bits} key must be {2 * coord_len} octets, got {len(raw)}"
        )
    # uncompressed point marker
    return _spki(OID_EC_PUBLIC_KEY + curve_oid, b"\x04" + raw)


def ed25519_spki(raw: bytes) -> bytes:
    if len(raw) != ED25519_KEY_LEN:
        raise MalformedInputError(
            f"Ed25519 key must be {ED25519_KEY_LEN} octets, got {len(raw)}"
        )
    return _spki(OID_ED25519, raw)


def raw_to_der_signature(raw: bytes, part_len: int) -> bytes:
    """Re-encode a fixed-width r||s ECDSA signature as DER SEQUENCE{r, s}."""
    if len(raw) != 2 * part_len:
        raise MalformedInputError(
            f"ECDSA signature must be {2 * part_len} octets, got {len(raw)}"
        )
    r, s = raw[:part_len], raw[part_len:]
    return _tlv(0x30, der_integer(r) + der_integer(s))


def _load_spki(spki: bytes, label: str):
    try:
        return serialization.load_der_public_key(spki)
    except UnsupportedAlgorithm as exc:
        raise UnsupportedAlgorithmError(
            f"{label} keys are not supported by the crypto backend: {exc}"
        ) from exc
    except ValueError as exc:
        raise MalformedInputError(f"failed to import {label} public key: {exc}") from exc


def load_rsa_key(raw: bytes):
    return _load_spki(rsa_spki(raw), "RSA")


def load_ec_key(raw: bytes, curve_bits: int):
    return _load_spki(ec_spki(raw, curve_bits), "EC")


def load_ed25519_key(raw: bytes):
    """Brief: Build an Ed25519 public key from its 32 raw octets.

    Inputs:
      - raw: DNSKEY public key field.

    Outputs:
      - cryptography Ed25519PublicKey.

    Notes:
      - The dedicated raw-key constructor is used when the backend offers it;
        otherwise the key goes through the generic SubjectPublicKeyInfo path.
    """

    if len(raw) != ED25519_KEY_LEN:
        raise MalformedInputError(
            f"Ed25519 key must be {ED25519_KEY_LEN} octets, got {len(raw)}"
        )
    try:
        return ed25519.Ed25519PublicKey.from_public_bytes(raw)
    except UnsupportedAlgorithm:
        return _load_spki(ed25519_spki(raw), "Ed25519")
