"""Per-algorithm RRSIG signature verification.

Every supported DNSSEC algorithm maps to exactly one verifier in
``_VERIFIERS``. Identifiers outside that table (ED448, the GOST family, DSA,
private algorithms, unknown numbers) are rejected with
UnsupportedAlgorithmError rather than falling through to a default.
"""

from __future__ import annotations

import functools
import logging
import warnings
from typing import Callable, Dict, Optional

import dns.dnssec

from .errors import (
    ConfigurationError,
    DeprecatedAlgorithmWarning,
    UnsupportedAlgorithmError,
)
from .keytag import key_material

logger = logging.getLogger("anchorlight.dnssec")

try:  # The crypto backend is optional at import time; validate() reports it.
    from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import ec, padding

    from . import keys as _keys

    _CRYPTO_IMPORT_ERROR: Optional[ImportError] = None
except ImportError as exc:  # pragma: no cover - exercised only without cryptography
    _CRYPTO_IMPORT_ERROR = exc

Algorithm = dns.dnssec.Algorithm

GOST_ALGORITHMS = frozenset({12, 23})


def crypto_available() -> bool:
    return _CRYPTO_IMPORT_ERROR is None


def require_crypto() -> None:
    """Raise ConfigurationError when the cryptography backend is missing."""
    if _CRYPTO_IMPORT_ERROR is not None:
        raise ConfigurationError(
            "the 'cryptography' package is required for DNSSEC signature "
            f"verification: {_CRYPTO_IMPORT_ERROR}"
        )


def _verify_rsa(hash_factory, key: bytes, signature: bytes, data: bytes) -> bool:
    public_key = _keys.load_rsa_key(key)
    try:
        public_key.verify(signature, data, padding.PKCS1v15(), hash_factory())
    except InvalidSignature:
        return False
    except UnsupportedAlgorithm as exc:
        raise UnsupportedAlgorithmError(
            f"hash {hash_factory.name} is disabled in the crypto backend: {exc}"
        ) from exc
    return True


def _verify_rsamd5(key: bytes, signature: bytes, data: bytes) -> bool:
    warnings.warn(
        "RSAMD5 (algorithm 1) is deprecated per RFC 6944; "
        "do not use it for new deployments",
        DeprecatedAlgorithmWarning,
        stacklevel=3,
    )
    return _verify_rsa(hashes.MD5, key, signature, data)


def _verify_ecdsa(
    curve_bits: int, hash_factory, key: bytes, signature: bytes, data: bytes
) -> bool:
    public_key = _keys.load_ec_key(key, curve_bits)
    part_len = _keys.EC_CURVES[curve_bits][1]
    der = _keys.raw_to_der_signature(signature, part_len)
    try:
        public_key.verify(der, data, ec.ECDSA(hash_factory()))
    except InvalidSignature:
        return False
    return True


def _verify_ed25519(key: bytes, signature: bytes, data: bytes) -> bool:
    if not signature:
        return False
    public_key = _keys.load_ed25519_key(key)
    try:
        public_key.verify(signature, data)
    except InvalidSignature:
        return False
    return True


Verifier = Callable[[bytes, bytes, bytes], bool]


def _build_verifiers() -> Dict[int, Verifier]:
    if _CRYPTO_IMPORT_ERROR is not None:  # pragma: no cover - no backend
        return {}
    return {
        Algorithm.RSAMD5: _verify_rsamd5,
        Algorithm.RSASHA1: functools.partial(_verify_rsa, hashes.SHA1),
        Algorithm.RSASHA1NSEC3SHA1: functools.partial(_verify_rsa, hashes.SHA1),
        Algorithm.RSASHA256: functools.partial(_verify_rsa, hashes.SHA256),
        Algorithm.RSASHA512: functools.partial(_verify_rsa, hashes.SHA512),
        Algorithm.ECDSAP256SHA256: functools.partial(
            _verify_ecdsa, 256, hashes.SHA256
        ),
        Algorithm.ECDSAP384SHA384: functools.partial(
            _verify_ecdsa, 384, hashes.SHA384
        ),
        Algorithm.ED25519: _verify_ed25519,
    }


_VERIFIERS: Dict[int, Verifier] = _build_verifiers()


def algorithm_name(algorithm: int) -> str:
    try:
        return Algorithm(int(algorithm)).name
    except ValueError:
        return str(int(algorithm))


def algorithm_supported(algorithm: int) -> bool:
    return int(algorithm) in _VERIFIERS


def verify_signature(algorithm: int, key, signature, data: bytes) -> bool:
    """Brief: Check one RRSIG signature against one DNSKEY.

    Inputs:
      - algorithm: DNSSEC algorithm number of the RRSIG.
      - key: DNSKEY public key field (bytes or base64 text).
      - signature: RRSIG signature field (bytes or base64 text).
      - data: Signed data rebuilt by canonical.signed_data().

    Outputs:
      - True when the signature matches, False when it does not.

    Raises:
      - UnsupportedAlgorithmError for ED448, GOST and unknown algorithms.
      - MalformedInputError for corrupt base64 or key material.
      - ConfigurationError when the crypto backend is unavailable.
    """

    alg = int(algorithm)
    if alg == int(Algorithm.ED448):
        raise UnsupportedAlgorithmError("ED448 (algorithm 16) is not supported")
    if alg in GOST_ALGORITHMS:
        raise UnsupportedAlgorithmError(
            f"GOST algorithm {alg} is not supported"
        )
    require_crypto()
    verifier = _VERIFIERS.get(alg)
    if verifier is None:
        raise UnsupportedAlgorithmError(
            f"unsupported DNSSEC algorithm: {algorithm_name(alg)}"
        )
    ok = verifier(key_material(key), key_material(signature), bytes(data))
    logger.debug("signature check alg=%s result=%s", algorithm_name(alg), ok)
    return ok
