"""
Brief: Global pytest configuration and signed-namespace fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys

import dns.dnssec
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.rrset
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

# Ensure 'src' is on sys.path so 'anchorlight' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from anchorlight.dnssec.resolver import ResolverError  # noqa: E402

NOW = 1_700_000_000
INCEPTION = NOW - 3600
EXPIRATION = NOW + 7 * 86400


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


@pytest.fixture(autouse=True)
def reset_warning_capture():
    """
    Brief: Undo logging.captureWarnings() left on by init_logging().

    Inputs:
      - None

    Outputs:
      - None: Turns warning capture off after each test
    """
    yield
    logging.captureWarnings(False)


def rfc3110(public_key) -> bytes:
    """Encode an RSA public key as DNSKEY key material (RFC 3110)."""
    numbers = public_key.public_numbers()
    e = numbers.e.to_bytes((numbers.e.bit_length() + 7) // 8, "big")
    n = numbers.n.to_bytes((numbers.n.bit_length() + 7) // 8, "big")
    if len(e) > 255:
        return b"\x00" + len(e).to_bytes(2, "big") + e + n
    return bytes([len(e)]) + e + n


def make_message(*rrsets) -> dns.message.Message:
    """Build a response message whose answer section holds rrsets."""
    msg = dns.message.Message()
    msg.answer.extend(rrsets)
    return msg


class SignedZone:
    """Brief: Zone apex with a P-256 KSK/ZSK pair that can sign RRsets.

    Inputs:
      - origin: Zone apex name.

    Outputs:
      - Object exposing ksk/zsk DNSKEY rdata, dnskey_rrset(), sign() and ds().
    """

    algorithm = dns.dnssec.Algorithm.ECDSAP256SHA256

    def __init__(self, origin: str):
        self.origin = dns.name.from_text(origin)
        self.ksk_private = ec.generate_private_key(ec.SECP256R1())
        self.zsk_private = ec.generate_private_key(ec.SECP256R1())
        self.ksk = dns.dnssec.make_dnskey(
            self.ksk_private.public_key(), self.algorithm, flags=257
        )
        self.zsk = dns.dnssec.make_dnskey(
            self.zsk_private.public_key(), self.algorithm, flags=256
        )

    def dnskey_rrset(self) -> dns.rrset.RRset:
        return dns.rrset.from_rdata(self.origin, 3600, self.ksk, self.zsk)

    def sign(
        self,
        rrset: dns.rrset.RRset,
        *,
        ksk: bool = False,
        inception: int = INCEPTION,
        expiration: int = EXPIRATION,
    ) -> dns.rrset.RRset:
        """Return the RRSIG RRset covering rrset, signed by the ZSK (or KSK)."""
        private = self.ksk_private if ksk else self.zsk_private
        dnskey = self.ksk if ksk else self.zsk
        rrsig = dns.dnssec.sign(
            rrset,
            private,
            signer=self.origin,
            dnskey=dnskey,
            inception=inception,
            expiration=expiration,
        )
        return dns.rrset.from_rdata(rrset.name, rrset.ttl, rrsig)

    def ds(self, digest=dns.dnssec.DSDigest.SHA256):
        return dns.dnssec.make_ds(self.origin, self.ksk, digest)


class Namespace:
    """Brief: Signed root -> com. -> example.com. hierarchy.

    Inputs:
      - None.

    Outputs:
      - Object with the three zones, the signed key/DS material, and
        helpers producing fresh response maps and answers.
    """

    def __init__(self):
        self.root = SignedZone(".")
        self.com = SignedZone("com.")
        self.example = SignedZone("example.com.")

        self.dnskey = {}
        for zone in (self.root, self.com, self.example):
            keys = zone.dnskey_rrset()
            self.dnskey[zone.origin] = (keys, zone.sign(keys, ksk=True))

        self.ds = {}
        for parent, child in ((self.root, self.com), (self.com, self.example)):
            ds_rrset = dns.rrset.from_rdata(child.origin, 3600, child.ds())
            self.ds[child.origin] = (ds_rrset, parent.sign(ds_rrset))

        self.www = dns.rrset.from_text(
            "www.example.com.", 300, "IN", "A", "192.0.2.10", "192.0.2.11"
        )
        self.www_rrsig = self.example.sign(self.www)

    def responses(self):
        """Fresh (name, rdtype) -> Message map for a FakeResolver."""
        out = {}
        for name, rrsets in self.dnskey.items():
            out[(name, dns.rdatatype.DNSKEY)] = make_message(*rrsets)
        for name, rrsets in self.ds.items():
            out[(name, dns.rdatatype.DS)] = make_message(*rrsets)
        out[(self.www.name, dns.rdatatype.A)] = self.answer()
        return out

    def answer(self) -> dns.message.Message:
        return make_message(self.www, self.www_rrsig)


class FakeResolver:
    """Brief: In-memory Resolver serving canned responses.

    Inputs:
      - responses: Mapping of (name, rdtype) to dns.message.Message.

    Outputs:
      - Object implementing query(); every call is recorded in ``calls``.
    """

    def __init__(self, responses):
        self.responses = {
            (dns.name.from_text(str(name)).canonicalize(), int(rdtype)): msg
            for (name, rdtype), msg in responses.items()
        }
        self.calls = []

    def set(self, name, rdtype, msg):
        self.responses[(dns.name.from_text(str(name)).canonicalize(), int(rdtype))] = msg

    def query(self, qname, rdtype, *, dnssec=True):
        if isinstance(rdtype, str):
            rdtype = dns.rdatatype.from_text(rdtype)
        key = (dns.name.from_text(str(qname)).canonicalize(), int(rdtype))
        self.calls.append((key[0].to_text(), dns.rdatatype.to_text(key[1]), dnssec))
        try:
            return self.responses[key]
        except KeyError:
            raise ResolverError(f"no canned response for {key[0]} {key[1]}") from None


@pytest.fixture(scope="session")
def namespace():
    """Session-wide signed namespace; key generation happens once."""
    return Namespace()


@pytest.fixture
def fake_resolver(namespace):
    return FakeResolver(namespace.responses())


@pytest.fixture
def validator(fake_resolver, namespace):
    """Validator over the fake namespace, anchored at the test root KSK."""
    from anchorlight.dnssec.validator import Validator

    v = Validator(fake_resolver, clock=lambda: NOW)
    v.add_trust_anchor(namespace.root.ksk)
    return v
