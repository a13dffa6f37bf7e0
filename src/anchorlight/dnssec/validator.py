"""DNSSEC response validation and chain-of-trust walk.

A Validator proves that every answer RRset of a response is signed by a key
whose authority chains back to a configured trust anchor:

  answer RRSIG -> signing DNSKEY
  ZSK  -> RRSIG(DNSKEY) by a SEP key of the same zone
  KSK  -> DS in the parent, itself signed by a parent DNSKEY
  root KSK -> trust anchor digest

The walk is an explicit loop over pending (dnskey, zone) steps; each step
either terminates at an anchor or yields the next, strictly closer to the root
(or the KSK of the same zone for a ZSK).
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import dns.exception
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from .canonical import as_name, canonical_name_wire, check_time_window, signed_data
from .errors import (
    BogusSignatureError,
    ChainOfTrustError,
    ConfigurationError,
    DNSSECError,
    MalformedInputError,
    UnsignedError,
    UnsupportedAlgorithmError,
    exhausted,
)
from .key_cache import KeyCache
from .keytag import digest_supported, ds_digest, key_flags, key_tag
from .resolver import Resolver
from .trust_anchors import (
    ROOT_TRUST_ANCHORS,
    TrustAnchor,
    anchor_from_dnskey,
    anchor_from_ds,
    owner_text,
)
from .verify import require_crypto, verify_signature

logger = logging.getLogger("anchorlight.dnssec")

DNSKEY_PROTOCOL = 3

Step = Tuple[object, dns.name.Name]


def _type_text(rdtype: int) -> str:
    return dns.rdatatype.to_text(rdtype)


def _usable_key(dnskey) -> bool:
    """Zone key, protocol 3, not revoked (RFC 4035 section 5.3.1)."""
    flags = key_flags(dnskey)
    return (
        flags.zone
        and not flags.revoke
        and int(dnskey.protocol) == DNSKEY_PROTOCOL
    )


def covering_rrsigs(
    message: dns.message.Message, owner: dns.name.Name, rdtype: int
) -> List:
    """Brief: Collect RRSIG rdatas covering (owner, rdtype).

    Inputs:
      - message: Response whose answer and authority sections are searched.
      - owner: RRset owner name (compared case-insensitively).
      - rdtype: Covered record type.

    Outputs:
      - List of RRSIG rdatas, answer section first.
    """

    found = []
    for section in (message.answer, message.authority):
        for rrset in section:
            if rrset.rdtype != dns.rdatatype.RRSIG or rrset.name != owner:
                continue
            for rrsig in rrset:
                if int(rrsig.type_covered) == int(rdtype):
                    found.append(rrsig)
    return found


class RRsetGroup:
    """Same-owner, same-type records gathered from one response section."""

    __slots__ = ("name", "rdclass", "rdtype", "rdatas")

    def __init__(self, name: dns.name.Name, rdclass: int, rdtype: int) -> None:
        self.name = name
        self.rdclass = rdclass
        self.rdtype = rdtype
        self.rdatas: List = []

    def __repr__(self) -> str:
        return f"<RRsetGroup {self.name} {_type_text(self.rdtype)} x{len(self.rdatas)}>"


def group_rrsets(section: Sequence[dns.rrset.RRset]) -> List[RRsetGroup]:
    """Partition non-RRSIG records by (lowercase owner, type), keeping order."""
    groups: "OrderedDict[Tuple[dns.name.Name, int], RRsetGroup]" = OrderedDict()
    for rrset in section:
        if rrset.rdtype == dns.rdatatype.RRSIG:
            continue
        key = (rrset.name.canonicalize(), int(rrset.rdtype))
        group = groups.get(key)
        if group is None:
            group = RRsetGroup(rrset.name, int(rrset.rdclass), int(rrset.rdtype))
            groups[key] = group
        group.rdatas.extend(rrset)
    return list(groups.values())


class Validator:
    """Brief: Stateful DNSSEC validator bound to one resolver.

    Inputs:
      - resolver: Object implementing the Resolver protocol; used to fetch
        DNSKEY and DS records while walking the chain.
      - clock: Callable returning the current UTC epoch seconds.
      - key_cache: Optional KeyCache; one is created for the resolver when
        omitted.

    Outputs:
      - Validator instance. Trust anchors are configured once; the first
        validate() call seals them.

    Example:
      >>> v = Validator(StubResolver())
      >>> v.use_root_trust_anchor()
      >>> v.validate(response)  # raises DNSSECError unless fully proven
    """

    def __init__(
        self,
        resolver: Resolver,
        *,
        clock: Callable[[], float] = time.time,
        key_cache: Optional[KeyCache] = None,
    ) -> None:
        self.resolver = resolver
        self.clock = clock
        self.keys = key_cache if key_cache is not None else KeyCache(resolver)
        self._anchors: Dict[int, List[TrustAnchor]] = {}
        self._sealed = False

    # -- trust anchors -------------------------------------------------

    @property
    def trust_anchors(self) -> Mapping[int, Tuple[TrustAnchor, ...]]:
        return MappingProxyType({tag: tuple(a) for tag, a in self._anchors.items()})

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _install(self, anchor: TrustAnchor) -> TrustAnchor:
        if self._sealed:
            raise ConfigurationError(
                "trust anchors cannot change once validation has started"
            )
        bucket = self._anchors.setdefault(int(anchor.key_tag), [])
        if anchor not in bucket:
            bucket.append(anchor)
            logger.debug(
                "trust anchor installed owner=%s tag=%d alg=%d digest_type=%d",
                anchor.owner,
                anchor.key_tag,
                anchor.algorithm,
                anchor.digest_type,
            )
        return anchor

    def use_root_trust_anchor(self) -> None:
        """Install the IANA root KSK anchors (key tags 20326 and 38696)."""
        for anchor in ROOT_TRUST_ANCHORS:
            self._install(anchor)

    def add_trust_anchor(
        self, anchor, owner: Union[dns.name.Name, str, None] = None
    ) -> List[TrustAnchor]:
        """Brief: Install a caller-supplied trust anchor.

        Inputs:
          - anchor: TrustAnchor, DS rdata, DNSKEY rdata, or an RRset of DS or
            DNSKEY records (its owner name is used).
          - owner: Zone for bare rdata; defaults to the root.

        Outputs:
          - List of the TrustAnchor entries installed. DNSKEY input is
            converted to a synthetic SHA-256 DS.
        """

        if isinstance(anchor, TrustAnchor):
            return [self._install(anchor)]
        if isinstance(anchor, dns.rrset.RRset):
            installed: List[TrustAnchor] = []
            for rdata in anchor:
                installed.extend(self.add_trust_anchor(rdata, anchor.name))
            return installed
        rdtype = getattr(anchor, "rdtype", None)
        if rdtype == dns.rdatatype.DS:
            return [self._install(anchor_from_ds(anchor, owner))]
        if rdtype == dns.rdatatype.DNSKEY:
            return [self._install(anchor_from_dnskey(anchor, owner))]
        raise ConfigurationError(
            f"trust anchor must be a DS or DNSKEY record, got {type(anchor).__name__}"
        )

    # -- primitives ----------------------------------------------------

    @staticmethod
    def key_tag(dnskey) -> int:
        return key_tag(dnskey)

    @staticmethod
    def ds_digest(dnskey, owner_wire, digest_type: int) -> str:
        if not isinstance(owner_wire, (bytes, bytearray)):
            owner_wire = canonical_name_wire(owner_wire)
        return ds_digest(dnskey, owner_wire, digest_type)

    # -- entry points --------------------------------------------------

    def _begin(self) -> None:
        require_crypto()
        if not self._anchors:
            raise ConfigurationError("no trust anchors configured")
        self._sealed = True

    def validate(self, response: Union[dns.message.Message, bytes]) -> None:
        """Brief: Validate every answer RRset of a response.

        Inputs:
          - response: dns.message.Message, or raw wire bytes.

        Outputs:
          - None on success.

        Raises:
          - DNSSECError subclass describing the first RRset that could not be
            proven; the response must then be treated as untrusted.
        """

        self._begin()
        message = self._as_message(response)
        for group in group_rrsets(message.answer):
            rrsigs = covering_rrsigs(message, group.name, group.rdtype)
            if not rrsigs:
                raise UnsignedError(
                    f"{group.name} {_type_text(group.rdtype)} has no covering RRSIG"
                )
            self._validate_group(group, rrsigs)

    def validate_chain(self, dnskey, zone: Union[dns.name.Name, str]) -> None:
        """Prove that dnskey is authoritative for zone back to an anchor."""
        self._begin()
        self._walk(dnskey, as_name(zone))

    # -- internals -----------------------------------------------------

    @staticmethod
    def _as_message(response) -> dns.message.Message:
        if isinstance(response, dns.message.Message):
            return response
        if isinstance(response, (bytes, bytearray, memoryview)):
            try:
                return dns.message.from_wire(bytes(response))
            except dns.exception.DNSException as exc:
                raise MalformedInputError(f"unparsable DNS response: {exc}") from exc
        raise MalformedInputError(
            f"expected a DNS message or wire bytes, got {type(response).__name__}"
        )

    def _validate_group(self, group: RRsetGroup, rrsigs: Sequence) -> None:
        label = f"{group.name} {_type_text(group.rdtype)}"
        attempts: List[DNSSECError] = []
        for rrsig in rrsigs:
            try:
                signer = as_name(rrsig.signer)
                candidates = self.keys.dnskeys(signer)
                dnskey = self._check_signature(
                    group.name, group.rdclass, group.rdtype, group.rdatas, rrsig, candidates
                )
                self._walk(dnskey, signer)
                logger.debug("%s secure via %s/%d", label, signer, int(rrsig.key_tag))
                return
            except DNSSECError as exc:
                logger.debug(
                    "%s: RRSIG tag=%d alg=%d failed: %s [%s]",
                    label,
                    int(rrsig.key_tag),
                    int(rrsig.algorithm),
                    exc,
                    exc.kind.value,
                )
                attempts.append(exc)
        raise exhausted(attempts, BogusSignatureError(f"no RRSIG for {label} verified"))

    def _check_signature(
        self,
        owner: dns.name.Name,
        rdclass: int,
        rdtype: int,
        rdatas: Sequence,
        rrsig,
        candidates: Sequence,
        *,
        require_sep: bool = False,
    ):
        """Brief: Verify one RRSIG against the candidate DNSKEYs.

        Inputs:
          - owner, rdclass, rdtype, rdatas: The covered RRset.
          - rrsig: RRSIG rdata to check.
          - candidates: DNSKEY rdatas published by the signer zone.
          - require_sep: Only SEP keys may sign (DNSKEY RRset attestation).

        Outputs:
          - The DNSKEY rdata whose signature verified.
        """

        check_time_window(rrsig, self.clock())
        signer = as_name(rrsig.signer)
        if not owner.is_subdomain(signer):
            raise BogusSignatureError(
                f"RRSIG signer {signer} is not {owner} or an ancestor of it"
            )
        tag = int(rrsig.key_tag)
        alg = int(rrsig.algorithm)
        usable = [
            k
            for k in candidates
            if int(k.algorithm) == alg and _usable_key(k) and key_tag(k) == tag
        ]
        if not usable:
            raise ChainOfTrustError(
                f"no usable DNSKEY tag={tag} alg={alg} published at {signer}"
            )
        if require_sep:
            usable = [k for k in usable if key_flags(k).sep]
            if not usable:
                raise ChainOfTrustError(
                    f"DNSKEY RRset at {signer} is signed by non-SEP key tag={tag}"
                )

        data = signed_data(rrsig, owner, rdclass, rdtype, rdatas)
        for dnskey in usable:
            if verify_signature(alg, dnskey.key, rrsig.signature, data):
                return dnskey
        raise BogusSignatureError(
            f"RRSIG over {owner} {_type_text(rdtype)} by {signer} tag={tag} "
            "does not verify"
        )

    def _walk(self, dnskey, zone: dns.name.Name) -> None:
        step: Optional[Step] = (dnskey, zone)
        while step is not None:
            key, at = step
            logger.debug(
                "chain step zone=%s tag=%d sep=%s", at, key_tag(key), key_flags(key).sep
            )
            step = self._advance(key, at)

    def _advance(self, dnskey, zone: dns.name.Name) -> Optional[Step]:
        if not key_flags(dnskey).sep:
            return self._attest_zsk(dnskey, zone)
        if zone == dns.name.root:
            self._match_anchor(dnskey, zone, required=True)
            return None
        if self._match_anchor(dnskey, zone, required=False):
            return None
        return self._attest_via_ds(dnskey, zone)

    def _match_anchor(self, dnskey, zone: dns.name.Name, *, required: bool) -> bool:
        """Check dnskey against anchors owned by zone; True when one matches."""
        tag = key_tag(dnskey)
        owner = owner_text(zone)
        anchors = [a for a in self._anchors.get(tag, ()) if a.owner == owner]
        owner_wire = canonical_name_wire(zone)
        for anchor in anchors:
            if int(anchor.algorithm) != int(dnskey.algorithm):
                continue
            if anchor.matches(ds_digest(dnskey, owner_wire, anchor.digest_type)):
                logger.debug("trust anchor match zone=%s tag=%d", owner, tag)
                return True
        if required:
            if not anchors:
                raise ChainOfTrustError(f"no trust anchor for {owner} key tag {tag}")
            raise ChainOfTrustError(
                f"DNSKEY tag {tag} at {owner} does not match its trust anchor digest"
            )
        return False

    def _attest_zsk(self, zsk, zone: dns.name.Name) -> Step:
        response = self.keys.dnskey_response(zone)
        keys = self.keys.dnskeys(zone)
        if zsk not in keys:
            raise ChainOfTrustError(
                f"DNSKEY tag {key_tag(zsk)} is not in the DNSKEY RRset of {zone}"
            )
        rdclass = next(
            (
                g.rdclass
                for g in group_rrsets(response.answer)
                if g.rdtype == dns.rdatatype.DNSKEY and g.name == zone
            ),
            dns.rdataclass.IN,
        )
        rrsigs = covering_rrsigs(response, zone, dns.rdatatype.DNSKEY)
        if not rrsigs:
            raise ChainOfTrustError(f"DNSKEY RRset of {zone} has no RRSIG")

        attempts: List[DNSSECError] = []
        for rrsig in rrsigs:
            try:
                if as_name(rrsig.signer) != zone:
                    raise ChainOfTrustError(
                        f"RRSIG over DNSKEY at {zone} has foreign signer {rrsig.signer}"
                    )
                ksk = self._check_signature(
                    zone,
                    rdclass,
                    dns.rdatatype.DNSKEY,
                    keys,
                    rrsig,
                    keys,
                    require_sep=True,
                )
                return ksk, zone
            except DNSSECError as exc:
                logger.debug(
                    "DNSKEY RRSIG tag=%d at %s failed: %s", int(rrsig.key_tag), zone, exc
                )
                attempts.append(exc)
        raise exhausted(
            attempts, ChainOfTrustError(f"no KSK attests the DNSKEY RRset of {zone}")
        )

    def _attest_via_ds(self, ksk, zone: dns.name.Name) -> Step:
        response = self.keys.query(zone, dns.rdatatype.DS)
        ds_groups = [
            g for g in group_rrsets(response.answer)
            if g.rdtype == dns.rdatatype.DS and g.name == zone
        ]
        if not ds_groups:
            raise ChainOfTrustError(f"no DS RRset for {zone} in its parent")
        ds_set = ds_groups[0]

        tag = key_tag(ksk)
        alg = int(ksk.algorithm)
        matching = [
            ds for ds in ds_set.rdatas
            if int(ds.key_tag) == tag and int(ds.algorithm) == alg
        ]
        if not matching:
            raise ChainOfTrustError(f"no DS for key tag {tag} alg {alg} at {zone}")
        supported = [ds for ds in matching if digest_supported(ds.digest_type)]
        if not supported:
            raise UnsupportedAlgorithmError(
                f"DS for {zone} tag {tag} uses only unsupported digest types"
            )
        owner_wire = canonical_name_wire(zone)
        if not any(
            ds_digest(ksk, owner_wire, ds.digest_type) == bytes(ds.digest).hex()
            for ds in supported
        ):
            raise ChainOfTrustError(f"DS digest mismatch for {zone} key tag {tag}")

        rrsigs = covering_rrsigs(response, zone, dns.rdatatype.DS)
        if not rrsigs:
            raise ChainOfTrustError(f"DS RRset for {zone} is not signed")

        attempts: List[DNSSECError] = []
        for rrsig in rrsigs:
            try:
                parent = as_name(rrsig.signer)
                if parent == zone or not zone.is_subdomain(parent):
                    raise ChainOfTrustError(
                        f"DS RRset for {zone} signed by non-ancestor {parent}"
                    )
                parent_key = self._check_signature(
                    zone,
                    ds_set.rdclass,
                    dns.rdatatype.DS,
                    ds_set.rdatas,
                    rrsig,
                    self.keys.dnskeys(parent),
                )
                return parent_key, parent
            except DNSSECError as exc:
                logger.debug(
                    "DS RRSIG tag=%d for %s failed: %s", int(rrsig.key_tag), zone, exc
                )
                attempts.append(exc)
        raise exhausted(
            attempts, ChainOfTrustError(f"DS RRset for {zone} could not be verified")
        )
