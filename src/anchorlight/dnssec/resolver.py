"""Resolver collaborator used by the validator to fetch DNSKEY and DS records.

The validator only needs ``query(qname, rdtype, *, dnssec=True)``. Whether the
DO bit is requested is a per-call argument so concurrent validations never race
on shared resolver state.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Union

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.query
import dns.rdatatype
import dns.resolver

logger = logging.getLogger("anchorlight.resolver")


class ResolverError(Exception):
    """Raised when no nameserver produced a usable response."""


class Resolver(Protocol):
    def query(
        self,
        qname: Union[dns.name.Name, str],
        rdtype: Union[int, str],
        *,
        dnssec: bool = True,
    ) -> dns.message.Message: ...


def _parse_resolv_conf_nameservers(path: str = "/etc/resolv.conf") -> List[str]:
    """Brief: Best-effort parse of nameserver entries from a resolv.conf file.

    Inputs:
      - path: Filesystem path to a resolv.conf-format file.

    Outputs:
      - List of nameserver IP strings in the order encountered. Returns an empty
        list when the file cannot be read.

    Notes:
      - search/domain directives are ignored; some hosts ship values that make
        dnspython's strict parser raise and only nameservers are needed here.
    """

    servers: List[str] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                raw = line.split("#", 1)[0].split(";", 1)[0].strip()
                if not raw:
                    continue
                parts = raw.split()
                if len(parts) >= 2 and parts[0].lower() == "nameserver":
                    servers.append(parts[1])
    except OSError:  # pragma: no cover - depends on host environment
        return []
    return servers


def system_nameservers() -> List[str]:
    """Return nameservers from the system configuration via dnspython."""
    try:
        r = dns.resolver.Resolver(configure=True)
        return [str(ns) for ns in r.nameservers]
    except dns.exception.DNSException as exc:  # pragma: no cover - host specific
        logger.warning(
            "could not parse system resolv.conf; falling back to nameserver-only parse: %s",
            exc,
        )
        return _parse_resolv_conf_nameservers()


class StubResolver:
    """Brief: Minimal EDNS(0) stub resolver built on dns.query.

    Inputs:
      - nameservers: Optional list of IP strings; None uses the system config.
      - port: Destination port for every nameserver.
      - timeout: Per-query timeout in seconds.
      - payload_size: Advertised EDNS(0) UDP payload size.

    Outputs:
      - Object implementing the Resolver protocol.
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        *,
        port: int = 53,
        timeout: float = 2.0,
        payload_size: int = 1232,
    ) -> None:
        if nameservers is None:
            nameservers = system_nameservers()
        self.nameservers: List[str] = list(nameservers)
        if not self.nameservers:
            raise ResolverError("no nameservers configured")
        self.port = int(port)
        self.timeout = float(timeout)
        self.payload_size = int(payload_size or 1232)

    def make_query(
        self,
        qname: Union[dns.name.Name, str],
        rdtype: Union[int, str],
        *,
        dnssec: bool = True,
    ) -> dns.message.Message:
        if isinstance(rdtype, str):
            rdtype = dns.rdatatype.from_text(rdtype)
        q = dns.message.make_query(
            qname,
            rdtype,
            use_edns=0,
            want_dnssec=dnssec,
            payload=self.payload_size,
        )
        if dnssec:
            # Checking Disabled: an upstream validator still hands us bogus data
            # so our own verdict is the one reported.
            q.flags |= dns.flags.CD
        return q

    def query(
        self,
        qname: Union[dns.name.Name, str],
        rdtype: Union[int, str],
        *,
        dnssec: bool = True,
    ) -> dns.message.Message:
        q = self.make_query(qname, rdtype, dnssec=dnssec)
        last_exc: Optional[Exception] = None
        for server in self.nameservers:
            try:
                response, used_tcp = dns.query.udp_with_fallback(
                    q, server, timeout=self.timeout, port=self.port
                )
            except (dns.exception.DNSException, OSError) as exc:
                logger.debug("query %s/%s to %s failed: %s", qname, rdtype, server, exc)
                last_exc = exc
                continue
            logger.debug(
                "query %s/%s answered by %s (tcp=%s)", qname, rdtype, server, used_tcp
            )
            return response
        raise ResolverError(
            f"all nameservers failed for {qname} {dns.rdatatype.to_text(q.question[0].rdtype)}: {last_exc}"
        )
