import logging
import threading
from typing import List, MutableMapping, Optional, Union

import dns.exception
import dns.message
import dns.name
import dns.rdatatype
from cachetools import TTLCache

from .canonical import as_name
from .errors import ChainOfTrustError
from .resolver import Resolver, ResolverError

logger = logging.getLogger("anchorlight.dnssec")


def zone_key(zone: Union[dns.name.Name, str]) -> str:
    """Cache key for a zone: lowercase, no trailing dot, root as "."."""
    text = as_name(zone).canonicalize().to_text(omit_final_dot=True)
    return text or "."


class KeyCache:
    """Brief: Lazily fetched DNSKEY responses and key lists, per zone.

    Inputs:
      - resolver: Object implementing the Resolver protocol.
      - max_ttl: Optional lifetime in seconds. None keeps entries for the life
        of the cache; a number switches both maps to cachetools.TTLCache.
      - maxsize: Bound on zones kept when max_ttl is set.

    Outputs:
      - KeyCache instance; safe to share between threads.
    """

    def __init__(
        self,
        resolver: Resolver,
        *,
        max_ttl: Optional[float] = None,
        maxsize: int = 1024,
    ) -> None:
        self.resolver = resolver
        self.max_ttl = max_ttl
        self._lock = threading.RLock()
        self.dnskey_response_cache: MutableMapping[str, dns.message.Message]
        self.key_cache: MutableMapping[str, List]
        if max_ttl:
            self.dnskey_response_cache = TTLCache(maxsize=maxsize, ttl=max_ttl)
            self.key_cache = TTLCache(maxsize=maxsize, ttl=max_ttl)
        else:
            self.dnskey_response_cache = {}
            self.key_cache = {}

    def query(
        self, qname: Union[dns.name.Name, str], rdtype: Union[int, str]
    ) -> dns.message.Message:
        """Uncached DNSSEC query; transport failures become ChainOfTrustError."""
        try:
            return self.resolver.query(qname, rdtype, dnssec=True)
        except (ResolverError, dns.exception.DNSException, OSError) as exc:
            if isinstance(rdtype, int):
                rdtype = dns.rdatatype.to_text(rdtype)
            raise ChainOfTrustError(
                f"failed to fetch {rdtype} for {zone_key(qname)}: {exc}"
            ) from exc

    def dnskey_response(self, zone: Union[dns.name.Name, str]) -> dns.message.Message:
        """Return the full DNSKEY response (answer + authority) for zone."""
        key = zone_key(zone)
        with self._lock:
            cached = self.dnskey_response_cache.get(key)
        if cached is not None:
            return cached
        logger.debug("fetching DNSKEY for %s", key)
        response = self.query(as_name(zone), dns.rdatatype.DNSKEY)
        with self._lock:
            return self.dnskey_response_cache.setdefault(key, response)

    def dnskeys(self, zone: Union[dns.name.Name, str]) -> List:
        """Return the DNSKEY rdatas published at zone's apex."""
        key = zone_key(zone)
        with self._lock:
            cached = self.key_cache.get(key)
        if cached is not None:
            return cached
        response = self.dnskey_response(zone)
        owner = as_name(zone)
        keys = []
        for rrset in response.answer:
            if rrset.rdtype == dns.rdatatype.DNSKEY and rrset.name == owner:
                keys.extend(rrset)
        with self._lock:
            return self.key_cache.setdefault(key, keys)

    def clear(self) -> None:
        with self._lock:
            self.dnskey_response_cache.clear()
            self.key_cache.clear()
