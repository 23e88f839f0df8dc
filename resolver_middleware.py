import logging
from typing import List, NamedTuple, Optional, Tuple

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    cname: Optional[str]
    addresses: List[str]
    error: Optional[str] = None
    chain: Tuple[str, ...] = ()


# =============================
# DNS resolver helpers
# =============================
def _make_resolver(timeout: float = 10.0, nameservers: Optional[List[str]] = None) -> dns.resolver.Resolver:
    """
    Build a resolver. If nameservers is None -> use system resolver; otherwise set explicit servers.
    No cache is attached, so every target is resolved independently.
    """
    r = dns.resolver.Resolver(configure=(nameservers is None))
    if nameservers:
        r.nameservers = list(nameservers)
    r.timeout = float(timeout)
    r.lifetime = float(timeout)
    return r


class Resolver:
    """
    At most two queries per target: CNAME for the name, then A for the name.
    The A answer carries the full alias chain, so its canonical name is used
    as the terminal CNAME when the recursive resolver could follow it.
    """

    def __init__(self, timeout: float = 10.0, nameservers: Optional[List[str]] = None, resolver=None):
        self.timeout = timeout
        self._resolver = resolver if resolver is not None else _make_resolver(timeout, nameservers)

    def resolve(self, name: str) -> Resolution:
        try:
            ans = self._resolver.resolve(name, "CNAME")
        except dns.exception.DNSException as e:
            logger.debug("%s: no CNAME (%s)", name, e)
            return Resolution(cname=None, addresses=[], error=str(e) or e.__class__.__name__)
        if not ans:
            return Resolution(cname=None, addresses=[], error="empty CNAME answer")
        first = ans[0].target.to_text()

        cname = first
        addresses: List[str] = []
        try:
            a = self._resolver.resolve(name, "A", raise_on_no_answer=False)
            if a.rrset is not None:
                addresses = [r.address for r in a]
            if a.canonical_name != a.qname:
                cname = a.canonical_name.to_text()
        except dns.exception.DNSException as e:
            # NXDOMAIN here is the usual dangling case: the alias target is gone
            logger.debug("%s A lookup failed: %s", name, e)

        chain = (first,) if cname == first else (first, cname)
        return Resolution(cname=cname, addresses=addresses, chain=chain)
