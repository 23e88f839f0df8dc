import threading
import time

import dns.name
import dns.resolver
import pytest
import requests

from resolver_middleware import Resolution
from verifier_middleware import Verification


class _Target:
    def __init__(self, text):
        self._name = dns.name.from_text(text)

    def to_text(self):
        return self._name.to_text()


class _CNAMERecord:
    def __init__(self, text):
        self.target = _Target(text)


class _AddressRecord:
    def __init__(self, address):
        self.address = address


class _AddressAnswer(list):
    """Mimics dns.resolver.Answer for A queries: rrset, qname, canonical_name."""

    def __init__(self, name, addresses, canonical=None):
        super().__init__(_AddressRecord(a) for a in addresses)
        self.rrset = list(self) if addresses else None
        self.qname = dns.name.from_text(name)
        self.canonical_name = dns.name.from_text(canonical) if canonical else self.qname


class FakeDNS:
    """
    Stand-in for dns.resolver.Resolver. records maps (name, rtype) to a list
    of values or an exception instance; anything missing raises NoAnswer
    unless raise_on_no_answer is off. canonical maps a name to the end of its
    alias chain as a recursive resolver would report it on A queries.
    """

    def __init__(self, records=None, canonical=None):
        self.records = records or {}
        self.canonical = canonical or {}
        self.queries = []

    def resolve(self, name, rtype, raise_on_no_answer=True):
        self.queries.append((name, rtype))
        value = self.records.get((name, rtype))
        if isinstance(value, Exception):
            raise value
        if rtype == "CNAME":
            if not value:
                raise dns.resolver.NoAnswer()
            return [_CNAMERecord(v) for v in value]
        if value is None and raise_on_no_answer:
            raise dns.resolver.NoAnswer()
        return _AddressAnswer(name, value or [], self.canonical.get(name))


class FakeResponse:
    """
    Streaming response double. drip delays every chunk of the body, the way
    a host trickling bytes would.
    """

    def __init__(self, status_code=200, text="", headers=None, drip=0.0, chunk=1024, encoding="utf-8"):
        self.status_code = status_code
        self.headers = headers or {}
        self.encoding = encoding
        self.drip = drip
        self.chunk = chunk
        self.body = text.encode("utf-8")
        self.read_bytes = 0
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), self.chunk):
            if self.drip:
                time.sleep(self.drip)
            piece = self.body[i:i + self.chunk]
            self.read_bytes += len(piece)
            yield piece

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class FakeSession:
    """
    Maps URL -> FakeResponse or exception; unknown URLs refuse the connection.
    stall holds get() before the headers arrive.
    """

    def __init__(self, responses=None, stall=0.0):
        self.responses = responses or {}
        self.stall = stall
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.stall:
            time.sleep(self.stall)
        value = self.responses.get(url)
        if value is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        if isinstance(value, Exception):
            raise value
        return value


class FakeResolver:
    """Resolver replacement keyed by target name; tracks peak concurrency."""

    def __init__(self, cnames=None, addresses=None, delay=0.0):
        self.cnames = cnames or {}
        self.addresses = addresses or {}
        self.delay = delay
        self.calls = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def resolve(self, name):
        with self._lock:
            self.calls.append(name)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            cname = self.cnames.get(name)
            if cname is None:
                return Resolution(cname=None, addresses=[], error="NoAnswer")
            return Resolution(cname=cname, addresses=list(self.addresses.get(name, [])))
        finally:
            with self._lock:
                self.active -= 1


class FakeVerifier:
    """Confirms the services listed in confirm; records (name, service) calls."""

    def __init__(self, confirm=(), evidence="Status: 404 | Body match", elapsed_ms=42):
        self.confirm = set(confirm)
        self.evidence = evidence
        self.elapsed_ms = elapsed_ms
        self.calls = []

    def verify(self, name, signature):
        self.calls.append((name, signature.service))
        if signature.service in self.confirm:
            return Verification(True, self.evidence, self.elapsed_ms)
        return Verification(False, "", 0)


@pytest.fixture
def fake_session():
    return FakeSession()
