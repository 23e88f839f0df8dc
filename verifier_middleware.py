import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FetchTimeout
from typing import List, NamedTuple, Optional

import requests
import urllib3

from signature_middleware import Signature

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "SubTake/v2.0"
MAX_BODY_BYTES = 64 * 1024
DEFAULT_FETCH_WORKERS = 100


class Verification(NamedTuple):
    confirmed: bool
    evidence: str
    elapsed_ms: int


class Page(NamedTuple):
    status_code: int
    headers: dict
    text: str


def _add(evidence: List[str], part: str):
    if part not in evidence:
        evidence.append(part)


def _header_matches(headers, needle: str) -> bool:
    for key, value in headers.items():
        if needle in f"{key}:{value}":
            return True
    return False


def _decode(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


# =============================
# HTTP confirmation
# =============================
class HTTPVerifier:
    """
    Confirms a takeover candidate by fetching https:// then http:// on the
    target name and scoring the response against one signature.

    Each fetch is held to `timeout` seconds end to end (connect, headers and
    body) and only the first MAX_BODY_BYTES of the body are read. A fetch that
    overruns counts as no evidence for that scheme; its thread is left to hit
    the deadline on its own, and fetch_workers bounds how many can linger.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        verify_tls: bool = False,
        follow_redirects: bool = False,
        fetch_workers: int = DEFAULT_FETCH_WORKERS,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.follow_redirects = follow_redirects
        self._session = session if session is not None else requests.Session()
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(fetch_workers)),
                                        thread_name_prefix="subtake-fetch")
        if not verify_tls:
            # every request goes out with verify=False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def close(self):
        self._pool.shutdown(wait=False)

    def _get(self, url: str, deadline: float) -> Optional[Page]:
        with self._session.get(
            url,
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            verify=self.verify_tls,
            allow_redirects=self.follow_redirects,
            stream=True,
        ) as resp:
            body = bytearray()
            for chunk in resp.iter_content(chunk_size=4096):
                if time.monotonic() >= deadline:
                    return None
                body.extend(chunk)
                if len(body) >= MAX_BODY_BYTES:
                    break
            return Page(resp.status_code, resp.headers, _decode(bytes(body[:MAX_BODY_BYTES]), resp.encoding))

    def _fetch(self, url: str) -> Optional[Page]:
        deadline = time.monotonic() + self.timeout
        fut = self._pool.submit(self._get, url, deadline)
        try:
            return fut.result(timeout=self.timeout)
        except FetchTimeout:
            fut.cancel()
            logger.debug("GET %s exceeded the %ss budget", url, self.timeout)
        except requests.RequestException as e:
            logger.debug("GET %s failed: %s", url, e)
        return None

    def verify(self, name: str, signature: Signature) -> Verification:
        start = time.monotonic()
        elapsed_ms: Optional[int] = None
        evidence: List[str] = []

        for url in (f"https://{name}", f"http://{name}"):
            page = self._fetch(url)
            if page is None:
                continue
            if elapsed_ms is None:
                elapsed_ms = int((time.monotonic() - start) * 1000)

            status_hit = bool(signature.status_code) and page.status_code == signature.status_code
            if status_hit:
                _add(evidence, f"Status: {page.status_code}")

            if signature.body_rx is not None and signature.body_rx.search(page.text):
                _add(evidence, "Body match")
                return Verification(True, " | ".join(evidence), elapsed_ms)

            if signature.header_match and _header_matches(page.headers, signature.header_match):
                _add(evidence, "Header match")
                return Verification(True, " | ".join(evidence), elapsed_ms)

            if status_hit and not signature.body_match:
                return Verification(True, " | ".join(evidence), elapsed_ms)

        return Verification(False, " | ".join(evidence), elapsed_ms or 0)
