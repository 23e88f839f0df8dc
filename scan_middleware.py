import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from resolver_middleware import Resolver
from signature_middleware import SignatureRegistry, match
from verifier_middleware import HTTPVerifier

logger = logging.getLogger(__name__)

SHALLOW_EVIDENCE = "CNAME match only"
DEFAULT_CONCURRENCY = 50


class EmptyTargetListError(ValueError):
    """No targets were supplied to a scan."""


# =============================
# Scan outcome
# =============================
class Status(Enum):
    SAFE = "safe"
    POTENTIAL = "potentially_vulnerable"
    VULNERABLE = "vulnerable"


@dataclass(frozen=True)
class Finding:
    subdomain: str
    cname: str
    service: str
    status: Status
    confidence: str
    evidence: str
    ip: str = ""
    response_time: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class Outcome:
    """Terminal state of one target. Only non-safe outcomes carry a Finding."""
    target: str
    status: Status
    finding: Optional[Finding] = None

    @classmethod
    def safe(cls, target: str) -> "Outcome":
        return cls(target, Status.SAFE)

    @classmethod
    def reported(cls, finding: Finding) -> "Outcome":
        return cls(finding.subdomain, finding.status, finding)


class ResultCollection:
    """Append-only, lock-guarded sink for findings produced by scan workers."""

    def __init__(self):
        self._items: List[Finding] = []
        self._lock = threading.Lock()
        self.interrupted = False

    def append(self, finding: Finding):
        with self._lock:
            self._items.append(finding)

    def __len__(self):
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[Finding]:
        with self._lock:
            return iter(list(self._items))

    def findings(self) -> List[Finding]:
        with self._lock:
            return list(self._items)

    def counts(self) -> Dict[str, int]:
        out = {Status.VULNERABLE.value: 0, Status.POTENTIAL.value: 0}
        for f in self:
            out[f.status.value] = out.get(f.status.value, 0) + 1
        return out


# =============================
# Scan coordinator
# =============================
class Scanner:
    def __init__(
        self,
        registry: SignatureRegistry,
        resolver: Resolver,
        verifier: Optional[HTTPVerifier] = None,
        max_concurrency: int = DEFAULT_CONCURRENCY,
        deep_check: bool = True,
        on_finding: Optional[Callable[[Finding], None]] = None,
        progress=None,
    ):
        if int(max_concurrency) < 1:
            raise ValueError("max_concurrency must be a positive integer")
        if deep_check and verifier is None:
            raise ValueError("deep_check requires an HTTP verifier")
        self.registry = registry
        self.resolver = resolver
        self.verifier = verifier
        self.max_concurrency = int(max_concurrency)
        self.deep_check = deep_check
        self.on_finding = on_finding
        self.progress = progress
        self._slots = threading.BoundedSemaphore(self.max_concurrency)

    def evaluate(self, target: str) -> Outcome:
        res = self.resolver.resolve(target)
        if not res.cname:
            logger.debug("%s: safe (%s)", target, res.error or "no CNAME")
            return Outcome.safe(target)
        ip = res.addresses[0] if res.addresses else ""

        for sig in match(res.cname, self.registry):
            if not self.deep_check:
                return Outcome.reported(Finding(
                    subdomain=target,
                    cname=res.cname,
                    service=sig.service,
                    status=Status.POTENTIAL,
                    confidence=sig.confidence,
                    evidence=SHALLOW_EVIDENCE,
                    ip=ip,
                ))
            check = self.verifier.verify(target, sig)
            if check.confirmed:
                return Outcome.reported(Finding(
                    subdomain=target,
                    cname=res.cname,
                    service=sig.service,
                    status=Status.VULNERABLE,
                    confidence=sig.confidence,
                    evidence=check.evidence,
                    ip=ip,
                    response_time=check.elapsed_ms,
                ))
            logger.debug("%s: %s not confirmed (%s)", target, sig.service, check.evidence or "no evidence")

        return Outcome.safe(target)

    def _worker(self, target: str, results: ResultCollection,
                cancel_event: threading.Event) -> Optional[Outcome]:
        with self._slots:
            if cancel_event.is_set():
                return None
            logger.debug("Checking %s", target)
            try:
                outcome = self.evaluate(target)
            except Exception as e:
                logger.warning("%s: evaluation failed, treating as safe: %s", target, e)
                return Outcome.safe(target)
        if outcome.finding is not None:
            results.append(outcome.finding)
            if self.on_finding:
                try:
                    self.on_finding(outcome.finding)
                except Exception as e:
                    logger.warning("%s: finding callback failed: %s", target, e)
        return outcome

    def run(self, targets: Sequence[str], cancel_event: Optional[threading.Event] = None) -> ResultCollection:
        if not targets:
            raise EmptyTargetListError("No targets provided.")
        if cancel_event is None:
            cancel_event = threading.Event()
        results = ResultCollection()
        started = time.monotonic()
        with ThreadPoolExecutor(max_workers=self.max_concurrency) as pool:
            futs = [pool.submit(self._worker, t, results, cancel_event) for t in targets]
            done = self.progress.wrap_futures(futs) if self.progress is not None else as_completed(futs)
            try:
                for f in done:
                    f.result()
            except KeyboardInterrupt:
                # stop admitting targets; in-flight ones end on their own timeouts
                logger.warning("Interrupted; waiting for in-flight targets to finish")
                cancel_event.set()
                if self.progress is not None:
                    self.progress.close()
        if cancel_event.is_set():
            results.interrupted = True
        logger.info("Scanned %d targets in %.1fs: %d findings",
                    len(targets), time.monotonic() - started, len(results))
        return results
