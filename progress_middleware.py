from tqdm import tqdm
from concurrent.futures import as_completed
from colorama import Fore, Style
import logging
import sys

from scan_middleware import Status

_STATUS_TAGS = {
    Status.VULNERABLE: ("[VULNERABLE]", Fore.RED),
    Status.POTENTIAL: ("[POTENTIAL]", Fore.YELLOW),
}


def configure_logging(log_file=None, verbose=False):
    """File logging when --logfile is given; otherwise warnings (or debug with -v) to stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=level,
            format="%(asctime)s - %(levelname)s - %(message)s"
        )
    else:
        logging.basicConfig(
            stream=sys.stderr,
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(levelname)s - %(message)s"
        )
    # keep urllib3 connection chatter out of -v output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class ProgressMiddleware:
    """
    Progress bar + colored live lines that keep the bar pinned at the bottom of the screen.
    All runtime prints should go through .write() to keep the bar anchored.
    """

    def __init__(self, total=None, desc="Scanning", unit="sub", disable=False, color=True):
        self.total = total
        self.desc = desc
        self.unit = unit
        self.disable = disable
        self.color = color
        self.logger = logging.getLogger(__name__)
        self._bar = None
        self._stderr = sys.stderr

    def _paint(self, text: str, color: str) -> str:
        return color + text + Style.RESET_ALL if self.color else text

    def start(self):
        """Create the bar immediately so any writes can go above it."""
        if self.disable or self._bar is not None:
            return
        self._bar = tqdm(
            total=self.total,
            desc=self.desc,
            unit=self.unit,
            disable=self.disable,
            leave=True,
            position=0,
            dynamic_ncols=True,
            file=self._stderr,
            mininterval=0.1,
        )

    def close(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None

    def write(self, text: str, color: str = ""):
        """Print above the bar and keep the bar pinned at the bottom."""
        tqdm.write(self._paint(text, color) if color else text, file=self._stderr)
        if self._bar is not None:
            self._bar.refresh()

    def info(self, text: str):
        self.write("[+] " + text, Fore.CYAN)

    def finding(self, f):
        tag, color = _STATUS_TAGS.get(f.status, ("[" + f.status.value.upper() + "]", Fore.WHITE))
        line = f"{tag} {f.subdomain} -> {f.cname} ({f.service}) [{f.confidence}]"
        if f.status is Status.VULNERABLE and f.evidence:
            line += f" {f.evidence}"
        self.write(line, color)
        self.logger.info(line)

    def summary(self, results, total_targets: int):
        counts = results.counts()
        vulnerable = counts.get(Status.VULNERABLE.value, 0)
        potential = counts.get(Status.POTENTIAL.value, 0)
        self.write("\n[+] Scan completed!", Fore.CYAN)
        self.write(f"[+] Total targets processed: {total_targets}", Fore.CYAN)
        self.write(f"[+] Vulnerable: {vulnerable}", Fore.RED)
        self.write(f"[+] Potential: {potential}", Fore.YELLOW)
        self.write(f"[+] Safe: {total_targets - vulnerable - potential}", Fore.GREEN)

    def wrap_futures(self, futures):
        """Advance the pinned bar as futures complete (thread pool)."""
        if self._bar is None:
            self.start()
        bar = self._bar
        for f in as_completed(futures):
            yield f
            if bar is not None:
                bar.update(1)
                self.logger.debug(f"{self.desc}: processed {bar.n}/{bar.total}")
        self.close()
