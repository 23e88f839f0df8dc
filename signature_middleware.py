import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

import yaml

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low")


class SignatureError(Exception):
    """Raised when a signature entry cannot be loaded (bad regex, missing fields, unreadable file)."""


# =============================
# Signature
# =============================
@dataclass(frozen=True)
class Signature:
    service: str
    cnames: Tuple[str, ...]
    status_code: int = 0
    body_match: str = ""
    header_match: str = ""
    confidence: str = "medium"
    fingerprint: str = ""
    body_rx: Optional[Pattern] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.confidence not in CONFIDENCE_LEVELS:
            raise SignatureError(f"{self.service}: unknown confidence {self.confidence!r}")
        if self.body_match:
            try:
                rx = re.compile(self.body_match)
            except re.error as e:
                raise SignatureError(f"{self.service}: invalid body_match {self.body_match!r}: {e}") from e
            object.__setattr__(self, "body_rx", rx)

    @property
    def cname_only(self) -> bool:
        """True when nothing beyond the CNAME can be checked for this provider."""
        return not (self.status_code or self.body_match or self.header_match)


def _sig(service, cnames, fingerprint, body_match, confidence="high", status_code=404, header_match=""):
    return Signature(
        service=service,
        cnames=tuple(cnames),
        status_code=status_code,
        body_match=body_match,
        header_match=header_match,
        confidence=confidence,
        fingerprint=fingerprint,
    )


# =============================
# Built-in provider table (order matters: first match governs)
# =============================
BUILTIN_SIGNATURES: Tuple[Signature, ...] = (
    _sig("AWS S3", [".s3.amazonaws.com", ".s3-website", ".s3."], "NoSuchBucket", "NoSuchBucket|No Such Bucket"),
    _sig("GitHub Pages", [".github.io", ".github.com"], "There isn't a GitHub Pages site here",
         "There isn't a GitHub Pages site here"),
    _sig("Heroku", [".herokuapp.com", ".herokudns.com"], "No such app", "No such app|heroku|Heroku"),
    _sig("Shopify", [".myshopify.com"], "Sorry, this shop is currently unavailable",
         "Sorry, this shop is currently unavailable"),
    _sig("Fastly", [".fastly.net", ".fastly."], "Fastly error|404 Not Found", "Fastly error", "medium"),
    _sig("Azure", [".azurewebsites.net", ".cloudapp.azure.com"], "Azure", "Microsoft Azure|Azure", "medium"),
    _sig("Google Cloud", [".appspot.com", ".cloud.goog", ".googleusercontent.com"], "Google Cloud",
         "Google Cloud|The requested URL was not found", "medium"),
    _sig("Firebase", [".web.app", ".firebaseapp.com"], "Firebase", "Firebase|The requested URL was not found"),
    # headers render as "key:value", so this header check never fires; body match carries it
    _sig("CloudFront", [".cloudfront.net"], "CloudFront", "CloudFront|ERROR: The request could not be satisfied",
         header_match="X-Cache: Error from cloudfront"),
    _sig("AWS Elastic Beanstalk", [".elasticbeanstalk.com"], "AWS Elastic Beanstalk", "AWS Elastic Beanstalk",
         "medium"),
    _sig("Bitbucket", [".bitbucket.io"], "Bitbucket", "Bitbucket|Repository not found"),
    _sig("Readme.io", [".readme.io", ".readme.com"], "Readme", "Readme|Project doesnt exist"),
    _sig("Intercom", [".intercom.help", ".intercom.io"], "Intercom", "Intercom|This page is not on Intercom"),
    _sig("Help Scout", [".helpscoutdocs.com", ".helpscout.com"], "Help Scout",
         "Help Scout|No settings were found for this company"),
    _sig("Ghost.io", [".ghost.io"], "Ghost", "Ghost|The blog you were looking for was not found"),
    _sig("Pantheon", [".pantheonsite.io", ".pantheon.io"], "Pantheon", "Pantheon|The gods are wise"),
    _sig("Tilda", [".tilda.ws", ".tilda.com"], "Tilda", "Tilda|Please renew your subscription"),
    _sig("WordPress.com", [".wordpress.com", ".wp.com"], "WordPress", "WordPress|This site is not available"),
    _sig("Zendesk", [".zendesk.com"], "Zendesk", "Zendesk|Help Center Closed"),
    _sig("Unbounce", [".unbounce.com"], "Unbounce", "Unbounce|The requested URL was not found"),
    _sig("Surge.sh", [".surge.sh"], "Surge", "Surge|project not found"),
    _sig("Netlify", [".netlify.app", ".netlify.com"], "Netlify", "Netlify|Not Found - Request ID"),
    _sig("Launchrock", [".launchrock.com"], "Launchrock",
         "Launchrock|It appears that you don't have a LaunchRock site"),
    _sig("Aftership", [".aftership.com"], "Aftership", "Aftership|Oops! The page you're looking for doesn't exist"),
    _sig("Cargo Collective", [".cargocollective.com"], "Cargo", "Cargo|404 Not Found", "medium"),
    _sig("Feedpress", [".feedpress.com"], "Feedpress", "Feedpress|The feed has not been found"),
    _sig("Freshdesk", [".freshdesk.com"], "Freshdesk", "Freshdesk|Sorry, this page is no longer available"),
    _sig("Gemfury", [".fury.io", ".gemfury.com"], "Gemfury", "Gemfury|404 Not Found", "medium"),
    _sig("Help Juice", [".helpjuice.com"], "Help Juice", "Help Juice|We could not find what you're looking for"),
    _sig("Help Docs", [".helpdocs.io"], "Help Docs",
         "Help Docs|The knowledge base you are looking for does not exist"),
    _sig("Instapage", [".pageserve.co", ".secure.pageserve.co"], "Instapage",
         "Instapage|The page you are looking for doesn't exist"),
    _sig("Smartling", [".smartling.com"], "Smartling", "Smartling|The specified project does not exist"),
    _sig("Statuspage", [".statuspage.io"], "Statuspage", "Statuspage|You are being redirected", "medium"),
    _sig("Thinkific", [".thinkific.com"], "Thinkific", "Thinkific|The page you were looking for doesn't exist"),
    _sig("Tumblr", [".tumblr.com"], "Tumblr", "Tumblr|There's nothing here"),
    _sig("UserVoice", [".uservoice.com"], "UserVoice", "UserVoice|This site is not available"),
    _sig("WordPress VIP", [".wpcomstaging.com"], "WordPress VIP", "WordPress VIP|This site is not available"),
    _sig("Worksites", [".worksites.net"], "Worksites", "Worksites|Site Not Found"),
    _sig("Agile CRM", [".agilecrm.com"], "Agile CRM", "Agile CRM|Sorry, this page is no longer available"),
)


# =============================
# Custom signatures (YAML)
# =============================
def _signature_from_entry(entry, where: str) -> Signature:
    """
    Custom signature entry:
      - service: "Example Host"
        cnames: [".examplehost.net"]
        status_code: 404            # optional, 0 = don't care
        body_match: "No such site"  # optional regex
        header_match: ""            # optional substring of "key:value"
        confidence: high            # high|medium|low
    """
    if not isinstance(entry, dict):
        raise SignatureError(f"{where}: entry must be a mapping, got {type(entry).__name__}")
    service = entry.get("service")
    if not service or not isinstance(service, str):
        raise SignatureError(f"{where}: missing 'service'")
    cnames = entry.get("cnames") or []
    if isinstance(cnames, str):
        cnames = [cnames]
    if not isinstance(cnames, list) or not cnames or not all(isinstance(c, str) and c for c in cnames):
        raise SignatureError(f"{where} ({service}): 'cnames' must be a non-empty list of strings")
    status = entry.get("status_code") or 0
    if isinstance(status, bool) or not isinstance(status, int):
        raise SignatureError(f"{where} ({service}): 'status_code' must be an integer")
    confidence = str(entry.get("confidence") or "medium").lower()
    try:
        return Signature(
            service=service,
            cnames=tuple(cnames),
            status_code=status,
            body_match=str(entry.get("body_match") or ""),
            header_match=str(entry.get("header_match") or ""),
            confidence=confidence,
            fingerprint=str(entry.get("fingerprint") or ""),
        )
    except SignatureError as e:
        raise SignatureError(f"{where}: {e}") from e


def load_signature_file(path: str) -> List[Signature]:
    if not os.path.isfile(path):
        raise SignatureError(f"Signature file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or []
    except (OSError, yaml.YAMLError) as e:
        raise SignatureError(f"Failed to read signature file {path}: {e}") from e
    if isinstance(data, dict):
        if "signatures" not in data:
            raise SignatureError(f"{path}: expected a list of signatures or a 'signatures' key")
        data = data.get("signatures") or []
    if not isinstance(data, list):
        raise SignatureError(f"{path}: expected a list of signatures")
    return [_signature_from_entry(entry, f"{path}[{i}]") for i, entry in enumerate(data)]


# =============================
# Registry
# =============================
class SignatureRegistry:
    """Read-only snapshot of provider signatures, shared by all workers without locking."""

    def __init__(self, signatures: Iterable[Signature] = ()):
        self._signatures: Tuple[Signature, ...] = tuple(signatures)
        for sig in self._signatures:
            if sig.cname_only:
                logger.warning("Signature %s has no status/body/header check; CNAME-only evidence", sig.service)

    @classmethod
    def load(cls, custom_files: Sequence[str] = (), include_builtin: bool = True) -> "SignatureRegistry":
        sigs: List[Signature] = list(BUILTIN_SIGNATURES) if include_builtin else []
        for path in custom_files or ():
            extra = load_signature_file(path)
            logger.info("Loaded %d custom signatures from %s", len(extra), path)
            sigs.extend(extra)
        return cls(sigs)

    @property
    def signatures(self) -> Tuple[Signature, ...]:
        return self._signatures

    def __iter__(self):
        return iter(self._signatures)

    def __len__(self):
        return len(self._signatures)

    def match(self, cname: Optional[str]) -> List[Signature]:
        return match(cname, self)


# =============================
# Matcher
# =============================
def matches_cname(cname: str, patterns: Iterable[str]) -> bool:
    # literal, case-sensitive: "Foo.GitHub.io" does not match ".github.io"
    return any(p in cname for p in patterns)


def match(cname: Optional[str], registry: Iterable[Signature]) -> List[Signature]:
    """Candidate signatures for a resolved CNAME, in registry order."""
    if not cname:
        return []
    return [sig for sig in registry if matches_cname(cname, sig.cnames)]
