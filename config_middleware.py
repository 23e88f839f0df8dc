import os
from typing import List, Optional

import yaml

from scan_middleware import DEFAULT_CONCURRENCY
from verifier_middleware import DEFAULT_USER_AGENT


class ConfigError(Exception):
    pass


_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")

# env var -> (attribute, parser)
_ENV_OVERRIDES = {
    "SUBTAKE_THREADS": ("threads", int),
    "SUBTAKE_TIMEOUT": ("timeout", int),
    "SUBTAKE_USER_AGENT": ("user_agent", str),
    "SUBTAKE_VERIFY_SSL": ("verify_ssl", "bool"),
    "SUBTAKE_DEEP_CHECK": ("deep_check", "bool"),
}


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


class ScanConfig:
    """
    Scan options. Precedence (lowest -> highest):
      defaults, YAML config file, SUBTAKE_* environment, CLI flags.
    """

    FIELDS = ("threads", "timeout", "user_agent", "verify_ssl", "deep_check",
              "follow_redirects", "custom_signatures", "output_file")

    def __init__(
        self,
        threads: int = DEFAULT_CONCURRENCY,
        timeout: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        verify_ssl: bool = False,
        deep_check: bool = True,
        follow_redirects: bool = False,
        custom_signatures: Optional[List[str]] = None,
        output_file: Optional[str] = None,
    ):
        self.threads = threads
        self.timeout = timeout
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self.deep_check = deep_check
        self.follow_redirects = follow_redirects
        self.custom_signatures = list(custom_signatures or [])
        self.output_file = output_file

    def __repr__(self):
        parts = ", ".join(f"{k}={getattr(self, k)!r}" for k in self.FIELDS)
        return f"ScanConfig({parts})"

    def update(self, **overrides) -> "ScanConfig":
        """Apply non-None overrides in place."""
        for key, value in overrides.items():
            if key not in self.FIELDS:
                raise ConfigError(f"Unknown option: {key}")
            if value is None:
                continue
            if key == "custom_signatures":
                self.custom_signatures.extend(value)
            else:
                setattr(self, key, value)
        return self

    def apply_env(self, environ=None) -> "ScanConfig":
        environ = os.environ if environ is None else environ
        for var, (attr, kind) in _ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            if kind == "bool":
                setattr(self, attr, _parse_bool(var, raw))
            else:
                try:
                    setattr(self, attr, kind(raw))
                except ValueError:
                    raise ConfigError(f"{var}: invalid value {raw!r}")
        return self

    def validate(self) -> "ScanConfig":
        for attr in ("threads", "timeout"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{attr} must be a positive integer, got {value!r}")
        if not self.user_agent:
            raise ConfigError("user_agent must not be empty")
        for attr in ("verify_ssl", "deep_check", "follow_redirects"):
            setattr(self, attr, _parse_bool(attr, getattr(self, attr)))
        return self


def load_config(path: Optional[str] = None, environ=None) -> ScanConfig:
    """Build a ScanConfig from defaults, an optional YAML file and the environment."""
    cfg = ScanConfig()
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping of options")
        sigs = data.get("custom_signatures")
        if isinstance(sigs, str):
            data["custom_signatures"] = [sigs]
        cfg.update(**data)
    return cfg.apply_env(environ)
