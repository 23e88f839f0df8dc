import os

from scan_middleware import EmptyTargetListError


class TargetFileError(Exception):
    pass


def read_input_file(path: str) -> list[str]:
    """
    Read target hosts from a file (one per line), stripping comments/empties.
    Returns in file order; duplicates are kept and scanned again.
    """
    if not os.path.isfile(path):
        raise TargetFileError(f"Target file not found: {path}")
    out = []
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as fh:
            for line in fh:
                s = line.strip()
                if not s or s.startswith("#"):
                    continue
                out.append(s)
    except OSError as e:
        raise TargetFileError(f"Error reading target file {path}: {e}") from e
    return out


def require_targets(targets) -> list[str]:
    targets = [t.strip() for t in (targets or []) if t and t.strip()]
    if not targets:
        raise EmptyTargetListError("No targets provided.")
    return targets
