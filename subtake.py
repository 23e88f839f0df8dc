import argparse
import logging
import sys

from colorama import Fore, init

from config_middleware import ConfigError, load_config
from input_middleware import TargetFileError, read_input_file, require_targets
from output_middleware import dumps_json, write_json, write_lines
from progress_middleware import ProgressMiddleware, configure_logging
from resolver_middleware import Resolver
from scan_middleware import EmptyTargetListError, Scanner
from signature_middleware import SignatureError, SignatureRegistry
from verifier_middleware import HTTPVerifier

logger = logging.getLogger("subtake")

# Windows-friendly colors
init(autoreset=True)

BANNER = r"""
   ____        _     _____     _
  / ___| _   _| |__ |_   _|_ _| | _____
  \___ \| | | | '_ \  | |/ _` | |/ / _ \
   ___) | |_| | |_) | | | (_| |   <  __/
  |____/ \__,_|_.__/  |_|\__,_|_|\_\___|

        SubTake - Subdomain Takeover Scanner
"""


def _bump_nofile_limit(wanted: int):
    # each worker can hold a DNS socket plus an HTTP connection
    if sys.platform.startswith("linux") or sys.platform == "darwin":
        try:
            import resource
            soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
            new_soft = min(max(soft, wanted), hard)
            resource.setrlimit(resource.RLIMIT_NOFILE, (new_soft, hard))
        except (ImportError, ValueError, OSError) as e:
            logger.debug("Could not raise RLIMIT_NOFILE: %s", e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SubTake - find dangling CNAMEs eligible for subdomain takeover",
        epilog="""Examples:
  subtake -f subs.txt
  subtake -d shop.example.com --no-deep
  subtake -f subs.txt -t 100 --signatures extra.yaml -o results.json --json
""",
        formatter_class=argparse.RawTextHelpFormatter
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("-f", "--file", help="File containing list of subdomains (one per line)")
    group.add_argument("-d", "--domain", help="Single target subdomain")

    parser.add_argument("-o", "--output", default=None, help="Output file to save results")
    parser.add_argument("-t", "--threads", type=int, default=None, help="Number of concurrent workers (default: 50)")
    parser.add_argument("--timeout", type=int, default=None, help="Per DNS/HTTP operation timeout in seconds (default: 10)")
    parser.add_argument("--user-agent", default=None, help="User-Agent for verification requests")
    parser.add_argument("--ssl", action="store_true", help="Verify TLS certificates (default: off)")
    parser.add_argument("--no-deep", action="store_true", help="CNAME matching only, skip HTTP confirmation")
    parser.add_argument("--follow-redirects", action="store_true", help="Follow HTTP redirects while verifying")
    parser.add_argument("--signatures", action="append", default=[],
                        help="Extra signature YAML file (can be used multiple times)")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--json", action="store_true", help="JSON output (stdout and -o file)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", action="store_true", help="Disable progress bar output")
    parser.add_argument("--logfile", default=None, help="Optional log file")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.logfile, args.verbose)

    try:
        cfg = load_config(args.config)
        cfg.update(
            threads=args.threads,
            timeout=args.timeout,
            user_agent=args.user_agent,
            verify_ssl=True if args.ssl else None,
            deep_check=False if args.no_deep else None,
            follow_redirects=True if args.follow_redirects else None,
            custom_signatures=args.signatures,
            output_file=args.output,
        ).validate()
    except ConfigError as e:
        print(f"[-] Error: {e}", file=sys.stderr)
        return 2

    # inputs
    try:
        targets = read_input_file(args.file) if args.file else [args.domain]
        targets = require_targets(targets)
    except TargetFileError as e:
        print(f"[-] Error: {e}", file=sys.stderr)
        return 1
    except EmptyTargetListError as e:
        print(f"[-] Error: {e}", file=sys.stderr)
        return 2

    try:
        registry = SignatureRegistry.load(cfg.custom_signatures)
    except SignatureError as e:
        print(f"[-] Invalid signature: {e}", file=sys.stderr)
        return 2

    _bump_nofile_limit(max(1024, cfg.threads * 4))

    progress = ProgressMiddleware(total=len(targets), disable=args.quiet, color=not args.no_color)
    progress.write(BANNER, Fore.CYAN)
    if args.file:
        progress.info(f"Loaded {len(targets)} targets from file: {args.file}")
    else:
        progress.info(f"Testing single target: {args.domain}")
    progress.info(f"Threads: {cfg.threads} | Timeout: {cfg.timeout}s | Deep Check: {cfg.deep_check} "
                  f"| SSL Verification: {cfg.verify_ssl} | Signatures: {len(registry)}")

    verifier = None
    if cfg.deep_check:
        verifier = HTTPVerifier(
            user_agent=cfg.user_agent,
            timeout=cfg.timeout,
            verify_tls=cfg.verify_ssl,
            follow_redirects=cfg.follow_redirects,
            # room for overrun fetches still running down their own deadline
            fetch_workers=cfg.threads * 2,
        )
    scanner = Scanner(
        registry=registry,
        resolver=Resolver(timeout=cfg.timeout),
        verifier=verifier,
        max_concurrency=cfg.threads,
        deep_check=cfg.deep_check,
        on_finding=progress.finding,
        progress=progress,
    )
    try:
        results = scanner.run(targets)
    finally:
        if verifier is not None:
            verifier.close()
    if results.interrupted:
        progress.write("[!] Scan interrupted; results are partial", Fore.YELLOW)

    progress.summary(results, len(targets))
    if args.json:
        print(dumps_json(results))

    if cfg.output_file:
        try:
            if args.json:
                write_json(results, cfg.output_file)
            else:
                write_lines(results, cfg.output_file)
        except OSError as e:
            print(f"[-] Error creating output file: {e}", file=sys.stderr)
            return 1
        progress.write(f"[+] Results saved to: {cfg.output_file}", Fore.GREEN)
    return 0


if __name__ == "__main__":
    sys.exit(main())
