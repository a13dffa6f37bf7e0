from __future__ import annotations

import argparse
import logging
from typing import List

import dns.exception
import dns.rcode
import dns.rdatatype

from .config.config_parser import build_resolver, build_validator, load_config
from .config.logging_config import init_logging
from .dnssec.errors import ConfigurationError, DNSSECError
from .dnssec.resolver import ResolverError

EXIT_SECURE = 0
EXIT_INVALID = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anchorlight",
        description="Query a name with DNSSEC records and validate the answer "
        "back to a trust anchor.",
    )
    parser.add_argument("name", help="Domain name to query")
    parser.add_argument("rdtype", nargs="?", default="A", help="Record type (default: A)")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument(
        "--nameserver",
        action="append",
        default=None,
        help="Nameserver IP to query (repeatable); overrides the config",
    )
    parser.add_argument(
        "--trust-anchor-file",
        action="append",
        default=[],
        help="Extra DS/DNSKEY anchor file (repeatable)",
    )
    parser.add_argument(
        "--no-root-anchor",
        action="store_true",
        help="Do not install the built-in IANA root anchors",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error", "crit"],
        default=None,
        help="Override logging.level from the config",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Brief: Command-line entry point.

    Inputs:
      - argv: Command-line arguments (defaults to sys.argv[1:]).

    Outputs:
      - Exit code: 0 when the answer is secure, 1 when validation fails or
        the response carries no answer to validate (NXDOMAIN, NODATA),
        2 for configuration, resolver or usage errors.

    Example use:
        anchorlight --nameserver 9.9.9.9 example.com A
        python -m anchorlight --config anchorlight.yaml www.example.org AAAA
    """
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return EXIT_ERROR

    if args.nameserver:
        cfg.resolver.nameservers = list(args.nameserver)
    if args.trust_anchor_file:
        cfg.trust_anchors.files = list(cfg.trust_anchors.files) + list(
            args.trust_anchor_file
        )
    if args.no_root_anchor:
        cfg.trust_anchors.root = False
    if args.log_level:
        cfg.logging.level = args.log_level

    init_logging(cfg.logging.model_dump())
    logger = logging.getLogger("anchorlight.main")

    try:
        rdtype = dns.rdatatype.from_text(args.rdtype)
    except dns.rdatatype.UnknownRdatatype:
        print(f"unknown record type: {args.rdtype}")
        return EXIT_ERROR

    try:
        resolver = build_resolver(cfg)
        validator = build_validator(cfg, resolver)
    except (ResolverError, ValueError) as exc:
        print(str(exc))
        return EXIT_ERROR

    try:
        response = resolver.query(args.name, rdtype, dnssec=True)
    except (ResolverError, dns.exception.DNSException) as exc:
        print(f"query failed: {exc}")
        return EXIT_ERROR

    if not response.answer:
        print(
            f"no answer (rcode {dns.rcode.to_text(response.rcode())}): nothing validated"
        )
        return EXIT_INVALID

    logger.info(
        "validating %s %s (%d answer RRset(s))",
        args.name,
        dns.rdatatype.to_text(rdtype),
        len(response.answer),
    )
    try:
        validator.validate(response)
    except ConfigurationError as exc:
        print(f"{exc.kind.value}: {exc}")
        return EXIT_ERROR
    except DNSSECError as exc:
        for attempt in exc.attempts[:-1]:
            logger.info("earlier attempt failed: %s: %s", attempt.kind.value, attempt)
        print(f"{exc.kind.value}: {exc}")
        return EXIT_INVALID

    print("secure")
    return EXIT_SECURE
