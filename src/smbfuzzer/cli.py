"""
SMBFuzzer Command Line

    smbfuzzer <message> <strategy> <state> [options]

One selector from each group is required, e.g.

    smbfuzzer -cr -pre -tree_state --host 10.0.0.5 --iterations 50

Exit status: 0 after a finished run, 1 when the server cannot be reached
or the handshake fails to decode, 2 for invalid arguments.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence, Tuple

import structlog

from smbfuzzer import __version__
from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import ProtocolError, SMBFuzzerError, ValidationError
from smbfuzzer.core.logging import setup_logging
from smbfuzzer.engine.directive import FuzzingDirective
from smbfuzzer.engine.driver import FuzzDriver
from smbfuzzer.engine.states import HandshakeState
from smbfuzzer.fuzzer.strategy import FuzzingStrategy
from smbfuzzer.smb2.requests import MessageType

logger = structlog.get_logger()


# (option strings, value, help)
MESSAGE_OPTIONS: Tuple[Tuple[Tuple[str, ...], MessageType, str], ...] = (
    (("-n", "--negotiate", "--Negotiate"), MessageType.NEGOTIATE, "NEGOTIATE"),
    (
        ("-sn", "--session_setup_neg", "--Session_setup_neg"),
        MessageType.SESSION_SETUP_NEGOTIATE,
        "SESSION_SETUP carrying NTLM NEGOTIATE",
    ),
    (
        ("-sa", "--session_setup_auth", "--Session_setup_auth"),
        MessageType.SESSION_SETUP_AUTHENTICATE,
        "SESSION_SETUP carrying NTLM AUTHENTICATE",
    ),
    (("-t", "--tree_connect", "--Tree_connect"), MessageType.TREE_CONNECT, "TREE_CONNECT"),
    (("-cr", "--create", "--Create"), MessageType.CREATE, "CREATE"),
    (("-q", "--query_info", "--Query_info"), MessageType.QUERY_INFO, "QUERY_INFO"),
    (("-cl", "--close", "--Close"), MessageType.CLOSE, "CLOSE"),
    (("-e", "--echo", "--Echo"), MessageType.ECHO, "ECHO"),
)

STRATEGY_OPTIONS: Tuple[Tuple[Tuple[str, ...], FuzzingStrategy, str], ...] = (
    (
        ("-pre", "--predefined", "--Predefined"),
        FuzzingStrategy.PREDEFINED,
        "sample enumerated fields, keep the structure valid",
    ),
    (
        ("-rf", "--random_fields", "--Random_fields"),
        FuzzingStrategy.RANDOM_FIELDS,
        "random bytes with each field's declared width",
    ),
    (
        ("-cran", "--completely_random", "--Completely_random"),
        FuzzingStrategy.COMPLETELY_RANDOM,
        "random bytes of random length in every field",
    ),
)

STATE_OPTIONS: Tuple[Tuple[Tuple[str, ...], HandshakeState, str], ...] = (
    (("-init_state",), HandshakeState.INITIAL, "fresh connection"),
    (("-neg_state",), HandshakeState.NEGOTIATE, "after NEGOTIATE"),
    (
        ("-session_setup_neg_state",),
        HandshakeState.SESSION_SETUP_NEGOTIATE,
        "after the first SESSION_SETUP",
    ),
    (
        ("-session_setup_auth_state",),
        HandshakeState.SESSION_SETUP_AUTHENTICATE,
        "after the authenticating SESSION_SETUP",
    ),
    (("-tree_state",), HandshakeState.TREE_CONNECT, "after TREE_CONNECT"),
    (("-create_state",), HandshakeState.CREATE, "after CREATE"),
    (("-close_state",), HandshakeState.CLOSE, "after CLOSE"),
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="smbfuzzer",
        description="SMB2/NTLM protocol-conformance fuzzer",
        allow_abbrev=False,
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    for dest, title, options in (
        ("message", "message to fuzz", MESSAGE_OPTIONS),
        ("strategy", "fuzzing strategy", STRATEGY_OPTIONS),
        ("state", "state to reach first", STATE_OPTIONS),
    ):
        group = p.add_argument_group(title).add_mutually_exclusive_group(required=True)
        for flags, value, help_text in options:
            group.add_argument(*flags, dest=dest, action="store_const", const=value, help=help_text)

    opts = p.add_argument_group("target and run options")
    opts.add_argument("--host", help="server address (default 192.168.0.171)")
    opts.add_argument("--port", type=int, help="server port (default 445)")
    opts.add_argument("--iterations", type=int, help="fuzzed requests per connection (default 100)")
    opts.add_argument("--max-attempts", type=int, help="stop after N connection attempts")
    opts.add_argument("--seed", type=int, help="seed for reproducible runs")
    opts.add_argument("--timeout", type=float, help="read timeout in seconds (default 5)")
    opts.add_argument("--log-level", default="INFO", choices=LOG_LEVELS)
    opts.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    return p


def parse_directive(
    args: argparse.Namespace, config: FuzzerConfig
) -> FuzzingDirective:
    """
    Directive from parsed arguments.

    Raises:
        ValidationError: If the message is not legal in the state
    """
    return FuzzingDirective.create(
        message=args.message,
        state=args.state,
        strategy=args.strategy,
        iterations=config.iterations,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    setup_logging(getattr(logging, args.log_level), json=args.json_logs)

    try:
        config = FuzzerConfig.from_env().with_overrides(
            host=args.host,
            port=args.port,
            iterations=args.iterations,
            max_attempts=args.max_attempts,
            seed=args.seed,
            read_timeout=args.timeout,
        )
        directive = parse_directive(args, config)
    except ValidationError as e:
        parser.error(e.message)

    try:
        summary = FuzzDriver(directive=directive, config=config).run()
    except ProtocolError as e:
        logger.error("handshake_failed", error=e.message, error_type=type(e).__name__)
        return 1
    except SMBFuzzerError as e:
        logger.error("fuzzing_failed", error=e.message, error_type=type(e).__name__)
        return 1

    if summary.stop_reason == "connect_failed":
        return 1
    return 0


__all__: List[str] = ["build_arg_parser", "main", "parse_directive"]
