"""
Command line entry point.

Usage:
    pingstat 1.1.1.1
    pingstat example.com -c 20 -t 2 -f csv -o results --save-interval 60
    pingstat                      # prompts for every setting
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .config import (
    DEFAULT_OUTPUT,
    DEFAULT_OUTPUT_KIND,
    DEFAULT_PACKET_SIZE,
    DEFAULT_TICK,
    DEFAULT_TIMEOUT,
    ProbeConfig,
)
from .errors import PingstatError
from .session import IcmpProber, Prober, SessionEngine, StatsSnapshot, resolve_target
from .session.recorder import OUTPUT_KINDS, normalize_destination


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pingstat",
        description="Ping a host continuously and record loss/latency statistics",
    )
    parser.add_argument("target", nargs="?", help="Target host or IP (prompts for settings if omitted)")
    parser.add_argument("-c", "--count", type=int, default=None, help="Packets to send (default: continuous)")
    parser.add_argument(
        "-t", "--timeout", type=float, default=DEFAULT_TIMEOUT,
        help=f"Timeout per ping in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-s", "--packet-size", type=int, default=DEFAULT_PACKET_SIZE,
        help=f"ICMP payload size (default: {DEFAULT_PACKET_SIZE})",
    )
    parser.add_argument(
        "-o", "--output", default=DEFAULT_OUTPUT,
        help=f"Output file (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "-f", "--format", dest="output_kind", choices=OUTPUT_KINDS, default=DEFAULT_OUTPUT_KIND,
        help=f"Output format (default: {DEFAULT_OUTPUT_KIND})",
    )
    parser.add_argument("-d", "--directory", type=Path, default=None, help="Output directory (default: current dir)")
    parser.add_argument(
        "--save-interval", type=int, default=None,
        help="Interval in seconds to save results automatically",
    )
    parser.add_argument(
        "-i", "--interval", dest="tick", type=float, default=DEFAULT_TICK,
        help=f"Seconds between probes (default: {DEFAULT_TICK})",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ProbeConfig:
    return ProbeConfig(
        target=args.target,
        count=args.count,
        timeout=args.timeout,
        packet_size=args.packet_size,
        output=args.output,
        output_kind=args.output_kind,
        directory=args.directory,
        save_interval=args.save_interval,
        tick=args.tick,
    )


# =========================================================================
# Interactive prompts
# =========================================================================


def _prompt_int(ask: Callable[[str], str], prompt: str, default: Optional[int], min_value: int) -> Optional[int]:
    text = ask(prompt).strip()
    if not text:
        return default
    try:
        value = int(text)
    except ValueError:
        value = None
    if value is None or value < min_value:
        print("Invalid input, using default.")
        return default
    return value


def _prompt_float(ask: Callable[[str], str], prompt: str, default: float) -> float:
    text = ask(prompt).strip()
    if not text:
        return default
    try:
        value = float(text)
    except ValueError:
        value = -1.0
    if value < 0:
        print(f"Invalid input, using default {default:.1f}.")
        return default
    return value


def _prompt_choice(ask: Callable[[str], str], prompt: str, default: str, choices: tuple[str, ...]) -> str:
    text = ask(prompt).strip().lower()
    if not text:
        return default
    if text not in choices:
        print("Invalid input, using default.")
        return default
    return text


def prompt_config(args: argparse.Namespace, ask: Optional[Callable[[str], str]] = None) -> Optional[ProbeConfig]:
    """
    Collect settings interactively, using args for the stated defaults.

    Returns None if no host is entered.
    """
    ask = ask or input
    target = ask("Enter host to ping (or Enter to exit): ").strip()
    if not target:
        return None

    count = _prompt_int(ask, "Number of packets (empty=continuous): ", None, 1)
    timeout = _prompt_float(ask, f"Timeout in seconds (default {args.timeout}): ", args.timeout)
    packet_size = _prompt_int(ask, f"Packet size bytes (default {args.packet_size}): ", args.packet_size, 0)
    output_kind = _prompt_choice(
        ask, f"Output format {'/'.join(OUTPUT_KINDS)} (default {args.output_kind}): ",
        args.output_kind, OUTPUT_KINDS,
    )

    default_output = str(normalize_destination(args.output, output_kind))
    output = ask(f"Results filename (default {default_output}): ").strip() or default_output
    output = str(normalize_destination(output, output_kind))

    directory_text = ask("Directory to save (default current dir): ").strip()
    directory = Path(directory_text) if directory_text else args.directory

    save_interval = _prompt_int(ask, "Auto-save interval in seconds (empty=disabled): ", None, 1)

    return ProbeConfig(
        target=target,
        count=count,
        timeout=timeout,
        packet_size=packet_size,
        output=output,
        output_kind=output_kind,
        directory=directory,
        save_interval=save_interval,
        tick=args.tick,
    )


# =========================================================================
# Running
# =========================================================================


async def run_session(
    config: ProbeConfig,
    prober: Optional[Prober] = None,
    resolver: Callable[[str], Awaitable[str]] = resolve_target,
) -> Optional[StatsSnapshot]:
    """Run one session with SIGINT wired to the engine's stop request."""
    engine = SessionEngine(config, prober or IcmpProber(), resolver=resolver)
    loop = asyncio.get_running_loop()

    previous_handler = None
    try:
        loop.add_signal_handler(signal.SIGINT, engine.request_stop)
        use_loop_handler = True
    except NotImplementedError:
        # Event loops without signal support (Windows)
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: engine.request_stop())
        use_loop_handler = False

    try:
        return await engine.run()
    finally:
        if use_loop_handler:
            loop.remove_signal_handler(signal.SIGINT)
        else:
            signal.signal(signal.SIGINT, previous_handler)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.target is None:
            print("For help run pingstat -h")
            config = prompt_config(args)
            if config is None:
                print("Exiting.")
                return 0
        else:
            config = config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return 0

    try:
        asyncio.run(run_session(config))
    except PingstatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
