#!/usr/bin/env python3
"""
Probe a host in the background and print rolling statistics.

Usage:
    uv run examples/monitor_host.py
    uv run examples/monitor_host.py 8.8.8.8 --every 5
    uv run examples/monitor_host.py example.com --format csv

Needs unprivileged ICMP (net.ipv4.ping_group_range) or root.
"""

import argparse
import sys
import time

from pingstat import PingMonitor, PingstatError, ProbeConfig


def main():
    parser = argparse.ArgumentParser(description="Background ping monitor")
    parser.add_argument("target", nargs="?", default="1.1.1.1", help="Host to probe (default: 1.1.1.1)")
    parser.add_argument("--every", type=float, default=10, help="Seconds between status lines (default: 10)")
    parser.add_argument("--format", choices=["json", "csv"], default="json", help="History format (default: json)")
    args = parser.parse_args()

    config = ProbeConfig(target=args.target, output="monitor_history", output_kind=args.format)
    print(f"Monitoring {args.target}, history in {config.save_path}")

    monitor = PingMonitor(config)
    try:
        monitor.start()
        monitor.wait_for_first_probe(timeout=30)
        while True:
            time.sleep(args.every)
            stats = monitor.stats()
            if stats is None:
                continue
            avg = f"{stats.avg:.2f}ms" if stats.avg is not None else "n/a"
            print(f"sent={stats.sent} received={stats.received} loss={stats.loss_percent:.1f}% avg={avg}")
    except PingstatError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopping...")

    final = monitor.stop()
    if final is not None:
        print()
        print(final.summary())


if __name__ == "__main__":
    main()
