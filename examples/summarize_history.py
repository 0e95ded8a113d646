#!/usr/bin/env python3
"""
Summarize a snapshot history written by pingstat.

Usage:
    uv run examples/summarize_history.py ping_history.json
    uv run examples/summarize_history.py results.csv
"""

import sys
from pathlib import Path

from pingstat import RecorderError, get_recorder


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    path = Path(sys.argv[1])
    kind = "csv" if path.suffix.lower() == ".csv" else "json"

    try:
        snapshots = get_recorder(kind).read(path)
    except RecorderError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not snapshots:
        print(f"No snapshots in {path}")
        return

    print(f"{len(snapshots)} snapshots in {path}\n")
    for snap in snapshots:
        latency = f"{snap.min:.2f}/{snap.avg:.2f}/{snap.max:.2f}ms" if snap.avg is not None else "no replies"
        print(f"  {snap.timestamp:%Y-%m-%d %H:%M:%S}  {snap.target:<15}  "
              f"sent={snap.sent:<5} loss={snap.loss_percent:5.1f}%  min/avg/max={latency}")

    # Interval snapshots overlap the session snapshot that follows them
    totals = snapshots[-1].latency_buckets

    print("\nLatency distribution (latest snapshot):")
    total = sum(totals.values())
    for name, count in totals.items():
        share = count / total * 100 if total else 0.0
        print(f"  {name:>10}: {count:>6} ({share:5.1f}%)")


if __name__ == "__main__":
    main()
