"""
Snapshot recorders.

Two encodings of a snapshot history:
- "json": the destination holds a JSON array of every snapshot ever
  appended. Appending reads the list, adds the entry and rewrites the file.
- "csv": a row-oriented table. The first write emits the header; later
  writes append one row. Floats use two decimals and missing min/max/avg
  are empty fields.
"""

import csv
import json
from pathlib import Path
from typing import Protocol, Sequence

from ..errors import RecorderError
from .histogram import DEFAULT_BUCKETS
from .stats import StatsSnapshot, format_timestamp, parse_timestamp


OUTPUT_KINDS = ("json", "csv")
HISTORY_EXTENSIONS = (".json", ".csv")

# Fixed leading columns of the csv encoding; bucket columns follow
CSV_FIELDS = ("target", "timestamp", "sent", "received", "loss_percent", "min", "max", "avg")


class Recorder(Protocol):
    """Appends snapshots to a destination without losing earlier ones."""

    kind: str
    extension: str

    def append(self, snapshot: StatsSnapshot, destination: Path) -> None: ...

    def read(self, destination: Path) -> list[StatsSnapshot]: ...


def normalize_destination(path: str | Path, kind: str) -> Path:
    """
    Make the destination's extension match the output kind.

    A known history extension (.json, .csv) is replaced; any other name
    gets the extension appended, so "run.2024" becomes "run.2024.json".
    """
    recorder = get_recorder(kind)
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == recorder.extension:
        return path
    if suffix in HISTORY_EXTENSIONS:
        return path.with_suffix(recorder.extension)
    return path.with_name(path.name + recorder.extension)


def get_recorder(kind: str, bucket_names: Sequence[str] | None = None) -> Recorder:
    """Return the recorder for an output kind ("json" or "csv")."""
    kind = kind.lower()
    if kind == "json":
        return JsonRecorder()
    if kind == "csv":
        return CsvRecorder(bucket_names)
    raise ValueError(f"Unknown output kind: {kind!r} (expected one of {', '.join(OUTPUT_KINDS)})")


def _ensure_parent(destination: Path):
    if destination.parent and not destination.parent.exists():
        destination.parent.mkdir(parents=True, exist_ok=True)


class JsonRecorder:
    kind = "json"
    extension = ".json"

    def read(self, destination: Path) -> list[StatsSnapshot]:
        """Read every snapshot in the history. Missing or empty file reads as []."""
        destination = Path(destination)
        try:
            return [StatsSnapshot.from_dict(entry) for entry in self._load_entries(destination)]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecorderError(f"{destination} has a malformed entry: {e}") from e

    def append(self, snapshot: StatsSnapshot, destination: Path) -> None:
        destination = Path(destination)
        try:
            entries = self._load_entries(destination)
            entries.append(snapshot.to_dict())
            _ensure_parent(destination)
            with open(destination, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
                f.write("\n")
        except OSError as e:
            raise RecorderError(f"Cannot write {destination}: {e}") from e

    def _load_entries(self, destination: Path) -> list[dict]:
        try:
            text = destination.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except UnicodeDecodeError as e:
            raise RecorderError(f"{destination} is not a JSON snapshot history: {e}") from e
        except OSError as e:
            raise RecorderError(f"Cannot read {destination}: {e}") from e

        if not text.strip():
            return []
        try:
            entries = json.loads(text)
        except json.JSONDecodeError as e:
            # Refuse to rewrite a file we cannot parse; it may hold history
            raise RecorderError(f"{destination} is not a JSON snapshot history: {e}") from e
        if not isinstance(entries, list):
            raise RecorderError(f"{destination} is not a JSON snapshot history: expected a list")
        return entries


class CsvRecorder:
    """
    Args:
        bucket_names: Histogram bucket columns in declared order
                      (default latency buckets if omitted).
    """

    kind = "csv"
    extension = ".csv"

    def __init__(self, bucket_names: Sequence[str] | None = None):
        if bucket_names is None:
            bucket_names = [name for _, name in DEFAULT_BUCKETS]
        self.bucket_names = list(bucket_names)

    @property
    def header(self) -> list[str]:
        return [*CSV_FIELDS, *self.bucket_names]

    def row(self, snapshot: StatsSnapshot) -> list[str]:
        return [
            snapshot.target,
            format_timestamp(snapshot.timestamp),
            str(snapshot.sent),
            str(snapshot.received),
            f"{snapshot.loss_percent:.2f}",
            _fixed(snapshot.min),
            _fixed(snapshot.max),
            _fixed(snapshot.avg),
            *(str(snapshot.latency_buckets.get(name, 0)) for name in self.bucket_names),
        ]

    def append(self, snapshot: StatsSnapshot, destination: Path) -> None:
        destination = Path(destination)
        try:
            _ensure_parent(destination)
            write_header = not destination.exists() or destination.stat().st_size == 0
            with open(destination, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                if write_header:
                    writer.writerow(self.header)
                writer.writerow(self.row(snapshot))
        except OSError as e:
            raise RecorderError(f"Cannot write {destination}: {e}") from e

    def read(self, destination: Path) -> list[StatsSnapshot]:
        destination = Path(destination)
        try:
            with open(destination, newline="", encoding="utf-8") as f:
                rows = list(csv.DictReader(f))
        except FileNotFoundError:
            return []
        except UnicodeDecodeError as e:
            raise RecorderError(f"{destination} is not a CSV snapshot history: {e}") from e
        except OSError as e:
            raise RecorderError(f"Cannot read {destination}: {e}") from e

        snapshots = []
        for row in rows:
            try:
                buckets = {k: int(v) for k, v in row.items() if k not in CSV_FIELDS}
                snapshots.append(
                    StatsSnapshot(
                        target=row["target"],
                        timestamp=parse_timestamp(row["timestamp"]),
                        sent=int(row["sent"]),
                        received=int(row["received"]),
                        loss_percent=float(row["loss_percent"]),
                        min=_optional(row["min"]),
                        max=_optional(row["max"]),
                        avg=_optional(row["avg"]),
                        latency_buckets=buckets,
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise RecorderError(f"{destination} has a malformed row: {e}") from e
        return snapshots


def _fixed(value: float | None) -> str:
    return "" if value is None else f"{value:.2f}"


def _optional(value: str | None) -> float | None:
    return None if value in (None, "") else float(value)
