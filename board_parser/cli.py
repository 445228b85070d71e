"""
Batch command line interface for the board parser.

Reads one or more board photographs, prints the black stone lattice found in
each, and collects a metrics CSV for the batch.

Usage examples
--------------

Parse every photo in ``photos/`` and write debug images next to them::

    python -m board_parser.cli photos --debug-dir debug

Check a photo against the diagram in ``game.txt`` beside it::

    python -m board_parser.cli photos/game.jpeg --check
"""

from __future__ import annotations

import argparse
import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Set

from .board import BoardParser, NoBoardDetected
from .config import ParserConfig
from .debug import DebugSink
from .diagram import BoardDiagram, format_board
from .image import PixelImage

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}

METRIC_FIELDS = [
    "image",
    "width",
    "height",
    "candidate_pixels",
    "blobs",
    "stones",
    "stone_size",
    "samples",
    "spacing",
    "mapped",
    "failure",
    "diagram_matched",
    "diagram_missing",
    "diagram_extra",
]


@dataclass
class BatchConfig:
    """Runtime configuration derived from CLI arguments."""

    inputs: Sequence[Path]
    parser_config: ParserConfig
    debug_dir: Optional[Path]
    check: bool
    metrics_path: Optional[Path]


def _gather_images(sources: Sequence[Path], recursive: bool) -> List[Path]:
    """Image files named directly or found inside the given directories."""
    images: Set[Path] = set()
    for source in sources:
        if source.is_dir():
            pattern = "**/*" if recursive else "*"
            images.update(
                candidate.resolve()
                for candidate in source.glob(pattern)
                if candidate.is_file() and candidate.suffix.lower() in IMAGE_EXTENSIONS
            )
        elif source.is_file():
            if source.suffix.lower() in IMAGE_EXTENSIONS:
                images.add(source.resolve())
            else:
                print(f"[WARN] Skipping unsupported file: {source}")
        else:
            print(f"[WARN] Input path not found: {source}")
    return sorted(images)


def _process_single_image(image_path: Path, cfg: BatchConfig) -> Optional[dict]:
    """Parse one photo, print the lattice and return its metrics row."""
    try:
        image = PixelImage.open(image_path)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Failed to read {image_path.name}: {exc}")
        return None

    sink = None
    if cfg.debug_dir is not None:
        sink = DebugSink(cfg.debug_dir, prefix=f"{image_path.stem}_")
    parser = BoardParser(cfg.parser_config, debug_sink=sink)

    record = {"image": image_path.name}
    try:
        reading = parser.read(image)
    except NoBoardDetected as exc:
        print(f"[WARN] {image_path.name}: no board ({exc.reason.value}: {exc})")
        reading = None
    record.update(parser.last_metrics or {})

    if reading is not None:
        print(
            f"[OK] {image_path.name}: {len(reading.board)} black stones, "
            f"spacing={reading.spacing:.2f}px, stone size={reading.stone_size:.1f}px"
        )
        print(format_board(reading.board))

    if cfg.check:
        diagram_path = image_path.with_suffix(".txt")
        if not diagram_path.exists():
            print(f"[WARN] No diagram for {image_path.name} at {diagram_path}")
        else:
            diagram = BoardDiagram.load(diagram_path)
            comparison = diagram.compare(reading.board if reading is not None else {})
            record["diagram_matched"] = len(comparison.matched)
            record["diagram_missing"] = len(comparison.missing)
            record["diagram_extra"] = len(comparison.extra)
            status = "OK" if comparison.exact else "WARN"
            print(
                f"[{status}] {image_path.name} vs diagram: matched={len(comparison.matched)} "
                f"missing={len(comparison.missing)} extra={len(comparison.extra)}"
            )

    return record


def _write_metrics_csv(metrics: List[dict], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=METRIC_FIELDS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(metrics)
    print(f"[INFO] Metrics written to {path}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find the black stone lattice in board photos.")
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Image files or directories to process.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file overriding parser thresholds.",
    )
    parser.add_argument(
        "--debug-dir",
        type=Path,
        help="Write pixel mask, stone and lattice debug images here.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Compare each photo against the <stem>.txt board diagram beside it.",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="When inputs include directories, walk them recursively.",
    )
    parser.add_argument(
        "--metrics-path",
        type=Path,
        default=Path("board_metrics.csv"),
        help="CSV summary path (default: ./board_metrics.csv).",
    )
    parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Do not emit the metrics CSV.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    images = _gather_images(args.inputs, recursive=args.recursive)
    if not images:
        print("[ERROR] No matching images found.")
        return 1

    parser_config = ParserConfig.load(args.config) if args.config else ParserConfig()
    debug_dir = args.debug_dir or parser_config.debug_dir
    debug_dir = debug_dir.resolve() if debug_dir else None

    cfg = BatchConfig(
        inputs=images,
        parser_config=parser_config,
        debug_dir=debug_dir,
        check=args.check,
        metrics_path=None if args.no_metrics else args.metrics_path.resolve(),
    )

    print(f"[INFO] Found {len(images)} image(s) to process")
    records: List[dict] = []
    for image_path in cfg.inputs:
        record = _process_single_image(image_path, cfg)
        if record is not None:
            records.append(record)

    if records and cfg.metrics_path:
        _write_metrics_csv(records, cfg.metrics_path)
    return 0 if records else 1


if __name__ == "__main__":
    raise SystemExit(main())
