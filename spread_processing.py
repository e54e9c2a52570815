"""Spread aggregate values from GeoJSON polygons into a CSV point cloud.

Every aggregate feature carries a numeric property. Its value, rounded down,
is the number of random points placed inside the spread polygons that
intersect it, shared out in proportion to their area (or to their overlap
with the aggregate feature). Without a spread file the points are placed
inside each aggregate feature itself.

Usage::

    python spread_processing.py --agg blocks.geojson --prop population \
        --spread buildings.geojson --output points.csv [--workers 8] [--seed 1]

Either input may be ``-`` to read stdin, and ``--output -`` writes to stdout.
"""
from __future__ import annotations

import argparse
import hashlib
import logging
import os
import queue
import random
import sys
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import shapely
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tqdm import tqdm

from allocation.spreader import Spreader, Weighting, make_spreader
from data.features import STDIN_NAME, Feature, FeatureCollection, PropertyCoercionError, load_feature_collection
from spatial.geometry import MAX_SAMPLE_ATTEMPTS, OVERLAP_GRID_SIZE, is_polygonal
from spatial.index import SpatialIndex
from spatial.join import intersecting_features
from utils.io import load_json, open_output, write_points_csv
from utils.metrics import RunCounters

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
_POLL_INTERVAL = 0.1
_CLOSED = object()
_LOG_HANDLERS: List[logging.Handler] = []


def default_worker_count() -> int:
    return max(1, min(DEFAULT_MAX_WORKERS, os.cpu_count() or 1))


class SpreadConfig(BaseModel):
    """Tunable settings for a spreading run."""

    model_config = ConfigDict(extra="forbid")

    workers: int = Field(default_factory=default_worker_count, ge=1, description="Number of worker threads")
    queue_size: int = Field(64, ge=1, description="Capacity of the work and result queues")
    weighting: Weighting = Field(Weighting.AREA, description="Weight spread features by area or by overlap area")
    seed: Optional[int] = Field(None, description="Seed making every feature's points reproducible")
    max_sample_attempts: int = Field(
        MAX_SAMPLE_ATTEMPTS, ge=1, description="Rejection sampling attempts before falling back to (0, 0)"
    )
    overlap_grid_size: int = Field(
        OVERLAP_GRID_SIZE, ge=1, description="Sample grid resolution used to approximate overlap area"
    )


@dataclass
class SpreadResult:
    """Points produced for the aggregate feature at ``position``."""

    position: int
    spreader: Spreader
    points: List[Tuple[float, float]]


class _ProgressTracker:
    def __init__(self, total: int, enabled: bool = True):
        self._lock = threading.Lock()
        self._total = total
        self._count = 0
        self._bar: Optional[tqdm] = None
        self._closed = False

        if enabled and total > 0:
            self._bar = tqdm(total=total, desc="Spreading features", unit="feature", file=sys.stderr)
        if total > 0:
            LOGGER.info("Spreading %s aggregate features", total)

    def update(self) -> None:
        with self._lock:
            self._count += 1
            if self._bar is not None:
                self._bar.update(1)
            if self._total > 0 and self._count >= self._total:
                self._finalize_locked()

    def close(self) -> None:
        with self._lock:
            self._finalize_locked()

    def _finalize_locked(self) -> None:
        if self._closed:
            return
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        if self._total > 0 and self._count >= self._total:
            LOGGER.info("All aggregate features processed")
        self._closed = True


def _hash_seed(value: object) -> int:
    raw = str(value).encode("utf-8")
    digest = hashlib.sha256(raw).hexdigest()
    return int(digest[:16], 16) % (2 ** 32)


class SpreadPipeline:
    """Runs the intersection join and allocation for every aggregate feature.

    A feeder thread pushes features into a bounded work queue, a fixed pool of
    worker threads turns each one into a :class:`SpreadResult`, and a closer
    thread marks the end of the results once every worker has exited.
    Iterating the pipeline yields results in completion order, not input order.
    """

    def __init__(
        self,
        features: FeatureCollection,
        prop: str,
        index: Optional[SpatialIndex] = None,
        config: Optional[SpreadConfig] = None,
        counters: Optional[RunCounters] = None,
        progress: Optional[_ProgressTracker] = None,
    ) -> None:
        self.features = features
        self.prop = prop
        self.index = index
        self.config = config or SpreadConfig()
        self.counters = counters or RunCounters()
        self.progress = progress
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop handing out work; features already being spread still finish."""
        self._cancelled.set()

    def __iter__(self) -> Iterator[SpreadResult]:
        return self.results()

    def results(self) -> Iterator[SpreadResult]:
        workers = self.config.workers
        work_queue: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        result_queue: queue.Queue = queue.Queue(maxsize=self.config.queue_size)

        worker_threads = [
            threading.Thread(target=self._work, args=(work_queue, result_queue), name=f"spread-worker-{idx}", daemon=True)
            for idx in range(workers)
        ]
        feeder = threading.Thread(target=self._feed, args=(work_queue, workers), name="spread-feeder", daemon=True)
        closer = threading.Thread(target=self._close, args=(worker_threads, result_queue), name="spread-closer", daemon=True)

        for thread in worker_threads:
            thread.start()
        feeder.start()
        closer.start()

        finished = False
        try:
            while True:
                item = self._get(result_queue)
                if item is None or item is _CLOSED:
                    finished = item is _CLOSED
                    break
                yield item
        finally:
            if not finished:
                self.cancel()

    def _put(self, target: queue.Queue, item: object) -> bool:
        while not self._cancelled.is_set():
            try:
                target.put(item, timeout=_POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _get(self, source: queue.Queue) -> object:
        while True:
            try:
                return source.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._cancelled.is_set():
                    return None

    def _feed(self, work_queue: queue.Queue, workers: int) -> None:
        for position, feature in enumerate(self.features):
            if not self._put(work_queue, (position, feature)):
                LOGGER.info("Run cancelled after queueing %d features", position)
                return
        for _ in range(workers):
            if not self._put(work_queue, _CLOSED):
                return

    def _close(self, worker_threads: Sequence[threading.Thread], result_queue: queue.Queue) -> None:
        for thread in worker_threads:
            thread.join()
        self._put(result_queue, _CLOSED)

    def _work(self, work_queue: queue.Queue, result_queue: queue.Queue) -> None:
        worker_rng = random.Random() if self.config.seed is None else None
        while not self._cancelled.is_set():
            item = self._get(work_queue)
            if item is None or item is _CLOSED or self._cancelled.is_set():
                break
            position, feature = item
            try:
                result = self._process(position, feature, worker_rng)
            finally:
                if self.progress is not None:
                    self.progress.update()
            if result is not None and not self._put(result_queue, result):
                break

    def _spread_features(self, feature: Feature) -> List[Feature]:
        if is_polygonal(feature.geometry):
            shapely.prepare(feature.geometry)
        if self.index is not None:
            return intersecting_features(self.index, feature)
        # Spread inside the aggregate feature itself
        return [feature] if is_polygonal(feature.geometry) and not feature.geometry.is_empty else []

    def _process(
        self, position: int, feature: Feature, rng: Optional[random.Random] = None
    ) -> Optional[SpreadResult]:
        self.counters.update("processed")
        try:
            rng = rng or random.Random(_hash_seed(f"{self.config.seed}:{position}"))
            spreader = make_spreader(
                feature,
                self._spread_features,
                self.prop,
                weighting=self.config.weighting,
                max_sample_attempts=self.config.max_sample_attempts,
                overlap_grid_size=self.config.overlap_grid_size,
            )
            points = spreader.spread(rng)
        except PropertyCoercionError as exc:
            LOGGER.warning("Cannot spread feature %d due to error: %s", position, exc)
            self.counters.update("skipped")
            return None
        except Exception:
            LOGGER.exception("Spreading feature %d failed", position)
            self.counters.update("failed")
            return None
        if not spreader.spread_features:
            self.counters.update("without_spread_features")
        self.counters.update("points", len(points))
        return SpreadResult(position=position, spreader=spreader, points=points)


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> SpreadConfig:
    """Build a :class:`SpreadConfig` from an optional JSON file and explicit overrides."""
    data: Dict[str, Any] = {}
    if path:
        loaded = load_json(path)
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a JSON object")
        data.update(loaded)
    data.update({key: value for key, value in (overrides or {}).items() if value is not None})
    return SpreadConfig.model_validate(data)


def process(
    agg_path: str,
    prop: str,
    spread_path: Optional[str] = None,
    output: str = "-",
    config: Optional[SpreadConfig] = None,
    show_progress: bool = True,
) -> Dict[str, int]:
    config = config or SpreadConfig()
    if agg_path == STDIN_NAME and spread_path == STDIN_NAME:
        raise ValueError("Only one of the aggregate and spread inputs can be read from stdin")

    aggregate = load_feature_collection(agg_path)
    index: Optional[SpatialIndex] = None
    if spread_path:
        index = SpatialIndex.build(load_feature_collection(spread_path))
    else:
        LOGGER.info("No spread file given, spreading within the aggregate features")

    counters = RunCounters()
    progress_tracker = _ProgressTracker(len(aggregate), enabled=show_progress)
    pipeline = SpreadPipeline(aggregate, prop, index=index, config=config, counters=counters, progress=progress_tracker)
    results = pipeline.results()
    try:
        with open_output(output) as handle:
            write_points_csv(handle, [], header=True)
            for result in results:
                write_points_csv(handle, result.points)
    finally:
        results.close()
        progress_tracker.close()

    summary = counters.to_dict()
    LOGGER.info("Spreading finished: %s", summary)
    return summary


def _parse_log_level(level_str: str) -> int:
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _setup_logger(level: str, log_file: Optional[str]) -> logging.Logger:
    logger = logging.getLogger()
    logger.setLevel(_parse_log_level(level))
    for handler in _LOG_HANDLERS:
        logger.removeHandler(handler)
        handler.close()
    _LOG_HANDLERS.clear()

    fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # stdout may carry the CSV output
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(fmt)
    _LOG_HANDLERS.append(sh)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        _LOG_HANDLERS.append(fh)

    for handler in _LOG_HANDLERS:
        logger.addHandler(handler)
    return logger


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Spread aggregate GeoJSON values into a CSV of random points.")
    parser.add_argument("--agg", required=True, help="File including aggregated info or '-' to read from stdin")
    parser.add_argument("--prop", required=True, help="Aggregated property")
    parser.add_argument("--spread", default=None,
                        help="File to spread property throughout (default: spread within the aggregate features)")
    parser.add_argument("--output", required=True, help="CSV filename to write to or '-' to write to stdout")

    parser.add_argument("--config", default=None, help="Optional JSON file with run settings")
    parser.add_argument("--workers", type=int, default=None,
                        help=f"Number of worker threads (default: min({DEFAULT_MAX_WORKERS}, CPU count))")
    parser.add_argument("--queue-size", type=int, default=None, help="Capacity of the internal queues (default: 64)")
    parser.add_argument("--weighting", choices=[weighting.value for weighting in Weighting], default=None,
                        help="Weight spread features by raw area or by overlap with the aggregate (default: area)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible point placement")
    parser.add_argument("--max-sample-attempts", type=int, default=None,
                        help=f"Sampling attempts per point before falling back to (0, 0) (default: {MAX_SAMPLE_ATTEMPTS})")

    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bar")
    parser.add_argument("--log-level", default="INFO", help="Logging level: DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--log-file", default=None, help="Optional path to write logs")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        _setup_logger(args.log_level, args.log_file)
        config = load_config(
            args.config,
            {
                "workers": args.workers,
                "queue_size": args.queue_size,
                "weighting": args.weighting,
                "seed": args.seed,
                "max_sample_attempts": args.max_sample_attempts,
            },
        )
        process(args.agg, args.prop, spread_path=args.spread, output=args.output, config=config,
                show_progress=not args.no_progress)
    except (OSError, ValueError, ValidationError) as exc:
        LOGGER.error("Spreading failed: %s", exc)
        parser.exit(1, f"{parser.prog}: error: {exc}\n")


if __name__ == "__main__":
    main()
