"""Bounded per-file worker pool with cooperative cancellation.

Workers only produce per-file results; the caller merges them afterwards in
path order, so completion order never leaks into the aggregate.
"""

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TypeVar

from driftscan.exceptions import ScanCancelledError
from driftscan.utils.logging import logger

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag shared between a scan and its caller."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "scan") -> None:
        if self._event.is_set():
            raise ScanCancelledError(f"Scan cancelled during {stage}", {"stage": stage})


def run_per_file(paths: Iterable[str], worker: Callable[[str], T | None], parallelism: int = 1,
                 cancel_token: CancellationToken | None = None, stage: str = "extraction") -> dict[str, T]:
    """Run ``worker`` on every path with at most ``parallelism`` threads.

    Returns results keyed by path in sorted path order; paths whose worker
    returned None are left out. The token is checked before each file starts
    and once more after the last finishes.

    Raises:
        ScanCancelledError: if the token fired; no partial results are returned
    """
    paths = sorted(set(paths))
    results: dict[str, T] = {}

    def guarded(path: str) -> T | None:
        if cancel_token is not None and cancel_token.is_cancelled:
            return None
        return worker(path)

    if parallelism <= 1 or len(paths) <= 1:
        for path in paths:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(stage)
            result = worker(path)
            if result is not None:
                results[path] = result
    else:
        with ThreadPoolExecutor(max_workers=parallelism) as executor:
            futures = {executor.submit(guarded, path): path for path in paths}
            for future in as_completed(futures):
                if cancel_token is not None and cancel_token.is_cancelled:
                    for pending in futures:
                        pending.cancel()
                    break
                result = future.result()
                if result is not None:
                    results[futures[future]] = result

    if cancel_token is not None:
        cancel_token.raise_if_cancelled(stage)
    logger.debug(f"[SCAN] {stage}: {len(results)}/{len(paths)} files produced results")
    return {path: results[path] for path in sorted(results)}
