"""Per-file fan-out helpers."""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_SKIPPED = object()


def run_per_file(
    items: Sequence[T],
    func: Callable[[T], R],
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
    desc: Optional[str] = None,
    show_progress: bool = False,
) -> Tuple[List[R], bool]:
    """Apply func to every item, optionally across a thread pool.

    The cancel event is checked before each item starts; an item that has
    started always runs to completion. func is expected to capture its own
    per-item failures in its return value; anything it raises propagates.
    Results are gathered in the calling thread and returned in input order.

    Returns:
        Tuple of (results for items that ran, whether cancellation was observed)
    """

    def task(index: int, item: T):
        if cancel_event is not None and cancel_event.is_set():
            return index, _SKIPPED
        return index, func(item)

    results = {}

    with tqdm(total=len(items), desc=desc, unit="file", disable=not show_progress) as pbar:
        if max_workers <= 1 or len(items) <= 1:
            for index, item in enumerate(items):
                _, value = task(index, item)
                results[index] = value
                pbar.update(1)
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [executor.submit(task, index, item) for index, item in enumerate(items)]
                for future in as_completed(futures):
                    index, value = future.result()
                    results[index] = value
                    pbar.update(1)

    cancelled = any(value is _SKIPPED for value in results.values())
    if cancelled:
        logger.info(f"Cancelled after {sum(v is not _SKIPPED for v in results.values())}/{len(items)} files")

    ordered = [results[i] for i in sorted(results) if results[i] is not _SKIPPED]
    return ordered, cancelled
