"""Wall-clock timing helpers.

Provides:
    - timer(): context manager reporting elapsed seconds to a sink
    - TimerAccumulator: repeated measurements with a running mean

The renderer uses timer() to fill RenderInfo.elapsed_s; the accumulator is
for callers that benchmark many renders (e.g. one per overlay channel).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name passed to the sink
    sink : Optional[Callable[[str, float], None]]
        Callback(name, elapsed_seconds). If None, the timing is logged at
        DEBUG level.

    Examples
    --------
    >>> timings = {}
    >>> with timer("gaussian", sink=timings.__setitem__):
    ...     image = render_points(points, target, GaussianStrategy(), mapping)
    >>> timings["gaussian"]
    0.0123
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.debug("%s: %.3f s", name, elapsed)


class TimerAccumulator:
    """Accumulate timing measurements for averaging.

    Examples
    --------
    >>> acc = TimerAccumulator("channel_render")
    >>> for pts in channels:
    ...     with acc.measure():
    ...         render_points(pts, target, strategy, mapping)
    >>> acc.mean()
    """

    def __init__(self, name: str):
        self.name = name
        self.total_time = 0.0
        self.count = 0

    @contextmanager
    def measure(self):
        """Measure one block and add it to the total."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.total_time += time.perf_counter() - start
            self.count += 1

    def mean(self) -> float:
        """Mean seconds per measurement, 0.0 before the first one."""
        return self.total_time / self.count if self.count > 0 else 0.0

    def reset(self) -> None:
        self.total_time = 0.0
        self.count = 0

    def __repr__(self) -> str:
        return f"TimerAccumulator({self.name}, mean={self.mean():.4f}s, count={self.count})"
