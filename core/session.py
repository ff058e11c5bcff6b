"""
Reeded -- Effect Session
Holds one immutable source image and the current parameters.

Every parameter change re-derives a fresh output from the source. Runs can be
submitted to a thread pool; when several overlap, only the newest one's result
is kept (older results are dropped on arrival, never aborted mid-run).
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import NamedTuple

import numpy as np

from core.image_io import encode_bitmap
from core.preview import render_preview
from core.safety import validate_bitmap
from effects import resolve_params, run_pipeline

logger = logging.getLogger(__name__)


class RenderJob(NamedTuple):
    """One scheduled pipeline run: the params it uses and its future output."""
    generation: int
    params: dict
    future: Future


class EffectSession:
    """Source image + params + latest full-resolution result.

    Usage:
        with EffectSession(bitmap) as session:
            session.update(amplitude=20)
            out = session.render()
    """

    def __init__(self, source: np.ndarray, params: dict | None = None,
                 workers: int = 1, max_pending: int = 2):
        validate_bitmap(source)
        self._source = source.copy()
        self._source.setflags(write=False)
        self._params = resolve_params(**(params or {}))
        self._workers = workers
        self._lock = threading.Lock()
        self._generation = 0
        self._latest = None
        self._latest_generation = -1
        self._executor = ThreadPoolExecutor(max_workers=max_pending,
                                            thread_name_prefix="reeded-render")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    @property
    def source(self) -> np.ndarray:
        """Read-only view of the original image."""
        return self._source

    @property
    def params(self) -> dict:
        with self._lock:
            return dict(self._params)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def latest(self) -> np.ndarray | None:
        """Most recent accepted full-resolution result (None before the first run)."""
        with self._lock:
            return self._latest

    def update(self, **changes) -> dict:
        """Validate and apply parameter changes. Returns the new params.

        Raises:
            InvalidParameter: Params are left untouched on failure.
        """
        with self._lock:
            params = resolve_params(**{**self._params, **changes})
            self._params = params
            self._generation += 1
            return dict(params)

    def _run(self, generation: int, params: dict) -> np.ndarray:
        result = run_pipeline(self._source, workers=self._workers, **params)
        with self._lock:
            if generation == self._generation:
                self._latest = result
                self._latest_generation = generation
            else:
                logger.debug("Discarding stale render (generation %d, current %d)",
                             generation, self._generation)
        return result

    def render(self, **changes) -> np.ndarray:
        """Apply changes (if any) and run the pipeline synchronously."""
        if changes:
            self.update(**changes)
        with self._lock:
            generation, params = self._generation, dict(self._params)
        return self._run(generation, params)

    def schedule(self, **changes) -> RenderJob:
        """Apply changes and schedule a pipeline run on the session's pool.

        The job's future resolves to that run's output. Its output only
        becomes ``latest`` if no parameter change happened while it ran.

        Raises:
            InvalidParameter: If a change is invalid.
            RuntimeError: If the session has been closed.
        """
        if changes:
            self.update(**changes)
        with self._lock:
            generation, params = self._generation, dict(self._params)
        future = self._executor.submit(self._run, generation, params)
        return RenderJob(generation, params, future)

    def submit(self, **changes) -> Future:
        """Like ``schedule`` but returns only the future."""
        return self.schedule(**changes).future

    def is_current(self, generation: int) -> bool:
        """True if no parameter change happened after ``generation``."""
        with self._lock:
            return generation == self._generation

    def _require_latest(self) -> np.ndarray:
        with self._lock:
            if self._latest is not None and self._latest_generation == self._generation:
                return self._latest
        return self.render()

    def preview(self, view_w: int, view_h: int) -> np.ndarray:
        """Latest result scaled to fit a viewport (renders first if needed)."""
        return render_preview(self._require_latest(), view_w, view_h)

    def export(self, fmt: str = "png", quality: int = 92) -> bytes:
        """Latest full-resolution result encoded for download."""
        return encode_bitmap(self._require_latest(), fmt=fmt, quality=quality)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
