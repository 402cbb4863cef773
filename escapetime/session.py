"""Run generations off the caller's thread, one current run per session.

Every call to :meth:`RenderSession.submit` starts a new run tagged with the
next epoch. The previous run is asked to stop at its next band boundary and
anything it still produces is dropped instead of reaching the listener.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Optional

import numpy as np

from .errors import FractalError, InternalFailure
from .renderer import BAND_ROWS, BandResult, GenerationParams, iter_bands, render_full

logger = logging.getLogger(__name__)


class GenerationMode(enum.Enum):
    WHOLE = "whole"
    PROGRESSIVE = "progressive"


class RenderListener:
    """Receives the output of a session. Override the hooks you need."""

    def on_image(self, epoch: int, pixels: np.ndarray) -> None:
        pass

    def on_band(self, epoch: int, result: BandResult) -> None:
        pass

    def on_complete(self, epoch: int) -> None:
        pass

    def on_error(self, epoch: int, message: str) -> None:
        pass


class RenderSession:
    """Owns the current generation run and forwards its output to ``listener``."""

    def __init__(
        self,
        listener: RenderListener,
        *,
        backend: str = "tensorflow",
        workers: int = 1,
        band_rows: int = BAND_ROWS,
    ):
        self.listener = listener
        self.backend = backend
        self.workers = workers
        self.band_rows = band_rows
        self._epoch = 0
        self._cancel: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def current_epoch(self) -> int:
        return self._epoch

    def submit(self, params: GenerationParams, mode: GenerationMode = GenerationMode.WHOLE) -> int:
        """Abandon the current run, if any, and start rendering ``params``."""

        mode = GenerationMode(mode)
        self.cancel()
        self._epoch += 1
        epoch = self._epoch
        cancel = threading.Event()
        self._cancel = cancel
        self._thread = threading.Thread(
            target=self._run,
            args=(epoch, params, mode, cancel),
            name=f"escapetime-run-{epoch}",
            daemon=True,
        )
        logger.info("epoch %d: starting %s generation %s", epoch, mode.value, params)
        self._thread.start()
        return epoch

    def cancel(self) -> None:
        if self._cancel is not None:
            self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current run; return ``False`` if it is still going."""

        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def __enter__(self) -> "RenderSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()

    def _is_current(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.debug("epoch %d superseded by %d, dropping delivery", epoch, self._epoch)
            return False
        return True

    def _run(self, epoch: int, params: GenerationParams, mode: GenerationMode, cancel: threading.Event) -> None:
        start = time.perf_counter()
        try:
            if mode is GenerationMode.WHOLE:
                pixels = render_full(params, backend=self.backend)
                if not cancel.is_set() and self._is_current(epoch):
                    self.listener.on_image(epoch, pixels)
            else:
                bands = iter_bands(
                    params,
                    band_rows=self.band_rows,
                    backend=self.backend,
                    workers=self.workers,
                    cancel=cancel,
                )
                for result in bands:
                    if not self._is_current(epoch):
                        cancel.set()
                        continue
                    self.listener.on_band(epoch, result)
                if cancel.is_set() or not self._is_current(epoch):
                    return
                self.listener.on_complete(epoch)
        except FractalError as exc:
            logger.warning("epoch %d: generation failed: %s", epoch, exc)
            if self._is_current(epoch):
                self.listener.on_error(epoch, str(exc))
            return
        except Exception as exc:
            logger.exception("epoch %d: unexpected failure", epoch)
            if self._is_current(epoch):
                self.listener.on_error(epoch, str(InternalFailure(f"unexpected failure: {exc}")))
            return
        logger.info("epoch %d: finished in %.2f s", epoch, time.perf_counter() - start)
