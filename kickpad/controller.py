"""
Run Controller for Kickpad
Starts, cancels and reports on background search runs.
At most one run is active per controller.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

import numpy as np

from .audio import Resampler, Synthesizer, TargetWaveform, as_synthesizer
from .config import OptimizerConfig
from .fitness import FitnessEvaluator
from .genome import Genome
from .optimizer import CancellationToken, GenerationLoop, RunSnapshot, RunState


@dataclass(frozen=True)
class StartResult:
    accepted: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.accepted


class RunContext:
    """
    State owned by one run: its config, cancellation token, background
    future and the latest published snapshot.
    """

    def __init__(self, config: OptimizerConfig,
                 on_progress: Optional[Callable[[RunSnapshot], None]] = None):
        self.config = config
        self.token = CancellationToken()
        self.future: Optional[Future] = None
        self.snapshot = RunSnapshot(state=RunState.RUNNING, reason="Training started...")
        self._on_progress = on_progress

    @property
    def finished(self) -> bool:
        return self.snapshot.is_terminal or (self.future is not None and self.future.done())

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that escaped the loop, once the future has finished."""
        future = self.future
        if future is None or not future.done() or future.cancelled():
            return None
        return future.exception()

    def publish(self, snapshot: RunSnapshot):
        # Single reference assignment: readers see the old or the new snapshot
        self.snapshot = snapshot
        if self._on_progress is not None:
            self._on_progress(snapshot)


class RunController:
    """
    Front end for the excluded UI layer.

    Usage:
        controller = RunController(render_fn)
        controller.start(target, OptimizerConfig())
        status = controller.current_status()   # poll from any thread
        controller.cancel()
    """

    def __init__(self,
                 synthesizer: Union[Synthesizer, Callable[[Genome], np.ndarray]],
                 resampler: Optional[Resampler] = None,
                 on_progress: Optional[Callable[[RunSnapshot], None]] = None):
        self.synthesizer = as_synthesizer(synthesizer)
        self.resampler = resampler
        self.on_progress = on_progress

        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kickpad-run")
        self._context: Optional[RunContext] = None
        self._last_result: Optional[RunSnapshot] = None
        self._last_error: Optional[BaseException] = None

    @property
    def last_result(self) -> Optional[RunSnapshot]:
        """Final snapshot of the most recently consumed run."""
        return self._last_result

    @property
    def last_error(self) -> Optional[BaseException]:
        """Exception that ended the most recent run abnormally, if any."""
        return self._last_error

    @property
    def is_running(self) -> bool:
        context = self._context
        return context is not None and not context.finished

    def start(self, target: Optional[TargetWaveform],
              config: Optional[OptimizerConfig] = None) -> StartResult:
        """Begin a run in the background. Nothing changes when rejected."""
        with self._lock:
            if self._context is not None and not self._context.finished:
                return StartResult(False, "A training run is already in progress.")
            if target is None:
                return StartResult(False, "Error: No .wav file loaded. Please load a .wav file first.")
            if target.is_empty:
                return StartResult(False, "Error: The loaded waveform is empty.")

            config = config or OptimizerConfig()
            if self._context is not None:
                # Previous run finished but was never observed
                self._consume(self._context)

            context = RunContext(config, self.on_progress)
            evaluator = FitnessEvaluator(
                self.synthesizer, target, config.sample_rate,
                resampler=self.resampler,
                min_duration=config.min_duration,
                max_duration=config.max_duration,
            )
            loop = GenerationLoop(evaluator, config, token=context.token, publish=context.publish)
            self._context = context
            context.future = self._executor.submit(loop.run)
            return StartResult(True, "Training started...")

    def cancel(self):
        """Ask the active run to stop at its next generation boundary."""
        context = self._context
        if context is not None and not context.finished:
            context.token.cancel()

    def current_status(self) -> RunSnapshot:
        """
        Latest snapshot of the active run, or an idle snapshot.

        A terminal snapshot is returned once; the controller then goes back
        to idle and keeps it as `last_result`. If the loop crashed, the
        progress published before the crash is kept as `last_result`, the
        error as `last_error`, and an idle snapshot carrying that progress
        is returned.
        """
        with self._lock:
            context = self._context
            if context is None:
                return RunSnapshot()
            snapshot = context.snapshot
            if snapshot.is_terminal:
                self._consume(context)
                return snapshot
            error = context.error
            if error is not None:
                self._consume(context)
                return replace(snapshot, state=RunState.IDLE, reason=f"Training failed: {error}")
            return snapshot

    def wait(self, timeout: Optional[float] = None) -> RunSnapshot:
        """
        Block until the active run ends and return its terminal snapshot.

        An exception that escaped the loop is re-raised here, after the
        run's last snapshot has been kept as `last_result`.
        """
        context = self._context
        if context is None or context.future is None:
            return self._last_result or RunSnapshot()
        try:
            snapshot = context.future.result(timeout=timeout)
        except Exception:
            with self._lock:
                if self._context is context and context.error is not None:
                    self._consume(context)
            raise
        with self._lock:
            if self._context is context:
                self._consume(context)
        return snapshot

    def shutdown(self, cancel: bool = True):
        if cancel:
            self.cancel()
        self._executor.shutdown(wait=True)

    def _consume(self, context: RunContext):
        self._last_result = context.snapshot
        self._last_error = context.error
        self._context = None
