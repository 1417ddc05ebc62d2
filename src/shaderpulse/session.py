"""
Audio session state.

Owns what the host knows about the current track: playback position and
flags, the analyzer's feature history and timeline, and the background
build of the percentile table. Observers are an explicit list on the
session instance.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable

from shaderpulse.core.normalizer import PercentileTable, build_table
from shaderpulse.core.types import FeatureHistory, TimelineEvent, parse_timeline

logger = logging.getLogger(__name__)

Observer = Callable[[str, dict[str, Any]], None]


def _as_history(history: Any) -> FeatureHistory | None:
    if history is None or isinstance(history, FeatureHistory):
        return history
    try:
        return FeatureHistory.from_frames(history)
    except TypeError:
        logger.warning("Feature history is not iterable, ignoring it")
        return None


class AudioSession:
    """
    Explicit, host-owned playback session.

    Usage:
        session = AudioSession()
        unsubscribe = session.subscribe(callback)
        session.load_track(history, timeline)
        session.play()
        ...
        session.close()
    """

    def __init__(self, background: bool = True):
        """
        Args:
            background: Build percentile tables on a worker thread.
        """
        self.background = background

        self.is_playing = False
        self.is_looping = False
        self.is_analyzing = False
        self.current_time = 0.0

        self.history: FeatureHistory | None = None
        self.timeline: list[TimelineEvent] = []
        # Incremented on every track load; table builds are tagged with it
        self.generation = 0

        self._observers: list[Observer] = []
        self._executor: ThreadPoolExecutor | None = None
        self._pending: tuple[int, Future] | None = None
        self._ready: PercentileTable | None = None

    # -- observers ------------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register an observer; returns a callable that removes it."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def notify(self, event: str):
        state = self.state()
        for callback in list(self._observers):
            callback(event, state)

    def state(self) -> dict[str, Any]:
        return {
            "is_playing": self.is_playing,
            "is_looping": self.is_looping,
            "is_analyzing": self.is_analyzing,
            "current_time": self.current_time,
            "duration": self.duration,
            "generation": self.generation,
        }

    # -- track ----------------------------------------------------------------

    @property
    def duration(self) -> float:
        return 0.0 if self.history is None else self.history.duration

    def load_track(self, history: Any, timeline: Iterable[Any] | None = None):
        """
        Replace the current track.

        Any table still being built for the previous track is discarded.

        Args:
            history: FeatureHistory, or an iterable of frames.
            timeline: Raw or parsed timeline events.
        """
        self.generation += 1
        self._discard_pending()

        self.history = _as_history(history)
        self.timeline = parse_timeline(timeline)
        self.current_time = 0.0
        self.is_playing = False

        logger.info(
            "Track %d loaded: %d frames, %d events",
            self.generation,
            0 if self.history is None else len(self.history),
            len(self.timeline),
        )

        if self.history is not None:
            self.is_analyzing = True
            if self.background:
                self._submit(self.history)
            else:
                self._ready = build_table(self.history)
                self._finish(self._ready)

        self.notify("track_loaded")

    def _submit(self, history: FeatureHistory):
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="shaderpulse-table"
            )
        future = self._executor.submit(build_table, history)
        self._pending = (self.generation, future)

    def _discard_pending(self):
        if self._pending is not None:
            _, future = self._pending
            future.cancel()
        self._pending = None
        self._ready = None
        self.is_analyzing = False

    def _finish(self, table: PercentileTable | None):
        self.is_analyzing = False
        if table is None:
            logger.warning(
                "Track %d: feature history is empty or malformed, "
                "adaptive normalization unavailable",
                self.generation,
            )

    def poll_table(self) -> PercentileTable | None:
        """
        Non-blocking check for a finished table for the current track.

        Returns the table once; later calls return None until the next
        track is loaded. Results from an older track are dropped.
        """
        if self._ready is not None:
            table, self._ready = self._ready, None
            self.notify("analysis_complete")
            return table

        if self._pending is None:
            return None
        generation, future = self._pending
        if not future.done():
            return None

        self._pending = None
        if generation != self.generation:
            logger.debug("Dropping stale table from track %d", generation)
            return None

        table = future.result()
        self._finish(table)
        if table is not None:
            self.notify("analysis_complete")
        return table

    def wait_for_table(self, timeout: float | None = None) -> PercentileTable | None:
        """Block until the pending build (if any) finishes, then poll."""
        if self._pending is not None:
            _, future = self._pending
            future.result(timeout=timeout)
        return self.poll_table()

    # -- playback -------------------------------------------------------------

    def play(self):
        if not self.is_playing:
            self.is_playing = True
            self.notify("play")

    def pause(self):
        if self.is_playing:
            self.is_playing = False
            self.notify("pause")

    def stop(self):
        self.is_playing = False
        self.current_time = 0.0
        self.notify("stop")

    def seek(self, time: float):
        self.current_time = max(0.0, float(time))
        self.notify("seek")

    def set_looping(self, looping: bool):
        self.is_looping = bool(looping)

    def advance(self, dt: float) -> float:
        """
        Move the playback position forward by ``dt`` seconds while playing.

        At the end of the track the position wraps when looping, otherwise
        playback stops.
        """
        if not self.is_playing:
            return self.current_time

        self.current_time += dt
        duration = self.duration
        if duration > 0.0 and self.current_time > duration:
            if self.is_looping:
                self.current_time %= duration
                self.notify("loop")
            else:
                self.current_time = duration
                self.is_playing = False
                self.notify("ended")
        return self.current_time

    # -- teardown -------------------------------------------------------------

    def close(self):
        """Release the worker thread and drop all observers."""
        self._discard_pending()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._observers.clear()

    def __enter__(self) -> "AudioSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
