import datetime
import math
import signal
import threading
import time
from typing import List, Optional, Tuple, Union

from .config import ProbeConfig
from .events import BlockObservation, LogParser, parse_line
from .metrics import MetricWriter, prepare_output_directory
from .sampler import WindowOutcome, WindowSampler
from .sources import (
    FollowLogSource,
    LogSourceError,
    PollingLogSource,
    supervisor_follow_command,
    supervisor_tail_command,
)

LogSource = Union[FollowLogSource, PollingLogSource]


def build_log_source(config: ProbeConfig) -> LogSource:
    if config.mode == "follow":
        return FollowLogSource(
            supervisor_follow_command(config.service_name, config.tail_channel),
            queue_size=config.queue_size,
        )
    if config.mode == "poll":
        return PollingLogSource(
            supervisor_tail_command(config.service_name, config.tail_lines),
            timeout_seconds=config.startup_timeout_seconds,
            line_matcher=parse_line,
        )
    raise ValueError("Unsupported mode: %s" % config.mode)


class ProbeService:
    def __init__(
        self,
        config: ProbeConfig,
        source: Optional[LogSource] = None,
        writer: Optional[MetricWriter] = None,
    ) -> None:
        self.config = config
        self.parser = LogParser()
        self.sampler = WindowSampler()
        self.source = source if source is not None else build_log_source(config)
        self.writer = writer or MetricWriter(config.output_path, atomic=config.atomic_write)
        self.stop_event = threading.Event()
        self.ticks = 0
        self.write_failures = 0
        self.last_outcome: Optional[WindowOutcome] = None
        self._silence_warned_for: Optional[float] = None

        signal.signal(signal.SIGINT, self._handle_stop)
        signal.signal(signal.SIGTERM, self._handle_stop)

    def run(self) -> int:
        prepare_output_directory(self.config.output_path)
        print(
            "[INFO] Probing %s (%s mode) every %ss -> %s"
            % (
                self.config.service_name,
                self.config.mode,
                _format_seconds(self.config.window_seconds),
                self.config.output_path,
            ),
            flush=True,
        )
        try:
            while not self.stop_event.is_set():
                tick_mono = time.monotonic()
                try:
                    self.tick()
                except Exception as exc:  # pragma: no cover - per-tick guard
                    print("[ERROR] tick failed: %s" % exc, flush=True)

                if self.config.run_once:
                    break
                remaining = tick_mono + self.config.window_seconds - time.monotonic()
                self.stop_event.wait(max(0.0, remaining))
            return 0
        finally:
            if isinstance(self.source, FollowLogSource):
                self.source.stop()

    def tick(self, tick_start: Optional[float] = None) -> WindowOutcome:
        if tick_start is None:
            tick_start = time.time()
        self.ticks += 1
        self.parser.reset_counts()

        lines, cutoff = self._collect_lines(tick_start)
        observations = self._observations(lines, cutoff)
        blocks = [item.height for item in observations]

        outcome = self.sampler.evaluate(blocks)
        self.last_outcome = outcome
        if not self.writer.write(outcome):
            self.write_failures += 1

        print(
            "[INFO] window found=%d continuity=%d updated=%d last_height=%d"
            % (outcome.observed, outcome.continuity, outcome.updated, outcome.last_height),
            flush=True,
        )
        if self.config.debug:
            self._print_debug(tick_start, lines, observations, blocks)
        return outcome

    def _collect_lines(self, tick_start: float) -> Tuple[List[str], Optional[float]]:
        if isinstance(self.source, PollingLogSource):
            cutoff = tick_start - self.config.window_seconds
            try:
                return self.source.read_lines(), cutoff
            except LogSourceError as exc:
                print("[ERROR] %s" % exc, flush=True)
                return [], cutoff

        source = self.source
        lines = source.drain()
        cutoff = None
        if self.config.skip_backlog and source.spawned_at is not None:
            # tail -f replays old output on spawn; keep only lines logged since.
            cutoff = math.floor(source.spawned_at) - 1.0

        if not source.running:
            if source.spawned_at is not None:
                print(
                    "[WARN] log source for %s exited; restarting" % self.config.service_name,
                    flush=True,
                )
                # Reap the reader so lines it queued after the first drain are kept.
                source.stop()
                lines.extend(source.drain())
            try:
                source.start()
            except LogSourceError as exc:
                print("[ERROR] %s" % exc, flush=True)
        else:
            self._warn_if_silent(source)
        return lines, cutoff

    def _observations(
        self, lines: List[str], cutoff: Optional[float]
    ) -> List[BlockObservation]:
        observations: List[BlockObservation] = []
        for line in lines:
            observation = self.parser.parse_line(line)
            if observation is None:
                continue
            if cutoff is not None and observation.ts <= cutoff:
                continue
            observations.append(observation)
        return observations

    def _warn_if_silent(self, source: FollowLogSource) -> None:
        if source.first_line_at is not None or source.spawned_at is None:
            return
        if self._silence_warned_for == source.spawned_at:
            return
        if time.time() - source.spawned_at < self.config.startup_timeout_seconds:
            return
        self._silence_warned_for = source.spawned_at
        print(
            "[WARN] no output from %s within %ss of start"
            % (" ".join(source.argv), _format_seconds(self.config.startup_timeout_seconds)),
            flush=True,
        )

    def _print_debug(
        self,
        tick_start: float,
        lines: List[str],
        observations: List[BlockObservation],
        blocks: List[int],
    ) -> None:
        dropped = getattr(self.source, "dropped_lines", 0)
        miners = max((item.miners for item in observations), default=0)
        print(
            "[DEBUG] %s => lines=%d rejected=%d dropped=%d blocks=%s miners=%d"
            % (
                datetime.datetime.fromtimestamp(tick_start).strftime("%Y-%m-%d %H:%M:%S"),
                len(lines),
                self.parser.rejected,
                dropped,
                blocks,
                miners,
            ),
            flush=True,
        )

    def _handle_stop(self, signum: int, _frame: object) -> None:
        _ = signum
        self.stop_event.set()


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return "%d" % value
    return "%.1f" % value
