import queue
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence


class LogSourceError(RuntimeError):
    pass


def supervisor_follow_command(service: str, channel: Optional[str] = "stdout") -> List[str]:
    argv = ["supervisorctl", "tail", "-f", service]
    if channel:
        argv.append(channel)
    return argv


def supervisor_tail_command(service: str, lines: int) -> List[str]:
    return ["supervisorctl", "tail", service, "--lines=%d" % lines]


def put_drop_oldest(out_queue: "queue.Queue", item: object) -> bool:
    """Enqueue without blocking; evict the oldest entry when full.

    Returns True when something had to be dropped.
    """
    try:
        out_queue.put_nowait(item)
        return False
    except queue.Full:
        pass
    try:
        out_queue.get_nowait()
    except queue.Empty:
        pass
    try:
        out_queue.put_nowait(item)
    except queue.Full:
        pass
    return True


def terminate_process(process: "subprocess.Popen", timeout: float = 2.0) -> None:
    if process.poll() is None:
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
    if process.stdout:
        process.stdout.close()


def pump_lines_worker(
    *,
    process: "subprocess.Popen",
    out_queue: "queue.Queue[Optional[str]]",
    stop_event: threading.Event,
    on_line: Callable[[], None],
    on_drop: Callable[[], None],
) -> None:
    try:
        if process.stdout:
            for line in process.stdout:
                if stop_event.is_set():
                    break
                on_line()
                if put_drop_oldest(out_queue, line):
                    on_drop()
    except (OSError, ValueError):
        # stdout closed underneath us during teardown.
        pass
    finally:
        put_drop_oldest(out_queue, None)


class FollowLogSource:
    """Long-lived ``tail -f`` subprocess feeding a bounded queue.

    The driver drains the queue at tick boundaries and never blocks on it.
    When the subprocess ends the source reports ``running == False`` and the
    driver restarts it on the next tick.
    """

    mode = "follow"

    def __init__(self, argv: Sequence[str], queue_size: int = 10000) -> None:
        self.argv = list(argv)
        self.queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=queue_size)
        self.process: Optional[subprocess.Popen] = None
        self.thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self.finished = False
        self.spawned_at: Optional[float] = None
        self.first_line_at: Optional[float] = None
        self.dropped_lines = 0
        self.restarts = 0

    @property
    def running(self) -> bool:
        if self.process is None or self.finished:
            return False
        if self.thread is not None and not self.thread.is_alive():
            return False
        return self.process.poll() is None

    def start(self) -> None:
        if self.process is not None:
            self.stop()
            self.restarts += 1

        self.queue = queue.Queue(maxsize=self.queue.maxsize)
        self.stop_event = threading.Event()
        self.finished = False
        self.first_line_at = None
        try:
            self.process = subprocess.Popen(
                self.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError) as exc:
            self.process = None
            raise LogSourceError("failed to spawn %s: %s" % (" ".join(self.argv), exc)) from exc

        self.spawned_at = time.time()
        self.thread = threading.Thread(
            target=pump_lines_worker,
            kwargs={
                "process": self.process,
                "out_queue": self.queue,
                "stop_event": self.stop_event,
                "on_line": self._mark_line,
                "on_drop": self._mark_drop,
            },
            daemon=True,
        )
        self.thread.start()

    def drain(self) -> List[str]:
        lines: List[str] = []
        while True:
            try:
                line = self.queue.get_nowait()
            except queue.Empty:
                break
            if line is None:
                self.finished = True
                continue
            lines.append(line)
        return lines

    def stop(self) -> None:
        self.stop_event.set()
        if self.process is not None:
            terminate_process(self.process)
        if self.thread is not None:
            self.thread.join(timeout=2.0)
        self.finished = True

    def _mark_line(self) -> None:
        if self.first_line_at is None:
            self.first_line_at = time.time()

    def _mark_drop(self) -> None:
        self.dropped_lines += 1


class PollingLogSource:
    """Short-lived ``tail --lines=N`` invocation, once per tick."""

    mode = "poll"

    def __init__(
        self,
        argv: Sequence[str],
        timeout_seconds: float = 10.0,
        line_matcher: Optional[Callable[[str], object]] = None,
    ) -> None:
        self.argv = list(argv)
        self.timeout_seconds = timeout_seconds
        self.line_matcher = line_matcher

    def read_lines(self) -> List[str]:
        try:
            process = subprocess.Popen(
                self.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (OSError, ValueError) as exc:
            raise LogSourceError("failed to spawn %s: %s" % (" ".join(self.argv), exc)) from exc

        timed_out = False
        try:
            stdout, _ = process.communicate(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.kill()
            stdout, _ = process.communicate()
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()

        lines = (stdout or "").splitlines(keepends=True)
        if timed_out:
            print(
                "[WARN] %s did not finish within %.1fs; using %d partial lines"
                % (self.argv[0], self.timeout_seconds, len(lines)),
                flush=True,
            )
        elif process.returncode != 0:
            print(
                "[WARN] %s exited with status %d" % (" ".join(self.argv), process.returncode),
                flush=True,
            )
            if not self._any_match(lines):
                raise LogSourceError(
                    "%s exited with status %d and no usable lines"
                    % (self.argv[0], process.returncode)
                )
        return lines

    def _any_match(self, lines: List[str]) -> bool:
        if self.line_matcher is None:
            return bool(lines)
        return any(self.line_matcher(line) is not None for line in lines)
