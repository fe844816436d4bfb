import os
import tempfile

from .sampler import WindowOutcome


CONTINUITY_METRIC = "quai_stratum_block_number_continuity"
UPDATE_METRIC = "quai_stratum_block_number_update"
FILE_MODE = 0o644


class OutputPathError(RuntimeError):
    pass


def render_metrics(continuity: int, updated: int) -> str:
    return "%s %d\n%s %d\n" % (CONTINUITY_METRIC, continuity, UPDATE_METRIC, updated)


def prepare_output_directory(path: str) -> str:
    directory = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise OutputPathError(
            "cannot create metrics directory %s: %s" % (directory, exc)
        ) from exc
    if not os.access(directory, os.W_OK):
        raise OutputPathError("metrics directory is not writable: %s" % directory)
    return directory


class MetricWriter:
    def __init__(self, path: str, atomic: bool = True) -> None:
        self.path = path
        self.atomic = atomic

    def write(self, outcome: WindowOutcome) -> bool:
        content = render_metrics(outcome.continuity, outcome.updated)
        try:
            if self.atomic:
                self._write_atomic(content)
            else:
                self._write_direct(content)
        except OSError as exc:
            print("[ERROR] failed to write metrics to %s: %s" % (self.path, exc), flush=True)
            return False
        return True

    def _write_direct(self, content: str) -> None:
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(self.path, FILE_MODE)

    def _write_atomic(self, content: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(
            prefix=".%s." % os.path.basename(self.path), suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, self.path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
