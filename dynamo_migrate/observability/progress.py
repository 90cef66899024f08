"""
Progress reporting hooks for migration runs.

The runner calls these fire-and-forget: a reporter that raises is logged and
the run carries on.
"""

from dynamo_migrate.core.models import FileStats, RunResult

from .logger import format_elapsed, get_logger

logger = get_logger(__name__)


class ProgressReporter:
    """
    Base progress reporter. Every hook is a no-op; override what you need.
    """

    def on_start(self, profile_name: str, file_count: int, batch_size: int, resuming: bool) -> None:
        pass

    def on_file_complete(self, file_index: int, file_total: int, stats: FileStats) -> None:
        pass

    def on_progress(self, result: RunResult) -> None:
        pass

    def on_complete(self, profile_name: str, result: RunResult) -> None:
        pass


class LoggingProgressReporter(ProgressReporter):
    """Writes run start, per-file progress and the final summary to the log."""

    def on_start(self, profile_name: str, file_count: int, batch_size: int, resuming: bool) -> None:
        logger.info(
            f"Migration started: profile={profile_name} files={file_count} "
            f"batch_size={batch_size} resuming={'yes' if resuming else 'no'}",
            extra={
                "profile": profile_name,
                "file_count": file_count,
                "batch_size": batch_size,
                "resuming": resuming,
            }
        )

    def on_file_complete(self, file_index: int, file_total: int, stats: FileStats) -> None:
        short_name = stats.file_key.rsplit("/", 1)[-1]
        parts = [f"scanned {stats.scanned:,}", f"inserted {stats.inserted:,}"]
        if stats.skipped > 0:
            parts.append(f"skipped {stats.skipped:,}")
        if stats.errors > 0:
            parts.append(f"errors {stats.errors:,}")

        logger.info(
            f"[{file_index}/{file_total}] {short_name}  " + "  ".join(parts),
            extra=stats.model_dump()
        )

    def on_complete(self, profile_name: str, result: RunResult) -> None:
        status = "COMPLETED" if result.completed else "INCOMPLETE"
        logger.info(
            f"{status} ({format_elapsed(result.elapsed_seconds)}) "
            f"scanned={result.total_scanned:,} inserted={result.total_inserted:,} "
            f"skipped={result.total_skipped:,} errors={result.total_errors:,} "
            f"files={result.files_processed}/{result.files_total}",
            extra={"profile": profile_name, **result.model_dump()}
        )


class CompositeProgressReporter(ProgressReporter):
    """Fans every hook out to several reporters."""

    def __init__(self, reporters: list[ProgressReporter]):
        self.reporters = list(reporters)

    def _dispatch(self, hook: str, *args) -> None:
        for reporter in self.reporters:
            try:
                getattr(reporter, hook)(*args)
            except Exception:
                logger.exception(
                    f"Progress reporter {reporter.__class__.__name__}.{hook} failed",
                    extra={"reporter": reporter.__class__.__name__, "hook": hook}
                )

    def on_start(self, profile_name: str, file_count: int, batch_size: int, resuming: bool) -> None:
        self._dispatch("on_start", profile_name, file_count, batch_size, resuming)

    def on_file_complete(self, file_index: int, file_total: int, stats: FileStats) -> None:
        self._dispatch("on_file_complete", file_index, file_total, stats)

    def on_progress(self, result: RunResult) -> None:
        self._dispatch("on_progress", result)

    def on_complete(self, profile_name: str, result: RunResult) -> None:
        self._dispatch("on_complete", profile_name, result)
