"""
Migration run orchestration.

Coordinates the flow per export file: stream → parse/filter → group →
transform → batched upsert → checkpoint. Files are processed strictly one
after another; the checkpoint is written after each file so a restarted run
only redoes the file it was interrupted in.
"""

import time
from collections.abc import Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from dynamo_migrate.core.errors import ExtractionError
from dynamo_migrate.core.models import Checkpoint, FileStats, ProfileConfig, RunResult
from dynamo_migrate.observability.logger import format_db_error, get_logger, log_operation
from dynamo_migrate.observability.progress import (
    CompositeProgressReporter,
    LoggingProgressReporter,
    ProgressReporter,
)
from dynamo_migrate.sources.base import SourceDialect
from dynamo_migrate.utils.config import RunnerConfig
from dynamo_migrate.utils.registry import Registry
from dynamo_migrate.warehouse.target import TargetDialect

from .cancellation import CancellationToken
from .checkpoint import CheckpointStore

if TYPE_CHECKING:
    from dynamo_migrate.profiles.base import MigrationProfile

logger = get_logger(__name__)


class MigrationRunner:
    """
    Runs one profile from a source into a target.

    The source and target must already be open; the runner never closes
    them. A run stops early only through the cancellation token; bad
    records, failed batches and unreadable files are counted and skipped.
    """

    def __init__(
        self,
        profile: "MigrationProfile",
        source: SourceDialect,
        target: TargetDialect,
        checkpoint_store: CheckpointStore,
        profile_config: ProfileConfig,
        reporters: Sequence[ProgressReporter] | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        """
        Initialize migration runner.

        Args:
            profile: Migration profile
            source: Open source dialect
            target: Open target dialect
            checkpoint_store: Where resume state is kept
            profile_config: Business settings (batch size, id bound, ...)
            reporters: Progress reporters (defaults to logging only)
            cancel_token: Token polled between files and batches
        """
        self.profile = profile
        self.source = source
        self.target = target
        self.checkpoint_store = checkpoint_store
        self.profile_config = profile_config
        self.reporter = CompositeProgressReporter(
            reporters if reporters is not None else [LoggingProgressReporter()]
        )
        self.cancel_token = cancel_token or CancellationToken()

    async def run(self) -> RunResult:
        """
        Process every export file not yet recorded in the checkpoint.

        Returns:
            RunResult; `completed` is True when every listed file has been
            processed and no cancellation was requested
        """
        start_time = time.monotonic()
        profile_name = self.profile.name
        result = RunResult()

        with log_operation("Listing source files", logger=logger, profile=profile_name, source=self.source.name):
            files = await self.source.list_files()
        result.files_total = len(files)

        if not files:
            logger.warning(
                f"No export files found for profile {profile_name}",
                extra={"profile": profile_name, "source": self.source.name}
            )
            result.completed = True
            result.elapsed_seconds = time.monotonic() - start_time
            self.reporter.on_complete(profile_name, result)
            return result

        checkpoint = self.checkpoint_store.load(profile_name)
        processed_files = list(checkpoint.processed_files) if checkpoint else []
        processed = set(processed_files)
        if checkpoint and checkpoint.profile_config != self.profile_config:
            logger.warning(
                "Checkpoint was written with a different profile configuration; resuming anyway",
                extra={
                    "profile": profile_name,
                    "checkpoint_config": checkpoint.profile_config.to_json_dict(),
                    "current_config": self.profile_config.to_json_dict(),
                }
            )

        remaining = [file_key for file_key in files if file_key not in processed]
        result.files_processed = len(files) - len(remaining)

        self.reporter.on_start(
            profile_name, len(remaining), self.profile_config.batch_size, len(processed) > 0
        )

        for index, file_key in enumerate(remaining, start=1):
            if self.cancel_token.cancelled:
                logger.info(
                    "Graceful shutdown, saving checkpoint",
                    extra={"profile": profile_name, "reason": self.cancel_token.reason}
                )
                break

            stats = await self._process_file(file_key)
            result.add_file(stats)

            if not stats.failed and not stats.interrupted:
                processed.add(file_key)
                processed_files.append(file_key)
                result.files_processed += 1

            self.checkpoint_store.save(
                profile_name,
                Checkpoint(processed_files=processed_files, profile_config=self.profile_config),
            )

            self.reporter.on_file_complete(index, len(remaining), stats)
            self.reporter.on_progress(result)

        result.completed = (
            all(file_key in processed for file_key in files)
            and not self.cancel_token.cancelled
        )

        if result.completed:
            await self.profile.on_complete(self.target)
            logger.info("Post-migration hook completed", extra={"profile": profile_name})
            self.checkpoint_store.delete(profile_name)

        result.elapsed_seconds = time.monotonic() - start_time
        self.reporter.on_complete(profile_name, result)
        return result

    async def _extract_rows(self, file_key: str, stats: FileStats) -> list[Any]:
        """
        Stream one file into parsed, filtered rows.

        Raises:
            ExtractionError: If the file cannot be read to the end
        """
        rows: list[Any] = []
        try:
            async with aclosing(self.source.stream_records(file_key)) as records:
                async for raw in records:
                    row = self.profile.parse_item(raw)
                    if row is None or not self.profile.filter(row, self.profile_config):
                        stats.skipped += 1
                        continue
                    rows.append(row)
                    stats.scanned += 1
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(file_key, format_db_error(e)) from e
        return rows

    async def _process_file(self, file_key: str) -> FileStats:
        stats = FileStats(file_key=file_key)

        try:
            rows = await self._extract_rows(file_key, stats)
        except ExtractionError as e:
            logger.error(str(e), extra={"file_key": file_key})
            stats.errors += 1
            stats.failed = True
            return stats

        groups = self.profile.group_rows(rows)
        records = [self.profile.transform(group) for group in groups]

        def count_skip(item: Any, exc: BaseException) -> None:
            stats.errors += 1

        batch_size = self.profile_config.batch_size
        for offset in range(0, len(records), batch_size):
            if self.cancel_token.cancelled:
                stats.interrupted = True
                break

            batch = records[offset:offset + batch_size]
            try:
                stats.inserted += await self.profile.upsert(self.target, batch, on_skip=count_skip)
            except Exception as e:
                logger.error(
                    f"Upsert of {len(batch)} records failed in {file_key}: {format_db_error(e)}",
                    extra={"file_key": file_key, "batch_size": len(batch)}
                )
                stats.errors += 1

        return stats


async def run_migration(
    profile_name: str,
    config: RunnerConfig,
    profiles: Registry,
    sources: Registry,
    targets: Registry,
    reporters: Sequence[ProgressReporter] | None = None,
    cancel_token: CancellationToken | None = None,
) -> RunResult:
    """
    Resolve a profile and its dialects from registries and run it.

    Source and target are held for the whole run and released on every
    exit path.

    Raises:
        ConfigError: If a name is unknown or a dialect is misconfigured
    """
    profile = profiles.create(profile_name)

    async with sources.create(config.source.type, config.source) as source:
        target = profile.create_target(config.target, targets)
        logger.info(
            f"Running profile {profile.name}: {source.name} -> {target.name}",
            extra={"profile": profile.name, "source": source.name, "target": target.name}
        )

        async with target:
            runner = MigrationRunner(
                profile=profile,
                source=source,
                target=target,
                checkpoint_store=CheckpointStore(config.log_dir),
                profile_config=config.profile_config,
                reporters=reporters,
                cancel_token=cancel_token,
            )
            return await runner.run()
