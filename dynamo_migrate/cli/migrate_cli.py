"""
Command-line interface for running migrations.

Usage:
    dynamo-migrate --profile <name> <command> [options]
    python -m dynamo_migrate.cli.migrate_cli --profile <name> <command> [options]
"""

import argparse
import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from dynamo_migrate.batch import CancellationToken, CheckpointStore, run_migration
from dynamo_migrate.core.errors import ConfigError
from dynamo_migrate.core.models import RunResult
from dynamo_migrate.observability.logger import get_logger
from dynamo_migrate.observability.metrics import PrometheusProgressReporter, start_metrics_server
from dynamo_migrate.observability.progress import LoggingProgressReporter, ProgressReporter
from dynamo_migrate.profiles import default_profile_registry
from dynamo_migrate.sources import default_source_registry
from dynamo_migrate.utils.config import RunnerConfig, load_runner_config
from dynamo_migrate.utils.registry import Registry
from dynamo_migrate.utils.validation import parse_optional_int, validate_run_id
from dynamo_migrate.warehouse import default_target_registry

logger = get_logger(__name__)

COMMANDS = ("run", "start", "stop", "status", "logs", "reset", "profiles")


def get_pid_file(log_dir: Path, profile_name: str) -> Path:
    return log_dir / f"migrate-{profile_name}.pid"


def get_log_file(log_dir: Path, profile_name: str) -> Path:
    return log_dir / f"migrate-{profile_name}.log"


def is_process_running(pid: int) -> bool:
    """Check whether a process exists without signalling it."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def read_pid(pid_file: Path) -> int | None:
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def require_profile(args: argparse.Namespace, profiles: Registry) -> str:
    """
    Validate --profile against the registry.

    Raises:
        ConfigError: If the option is missing, malformed or unknown
    """
    if not args.profile:
        raise ConfigError(f"--profile is required. Available profiles: {', '.join(profiles.names())}")
    name = validate_run_id(args.profile)
    profiles.get(name)
    return name


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """
    Translate command-line options into configuration overrides.

    Unset options are None and leave file and environment values in place.
    """
    return {
        "source": {
            "type": args.source_type,
            "bucket": args.s3_bucket,
            "prefix": args.s3_prefix,
        },
        "target": {
            "type": "memory" if args.dry_run else args.target_type,
        },
        "profile_config": {
            "batchSize": parse_optional_int(args.batch_size, "--batch-size"),
            "maxId": parse_optional_int(args.max_id, "--max-id"),
        },
    }


def load_config(args: argparse.Namespace) -> RunnerConfig:
    return load_runner_config(build_overrides(args), config_path=args.config)


def build_child_env(config: RunnerConfig) -> dict[str, str]:
    """Environment for the detached `run` process, with absolute directories."""
    env = os.environ.copy()
    env["MIGRATE_LOG_DIR"] = str(config.log_dir.resolve())
    if config.source.path:
        env["EXPORT_PATH"] = str(Path(config.source.path).resolve())
    return env


def build_child_args(args: argparse.Namespace) -> list[str]:
    """
    Options forwarded from `start` to the detached `run` process.

    The child runs from the log directory, so file paths are made absolute.
    """
    child_args = ["--profile", args.profile]
    config_path = str(Path(args.config).resolve()) if args.config else None
    for option, value in (
        ("--config", config_path),
        ("--batch-size", args.batch_size),
        ("--max-id", args.max_id),
        ("--s3-bucket", args.s3_bucket),
        ("--s3-prefix", args.s3_prefix),
        ("--source-type", args.source_type),
        ("--target-type", args.target_type),
        ("--metrics-port", args.metrics_port),
    ):
        if value is not None:
            child_args.extend([option, str(value)])
    if args.dry_run:
        child_args.append("--dry-run")
    return child_args


# =======================
# COMMANDS
# =======================

async def _run_async(
    profile_name: str,
    config: RunnerConfig,
    reporters: list[ProgressReporter],
    token: CancellationToken,
) -> RunResult:
    loop = asyncio.get_running_loop()

    def on_signal(signum: signal.Signals) -> None:
        if token.cancel(signum.name):
            logger.info(
                f"Received {signum.name}, graceful shutdown requested; "
                "waiting for the current batch to finish"
            )

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, on_signal, signum)

    try:
        return await run_migration(
            profile_name,
            config,
            profiles=default_profile_registry(),
            sources=default_source_registry(),
            targets=default_target_registry(),
            reporters=reporters,
            cancel_token=token,
        )
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)


def run_command(args: argparse.Namespace, profiles: Registry) -> int:
    """
    Run a migration in the foreground, resuming from the checkpoint.

    Returns:
        Exit code (0 also when stopped by a signal)
    """
    profile_name = require_profile(args, profiles)
    config = load_config(args)

    if args.dry_run:
        logger.info("DRY RUN MODE: records are written to an in-memory target only")

    reporters: list[ProgressReporter] = [LoggingProgressReporter()]
    if args.metrics_port is not None:
        port = start_metrics_server(args.metrics_port)
        logger.info(f"Serving metrics on :{port}/metrics", extra={"port": port})
        reporters.append(PrometheusProgressReporter())

    token = CancellationToken()
    result = asyncio.run(_run_async(profile_name, config, reporters, token))

    if token.cancelled:
        logger.info(
            f"Migration stopped ({token.reason}); run again to resume",
            extra={"profile": profile_name, "completed": result.completed}
        )
    return 0


def start_command(args: argparse.Namespace, profiles: Registry) -> int:
    """Start `run` as a detached daemon writing to the profile's log file."""
    profile_name = require_profile(args, profiles)
    config = load_config(args)
    log_dir = config.log_dir.resolve()
    log_dir.mkdir(parents=True, exist_ok=True)

    pid_file = get_pid_file(log_dir, profile_name)
    existing_pid = read_pid(pid_file) if pid_file.exists() else None
    if existing_pid is not None and is_process_running(existing_pid):
        print(f'Daemon already running (PID {existing_pid}). Use "stop" first.', file=sys.stderr)
        return 1
    pid_file.unlink(missing_ok=True)

    log_file = get_log_file(log_dir, profile_name)
    command = [sys.executable, "-m", "dynamo_migrate.cli.migrate_cli", *build_child_args(args), "run"]

    with open(log_file, "a") as log:
        child = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=log,
            stderr=subprocess.STDOUT,
            cwd=log_dir,
            env=build_child_env(config),
            start_new_session=True,
        )

    pid_file.write_text(str(child.pid))
    print(f"Daemon started (PID {child.pid})")
    print(f"Logs:     {log_file}")
    print(f"PID file: {pid_file}")
    return 0


def stop_command(args: argparse.Namespace, profiles: Registry) -> int:
    profile_name = require_profile(args, profiles)
    pid_file = get_pid_file(load_config(args).log_dir, profile_name)

    if not pid_file.exists():
        print("No daemon running (no PID file).")
        return 0

    pid = read_pid(pid_file)
    if pid is None or not is_process_running(pid):
        print(f"Daemon not running (stale PID {pid}). Cleaning up.")
        pid_file.unlink(missing_ok=True)
        return 0

    os.kill(pid, signal.SIGTERM)
    print(f"Sent SIGTERM to PID {pid}.")
    pid_file.unlink(missing_ok=True)
    return 0


def status_command(args: argparse.Namespace, profiles: Registry) -> int:
    profile_name = require_profile(args, profiles)
    pid_file = get_pid_file(load_config(args).log_dir, profile_name)

    if not pid_file.exists():
        print("No daemon running (no PID file).")
        return 0

    pid = read_pid(pid_file)
    if pid is not None and is_process_running(pid):
        print(f"Daemon is running (PID {pid}).")
    else:
        print(f"Daemon is not running (stale PID file for PID {pid}).")
        pid_file.unlink(missing_ok=True)
    return 0


def logs_command(args: argparse.Namespace, profiles: Registry) -> int:
    profile_name = require_profile(args, profiles)
    log_file = get_log_file(load_config(args).log_dir, profile_name)

    if not log_file.exists():
        print(f"No log file found at {log_file}", file=sys.stderr)
        return 1

    tail_args = ["tail", "-n", str(args.lines)]
    if args.follow:
        tail_args.append("-f")
    tail_args.append(str(log_file))

    try:
        return subprocess.run(tail_args).returncode
    except KeyboardInterrupt:
        return 0


def reset_command(args: argparse.Namespace, profiles: Registry) -> int:
    profile_name = require_profile(args, profiles)
    store = CheckpointStore(load_config(args).log_dir)

    if store.delete(profile_name):
        print("Bookmark deleted. Next run will start from the beginning.")
    else:
        print("No bookmark to delete.")
    return 0


def profiles_command(args: argparse.Namespace, profiles: Registry) -> int:
    for name in profiles.names():
        print(name)
    return 0


HANDLERS = {
    "run": run_command,
    "start": start_command,
    "stop": stop_command,
    "status": status_command,
    "logs": logs_command,
    "reset": reset_command,
    "profiles": profiles_command,
}


def build_parser(profiles: Registry) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynamo-migrate",
        description="Resumable migration of DynamoDB S3 exports into PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available profiles: {', '.join(profiles.names())}

Commands:
  run       Run migration in foreground (default); resumes from the bookmark
  start     Start migration as daemon
  stop      Stop running daemon
  status    Check daemon status
  logs      Show daemon logs
  reset     Delete bookmark and start fresh next run
  profiles  List available profiles

Environment:
  S3_BUCKET          S3 bucket containing the DynamoDB export
  S3_PREFIX          S3 key prefix for the export files
  AWS_REGION         AWS region (default: eu-west-1)
  SERVER             PostgreSQL host
  PORT               PostgreSQL port (default: 5432)
  PG_USER            PostgreSQL user
  PASSWORD           PostgreSQL password
  DATABASE           PostgreSQL database (default: infinityCMS)
  DB_SSL             Use SSL (default: true)
  MIGRATE_LOG_DIR    Directory for PID, log and bookmark files (default: cwd)
  LOG_LEVEL          Log level (default: INFO)
  LOG_FORMAT         json or text (default: json)

Examples:
  # Migrate pictures below an id bound
  dynamo-migrate --profile pictures --max-id 2000000 run

  # Dry run against a downloaded export
  EXPORT_PATH=./export dynamo-migrate --profile pictures --source-type local-dynamodb --dry-run run
        """
    )

    parser.add_argument("command", nargs="?", default="run", choices=COMMANDS, help="Command (default: run)")
    parser.add_argument("-p", "--profile", help="Migration profile (required)")
    parser.add_argument("-b", "--batch-size", help="DB insert batch size (default: 500)")
    parser.add_argument("-m", "--max-id", help="Exclusive upper id bound (profile-specific)")
    parser.add_argument("--s3-bucket", help="S3 bucket (or env S3_BUCKET)")
    parser.add_argument("--s3-prefix", help="S3 key prefix (or env S3_PREFIX)")
    parser.add_argument("--source-type", help="Source dialect type (default: s3-dynamodb)")
    parser.add_argument("--target-type", help="Target dialect type (default: postgresql)")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write to an in-memory target instead of PostgreSQL"
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Expose Prometheus metrics on this port (run command)"
    )
    parser.add_argument("-f", "--follow", action="store_true", help="Follow log output (logs command)")
    parser.add_argument(
        "-n", "--lines",
        type=int,
        default=50,
        help="Number of log lines to show (default: 50)"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    load_dotenv()

    profiles = default_profile_registry()
    parser = build_parser(profiles)
    args = parser.parse_args(argv)

    try:
        return HANDLERS[args.command](args, profiles)
    except ConfigError as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
