import argparse
import logging
import signal
import sys

from .core.config import load_options
from .core.errors import LockAcquisitionError, MigrationError
from .core.migration.coordinator import MigrationCoordinator
from .core.migration.packages.conflicts import StrategyRegistry
from .core.safety import list_backups, rollback


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdkshift",
        description="Migrate legacy MSBuild projects to SDK-style projects",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Migrate every project under a directory")
    migrate.add_argument("directory", help="Root of the tree to migrate")
    migrate.add_argument("--preview", action="store_true", default=None, help="Report changes without writing")
    migrate.add_argument(
        "--backup",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Back up files before changing them (default: on)"
    )
    migrate.add_argument("--parallel", type=int, default=None, help="Projects processed concurrently")
    migrate.add_argument(
        "--cpm",
        action="store_true",
        default=None,
        help="Generate Directory.Packages.props (central package management)"
    )
    migrate.add_argument(
        "--strategy",
        type=str,
        default=None,
        choices=StrategyRegistry.list_strategies(),
        help="Version conflict strategy"
    )
    migrate.add_argument("--output", type=str, default=None, help="Write migrated projects to this directory")
    migrate.add_argument("--target-framework", type=str, default=None, help="Override every target framework")
    migrate.add_argument("--offline", action="store_true", default=None, help="No network; built-in package tables")
    migrate.add_argument("--config", type=str, default=None, help="YAML config file")
    _add_common(migrate)

    restore = subparsers.add_parser("rollback", help="Restore files from a backup session")
    restore.add_argument("directory", help="Root of the migrated tree")
    restore.add_argument("--session", type=str, default="latest", help="Session id, or 'latest'")
    _add_common(restore)

    backups = subparsers.add_parser("list-backups", help="List backup sessions, newest first")
    backups.add_argument("directory", help="Root of the migrated tree")
    _add_common(backups)
    return parser


def _migrate(args: argparse.Namespace) -> int:
    options = load_options(
        args.config,
        directory=args.directory,
        preview=args.preview,
        create_backup=args.backup,
        max_parallelism=args.parallel,
        enable_central_package_management=args.cpm,
        conflict_strategy=args.strategy,
        output_directory=args.output,
        target_framework=args.target_framework,
        offline=args.offline,
    )
    coordinator = MigrationCoordinator(options)
    signal.signal(signal.SIGINT, lambda signum, frame: coordinator.cancel())
    try:
        report = coordinator.run_sync()
    except LockAcquisitionError as e:
        logger.error("%s", e)
        return 1
    print(report.render_text())
    return report.exit_code()


def _rollback(args: argparse.Namespace) -> int:
    result = rollback(args.directory, args.session)
    session = result.session.session_id if result.session else args.session
    print(f"Rollback of session {session}: {len(result.restored_files)} restored, "
          f"{len(result.deleted_files)} removed, {len(result.errors)} error(s)")
    for error in result.errors:
        print(f"  error: {error}")
    return 0 if result.success else 1


def _list_backups(args: argparse.Namespace) -> int:
    sessions = list_backups(args.directory)
    if not sessions:
        print("No backup sessions found")
    for session in sessions:
        print(f"{session.session_id}  {session.start_time}  "
              f"{len(session.backed_up_files)} file(s)  {session.backup_directory}")
    return 0


def main(argv=None) -> int:
    """Main entry point for sdkshift."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    handlers = {"migrate": _migrate, "rollback": _rollback, "list-backups": _list_backups}
    try:
        return handlers[args.command](args)
    except (MigrationError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
