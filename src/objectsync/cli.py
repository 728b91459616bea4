"""CLI entry point for objectsync."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from prometheus_client import REGISTRY, write_to_textfile

from objectsync import metrics
from objectsync.config import ObjectSyncConfig, load_config
from objectsync.differ import ChangeKind
from objectsync.errors import ObjectSyncError, PartialApplyError
from objectsync.logging_config import configure_logging
from objectsync.models import DesiredState, ResourceState
from objectsync.planner import Plan, PlanAction
from objectsync.reconciler import Reconciler
from objectsync.schema import build_desired_state
from objectsync.state import dump_state, load_state
from objectsync.transport import create_transport

logger = logging.getLogger("objectsync")

_CHANGE_MARKS = {
    ChangeKind.ADDED: "+",
    ChangeKind.REMOVED: "-",
    ChangeKind.MODIFIED: "~",
}

# Exit code for `plan --detailed-exitcode` when changes are pending.
EXIT_CHANGES_PENDING = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="objectsync",
        description="objectsync - declarative reconciliation of S3 objects",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("objectsync.yaml"),
        help="Path to YAML configuration file (default: objectsync.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Show the action that apply would take")
    plan.add_argument("--resource", type=Path, required=True, help="Desired-state YAML file")
    plan.add_argument("--state", type=Path, required=True, help="JSON state file")
    plan.add_argument(
        "--detailed-exitcode",
        action="store_true",
        help=f"Exit with {EXIT_CHANGES_PENDING} when the plan is not a no-op",
    )

    apply = sub.add_parser("apply", help="Converge the remote object to the desired state")
    apply.add_argument("--resource", type=Path, required=True, help="Desired-state YAML file")
    apply.add_argument("--state", type=Path, required=True, help="JSON state file")

    destroy = sub.add_parser("destroy", help="Delete the managed object")
    destroy.add_argument("--state", type=Path, required=True, help="JSON state file")

    imp = sub.add_parser("import", help="Adopt an existing remote object")
    imp.add_argument("id", help="Import id: s3://<bucket>/<key>")
    imp.add_argument("--state", type=Path, required=True, help="JSON state file to write")

    return parser.parse_args(argv)


def load_resource(path: Path) -> DesiredState:
    """Load a desired-state attribute bag from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If the attributes are invalid.
    """
    with open(path, "r") as fh:
        raw: Any = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping of attributes")
    return build_desired_state(raw)


def _load_state_if_present(path: Path) -> ResourceState | None:
    if not path.exists():
        return None
    return load_state(path)


def format_plan(plan: Plan, desired: DesiredState) -> str:
    """Render a plan as human-readable text."""
    lines = [f"s3://{desired.bucket}/{desired.key}: {plan.action.value} ({plan.reason})"]
    if plan.action is PlanAction.NO_OP:
        return lines[0]
    for name, change in sorted(plan.changes.changed().items()):
        mark = _CHANGE_MARKS[change.kind]
        if change.kind is ChangeKind.ADDED:
            lines.append(f"  {mark} {name}: {change.new!r}")
        elif change.kind is ChangeKind.REMOVED:
            lines.append(f"  {mark} {name}: {change.old!r}")
        else:
            lines.append(f"  {mark} {name}: {change.old!r} -> {change.new!r}")
    return "\n".join(lines)


async def run(args: argparse.Namespace, config: ObjectSyncConfig) -> int:
    """Run one subcommand against the configured transport.

    Returns:
        The process exit code.
    """
    transport = create_transport(config.transport)
    await transport.init()
    reconciler = Reconciler(
        transport,
        ignore_tags=config.ignore_tags.to_ignore_tags(),
        metadata_update=config.policy.metadata_update,
        governance_bypass=config.policy.governance_bypass,
    )
    state: ResourceState | None = None
    try:
        if args.command == "plan":
            desired = load_resource(args.resource)
            plan = await reconciler.plan(desired, _load_state_if_present(args.state))
            print(format_plan(plan, desired))
            if args.detailed_exitcode and plan.action is not PlanAction.NO_OP:
                return EXIT_CHANGES_PENDING
            return 0

        if args.command == "apply":
            desired = load_resource(args.resource)
            state = _load_state_if_present(args.state)
            if state is None:
                state = ResourceState(bucket=str(desired.bucket), key=desired.key)
            state = await reconciler.apply(desired, state)
            dump_state(state, args.state)
            observed = state.observed
            print(
                f"s3://{state.bucket}/{state.key}: etag={observed.etag} "
                f"version_id={observed.version_id or '-'}"
            )
            return 0

        if args.command == "destroy":
            state = load_state(args.state)
            await reconciler.destroy(state)
            dump_state(state, args.state)
            print(f"s3://{state.bucket}/{state.key}: destroyed")
            return 0

        if args.command == "import":
            existing = _load_state_if_present(args.state)
            if existing is not None and existing.observed is not None:
                logger.error(
                    "State file %s already manages s3://%s/%s",
                    args.state,
                    existing.bucket,
                    existing.key,
                )
                return 1
            state = await reconciler.import_object(args.id)
            dump_state(state, args.state)
            print(f"s3://{state.bucket}/{state.key}: imported")
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    except PartialApplyError as e:
        # Persist what the transport confirmed before failing.
        if state is not None:
            dump_state(state, args.state)
        logger.error("%s: %s", e.code, e.message)
        return 1
    except ObjectSyncError as e:
        logger.error("%s: %s", e.code, e.message)
        return 1
    finally:
        await transport.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the objectsync CLI.

    Loads configuration, applies CLI overrides, and runs one subcommand.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Load configuration first (logging depends on config values)
    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    # Apply CLI overrides
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    # Configure structured logging (replaces basicConfig)
    configure_logging(level=config.logging.level, fmt=config.logging.format)

    if config.metrics.enabled:
        metrics.init_metrics()

    try:
        code = asyncio.run(run(args, config))
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        code = 1

    if config.metrics.enabled and config.metrics.textfile:
        write_to_textfile(config.metrics.textfile, REGISTRY)

    sys.exit(code)


if __name__ == "__main__":
    main()
