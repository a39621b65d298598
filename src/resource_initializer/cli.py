"""
Command Line Interface for the resource initializer.

Provides CLI commands for fingerprinting a configuration, planning and
applying a convergence pass against a Lambda Action Target, and inspecting
recorded trigger state.
"""

import json
import sys
from pathlib import Path

import structlog

from resource_initializer.config import get_settings
from resource_initializer.exceptions import InitializerError
from resource_initializer.fingerprint import fingerprint, physical_identity
from resource_initializer.models import ConfigurationPayload

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def load_payload(pairs: list[str] | None, config_file: str | None) -> ConfigurationPayload:
    """Build a payload from a JSON file and/or KEY=VALUE pairs (pairs win)."""
    config: dict = {}
    if config_file:
        path = Path(config_file)
        if not path.exists():
            logger.error("Config file not found", path=config_file)
            sys.exit(1)
        config.update(json.loads(path.read_text(encoding="utf-8")))
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            logger.error("Expected KEY=VALUE", argument=pair)
            sys.exit(2)
        config[key] = value
    return ConfigurationPayload(config=config)


def show_fingerprint(payload: ConfigurationPayload, name: str, version: str):
    """Print the fingerprint and physical identity of a payload."""
    settings = get_settings()
    digest = fingerprint(payload, length=settings.initializer.fingerprint_length)
    print(f"fingerprint: {digest}")
    print(f"identity:    {physical_identity(name, version, digest)}")
    return digest


def _build_trigger(name: str, function: str, version: str | None):
    from resource_initializer.state_store import get_state_store
    from resource_initializer.targets import LambdaActionTarget
    from resource_initializer.trigger import LifecycleTrigger

    settings = get_settings()
    target = LambdaActionTarget(function, version=version, settings=settings)
    return LifecycleTrigger(name, target, get_state_store(settings), settings=settings)


def plan(name: str, function: str, version: str | None, payload: ConfigurationPayload):
    """Show whether the next pass would invoke the target."""
    result = _build_trigger(name, function, version).plan(payload)
    print(f"current:   {result.current_id or '-'} ({result.state.value})")
    print(f"candidate: {result.candidate_id}")
    print(f"invoke:    {'yes' if result.needs_invocation else 'no'}")
    return result


def apply(name: str, function: str, version: str | None, payload: ConfigurationPayload):
    """Run one convergence pass."""
    record = _build_trigger(name, function, version).converge(payload)
    print(record.model_dump_json(indent=2))
    return record


def status(name: str):
    """Print the recorded state of a logical resource."""
    from resource_initializer.state_store import get_state_store

    record = get_state_store(get_settings()).get(name)
    if record is None:
        logger.warning("No record found", logical_name=name)
        return None
    print(record.model_dump_json(indent=2))
    return record


def remove(name: str):
    """Record removal of a logical resource without invoking its target."""
    from resource_initializer.state_store import get_state_store
    from resource_initializer.trigger import LifecycleTrigger
    from resource_initializer.targets import CallableActionTarget

    # Removal never invokes, so no real target is needed
    unused = CallableActionTarget(name, lambda request: None)
    settings = get_settings()
    return LifecycleTrigger(name, unused, get_state_store(settings), settings=settings).remove()


def setup_state_table():
    """Create the DynamoDB state table."""
    from resource_initializer.state_store import DynamoDBStateStore

    created = DynamoDBStateStore(settings=get_settings()).create_table_if_not_exists()
    logger.info("State table ready", created=created)
    return created


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Deployment-time resource initializer CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_payload_args(sub):
        sub.add_argument("--config", action="append", metavar="KEY=VALUE", help="Configuration field")
        sub.add_argument("--config-file", help="JSON file with configuration fields")

    # Fingerprint command
    fp_parser = subparsers.add_parser("fingerprint", help="Fingerprint a configuration")
    fp_parser.add_argument("--name", default="Initializer", help="Logical resource name")
    fp_parser.add_argument("--version", default="1", help="Action target version")
    add_payload_args(fp_parser)

    # Plan / apply commands
    for command, help_text in (("plan", "Show what the next pass would do"), ("apply", "Run a convergence pass")):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("name", help="Logical resource name")
        sub.add_argument("--function", required=True, help="Lambda function name or ARN")
        sub.add_argument("--version", help="Override the action target version")
        add_payload_args(sub)

    # Status / remove commands
    status_parser = subparsers.add_parser("status", help="Show recorded state")
    status_parser.add_argument("name", help="Logical resource name")
    remove_parser = subparsers.add_parser("remove", help="Record removal (never invokes)")
    remove_parser.add_argument("name", help="Logical resource name")

    # Setup command
    subparsers.add_parser("setup", help="Create the DynamoDB state table")

    args = parser.parse_args(argv)

    try:
        if args.command == "fingerprint":
            show_fingerprint(load_payload(args.config, args.config_file), args.name, args.version)

        elif args.command == "plan":
            plan(args.name, args.function, args.version, load_payload(args.config, args.config_file))

        elif args.command == "apply":
            apply(args.name, args.function, args.version, load_payload(args.config, args.config_file))

        elif args.command == "status":
            status(args.name)

        elif args.command == "remove":
            remove(args.name)

        elif args.command == "setup":
            setup_state_table()

        else:
            parser.print_help()

    except InitializerError as e:
        logger.error("Command failed", command=args.command, error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
