from __future__ import annotations

import signal
import sys

from message_export.config_models import load_and_validate_config
from message_export.core.errors import ExportFailure
from message_export.core.factory import ComponentFactory
from message_export.core.policies import CancellationToken
from message_export.utils.logging import setup_logging

USAGE = "Usage: message-export <count-messages|count-threads|export> configs/jobs/<job>.yaml [name-hint]"
COMMANDS = ("count-messages", "count-threads", "export")


def run_command(command: str, config_path: str, name_hint: str | None = None) -> int:
    """Run one command and print its status line. Returns the process exit code."""
    config = load_and_validate_config(config_path)
    setup_logging(config.logging.config_path, config.logging.level)

    built = ComponentFactory().build(config)
    exporter = built.exporter

    # Ctrl+C stops the iteration at the next cursor call instead of mid-write.
    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: token.cancel())

    try:
        if command == "count-messages":
            print("Counting SMS and MMS...")
            result = exporter.count_messages(token).raise_for_error()
            print(f"SMS and MMS count: {result.count}.")
        elif command == "count-threads":
            print("Counting threads...")
            result = exporter.count_threads(token).raise_for_error()
            print(f"Threads count: {result.count}.")
        else:
            export = exporter.export_messages(name_hint, token).raise_for_error()
            print(f'File "{export.artifact_name}" successfully written ({export.record_count} messages).')
    except ExportFailure as e:
        if e.error.is_name_collision:
            print(f'Unable to write the file: "{e.error.reason}". Retry with another name hint.')
        else:
            print(f"Operation failed: {e.error}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    return 0


def main() -> None:
    """Main entry point for message export."""
    if len(sys.argv) < 3 or sys.argv[1] not in COMMANDS:
        print(USAGE)
        raise SystemExit(2)

    command, config_path = sys.argv[1], sys.argv[2]
    name_hint = sys.argv[3] if len(sys.argv) > 3 else None
    raise SystemExit(run_command(command, config_path, name_hint))


if __name__ == "__main__":
    main()
