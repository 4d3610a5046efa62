"""Command line entry point: compile a binding file or install it into a keybinding file."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence, TextIO

from modal_keys.bindings import BindingCompiler, import_bindings, parse_binding_file
from modal_keys.errors import InstallError, SchemaError
from modal_keys.runtime import telemetry


class StreamNotifier:
    """Notifier printing to the terminal; errors and warnings go to ``stderr``."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def show_error(self, message: str, *actions: str) -> Optional[str]:
        print(f"error: {message}", file=self.err)
        return None

    def show_warning(self, message: str, *actions: str) -> Optional[str]:
        print(f"warning: {message}", file=self.err)
        return None

    def show_info(self, message: str, *actions: str) -> Optional[str]:
        print(message, file=self.out)
        return None


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="modal-keys", description="Compile modal keybinding files."
    )
    parser.add_argument(
        "--error-limit",
        type=int,
        default=3,
        help="Maximum number of problems reported per run (default: 3)",
    )
    parser.add_argument(
        "--log-preset",
        choices=sorted(telemetry.PRESETS),
        default=None,
        help="Telemetry preset (default: read MODAL_KEYS_* variables)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    compile_cmd = commands.add_parser("compile", help="Print the compiled bindings as JSON")
    compile_cmd.add_argument("spec", type=Path, help="Binding file (.toml or .json)")
    compile_cmd.add_argument(
        "--output", "-o", type=Path, default=None, help="Write JSON here instead of stdout"
    )

    import_cmd = commands.add_parser(
        "import", help="Install the compiled bindings into a keybinding file"
    )
    import_cmd.add_argument("spec", type=Path, help="Binding file (.toml or .json)")
    import_cmd.add_argument(
        "--keybindings",
        "-k",
        type=Path,
        required=True,
        help="keybindings.json to update between the automated-binding markers",
    )
    return parser.parse_args(argv)


def _compile(args: argparse.Namespace, notifier: StreamNotifier) -> int:
    spec = parse_binding_file(args.spec)
    compiler = BindingCompiler(error_limit=args.error_limit)
    result = compiler.compile(spec)
    compiler.report_errors(notifier)
    payload = json.dumps(result.to_json(), indent=4)
    if args.output is None:
        print(payload, file=notifier.out)
    else:
        args.output.write_text(payload + "\n", encoding="utf-8")
        notifier.show_info(f"Wrote {len(result.bindings)} bindings to {args.output}.")
    return 0


def main(argv: Optional[Sequence[str]] = None, *, notifier: StreamNotifier | None = None) -> int:
    args = _parse_args(argv)
    notifier = notifier or StreamNotifier()
    if args.log_preset:
        telemetry.configure(preset=args.log_preset)
    try:
        if args.command == "compile":
            return _compile(args, notifier)
        import_bindings(
            args.spec, args.keybindings, notifier=notifier, error_limit=args.error_limit
        )
        return 0
    except SchemaError as exc:
        if args.command == "compile":
            for line in exc.summary(args.error_limit):
                notifier.show_error(line)
        return 1
    except InstallError as exc:
        notifier.show_error(str(exc))
        return 1
    except OSError as exc:
        notifier.show_error(f"{exc.filename}: {exc.strerror}")
        return 1


if __name__ == "__main__":  # pragma: no cover - manual entry point
    raise SystemExit(main())
