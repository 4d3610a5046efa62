"""Write compiled bindings into a host keybinding file between marker comments."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Sequence

from modal_keys.errors import InstallError, SchemaError
from modal_keys.runtime import telemetry
from modal_keys.runtime.reporting import Notifier

from .compiler import BindingCompiler, CompiledBinding
from .schema import parse_binding_file

START_MARKER = "AUTOMATED BINDINGS START: ModalKey Bindings"
END_MARKER = "AUTOMATED BINDINGS END: ModalKey Bindings"
INDENT = "    "

_HEADER = (
    f"{INDENT}// {START_MARKER}",
    f"{INDENT}//",
    f"{INDENT}// Keybindings generated from {{source}}.",
    f"{INDENT}// Do not edit between the start and end markers: re-import instead.",
    f"{INDENT}//",
)
_FOOTER = (f"{INDENT}// {END_MARKER}",)


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line for line in text.splitlines())


def format_bindings(source: str, bindings: Sequence[CompiledBinding]) -> str:
    """Render the auto-generated block, one JSON object per binding."""

    lines: List[str] = [line.format(source=source) for line in _HEADER]
    for binding in bindings:
        if binding.name or binding.description:
            label = binding.name or ""
            if binding.description:
                label = f"{label}: {binding.description}" if label else binding.description
            lines.append(f"{INDENT}// {label}")
        body = json.dumps(binding.to_json(), indent=4, ensure_ascii=False)
        lines.append(_indent(body, INDENT) + ",")
    lines.extend(_FOOTER)
    return "\n".join(lines)


def _line_start(text: str, index: int) -> int:
    return text.rfind("\n", 0, index) + 1


def _line_end(text: str, index: int) -> int:
    end = text.find("\n", index)
    return len(text) if end < 0 else end


def insert_bindings(text: str, block: str) -> str:
    """Place ``block`` inside the JSON array in ``text``.

    An existing marked block is replaced; otherwise the block goes right after
    the opening ``[``.
    """

    start = text.find(START_MARKER)
    end = text.find(END_MARKER)
    if start >= 0 and end >= 0:
        if end < start:
            raise InstallError("The end marker of the generated bindings precedes the start marker.")
        return text[: _line_start(text, start)] + block + text[_line_end(text, end) :]
    if start >= 0 or end >= 0:
        missing = "end" if start >= 0 else "start"
        raise InstallError(
            f"Found only one of the generated binding markers; the {missing} marker is missing. "
            "Remove the partial block and import again."
        )
    if not text.strip():
        return "[\n" + block + "\n]\n"
    bracket = text.find("[")
    if bracket < 0:
        raise InstallError("Could not find the opening `[` of the keybinding file.")
    return text[: bracket + 1] + "\n" + block + text[bracket + 1 :]


def import_bindings(
    spec_path: str | Path,
    keybindings_path: str | Path,
    *,
    notifier: Optional[Notifier] = None,
    error_limit: int = 3,
) -> List[CompiledBinding]:
    """Compile ``spec_path`` and install the result into ``keybindings_path``.

    Nothing is written when the binding file fails validation.
    """

    spec_file = Path(spec_path)
    target = Path(keybindings_path)
    with telemetry.span(
        "bindings::import",
        logger_name="modal_keys.bindings",
        component="bindings",
        metadata={"spec": spec_file.name},
    ) as handle:
        try:
            spec = parse_binding_file(spec_file)
            compiler = BindingCompiler(error_limit=error_limit)
            result = compiler.compile(spec)
        except SchemaError as exc:
            if notifier is not None:
                for line in exc.summary(error_limit):
                    notifier.show_error(line)
            raise
        existing = target.read_text(encoding="utf-8") if target.exists() else ""
        updated = insert_bindings(existing, format_bindings(spec_file.name, result.bindings))
        target.write_text(updated, encoding="utf-8")
        handle.add_metadata("bindings", len(result.bindings))

    telemetry.record_event(
        "bindings.import",
        data={
            "spec": str(spec_file),
            "target": str(target),
            "bindings": len(result.bindings),
            "dropped": len(result.errors),
        },
        logger_name="modal_keys.bindings",
    )
    if notifier is not None:
        compiler.report_errors(notifier)
        notifier.show_info(
            f"Imported {len(result.bindings)} bindings from {spec_file.name}."
        )
    return result.bindings


__all__ = [
    "START_MARKER",
    "END_MARKER",
    "format_bindings",
    "import_bindings",
    "insert_bindings",
]
