"""Binding files: schema, key tokens, compiler, dispatch table, and installer."""

from .compiler import (
    DO_COMMAND,
    IGNORE_COMMAND,
    PREFIX_COMMAND,
    BindingCompiler,
    CompiledBinding,
    CompileResult,
    compile_bindings,
)
from .dispatch import DispatchTable
from .install import END_MARKER, START_MARKER, format_bindings, import_bindings, insert_bindings
from .schema import (
    BindingHeader,
    BindingItem,
    BindingSpec,
    BindingTree,
    StrictBindingItem,
    load_binding_data,
    parse_binding_file,
    parse_binding_spec,
)

__all__ = [
    "DO_COMMAND",
    "IGNORE_COMMAND",
    "PREFIX_COMMAND",
    "BindingCompiler",
    "CompiledBinding",
    "CompileResult",
    "compile_bindings",
    "DispatchTable",
    "END_MARKER",
    "START_MARKER",
    "format_bindings",
    "import_bindings",
    "insert_bindings",
    "BindingHeader",
    "BindingItem",
    "BindingSpec",
    "BindingTree",
    "StrictBindingItem",
    "load_binding_data",
    "parse_binding_file",
    "parse_binding_spec",
]
