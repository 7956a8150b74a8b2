"""Hook names and the value types exchanged with plugins.

A plugin is an executable honoring a small contract::

    plugins/<name> <hook_name> [source_filename]

It reads its payload (if any) from stdin until EOF, writes the transformed
payload to stdout, writes diagnostics to stderr and exits 0 on success.
The dispatcher never needs to know more about a plugin than that, so plugins
are modeled as an ``Invoker`` callable rather than a class hierarchy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

# Lifecycle hooks
HOOK_INIT: str = "init"
HOOK_POSTINIT: str = "postinit"

# Transform hooks
HOOK_MARKDOWN: str = "markdown"
HOOK_HTML: str = "html"


@dataclass(frozen=True)
class PluginSpec:
    """A configured plugin executable.

    Attributes:
        name: Name as written in the config
        path: Resolved executable path
    """

    name: str
    path: Path

    def __hash__(self) -> int:
        return hash(self.path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PluginSpec):
            return NotImplemented
        return self.path == other.path


@dataclass(frozen=True)
class HookInvocation:
    """One call of one plugin for one hook.

    Attributes:
        plugin: Plugin to run
        hook_name: Passed as the first argument
        payload: Bytes written to stdin, or None to leave stdin unconnected
        argument: Optional second argument (the source filename)
    """

    plugin: PluginSpec
    hook_name: str
    payload: bytes | None = None
    argument: str | None = None

    @property
    def argv(self) -> list[str]:
        args = [str(self.plugin.path), self.hook_name]
        if self.argument is not None:
            args.append(self.argument)
        return args


@dataclass(frozen=True)
class HookResult:
    """Outcome of a single invocation.

    Attributes:
        success: True when the plugin exited 0
        output: Everything the plugin wrote to stdout
        returncode: Exit status, None if the process never finished normally
        error: Why the invocation failed when it did not simply exit non-zero
    """

    success: bool
    output: bytes = b""
    returncode: int | None = None
    error: str | None = None

    def describe_failure(self) -> str:
        if self.error:
            return self.error
        return f"exit {self.returncode}"


Invoker = Callable[[HookInvocation], HookResult]
