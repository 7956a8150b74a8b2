"""Hook pipeline for katsite plugins.

Plugins are external programs driven through named hooks:

- broadcast hooks (init, postinit) run every plugin independently;
- chain hooks (markdown, html) thread one document through every plugin
  in configured order.

Formal Model:
    Plugin pᵢ: bytes → bytes, fallible

    chain(p₁..pₙ, b) = stepₙ(...step₁(b))
    stepᵢ(b) = pᵢ(b) if pᵢ succeeds with non-empty output else b
"""

from katsite.pipeline.context import PipelineBuffer
from katsite.pipeline.dispatcher import BroadcastHandle, HookDispatcher
from katsite.pipeline.hook import (
    HOOK_HTML,
    HOOK_INIT,
    HOOK_MARKDOWN,
    HOOK_POSTINIT,
    HookInvocation,
    HookResult,
    Invoker,
    PluginSpec,
)

__all__ = [
    "BroadcastHandle",
    "HOOK_HTML",
    "HOOK_INIT",
    "HOOK_MARKDOWN",
    "HOOK_POSTINIT",
    "HookDispatcher",
    "HookInvocation",
    "HookResult",
    "Invoker",
    "PipelineBuffer",
    "PluginSpec",
]
