"""Running plugin executables."""

from katsite.plugins.invoker import ProcessInvoker, invoke

__all__ = ["ProcessInvoker", "invoke"]
