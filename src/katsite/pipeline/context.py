"""Buffer threaded through a chain-mode hook."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PipelineBuffer:
    """The current bytes of one document inside one chain.

    Exactly one value is current at any step. A step either replaces it or
    leaves it alone; it is never shared between build jobs.

    Attributes:
        data: Current document bytes
        replaced_by: Names of the plugins whose output became current, in order
    """

    data: bytes
    replaced_by: list[str] = field(default_factory=list)

    def replace(self, output: bytes, plugin_name: str) -> bool:
        """Adopt a plugin's output as the current value.

        Empty output is treated as "no transformation" and keeps the current
        value, so a plugin uninterested in a hook can exit 0 without echoing
        the whole document back.

        Args:
            output: Bytes the plugin wrote to stdout
            plugin_name: Plugin that produced them

        Returns:
            True if the buffer changed hands, False if it was kept
        """
        if not output:
            return False
        self.data = output
        self.replaced_by.append(plugin_name)
        return True
