"""Descriptor errors."""

from typing import Optional


class RegistryRejected(Exception):
    """A descriptor set failed decoding or self-consistency checks.

    The registry keeps its previous set installed when this is raised.
    """

    def __init__(self, reason: str, problems: Optional[list[str]] = None):
        super().__init__(reason)
        self.reason = reason
        self.problems = problems or []

    def __str__(self) -> str:
        if not self.problems:
            return self.reason
        return f"{self.reason}: {'; '.join(self.problems)}"
