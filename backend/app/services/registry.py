"""Descriptor registry — the active descriptor set, swapped atomically.

Readers call `snapshot()` and get the current immutable DescriptorSet without
taking any lock; the returned set stays valid for as long as they hold it.
Writers call `replace()`, which is serialized by a lock and publishes the new
set with a single reference assignment. A rejected set never reaches readers.
"""

import threading
from datetime import datetime, timezone
from typing import Optional

import structlog

from app.descriptors.compiler import check_consistency
from app.descriptors.errors import RegistryRejected
from app.descriptors.models import DescriptorSet

logger = structlog.get_logger()


class DescriptorRegistry:
    """Holds exactly one DescriptorSet at any instant."""

    def __init__(self, initial: Optional[DescriptorSet] = None):
        self._write_lock = threading.Lock()
        # (set, installed_at), published together by one assignment
        self._state: tuple[DescriptorSet, Optional[datetime]] = (initial or DescriptorSet.empty(), None)
        self._closed = False

    def snapshot(self) -> DescriptorSet:
        """Current descriptor set. Lock-free; never blocks writers."""
        return self._state[0]

    def replace(self, new_set: DescriptorSet) -> DescriptorSet:
        """Install `new_set` as the current set.

        Returns:
            The installed set, stamped with its generation number

        Raises:
            RegistryRejected: the set failed self-consistency checks; the
                previously installed set remains current
        """
        problems = check_consistency(new_set)
        if problems:
            logger.warning(
                "descriptor_set_rejected",
                source=new_set.source,
                problems=problems,
                current_generation=self._state[0].generation,
            )
            raise RegistryRejected(f"Descriptor set '{new_set.source}' is not self-consistent", problems)

        with self._write_lock:
            if self._closed:
                raise RegistryRejected("Registry is closed")

            previous = self._state[0]
            installed = new_set.with_generation(previous.generation + 1)
            unchanged = bool(installed.fingerprint) and installed.fingerprint == previous.fingerprint

            # Single reference assignment: readers see the old or the new set, never a mix
            self._state = (installed, datetime.now(timezone.utc))

        logger.info(
            "descriptor_set_installed",
            source=installed.source,
            generation=installed.generation,
            messages=len(installed.messages),
            fingerprint=installed.fingerprint[:12],
            unchanged=unchanged,
        )
        return installed

    def close(self) -> None:
        """Drop the current set at shutdown. Held snapshots stay usable."""
        with self._write_lock:
            self._closed = True
            self._state = (DescriptorSet.empty(), None)
        logger.info("descriptor_registry_closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def describe(self) -> dict:
        """Summary of the installed set for the descriptors and health endpoints."""
        current, installed_at = self._state
        return {
            "generation": current.generation,
            "fingerprint": current.fingerprint,
            "source": current.source,
            "installed_at": installed_at,
            "message_types": sorted(current.messages),
            "enum_types": sorted(current.enums),
        }
