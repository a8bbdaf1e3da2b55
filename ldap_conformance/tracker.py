from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .logging import get_logger


class EntryKind(Enum):
    """
    What sort of directory object a :py:class:`TrackedEntry` is.
    """

    CONTAINER = "OU"
    PRINCIPAL = "User"
    GROUP = "Group"
    OTHER = "Other"


@dataclass(frozen=True)
class TrackedEntry:
    """
    A directory object created during a run.
    """

    dn: str  #: the DN of the object
    kind: EntryKind  #: what kind of object it is
    created_at: datetime  #: when we recorded it (UTC)


class Tracker:
    """
    Records every directory object our run creates, in the order they were
    created, so that we can remove them again afterwards.

    Cleanup must walk the entries in reverse: later entries may live inside
    or refer to earlier ones (a user inside an OU, a group naming a user),
    and the directory refuses to delete a container that still has
    children.

    Every method takes our one lock for the duration of its work and none of
    them calls back into the tracker while holding it, so it is safe to use
    from a background thread.

    Keyword Args:
        logger: the logger to use

    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._entries: list[TrackedEntry] = []
        self._lock = threading.Lock()
        self.logger: logging.Logger = logger or get_logger("tracker")

    def track(
        self, dn: str, kind: EntryKind, created_at: datetime | None = None
    ) -> TrackedEntry:
        """
        Remember that we created ``dn``.

        Args:
            dn: the DN of the object we created
            kind: what kind of object it is

        Keyword Args:
            created_at: when the object was created.  Defaults to now.

        Returns:
            The new :py:class:`TrackedEntry`.

        """
        entry = TrackedEntry(
            dn=dn,
            kind=kind,
            created_at=created_at or datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries.append(entry)
        self.logger.debug("tracker.track dn=%s kind=%s", dn, kind.value)
        return entry

    def entries(self) -> list[TrackedEntry]:
        """
        Return a copy of our entries in the order they were tracked.
        """
        with self._lock:
            return list(self._entries)

    def entries_reversed(self) -> list[TrackedEntry]:
        """
        Return a copy of our entries, newest first.  This is the order in
        which to delete them.
        """
        with self._lock:
            return list(reversed(self._entries))

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()

    def clear(self) -> None:
        """
        Forget every entry.  This touches only our bookkeeping, never the
        directory.
        """
        with self._lock:
            self._entries = []
        self.logger.debug("tracker.clear")

    def entries_older_than(self, age: timedelta) -> list[TrackedEntry]:
        """
        Return the entries that were created more than ``age`` ago, in the
        order they were tracked.

        Args:
            age: how old an entry must be to be returned

        """
        threshold = datetime.now(timezone.utc) - age
        with self._lock:
            return [entry for entry in self._entries if entry.created_at < threshold]

    def summarize(self) -> str:
        """
        Render our entries grouped by kind.

        Returns:
            A multi-line human readable summary.

        """
        entries = self.entries()
        if not entries:
            return "No test data was created."
        lines = [
            "=== Created Test Data Summary ===",
            f"Total entries created: {len(entries)}",
            "",
        ]
        for kind in EntryKind:
            dns = [entry.dn for entry in entries if entry.kind is kind]
            if not dns:
                continue
            lines.append(f"{kind.value} entries ({len(dns)}):")
            lines.extend(f"  - {dn}" for dn in dns)
            lines.append("")
        return "\n".join(lines).rstrip("\n")
