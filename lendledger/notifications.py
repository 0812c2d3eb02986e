"""
notifications.py - Notification sinks

Vaults and liquidation agents emit a Notification for every committed
operation. Emission is fire-and-forget: the emitter catches sink failures, so a
sink can never change the outcome of an operation.

Classes:
- EventLog: Keeps every notification in memory, optionally printing them
- NullSink: Discards everything (the default sink)
"""

from __future__ import annotations
from typing import List

from .core import Notification


class EventLog:
    """In-memory append-only notification store."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.records: List[Notification] = []

    def emit(self, notification: Notification) -> None:
        self.records.append(notification)
        if self.verbose:
            payload = ", ".join(f"{k}={v}" for k, v in notification.fields.items())
            print(f"[{notification.block}] {notification.kind}: {payload}")

    def by_kind(self, kind: str) -> List[Notification]:
        return [n for n in self.records if n.kind == kind]

    def last(self) -> Notification:
        """Most recent notification; IndexError if none."""
        return self.records[-1]

    def __len__(self) -> int:
        return len(self.records)


class NullSink:
    def emit(self, notification: Notification) -> None:
        pass
