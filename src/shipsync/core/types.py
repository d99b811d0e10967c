"""Shared types for shipsync."""

from __future__ import annotations

from enum import Enum


class SessionState(Enum):
    """Lifecycle of one deployment session.

    IDLE -> CREATING -> CREATED -> SYNCING -> COMPLETED
    Any phase may end in FAILED.
    """

    IDLE = "idle"
    CREATING = "creating"
    CREATED = "created"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"

