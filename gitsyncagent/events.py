"""Sync events reported upstream after applying a commit to the cluster."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

EVENT_SYNC = "sync"


def _format_time(moment: datetime) -> str:
    """Format a timestamp the way the upstream expects (RFC 3339, trimmed fraction)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    head, dot, rest = text.partition(".")
    if not dot:
        return text
    digits = "".join(ch for ch in rest if ch.isdigit())
    suffix = rest[len(digits):]
    digits = digits.rstrip("0")
    return f"{head}.{digits}{suffix}" if digits else f"{head}{suffix}"


def _drop_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value}


@dataclass
class ResourceError:
    """A failure to sync one resource."""

    id: str = ""
    path: str = ""
    error: str = ""
    commit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _drop_empty(
            {"id": self.id, "path": self.path, "error": self.error, "commit": self.commit}
        )


@dataclass
class SyncCommit:
    """A commit as reported in a sync event."""

    revision: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"revision": self.revision, "message": self.message}


@dataclass
class FileCommit:
    """The last commit that touched a file."""

    file: str = ""
    commit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "commit": self.commit}


@dataclass
class ResourceCommit:
    """The file and commit a resource was synced from."""

    resource_id: str = ""
    file: str = ""
    commit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"resourceId": self.resource_id, "file": self.file, "commit": self.commit}


@dataclass
class SyncEventMetadata:
    """Metadata for a commit synced to the cluster."""

    commit: str = ""
    errors: list[ResourceError] = field(default_factory=list)
    file_commits: list[FileCommit] = field(default_factory=list)
    resource_commits: list[ResourceCommit] = field(default_factory=list)

    def type(self) -> str:
        return EVENT_SYNC

    def to_dict(self) -> dict[str, Any]:
        return _drop_empty(
            {
                "commit": self.commit,
                "errors": [item.to_dict() for item in self.errors],
                "filesCommit": [item.to_dict() for item in self.file_commits],
                "resourceCommits": [item.to_dict() for item in self.resource_commits],
            }
        )


@dataclass
class Event:
    """Something that happened, as sent to the upstream."""

    started_at: datetime
    ended_at: datetime
    type: str = EVENT_SYNC
    id: int = 0
    resource_ids: list[str] = field(default_factory=list)
    metadata: SyncEventMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "resourceIDs": [str(item) for item in self.resource_ids],
            "type": self.type,
            "startedAt": _format_time(self.started_at),
            "endedAt": _format_time(self.ended_at),
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata.to_dict()
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)