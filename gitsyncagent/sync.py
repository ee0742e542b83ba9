"""Planning cluster syncs and signalling when a sync is wanted."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class SyncAction:
    """One step of a sync: apply a resource or delete one."""

    apply: Any = None
    delete: Any = None


def plan_sync(
    repo_resources: Mapping[str, Any],
    changed_resources: Mapping[str, Any],
    cluster_resources: Mapping[str, Any],
) -> list[SyncAction]:
    """Delete what is in the cluster but not the repo, then apply what changed."""
    actions = [
        SyncAction(delete=resource)
        for resource_id, resource in cluster_resources.items()
        if resource_id not in repo_resources
    ]
    actions += [SyncAction(apply=resource) for resource in changed_resources.values()]
    return actions


def is_unknown_revision(message) -> bool:
    """Tell whether a git error says that a revision does not exist."""
    if message is None:
        return False
    text = str(message)
    return (
        "unknown revision or path not in the working tree." in text
        or "bad revision" in text
    )


class SyncRequests:
    """Pending sync requests per namespace; at most one is held for each."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: dict[str, threading.Event] = {}

    def register(self, namespace) -> None:
        """Start accepting sync requests for ``namespace``."""
        with self._lock:
            self._pending.setdefault(namespace, threading.Event())

    def ask_for_sync(self, namespace) -> None:
        """Request a sync; a request already pending absorbs this one."""
        with self._lock:
            event = self._pending.get(namespace)
        if event is not None:
            event.set()

    def take(self, namespace, timeout=None) -> bool:
        """Wait for and consume a request for ``namespace``; False on timeout."""
        with self._lock:
            event = self._pending[namespace]
        if event.wait(timeout):
            event.clear()
            return True
        return False