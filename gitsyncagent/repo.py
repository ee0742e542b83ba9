"""A local bare copy of a remote git repository that keeps itself fetched."""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
from dataclasses import dataclass

from .operations import GitError, check_push, clone, fetch, mirror, oneline_log, ref_revision

DEFAULT_INTERVAL = 5 * 60.0
OP_TIMEOUT = 60.0
DEFAULT_CLONE_TIMEOUT = 2 * 60.0
MIRROR_REPO_PREFIX = "choerodon-git-clone"
WORKING_REPO_PREFIX = "choerodon-working"

_POLL_STEP = 0.2

log = logging.getLogger(__name__)


class RepoStatus(str, enum.Enum):
    """Progress made synchronising with a repo, in expected order."""

    NO_CONFIG = "unconfigured"
    NEW = "new"
    CLONED = "cloned"
    READY = "ready"


@dataclass(frozen=True)
class Remote:
    """Where a repo is cloned from."""

    url: str


class NoChangesError(GitError):
    """Nothing was changed in the working clone."""

    def __init__(self, message="no changes made in repo"):
        super().__init__(message)


class NotReadyError(GitError):
    """The repo has not yet been cloned and checked for write access."""

    def __init__(self, message="git repo not ready"):
        super().__init__(message)


class NoConfigError(GitError):
    """The repo has no remote configured."""

    def __init__(self, message="git repo does not have valid config"):
        super().__init__(message)


def _wait_any(events, timeout) -> bool:
    """Wait until one of ``events`` is set or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while True:
        if any(event.is_set() for event in events):
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        events[0].wait(min(_POLL_STEP, remaining))


class Repo:
    """A local bare copy of a remote repository that refreshes itself."""

    retry_interval = 10.0

    def __init__(self, origin, env="", poll_interval=DEFAULT_INTERVAL):
        self._origin = origin
        self.env = env
        self.poll_interval = poll_interval
        self._lock = threading.RLock()
        self._status = RepoStatus.NEW if origin.url else RepoStatus.NO_CONFIG
        self._err: Exception | None = None
        self._dir = ""
        self._notify = threading.Event()
        self._refreshed = threading.Event()

    def origin(self) -> Remote:
        """Return the remote the repo was constructed with."""
        with self._lock:
            return self._origin

    def dir(self) -> str:
        """Return the local directory of the bare copy, or '' before cloning."""
        with self._lock:
            return self._dir

    def clean(self) -> None:
        """Remove the local copy and start again from the NEW state."""
        with self._lock:
            if self._dir:
                shutil.rmtree(self._dir, ignore_errors=True)
            self._dir = ""
            self._status = RepoStatus.NEW

    def status(self) -> tuple[RepoStatus, Exception | None]:
        """Return the readiness status and the error holding it back, if any."""
        with self._lock:
            return self._status, self._err

    def _set_status(self, status, err=None) -> None:
        with self._lock:
            self._status = status
            self._err = err

    def notify(self) -> None:
        """Ask for a fetch from the remote as soon as possible; never blocks."""
        self._notify.set()

    def _mark_refreshed(self) -> None:
        self._refreshed.set()

    def wait_refreshed(self, timeout=None) -> bool:
        """Wait for a completed refresh and consume it; False on timeout."""
        if self._refreshed.wait(timeout):
            self._refreshed.clear()
            return True
        return False

    def _raise_if_not_ready(self) -> None:
        if self._status is RepoStatus.READY:
            return
        if self._status is RepoStatus.NO_CONFIG:
            raise NoConfigError()
        raise NotReadyError()

    def revision(self, ref, timeout=None) -> str:
        """Return the commit hash of ``ref``."""
        with self._lock:
            self._raise_if_not_ready()
            return ref_revision(self._dir, ref, timeout)

    def commits_before(self, ref, path="", timeout=None):
        """Return the commits reachable from ``ref`` touching ``path``."""
        with self._lock:
            self._raise_if_not_ready()
            return oneline_log(self._dir, ref, path, timeout)

    def commits_between(self, ref1, ref2, path="", timeout=None):
        """Return the commits in ``ref1..ref2`` touching ``path``."""
        with self._lock:
            self._raise_if_not_ready()
            return oneline_log(self._dir, f"{ref1}..{ref2}", path, timeout)

    def start(self, shutdown=None, repo_shutdown=None) -> None:
        """Clone, check write access and keep fetching until told to stop."""
        shutdown = shutdown or threading.Event()
        repo_shutdown = repo_shutdown or threading.Event()
        stops = [shutdown, repo_shutdown]
        while True:
            with self._lock:
                url = self._origin.url
                directory = self._dir
                status = self._status

            if status is RepoStatus.NO_CONFIG:
                log.error("env: %s repo no config", self.env)
                return

            if status is RepoStatus.NEW:
                rootdir = tempfile.mkdtemp(prefix=MIRROR_REPO_PREFIX)
                try:
                    directory = mirror(rootdir, url, timeout=OP_TIMEOUT)
                    with self._lock:
                        self._dir = directory
                        self._fetch(OP_TIMEOUT)
                except GitError as exc:
                    log.error("env: %s repo new: %s", self.env, exc)
                    with self._lock:
                        self._dir = ""
                    shutil.rmtree(rootdir, ignore_errors=True)
                    self._set_status(RepoStatus.NEW, exc)
                else:
                    self._set_status(RepoStatus.CLONED)
                    continue

            elif status is RepoStatus.CLONED:
                try:
                    check_push(directory, url, timeout=OP_TIMEOUT)
                except GitError as exc:
                    log.error("env: %s repo clone error: %s", self.env, exc)
                    try:
                        self._fetch(OP_TIMEOUT)
                    except GitError:
                        pass
                    self._set_status(RepoStatus.CLONED, exc)
                else:
                    self._set_status(RepoStatus.READY)
                    self._mark_refreshed()
                    continue

            elif status is RepoStatus.READY:
                try:
                    self._refresh_loop(stops)
                except GitError as exc:
                    log.error("env: %s repo ready: %s", self.env, exc)
                    self._set_status(RepoStatus.NEW, exc)
                    continue

            if _wait_any(stops, self.retry_interval):
                return

    def refresh(self, timeout=OP_TIMEOUT) -> None:
        """Fetch from the remote now."""
        with self._lock:
            self._raise_if_not_ready()
            self._fetch(timeout)
            self._mark_refreshed()

    def _refresh_loop(self, stops) -> None:
        deadline = time.monotonic() + self.poll_interval
        while True:
            if any(event.is_set() for event in stops):
                return
            if self._notify.is_set():
                self._notify.clear()
                self.refresh(OP_TIMEOUT)
                deadline = time.monotonic() + self.poll_interval
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.notify()
                continue
            self._notify.wait(min(_POLL_STEP, remaining))

    def _fetch(self, timeout) -> None:
        fetch(self._dir, "origin", timeout=timeout)

    def working_clone(self, ref, timeout=None) -> str:
        """Make a non-bare clone at ``ref`` and return its path."""
        with self._lock:
            self._raise_if_not_ready()
            working = tempfile.mkdtemp(prefix=WORKING_REPO_PREFIX)
            return clone(working, self._dir, ref, timeout)