"""A throw-away working clone used for committing and tagging."""

from __future__ import annotations

import dataclasses
import os
import shutil
from dataclasses import dataclass

from .errors import PushError
from .operations import (
    GitError,
    add_note,
    changed_files,
    commit,
    config,
    file_last_commit,
    get_note,
    get_notes_ref,
    has_changes,
    move_tag_and_push,
    note_rev_list,
    ref_exists,
    ref_revision,
)
from .repo import NoChangesError


@dataclass
class GitConfig:
    """Values used when working in a working clone."""

    branch: str = ""
    path: str = ""
    sync_tag: str = ""
    notes_ref: str = ""
    user_name: str = ""
    user_email: str = ""
    set_author: bool = False
    skip_message: str = ""
    devops_tag: str = ""
    git_url: str = ""
    git_poll_interval: float = 300.0


def make_checkout(repo, conf, timeout=None) -> "Checkout":
    """Clone ``repo`` at the DevOps tag and prepare it for committing."""
    upstream = repo.origin()
    repo_dir = repo.working_clone(conf.devops_tag, timeout)
    try:
        config(repo_dir, conf.user_name, conf.user_email, timeout)
        real_notes_ref = get_notes_ref(repo_dir, conf.notes_ref, timeout)
    except BaseException:
        shutil.rmtree(repo_dir, ignore_errors=True)
        raise
    return Checkout(repo_dir, conf, upstream, real_notes_ref)


class Checkout:
    """A local working clone for one-off transactions; it has no locking."""

    def __init__(self, dir, config, upstream, real_notes_ref):
        self.dir = dir
        self.config = config
        self.upstream = upstream
        self.real_notes_ref = real_notes_ref

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.clean()

    def clean(self) -> None:
        """Remove the clone."""
        if self.dir:
            shutil.rmtree(self.dir, ignore_errors=True)

    def manifest_dir(self) -> str:
        """Return the path of the manifest files."""
        return os.path.join(self.dir, self.config.path)

    def commit_and_push(self, commit_action, note=None, timeout=None) -> None:
        """Commit local changes, attach ``note`` and push both upstream."""
        if not has_changes(self.dir, self.config.path, timeout):
            raise NoChangesError()
        action = dataclasses.replace(
            commit_action, message=commit_action.message + self.config.skip_message
        )
        commit(self.dir, action, timeout)
        if note is not None:
            rev = ref_revision(self.dir, "HEAD", timeout)
            add_note(self.dir, rev, self.config.notes_ref, note, timeout)
        refs = [self.config.branch]
        if ref_exists(self.dir, self.real_notes_ref, timeout):
            refs.append(self.real_notes_ref)
        try:
            from .operations import push

            push(self.dir, self.upstream.url, refs, timeout)
        except GitError as exc:
            raise PushError(self.upstream.url, exc) from exc

    def get_note(self, rev, timeout=None):
        """Return the note on ``rev``, or None when there is none."""
        return get_note(self.dir, self.real_notes_ref, rev, timeout)

    def head_revision(self, timeout=None) -> str:
        return ref_revision(self.dir, "HEAD", timeout)

    def sync_revision(self, timeout=None) -> str:
        return ref_revision(self.dir, self.config.sync_tag, timeout)

    def devops_sync_revision(self, timeout=None) -> str:
        return ref_revision(self.dir, self.config.devops_tag, timeout)

    def move_sync_tag_and_push(self, ref, msg, timeout=None) -> None:
        """Move the sync tag to ``ref`` and push it upstream."""
        move_tag_and_push(
            self.dir, self.config.sync_tag, ref, msg, self.upstream.url, timeout
        )

    def changed_files(self, ref, timeout=None) -> tuple[list[str], list[str]]:
        """Return absolute and repo-relative paths of files changed since ``ref``."""
        relative = changed_files(self.dir, self.config.path, ref, timeout)
        absolute = [os.path.join(self.dir, name) for name in relative]
        return absolute, relative

    def file_last_commit(self, file, timeout=None) -> str:
        return file_last_commit(self.dir, file, timeout)

    def note_rev_list(self, timeout=None) -> set[str]:
        return note_rev_list(self.dir, self.real_notes_ref, timeout)