"""Wrappers around the git command line used by the sync agent."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

CHECK_PUSH_TAG = "choerodon-write-check"

_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}

log = logging.getLogger(__name__)


class GitError(Exception):
    """A git command failed."""


@dataclass(frozen=True)
class Commit:
    """A revision and its one-line message."""

    revision: str
    message: str


@dataclass
class CommitAction:
    """Author and message for a commit."""

    author: str = ""
    message: str = ""


def _format_args(args: Iterable[str]) -> str:
    return "[" + " ".join(args) + "]"


@contextmanager
def _wrapped(context: str) -> Iterator[None]:
    try:
        yield
    except GitError as exc:
        raise GitError(f"{context}: {exc}") from exc


def find_error_message(output: str) -> str:
    """Pick the meaningful error line out of git's stderr, or return ''."""
    for line in output.splitlines():
        if line.startswith("fatal: "):
            return line
        if line.startswith("ERROR fatal: "):
            return line
        if line.startswith("error:"):
            return line.strip("error: ")
    return ""


def exec_git(args, cwd=None, timeout=None) -> str:
    """Run git with ``args`` in ``cwd`` and return its standard output."""
    args = list(args)
    log.debug("git %s", " ".join(f'"{arg}"' for arg in args))
    command = [shutil.which("git") or "git", *args]
    try:
        result = subprocess.run(
            command,
            cwd=cwd or None,
            env=dict(_GIT_ENV),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitError(
            f"running git command: git {_format_args(args)}: deadline exceeded"
        ) from exc
    except OSError as exc:
        raise GitError(str(exc)) from exc
    if result.returncode != 0:
        message = find_error_message(result.stderr or "")
        raise GitError(message or f"exit status {result.returncode}")
    return result.stdout or ""


def config(working_dir, user, email, timeout=None) -> None:
    """Set the committer name and e-mail in a working clone."""
    for key, value in {"user.name": user, "user.email": email}.items():
        with _wrapped("setting git config"):
            exec_git(["config", key, value], working_dir, timeout)


def clone(working_dir, repo_url, repo_branch="", timeout=None) -> str:
    """Clone ``repo_url`` into ``working_dir`` and return that path."""
    args = ["clone"]
    if repo_branch:
        args += ["--branch", repo_branch]
    args += [repo_url, working_dir]
    with _wrapped("git clone"):
        exec_git(args, working_dir, timeout)
    return working_dir


def mirror(working_dir, repo_url, timeout=None) -> str:
    """Make a bare mirror of ``repo_url`` in ``working_dir`` and return that path."""
    with _wrapped("git clone --mirror"):
        exec_git(["clone", "--mirror", repo_url, working_dir], working_dir, timeout)
    return working_dir


def check_push(working_dir, upstream, timeout=None) -> None:
    """Check that the upstream can be written to by pushing and deleting a tag."""
    with _wrapped("tag for write check"):
        exec_git(["tag", "--force", CHECK_PUSH_TAG], working_dir, timeout)
    with _wrapped("attempt to push tag"):
        exec_git(
            ["push", "--force", upstream, "tag", CHECK_PUSH_TAG], working_dir, timeout
        )
    exec_git(["push", "--delete", upstream, "tag", CHECK_PUSH_TAG], working_dir, timeout)


def commit(working_dir, commit_action, timeout=None) -> None:
    """Commit all tracked changes with the action's message and author."""
    args = ["commit", "--no-verify", "-a"]
    if commit_action.author:
        args += ["--author", commit_action.author]
    args += ["-m", commit_action.message]
    with _wrapped("git commit"):
        exec_git(args, working_dir, timeout)


def push(working_dir, upstream, refs, timeout=None) -> None:
    """Push ``refs`` to ``upstream``."""
    refs = list(refs)
    with _wrapped(f"git push {upstream} {_format_args(refs)}"):
        exec_git(["push", upstream, *refs], working_dir, timeout)


def fetch(working_dir, upstream, *refspec, timeout=None) -> None:
    """Fetch refs and tags from ``upstream``; a missing remote ref is not an error."""
    try:
        exec_git(["fetch", "--tags", upstream, *refspec], working_dir, timeout)
    except GitError as exc:
        if "Couldn't find remote ref" in str(exc):
            return
        raise GitError(
            f"git fetch --tags {upstream} {_format_args(refspec)}: {exc}"
        ) from exc


def ref_exists(working_dir, ref, timeout=None) -> bool:
    """Tell whether ``ref`` names a revision in the repository."""
    try:
        exec_git(["rev-list", ref], working_dir, timeout)
    except GitError as exc:
        if "unknown revision" in str(exc):
            return False
        raise
    return True


def get_notes_ref(working_dir, ref, timeout=None) -> str:
    """Return the full ref for a shorthand notes ref."""
    return exec_git(["notes", "--ref", ref, "get-ref"], working_dir, timeout).strip()


def add_note(working_dir, rev, notes_ref, note, timeout=None) -> None:
    """Attach ``note``, encoded as JSON, to revision ``rev``."""
    body = json.dumps(note, separators=(",", ":"), ensure_ascii=False)
    exec_git(["notes", "--ref", notes_ref, "add", "-m", body, rev], working_dir, timeout)


def get_note(working_dir, notes_ref, rev, timeout=None) -> Any:
    """Return the decoded JSON note on ``rev``, or None when there is none."""
    try:
        out = exec_git(["notes", "--ref", notes_ref, "show", rev], working_dir, timeout)
    except GitError as exc:
        if "no note found for object" in str(exc).lower():
            return None
        raise
    value, _ = json.JSONDecoder().raw_decode(out.strip())
    return value


def note_rev_list(working_dir, notes_ref, timeout=None) -> set[str]:
    """Return the set of revisions carrying a note (order is not meaningful)."""
    out = exec_git(["notes", "--ref", notes_ref, "list"], working_dir, timeout)
    revisions = set()
    for line in split_list(out):
        fields = line.split()
        if len(fields) > 1:
            revisions.add(fields[1])
    return revisions


def ref_revision(path, ref, timeout=None) -> str:
    """Return the commit hash that ``ref`` points to."""
    return exec_git(["rev-list", "--max-count", "1", ref], path, timeout).strip()


def revlist(path, ref, timeout=None) -> list[str]:
    """Return all revisions reachable from ``ref``."""
    return split_list(exec_git(["rev-list", ref], path, timeout))


def oneline_log(path, refspec, subdir="", timeout=None) -> list[Commit]:
    """Return the commits of ``refspec``, limited to ``subdir`` when given."""
    args = ["log", "--oneline", "--no-abbrev-commit", refspec]
    if subdir:
        args += ["--", subdir]
    return split_log(exec_git(args, path, timeout))


def split_log(text) -> list[Commit]:
    """Parse ``git log --oneline`` output into commits."""
    commits = []
    for line in split_list(text):
        revision, _, message = line.partition(" ")
        commits.append(Commit(revision=revision, message=message))
    return commits


def split_list(text) -> list[str]:
    """Split trimmed output into lines; empty output gives an empty list."""
    stripped = text.strip()
    if not stripped:
        return []
    return stripped.split("\n")


def move_tag_and_push(path, tag, ref, msg, upstream, timeout=None) -> None:
    """Move annotated ``tag`` to ``ref`` and force-push it upstream."""
    with _wrapped(f"moving tag {tag}"):
        exec_git(["tag", "--force", "-a", "-m", msg, tag, ref], path, timeout)
    with _wrapped("pushing tag to origin"):
        exec_git(["push", "--force", upstream, "tag", tag], path, timeout)


def changed_files(path, sub_path, ref, timeout=None) -> list[str]:
    """List files under ``sub_path`` added or changed since ``ref``."""
    if sub_path.startswith("/"):
        raise ValueError("git subdirectory should not have leading forward slash")
    out = exec_git(
        ["diff", "--name-only", "--diff-filter=ACMRT", ref, "--", sub_path], path, timeout
    )
    return split_list(out)


def file_last_commit(path, file, timeout=None) -> str:
    """Return the hash of the last commit touching ``file``."""
    return exec_git(["log", "-n", "1", "--pretty=format:%H", "--", file], path, timeout)


def has_changes(working_dir, subdir, timeout=None) -> bool:
    """Tell whether there are local changes under ``subdir``."""
    try:
        exec_git(["diff", "--quiet", "--", subdir], working_dir, timeout)
    except GitError:
        return True
    return False