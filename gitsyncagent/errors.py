"""Errors reported to the user when talking to the remote git repository."""

from __future__ import annotations

PUSH_HELP = """Could not commit and push to the git repository.

Committing the changes, or pushing them to the remote repository, failed.

If this has worked before, the push was most likely not a fast-forward;
trying again is safe.

If it has never worked, the repository probably exists but the SSH
deploy key in use lacks write access.
"""


class PushError(Exception):
    """Raised when changes cannot be committed and pushed to the remote."""

    kind = "user"

    def __init__(self, url, actual):
        super().__init__(str(actual))
        self.url = url
        self.actual = actual
        self.help = PUSH_HELP

    def __str__(self):
        return str(self.actual)