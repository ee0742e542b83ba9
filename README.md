# gitsyncagent

Building blocks for GitOps-style syncing from a Git repository. The
package keeps a bare mirror of a remote up to date. It makes throwaway
working clones to commit, annotate and tag in. It works out which
resources a sync should delete and which it should apply, and it builds
the JSON records that report a sync.

The `git` command-line client must be installed and on the `PATH`. Git
runs with `GIT_TERMINAL_PROMPT=0` as its only environment variable, so
it never prompts for credentials.

## Modules

### `gitsyncagent.operations`

These are plain functions over `git` subcommands. Each takes the
directory to run in and an optional `timeout` in seconds.

- `exec_git(args, cwd, timeout)` runs git and returns its standard
  output.
  - A non-zero exit raises `GitError`. The message is the first
    `fatal:`, `ERROR fatal:` or `error:` line from stderr, as picked
    out by `find_error_message`, and otherwise `exit status N`.
  - A timeout also raises `GitError`.
- `config`, `clone`, `mirror`, `check_push`, `commit`, `push`, `fetch`
  and `move_tag_and_push` change repositories.
  - `fetch` ignores "Couldn't find remote ref".
  - `check_push` force-pushes the tag `choerodon-write-check` and then
    deletes it again.
- `ref_exists`, `ref_revision`, `revlist`, `oneline_log`,
  `changed_files`, `file_last_commit` and `has_changes` read repository
  state.
  - `changed_files` raises `ValueError` for a sub-path that starts
    with `/`.
- `get_notes_ref`, `add_note`, `get_note` and `note_rev_list` handle git
  notes.
  - Notes are stored as JSON.
  - `get_note` returns `None` when the revision has no note.
- `split_list` and `split_log` parse git output.
- `Commit` holds a revision and its message. `CommitAction` holds the
  author and message for a commit.

### `gitsyncagent.repo`

`Repo(origin, env, poll_interval)` is a bare mirror of
`Remote(url)`. Its states are listed in `RepoStatus`: `NO_CONFIG`
(when the URL is empty), `NEW`, `CLONED` and `READY`.

- `start(shutdown, repo_shutdown)` blocks, so run it in a thread. It
  runs until either `threading.Event` is set.
  - It mirrors the remote into a temporary directory and checks that
    it can push to it.
  - It then fetches every `poll_interval` seconds, and at once after
    `notify()`.
  - A failed step is retried after ten seconds.
- `wait_refreshed(timeout)` waits for a completed refresh and consumes
  it.
- The queries below raise `NoConfigError` or `NotReadyError` until the
  repo is `READY`:
  - `revision`
  - `commits_before`
  - `commits_between`
  - `refresh`
  - `working_clone`
- `status()` returns the current state and the last error.
- `clean()` removes the mirror and sets the state back to `NEW`.
- `NoChangesError` is also defined here.

### `gitsyncagent.working`

`make_checkout(repo, conf, timeout)` clones a ready `Repo` at
`conf.devops_tag`. It sets the committer name and e-mail and resolves
the notes ref. It returns a `Checkout`, configured by a `GitConfig`.

A `Checkout` is a context manager, and its clone is removed when the
block ends. It offers:

- `manifest_dir()`
- `head_revision`, `sync_revision` and `devops_sync_revision`
- `changed_files(ref)`, which returns absolute and relative paths
- `file_last_commit`
- `get_note` and `note_rev_list`
- `move_sync_tag_and_push`
- `commit_and_push(commit_action, note, timeout)`:
  - It raises `NoChangesError` when nothing changed.
  - It appends `skip_message` to the commit message.
  - It attaches the note, if one is given.
  - It pushes the branch, and the notes ref when that exists. A failed
    push raises `PushError` from `gitsyncagent.errors`, which carries
    the URL, the underlying error and a help text.

### `gitsyncagent.events`

This module holds the sync event records: `Event`,
`SyncEventMetadata`, `ResourceError`, `SyncCommit`, `FileCommit` and
`ResourceCommit`.

- `Event.to_json()` gives compact JSON.
  - The keys are `id`, `resourceIDs`, `type`, `startedAt`, `endedAt`
    and an optional `metadata`.
  - Times are in RFC 3339 form with a `Z` suffix for UTC.
- The metadata fields `commit`, `errors`, `filesCommit` and
  `resourceCommits` are left out when they are empty.

### `gitsyncagent.ssh`

- `ssh_host_config(host, namespace, key_dir)` returns an ssh `Host`
  block for the namespace.
  - A `host:port` value is split into `HostName` and `Port`.
  - Host key checking is switched off.
- `write_ssh_key` writes `rsa-<name>` with mode 0600.
- `write_ssh_config` replaces the config file.
- `prepare_ssh_keys(envs, git_host, key_dir, config_path)` does both
  for a list of `EnvParams` and returns the config text.
  - By default it writes to `/ssh-keys` and `/etc/ssh/ssh_config`.

### `gitsyncagent.sync`

- `plan_sync(repo_resources, changed_resources, cluster_resources)`
  returns a list of `SyncAction`.
  - First come deletions, for every cluster resource whose id is not
    in the repository.
  - Then come applies, one for each changed resource.
- `is_unknown_revision(message)` recognises git's "unknown revision"
  and "bad revision" errors.
- `SyncRequests` holds at most one pending sync request per namespace.
  - Call `register(namespace)` first.
  - `ask_for_sync` does nothing for a namespace that is not
    registered.
  - `take(namespace, timeout)` waits for a request and consumes it.

### `gitsyncagent.jobs`

`is_job_finished(job)` takes a Job as a mapping, shaped like its JSON.
It returns `(finished, succeeded)` from the status conditions.

## What it does not do

The package has no command and no long-running service. It does not
connect to a Kubernetes cluster. It does not load or parse manifest
files, and it does not export or apply resources. It does not send
events anywhere.

`plan_sync` only returns the actions. Carrying them out, and running
the loop that waits on `SyncRequests` and `Repo.wait_refreshed`, is
left to the caller.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
import threading

from gitsyncagent.operations import CommitAction
from gitsyncagent.repo import Remote, Repo
from gitsyncagent.working import GitConfig, make_checkout

repo = Repo(Remote("git@example.com:team/env.git"), "dev", 300)
shutdown, repo_shutdown = threading.Event(), threading.Event()
threading.Thread(target=repo.start, args=(shutdown, repo_shutdown), daemon=True).start()

if repo.wait_refreshed(120):
    conf = GitConfig(branch="master", sync_tag="agent-sync", notes_ref="agent",
                     user_name="agent", user_email="agent@example.com",
                     devops_tag="devops-sync")
    with make_checkout(repo, conf, 60) as checkout:
        print(checkout.head_revision(60))
        checkout.commit_and_push(CommitAction(message="update"), None, 60)

shutdown.set()
```

Planning a sync:

```python
from gitsyncagent.sync import plan_sync

actions = plan_sync(
    repo_resources={"ns:deployment/web": "web"},
    changed_resources={"ns:deployment/web": "web"},
    cluster_resources={"ns:deployment/old": "old"},
)
# [SyncAction(apply=None, delete='old'), SyncAction(apply='web', delete=None)]
```