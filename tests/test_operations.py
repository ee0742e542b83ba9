import json
import subprocess
from unittest import mock

import pytest

from gitsyncagent import operations
from gitsyncagent.operations import (
    CHECK_PUSH_TAG,
    Commit,
    CommitAction,
    GitError,
)


def _completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def fake_run():
    with mock.patch("gitsyncagent.operations.subprocess.run") as run:
        run.return_value = _completed()
        yield run


def _git_args(run, index=-1):
    return run.call_args_list[index].args[0][1:]


def _git(args, cwd):
    return operations.exec_git(
        ["-c", "user.name=Tester", "-c", "user.email=tester@example.com", *args],
        str(cwd),
    )


def _read(args, cwd):
    return operations.exec_git(args, str(cwd)).strip()


@pytest.fixture
def origin_and_work(tmp_path):
    seed = tmp_path / "seed"
    seed.mkdir()
    _git(["init"], seed)
    _git(["symbolic-ref", "HEAD", "refs/heads/main"], seed)
    (seed / "app.yaml").write_text("kind: ConfigMap\n")
    _git(["add", "-A"], seed)
    _git(["commit", "-m", "initial"], seed)
    origin = tmp_path / "origin.git"
    _git(["clone", "--bare", str(seed), str(origin)], tmp_path)
    work = tmp_path / "work"
    work.mkdir()
    operations.clone(str(work), str(origin), "main")
    return origin, work


def test_find_error_message_fatal():
    text = "hint: something\nfatal: repository not found\n"
    assert operations.find_error_message(text) == "fatal: repository not found"


def test_find_error_message_error_prefix_is_trimmed():
    assert operations.find_error_message("error: bad object") == "bad object"


def test_find_error_message_ubuntu_variant_and_none():
    assert operations.find_error_message("ERROR fatal: x") == "ERROR fatal: x"
    assert operations.find_error_message("warning: nothing\n") == ""


def test_split_list():
    assert operations.split_list("  \n ") == []
    assert operations.split_list("a\nb\n") == ["a", "b"]


def test_split_log():
    commits = operations.split_log("abc first message\ndef second\n")
    assert commits == [Commit("abc", "first message"), Commit("def", "second")]


def test_exec_git_returns_stdout_and_sets_env(fake_run):
    fake_run.return_value = _completed(stdout="output\n")
    assert operations.exec_git(["status"], "/tmp/x") == "output\n"
    call = fake_run.call_args_list[-1]
    assert call.kwargs["env"] == {"GIT_TERMINAL_PROMPT": "0"}
    assert call.kwargs["cwd"] == "/tmp/x"
    assert _git_args(fake_run) == ["status"]


def test_exec_git_error_uses_stderr_message(fake_run):
    fake_run.return_value = _completed(stderr="fatal: not a git repository", returncode=128)
    with pytest.raises(GitError, match="fatal: not a git repository"):
        operations.exec_git(["status"])


def test_exec_git_error_without_message(fake_run):
    fake_run.return_value = _completed(stderr="", returncode=3)
    with pytest.raises(GitError, match="exit status 3"):
        operations.exec_git(["status"])


def test_exec_git_timeout(fake_run):
    fake_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=1)
    with pytest.raises(GitError, match="running git command: git"):
        operations.exec_git(["fetch"], timeout=1)


def test_config_sets_name_and_email(tmp_path):
    _git(["init"], tmp_path)
    operations.config(str(tmp_path), "agent", "agent@example.com")
    assert _read(["config", "user.name"], tmp_path) == "agent"
    assert _read(["config", "user.email"], tmp_path) == "agent@example.com"


def test_config_error_is_wrapped(fake_run):
    fake_run.return_value = _completed(stderr="fatal: nope", returncode=1)
    with pytest.raises(GitError, match="^setting git config: fatal: nope"):
        operations.config("/w", "a", "a@example.com")


def test_clone_with_and_without_branch(fake_run):
    assert operations.clone("/w", "url", "dev") == "/w"
    assert _git_args(fake_run) == ["clone", "--branch", "dev", "url", "/w"]
    operations.clone("/w", "url")
    assert _git_args(fake_run) == ["clone", "url", "/w"]


def test_mirror(fake_run):
    assert operations.mirror("/m", "url") == "/m"
    assert _git_args(fake_run) == ["clone", "--mirror", "url", "/m"]


def test_check_push_leaves_tag_only_locally(origin_and_work):
    origin, work = origin_and_work
    operations.check_push(str(work), str(origin))
    assert _read(["tag", "-l"], origin) == ""
    assert _read(["tag", "-l"], work) == CHECK_PUSH_TAG


def test_commit_with_and_without_author(origin_and_work):
    _, work = origin_and_work
    operations.config(str(work), "agent", "agent@example.com")
    (work / "app.yaml").write_text("kind: Secret\n")
    operations.commit(
        str(work), CommitAction(author="Someone <someone@example.com>", message="first")
    )
    assert _read(["log", "-1", "--format=%an|%s"], work) == "Someone|first"
    (work / "app.yaml").write_text("kind: Service\n")
    operations.commit(str(work), CommitAction(message="second"))
    assert _read(["log", "-1", "--format=%an|%s"], work) == "agent|second"


def test_push_error_is_wrapped(fake_run):
    fake_run.return_value = _completed(stderr="error: failed to push", returncode=1)
    with pytest.raises(GitError) as info:
        operations.push("/w", "origin", ["master", "refs/notes/x"])
    assert str(info.value).startswith("git push origin [master refs/notes/x]: ")


def test_fetch_ignores_missing_remote_ref(fake_run):
    fake_run.return_value = _completed(
        stderr="fatal: Couldn't find remote ref refs/x", returncode=128
    )
    assert operations.fetch("/w", "origin", "refs/x") is None
    assert _git_args(fake_run) == ["fetch", "--tags", "origin", "refs/x"]


def test_fetch_other_error_raises(fake_run):
    fake_run.return_value = _completed(stderr="fatal: unreachable", returncode=128)
    with pytest.raises(GitError, match="git fetch --tags origin"):
        operations.fetch("/w", "origin")


def test_ref_exists(fake_run):
    assert operations.ref_exists("/w", "HEAD") is True
    fake_run.return_value = _completed(
        stderr="fatal: ambiguous argument 'x': unknown revision or path", returncode=128
    )
    assert operations.ref_exists("/w", "x") is False
    fake_run.return_value = _completed(stderr="fatal: other", returncode=128)
    with pytest.raises(GitError):
        operations.ref_exists("/w", "x")


def test_get_notes_ref_strips(fake_run):
    fake_run.return_value = _completed(stdout="refs/notes/sync\n")
    assert operations.get_notes_ref("/w", "sync") == "refs/notes/sync"
    assert _git_args(fake_run) == ["notes", "--ref", "sync", "get-ref"]


def test_add_note_encodes_json(fake_run):
    note = {"a": 1, "b": ["x"]}
    operations.add_note("/w", "abc", "refs/notes/n", note)
    args = _git_args(fake_run)
    assert args[:5] == ["notes", "--ref", "refs/notes/n", "add", "-m"]
    assert json.loads(args[5]) == note
    assert args[6] == "abc"


def test_get_note(fake_run):
    fake_run.return_value = _completed(stdout='{"k": "v"}\n')
    assert operations.get_note("/w", "refs/notes/n", "abc") == {"k": "v"}
    fake_run.return_value = _completed(
        stderr="error: No note found for object abc.", returncode=1
    )
    assert operations.get_note("/w", "refs/notes/n", "abc") is None


def test_note_rev_list(fake_run):
    fake_run.return_value = _completed(stdout="n1 rev1\nn2 rev2\n")
    assert operations.note_rev_list("/w", "refs/notes/n") == {"rev1", "rev2"}


def test_ref_revision_and_revlist(fake_run):
    fake_run.return_value = _completed(stdout="abc\n")
    assert operations.ref_revision("/w", "HEAD") == "abc"
    assert _git_args(fake_run) == ["rev-list", "--max-count", "1", "HEAD"]
    fake_run.return_value = _completed(stdout="a\nb\n")
    assert operations.revlist("/w", "HEAD") == ["a", "b"]


def test_oneline_log_with_and_without_subdir(fake_run):
    fake_run.return_value = _completed(stdout="abc hello world\n")
    assert operations.oneline_log("/w", "a..b", "manifests") == [Commit("abc", "hello world")]
    assert _git_args(fake_run) == [
        "log", "--oneline", "--no-abbrev-commit", "a..b", "--", "manifests",
    ]
    operations.oneline_log("/w", "a..b")
    assert _git_args(fake_run) == ["log", "--oneline", "--no-abbrev-commit", "a..b"]


def test_move_tag_and_push(origin_and_work):
    origin, work = origin_and_work
    operations.config(str(work), "agent", "agent@example.com")
    head = _read(["rev-parse", "HEAD"], work)
    operations.move_tag_and_push(str(work), "sync", head, "Sync pointer", str(origin))
    assert _read(["rev-parse", "sync^{commit}"], origin) == head
    assert _read(["tag", "-l", "--format=%(contents:subject)", "sync"], origin) == "Sync pointer"


def test_move_tag_failure_is_wrapped(fake_run):
    fake_run.return_value = _completed(stderr="fatal: bad ref", returncode=1)
    with pytest.raises(GitError, match="^moving tag sync: "):
        operations.move_tag_and_push("/w", "sync", "abc", "m", "origin")


def test_changed_files(fake_run):
    fake_run.return_value = _completed(stdout="a.yaml\nb.yaml\n")
    assert operations.changed_files("/w", "dir", "abc") == ["a.yaml", "b.yaml"]
    assert _git_args(fake_run) == [
        "diff", "--name-only", "--diff-filter=ACMRT", "abc", "--", "dir",
    ]


def test_changed_files_rejects_leading_slash(fake_run):
    with pytest.raises(ValueError, match="leading forward slash"):
        operations.changed_files("/w", "/dir", "abc")
    assert fake_run.call_count == 0


def test_file_last_commit(fake_run):
    fake_run.return_value = _completed(stdout="deadbeef")
    assert operations.file_last_commit("/w", "a.yaml") == "deadbeef"
    assert _git_args(fake_run) == ["log", "-n", "1", "--pretty=format:%H", "--", "a.yaml"]


def test_has_changes(fake_run):
    assert operations.has_changes("/w", "dir") is False
    fake_run.return_value = _completed(returncode=1)
    assert operations.has_changes("/w", "dir") is True
    assert _git_args(fake_run) == ["diff", "--quiet", "--", "dir"]