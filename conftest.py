import os
import subprocess

import pytest

from gitstats import RawRecord


@pytest.fixture
def sample_records():
    """Two commits by Alice, one by "bob", two by "Bob Kay", with their numstat lines."""
    return [
        RawRecord("Alice", "2025-01-01", is_commit=True),
        RawRecord("Alice", "2025-01-01", lines_added=3),
        RawRecord("Alice", "2025-01-05", is_commit=True),
        RawRecord("Alice", "2025-01-05", lines_added=1, lines_deleted=1),
        RawRecord("bob", "2025-01-08", is_commit=True),
        RawRecord("bob", "2025-01-08", lines_added=2),
        RawRecord("Bob Kay", "2025-01-08", is_commit=True),
        RawRecord("Bob Kay", "2025-01-08", lines_added=1),
        RawRecord("Bob Kay", "2025-01-20", is_commit=True),
        RawRecord("Bob Kay", "2025-01-20", lines_added=1),
    ]


@pytest.fixture
def git_repo(tmp_path):
    """
    Repository on branch ``main`` whose history matches ``sample_records``:

    2025-01-01 Alice   app.py +3
    2025-01-05 Alice   app.py +1 -1
    2025-01-08 bob     lib.py +2
    2025-01-08 Bob Kay  readme.md +1
    2025-01-20 Bob Kay  lib.py +1
    """
    repo = tmp_path / "repo"
    repo.mkdir()

    def run(*args, env=None):
        subprocess.run(
            ["git", "-C", str(repo)] + list(args),
            check=True,
            capture_output=True,
            env=env,
        )

    def commit(author, email, day, message):
        stamp = f"{day}T12:00:00+00:00"
        env = dict(
            os.environ,
            GIT_AUTHOR_DATE=stamp,
            GIT_COMMITTER_DATE=stamp,
        )
        run("add", ".")
        run("commit", "-m", message, f"--author={author} <{email}>", env=env)

    run("init")
    run("symbolic-ref", "HEAD", "refs/heads/main")
    run("config", "user.email", "tester@test.com")
    run("config", "user.name", "Tester")
    run("config", "commit.gpgsign", "false")

    (repo / "app.py").write_text("one\ntwo\nthree\n", encoding="utf-8")
    commit("Alice", "alice@example.com", "2025-01-01", "initial")

    (repo / "app.py").write_text("one\ntwo\nTHREE\n", encoding="utf-8")
    commit("Alice", "alice@example.com", "2025-01-05", "shout")

    (repo / "lib.py").write_text("a = 1\nb = 2\n", encoding="utf-8")
    commit("bob", "bob@example.com", "2025-01-08", "add lib")

    (repo / "readme.md").write_text("# App\n", encoding="utf-8")
    commit("Bob Kay", "bob.kay@example.com", "2025-01-08", "add readme")

    (repo / "lib.py").write_text("a = 1\nb = 2\nc = 3\n", encoding="utf-8")
    commit("Bob Kay", "bob.kay@example.com", "2025-01-20", "extend lib")

    return str(repo)
