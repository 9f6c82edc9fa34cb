"""Shared fixtures: an in-memory GitHub repository and a store wired to it."""

import hashlib
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Ensure the repository root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from gitkanban.config import Config
from gitkanban.errors import GitHubApiError
from gitkanban.events import ContentNotifier
from gitkanban.github import DirectoryEntry, FileContent
from gitkanban.store import GitBoardStore


def _sha(*parts: str) -> str:
    return hashlib.sha1("\0".join(parts).encode("utf-8")).hexdigest()


class FakeGitHub:
    """Implements the GitHubClient interface over dicts.

    Trees are flat ``path -> content`` mappings. ``fail_on`` names methods
    that answer with a 500; ``before_update_ref`` runs just before the ref
    PATCH so a test can slip in a competing commit.
    """

    def __init__(self, files: Optional[Dict[str, str]] = None, branch: str = "main"):
        self.branch = branch
        self.trees: Dict[str, Dict[str, str]] = {}
        self.commits: Dict[str, dict] = {}
        self.calls: List[str] = []
        self.dispatches: List[tuple] = []
        self.fail_on: set = set()
        self.before_update_ref: Optional[Callable[[], None]] = None
        self._counter = 0
        tree = self._store_tree(dict(files or {}))
        self.head = self._store_commit(tree, [], "initial")

    # ── helpers ──────────────────────────────────────────────────────────────

    def _store_tree(self, files: Dict[str, str]) -> str:
        sha = _sha("tree", *sorted(f"{p}={c}" for p, c in files.items()))
        self.trees[sha] = files
        return sha

    def _store_commit(self, tree: str, parents: List[str], message: str) -> str:
        self._counter += 1
        sha = _sha("commit", tree, *parents, message, str(self._counter))
        self.commits[sha] = {"tree": tree, "parents": list(parents), "message": message}
        return sha

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise GitHubApiError(f"{name} failed", 500, "injected failure")

    def files_at(self, ref: Optional[str] = None) -> Dict[str, str]:
        commit = self.head if ref in (None, self.branch) else ref
        return self.trees[self.commits[commit]["tree"]]

    def commit_external(self, changes: Dict[str, Optional[str]], message: str = "external") -> str:
        """Another writer commits directly on the branch."""
        files = dict(self.files_at())
        for path, content in changes.items():
            if content is None:
                files.pop(path, None)
            else:
                files[path] = content
        self.head = self._store_commit(self._store_tree(files), [self.head], message)
        return self.head

    # ── GitHubClient interface ───────────────────────────────────────────────

    def read_head(self, deadline=None) -> str:
        self._maybe_fail("read_head")
        return self.head

    def read_file(self, path, deadline=None, ref=None):
        self._maybe_fail("read_file")
        files = self.files_at(ref)
        if path not in files:
            return None
        return FileContent(content=files[path], sha=_sha("blob", files[path]))

    def read_directory(self, path, deadline=None, ref=None):
        self._maybe_fail("read_directory")
        prefix = path.rstrip("/") + "/"
        entries: Dict[str, DirectoryEntry] = {}
        for file_path in sorted(self.files_at(ref)):
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix):]
            name, _, remainder = rest.partition("/")
            kind = "dir" if remainder else "file"
            entries.setdefault(name, DirectoryEntry(name=name, path=prefix + name,
                                                    sha=_sha(prefix + name), kind=kind))
        return list(entries.values())

    def get_commit_tree(self, commit_sha, deadline=None) -> str:
        self._maybe_fail("get_commit_tree")
        if commit_sha not in self.commits:
            raise GitHubApiError("Failed to get commit", 404, "No commit found")
        return self.commits[commit_sha]["tree"]

    def create_tree(self, base_tree, entries, deadline=None) -> str:
        self._maybe_fail("create_tree")
        files = dict(self.trees[base_tree])
        for entry in entries:
            if "sha" in entry and entry["sha"] is None:
                files.pop(entry["path"], None)
            else:
                files[entry["path"]] = entry["content"]
        return self._store_tree(files)

    def create_commit(self, tree_sha, parents, message, deadline=None) -> str:
        self._maybe_fail("create_commit")
        return self._store_commit(tree_sha, parents, message)

    def update_ref(self, sha, deadline=None) -> None:
        if self.before_update_ref:
            hook, self.before_update_ref = self.before_update_ref, None
            hook()
        self._maybe_fail("update_ref")
        if self.head not in self.commits[sha]["parents"]:
            raise GitHubApiError("Failed to update ref", 422, "Update is not a fast forward")
        self.head = sha

    def dispatch(self, event_type, client_payload=None, deadline=None) -> None:
        self._maybe_fail("dispatch")
        self.dispatches.append((event_type, client_payload or {}))


BOARD_META = """---
id: roadmap
title: Roadmap
createdAt: "2026-01-01T00:00:00.000Z"
updatedAt: "2026-01-01T00:00:00.000Z"
columns:
  - id: todo
    title: To Do
  - id: done
    title: Done
---

Board configuration for Roadmap.
"""

CARD_ALPHA = """---
id: alpha
title: Alpha
column: todo
createdAt: "2026-01-02T00:00:00.000Z"
---

First card.
"""

CARD_BETA = """---
id: beta
title: Beta
column: done
createdAt: "2026-01-03T00:00:00.000Z"
---
"""


@pytest.fixture
def config():
    return Config(repo_owner="octo", repo_name="site", content_root="content/kanban")


@pytest.fixture
def fake_github():
    return FakeGitHub({
        "README.md": "# site\n",
        "content/kanban/roadmap/_board.md": BOARD_META,
        "content/kanban/roadmap/alpha.md": CARD_ALPHA,
        "content/kanban/roadmap/beta.md": CARD_BETA,
    })


@pytest.fixture
def store(config, fake_github):
    notifier = ContentNotifier(fake_github, config.dispatch_event, background=False)
    return GitBoardStore(config, client=fake_github, notifier=notifier)
