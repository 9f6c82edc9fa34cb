"""
Atomic multi-file commits on top of the git data API.

    base tree ──┐
                ├─ create_tree ── create_commit ── CAS(branch ref)
    overlay ────┘

Steps before the CAS only build unreferenced objects, so a failure there
leaves the branch untouched. The CAS is the single point where a racing
writer is detected; it never forces the ref.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConflictError, GitHubApiError
from .github import GitHubClient
from .transaction import Deadline

logger = logging.getLogger(__name__)

FILE_MODE = "100644"


@dataclass
class FileChange:
    """A file to create or overwrite in the next commit."""
    path: str
    content: str


def build_overlay(upserts: Iterable[FileChange], deletions: Iterable[str]) -> List[Dict[str, Any]]:
    """Tree entries layered over the base tree.

    Upserts carry inline content; deletions carry ``sha: None``, which the
    trees API reads as "remove this path". Paths not listed are inherited
    from the base tree unchanged.
    """
    entries: List[Dict[str, Any]] = []
    seen = set()
    for change in upserts:
        if change.path in seen:
            raise ValueError(f"Duplicate path in commit: {change.path}")
        seen.add(change.path)
        entries.append({"path": change.path, "mode": FILE_MODE, "type": "blob",
                        "content": change.content})
    for path in deletions:
        if path in seen:
            raise ValueError(f"Path is both written and deleted: {path}")
        seen.add(path)
        entries.append({"path": path, "mode": FILE_MODE, "type": "blob", "sha": None})
    return entries


def build_commit(
    client: GitHubClient,
    upserts: Iterable[FileChange],
    deletions: Iterable[str],
    message: str,
    parent: str,
    deadline: Optional[Deadline] = None,
) -> str:
    """Create (but do not publish) a commit on top of ``parent``.

    Returns the new commit SHA. Raises GitHubApiError on any failed call.
    """
    overlay = build_overlay(upserts, deletions)
    base_tree = client.get_commit_tree(parent, deadline)
    tree = client.create_tree(base_tree, overlay, deadline)
    commit = client.create_commit(tree, [parent], message, deadline)
    logger.debug(f"Built commit {commit[:7]} ({len(overlay)} entries) on {parent[:7]}")
    return commit


def update_ref_cas(client: GitHubClient, new_sha: str, expected_sha: str,
                   deadline: Optional[Deadline] = None) -> None:
    """Move the branch from ``expected_sha`` to ``new_sha`` or raise ConflictError.

    The head is re-read first; a mismatch aborts without touching the ref.
    A 422 from the fast-forward-only update means the ref moved in between
    and is reported as the same ConflictError.
    """
    current = client.read_head(deadline)
    if current != expected_sha:
        logger.warning(f"CAS mismatch: expected {expected_sha[:7]}, found {current[:7]}")
        raise ConflictError(
            f"Expected HEAD {expected_sha} but found {current}",
            expected=expected_sha,
            actual=current,
        )
    try:
        client.update_ref(new_sha, deadline)
    except GitHubApiError as e:
        if e.status == 422:
            logger.warning(f"Ref update rejected as non-fast-forward: {e.details}")
            raise ConflictError(e.details or "Concurrent modification detected",
                                expected=expected_sha) from e
        raise


def commit_atomic(
    client: GitHubClient,
    upserts: Iterable[FileChange],
    deletions: Iterable[str],
    message: str,
    expected_parent: str,
    deadline: Optional[Deadline] = None,
) -> str:
    """Commit all ``upserts`` and ``deletions`` as one commit, or none of them.

    Returns the new head SHA. Raises ConflictError if the branch is no longer
    at ``expected_parent``, GitHubApiError for any other failure.
    """
    new_sha = build_commit(client, upserts, deletions, message, expected_parent, deadline)
    update_ref_cas(client, new_sha, expected_parent, deadline)
    logger.info(f"Committed {new_sha[:7]}: {message}")
    return new_sha
