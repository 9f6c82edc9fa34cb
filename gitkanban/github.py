"""
GitHub REST client for the board repository.

Reads (refs, contents) treat 404 as absence. Writes cover the low-level
git objects needed for a single multi-file commit: trees, commits and the
branch ref. Every call takes an optional Deadline that caps its timeout.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import Config
from .errors import GitHubApiError
from .transaction import Deadline

logger = logging.getLogger(__name__)


@dataclass
class FileContent:
    """Decoded file contents plus the blob SHA they were read from."""
    content: str
    sha: str


@dataclass
class DirectoryEntry:
    name: str
    path: str
    sha: str
    kind: str  # "file", "dir", "symlink" or "submodule"

    @property
    def is_dir(self) -> bool:
        return self.kind == "dir"


def _field(data: Any, *keys: str, what: str) -> Any:
    """Walk ``keys`` into a JSON body, raising GitHubApiError if any is missing."""
    value = data
    for key in keys:
        if not isinstance(value, dict) or key not in value or value[key] is None:
            raise GitHubApiError(f"Malformed response for {what}: missing '{'.'.join(keys)}'")
        value = value[key]
    return value


class GitHubClient:
    """Thin wrapper over the endpoints the board store needs."""

    def __init__(self, config: Config, token: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.branch = config.branch
        self.repo_url = f"{config.api_url.rstrip('/')}/repos/{config.repo_owner}/{config.repo_name}"
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token if token is not None else config.token()}",
            "Accept": "application/vnd.github+json",
            "User-Agent": config.user_agent,
            "X-GitHub-Api-Version": config.api_version,
        })

    # ── Transport ────────────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        endpoint: str,
        deadline: Optional[Deadline] = None,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        timeout = self.config.request_timeout
        if deadline is not None:
            timeout = deadline.timeout(timeout)
        logger.debug(f"{method} {endpoint} (timeout={timeout:.1f}s)")
        try:
            return self.session.request(
                method,
                f"{self.repo_url}{endpoint}",
                json=json_body,
                params=params,
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise GitHubApiError(f"{method} {endpoint} failed", None, str(e)) from e

    @staticmethod
    def _error(message: str, response: requests.Response) -> GitHubApiError:
        try:
            details = response.json().get("message")
        except (ValueError, AttributeError):
            details = response.text[:200] if response.text else None
        return GitHubApiError(message, response.status_code, details)

    @staticmethod
    def _json(response: requests.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GitHubApiError(f"Malformed response for {what}: invalid JSON",
                                 response.status_code) from e

    # ── Reads ────────────────────────────────────────────────────────────────

    def read_head(self, deadline: Optional[Deadline] = None) -> str:
        """Return the commit SHA the branch currently points at."""
        response = self._request("GET", f"/git/ref/heads/{self.branch}", deadline)
        if not response.ok:
            raise self._error("Failed to get HEAD SHA", response)
        return _field(self._json(response, "ref"), "object", "sha", what="ref")

    def read_file(self, path: str, deadline: Optional[Deadline] = None,
                  ref: Optional[str] = None) -> Optional[FileContent]:
        """Return the decoded file at ``path``, or None if it does not exist.

        ``ref`` pins the read to a commit; the branch tip is used otherwise.
        """
        response = self._request("GET", f"/contents/{quote(path)}", deadline,
                                 params={"ref": ref or self.branch})
        if response.status_code == 404:
            return None
        if not response.ok:
            raise self._error(f"Failed to get file: {path}", response)

        data = self._json(response, path)
        if isinstance(data, list):
            raise GitHubApiError(f"Expected a file but found a directory: {path}", 400)
        encoding = data.get("encoding")
        if encoding != "base64":
            raise GitHubApiError(f"Unexpected encoding: {encoding}", 400)
        raw = _field(data, "content", what=path).replace("\n", "")
        try:
            content = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise GitHubApiError(f"Undecodable content: {path}", 400, str(e)) from e
        return FileContent(content=content, sha=_field(data, "sha", what=path))

    def read_directory(self, path: str, deadline: Optional[Deadline] = None,
                       ref: Optional[str] = None) -> List[DirectoryEntry]:
        """List the immediate children of ``path``; empty if it does not exist."""
        response = self._request("GET", f"/contents/{quote(path)}", deadline,
                                 params={"ref": ref or self.branch})
        if response.status_code == 404:
            return []
        if not response.ok:
            raise self._error(f"Failed to list directory: {path}", response)

        data = self._json(response, path)
        if not isinstance(data, list):
            raise GitHubApiError(f"Expected a directory but found a file: {path}", 400)
        return [
            DirectoryEntry(
                name=_field(item, "name", what=path),
                path=_field(item, "path", what=path),
                sha=item.get("sha", ""),
                kind=_field(item, "type", what=path),
            )
            for item in data
        ]

    def get_commit_tree(self, commit_sha: str, deadline: Optional[Deadline] = None) -> str:
        """Return the tree SHA a commit points at."""
        response = self._request("GET", f"/git/commits/{commit_sha}", deadline)
        if not response.ok:
            raise self._error("Failed to get commit", response)
        return _field(self._json(response, "commit"), "tree", "sha", what="commit")

    # ── Writes ───────────────────────────────────────────────────────────────

    def create_tree(self, base_tree: str, entries: List[Dict[str, Any]],
                    deadline: Optional[Deadline] = None) -> str:
        """Create a tree from ``base_tree`` with ``entries`` layered on top."""
        response = self._request("POST", "/git/trees", deadline,
                                 json_body={"base_tree": base_tree, "tree": entries})
        if not response.ok:
            raise self._error("Failed to create tree", response)
        return _field(self._json(response, "tree"), "sha", what="tree")

    def create_commit(self, tree_sha: str, parents: List[str], message: str,
                      deadline: Optional[Deadline] = None) -> str:
        """Create a commit object. No ref is moved."""
        response = self._request("POST", "/git/commits", deadline,
                                 json_body={"message": message, "tree": tree_sha, "parents": parents})
        if not response.ok:
            raise self._error("Failed to create commit", response)
        return _field(self._json(response, "commit"), "sha", what="commit")

    def update_ref(self, sha: str, deadline: Optional[Deadline] = None) -> None:
        """Fast-forward the branch to ``sha``. Never forced.

        GitHub answers 422 when the update is not a fast-forward; the caller
        decides what that means.
        """
        response = self._request("PATCH", f"/git/refs/heads/{self.branch}", deadline,
                                 json_body={"sha": sha, "force": False})
        if not response.ok:
            raise self._error("Failed to update ref", response)

    def dispatch(self, event_type: str, client_payload: Optional[Dict[str, Any]] = None,
                 deadline: Optional[Deadline] = None) -> None:
        """Trigger a repository_dispatch event."""
        response = self._request("POST", "/dispatches", deadline,
                                 json_body={"event_type": event_type,
                                            "client_payload": client_payload or {}})
        # 204 No Content is the success answer
        if not response.ok:
            raise self._error("Failed to trigger dispatch", response)
