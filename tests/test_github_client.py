"""
Tests for GitHubClient request building and response handling.

The requests.Session is replaced with a MagicMock; no network access.
"""

import base64
from unittest.mock import MagicMock

import pytest
import requests

from gitkanban.config import Config
from gitkanban.errors import DeadlineExceeded, GitHubApiError
from gitkanban.github import GitHubClient
from gitkanban.transaction import Deadline


def _response(status=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    cfg = Config(repo_owner="octo", repo_name="site", branch="main")
    return GitHubClient(cfg, token="secret-token", session=session)


def _last_call(session):
    args, kwargs = session.request.call_args
    return args[0], args[1], kwargs


# ── Headers ──────────────────────────────────────────────────────────────────


def test_session_headers(client, session):
    assert session.headers["Authorization"] == "Bearer secret-token"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert session.headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert session.headers["User-Agent"] == "gitkanban"


def test_token_comes_from_environment(monkeypatch, session):
    monkeypatch.setenv("GITHUB_PAT", "from-env")
    GitHubClient(Config(repo_owner="o", repo_name="r"), session=session)
    assert session.headers["Authorization"] == "Bearer from-env"


# ── Reads ────────────────────────────────────────────────────────────────────


def test_read_head(client, session):
    session.request.return_value = _response(200, {"object": {"sha": "abc123"}})
    assert client.read_head() == "abc123"
    method, url, _ = _last_call(session)
    assert method == "GET"
    assert url == "https://api.github.com/repos/octo/site/git/ref/heads/main"


def test_read_head_error_keeps_status(client, session):
    session.request.return_value = _response(401, {"message": "Bad credentials"})
    with pytest.raises(GitHubApiError) as exc_info:
        client.read_head()
    assert exc_info.value.status == 401
    assert exc_info.value.details == "Bad credentials"


def test_read_head_malformed_body(client, session):
    session.request.return_value = _response(200, {"object": {}})
    with pytest.raises(GitHubApiError, match="Malformed"):
        client.read_head()


def test_read_file_decodes_base64(client, session):
    encoded = base64.b64encode("---\ntitle: Café\n---\n".encode("utf-8")).decode("ascii")
    # GitHub wraps base64 at 60 columns
    wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
    session.request.return_value = _response(200, {"encoding": "base64", "content": wrapped,
                                                   "sha": "blob1"})

    result = client.read_file("content/kanban/b/_board.md", ref="c0ffee")

    assert result.content == "---\ntitle: Café\n---\n"
    assert result.sha == "blob1"
    _, url, kwargs = _last_call(session)
    assert url.endswith("/contents/content/kanban/b/_board.md")
    assert kwargs["params"] == {"ref": "c0ffee"}


def test_read_file_defaults_to_branch(client, session):
    session.request.return_value = _response(404, {"message": "Not Found"})
    client.read_file("x.md")
    _, _, kwargs = _last_call(session)
    assert kwargs["params"] == {"ref": "main"}


def test_read_file_missing_is_none(client, session):
    session.request.return_value = _response(404, {"message": "Not Found"})
    assert client.read_file("nope.md") is None


def test_read_file_rejects_other_encodings(client, session):
    session.request.return_value = _response(200, {"encoding": "none", "content": "", "sha": "x"})
    with pytest.raises(GitHubApiError) as exc_info:
        client.read_file("big.md")
    assert exc_info.value.status == 400


def test_read_file_server_error(client, session):
    session.request.return_value = _response(500, ValueError("no json"), text="oops")
    with pytest.raises(GitHubApiError) as exc_info:
        client.read_file("x.md")
    assert exc_info.value.status == 500
    assert exc_info.value.details == "oops"


def test_read_directory(client, session):
    session.request.return_value = _response(200, [
        {"name": "_board.md", "path": "content/kanban/b/_board.md", "sha": "1", "type": "file"},
        {"name": "assets", "path": "content/kanban/b/assets", "sha": "2", "type": "dir"},
    ])
    entries = client.read_directory("content/kanban/b")
    assert [e.name for e in entries] == ["_board.md", "assets"]
    assert [e.is_dir for e in entries] == [False, True]


def test_read_directory_missing_is_empty(client, session):
    session.request.return_value = _response(404, {"message": "Not Found"})
    assert client.read_directory("content/kanban/none") == []


def test_read_directory_on_a_file(client, session):
    session.request.return_value = _response(200, {"type": "file", "name": "x"})
    with pytest.raises(GitHubApiError):
        client.read_directory("x.md")


# ── Writes ───────────────────────────────────────────────────────────────────


def test_create_tree_body(client, session):
    session.request.return_value = _response(201, {"sha": "tree2"})
    entries = [{"path": "a.md", "mode": "100644", "type": "blob", "content": "A"}]
    assert client.create_tree("tree1", entries) == "tree2"
    method, url, kwargs = _last_call(session)
    assert (method, url.rsplit("/repos/octo/site", 1)[1]) == ("POST", "/git/trees")
    assert kwargs["json"] == {"base_tree": "tree1", "tree": entries}


def test_create_commit_body(client, session):
    session.request.return_value = _response(201, {"sha": "commit2"})
    assert client.create_commit("tree2", ["commit1"], "msg") == "commit2"
    _, _, kwargs = _last_call(session)
    assert kwargs["json"] == {"message": "msg", "tree": "tree2", "parents": ["commit1"]}


def test_get_commit_tree(client, session):
    session.request.return_value = _response(200, {"sha": "c1", "tree": {"sha": "t1"}})
    assert client.get_commit_tree("c1") == "t1"


def test_update_ref_is_never_forced(client, session):
    session.request.return_value = _response(200, {"object": {"sha": "commit2"}})
    client.update_ref("commit2")
    method, url, kwargs = _last_call(session)
    assert method == "PATCH"
    assert url.endswith("/git/refs/heads/main")
    assert kwargs["json"] == {"sha": "commit2", "force": False}


def test_update_ref_not_fast_forward(client, session):
    session.request.return_value = _response(422, {"message": "Update is not a fast forward"})
    with pytest.raises(GitHubApiError) as exc_info:
        client.update_ref("commit2")
    assert exc_info.value.status == 422


def test_dispatch(client, session):
    session.request.return_value = _response(204, ValueError("empty"))
    client.dispatch("precompile-content", {"boardId": "b", "sha": "s"})
    method, url, kwargs = _last_call(session)
    assert method == "POST"
    assert url.endswith("/dispatches")
    assert kwargs["json"] == {"event_type": "precompile-content",
                              "client_payload": {"boardId": "b", "sha": "s"}}


# ── Transport and deadlines ──────────────────────────────────────────────────


def test_transport_error_has_no_status(client, session):
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(GitHubApiError) as exc_info:
        client.read_head()
    assert exc_info.value.status is None


def test_timeout_is_capped_by_deadline(client, session):
    now = [100.0]
    deadline = Deadline(3.0, clock=lambda: now[0])
    session.request.return_value = _response(200, {"object": {"sha": "abc"}})

    client.read_head(deadline)
    assert _last_call(session)[2]["timeout"] == 3.0

    now[0] = 102.5
    client.read_head(deadline)
    assert _last_call(session)[2]["timeout"] == pytest.approx(0.5)


def test_expired_deadline_skips_the_request(client, session):
    now = [0.0]
    deadline = Deadline(1.0, clock=lambda: now[0])
    now[0] = 5.0
    with pytest.raises(DeadlineExceeded):
        client.read_head(deadline)
    session.request.assert_not_called()
