"""
Kanban board storage backend (GitHub repository).

Provides board-level transactions on top of the git data API:

    save()         - full-board save, optimistic on the branch head, no retry
    create_board() - new board metadata file, retried once on conflict
    load_board()   - board assembled from its files at one commit
    list_boards()  - every directory under content_root with a _board.md

Every operation returns a Result; no exception escapes.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import yaml

from .commits import FileChange, commit_atomic
from .config import Config
from .errors import (
    BoardExistsError,
    BoardNotFoundError,
    ConflictError,
    DeadlineExceeded,
    GitHubApiError,
    GitKanbanError,
    ValidationError,
)
from .events import ContentNotifier
from .github import GitHubClient
from .markdown import (
    BOARD_META_FILE,
    CARD_SUFFIX,
    assemble_board,
    board_dir,
    board_meta_path,
    card_path,
    parse_board_meta,
    parse_card,
    serialize_board,
    serialize_board_meta,
)
from .schema import Board, Column, utc_now
from .transaction import Committed, Conflict, Deadline, Failed, Outcome, retry_on_conflict
from .validation import validate_board_create, validate_board_id, validate_board_save

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = [
    ("ideas", "Ideas"),
    ("todo", "To Do"),
    ("in-progress", "In Progress"),
    ("done", "Done"),
]

# Result kind -> HTTP status
STATUS_BY_KIND = {
    "invalid_board_id": 400,
    "invalid_card_id": 400,
    "invalid_deleted_card_id": 400,
    "validation_error": 400,
    "board_not_found": 404,
    "already_exists": 409,
    "conflict": 409,
    "invalid_board_format": 500,
    "internal_error": 500,
    "timeout": 504,
}


@dataclass
class Result:
    """Tagged outcome of a store operation."""
    ok: bool
    kind: Optional[str] = None
    message: str = ""
    new_version: Optional[str] = None
    board_id: Optional[str] = None
    board: Optional[Board] = None
    boards: Optional[List[Dict[str, Any]]] = None
    upstream_status: Optional[int] = None

    @classmethod
    def failure(cls, kind: str, message: str, upstream_status: Optional[int] = None) -> "Result":
        return cls(ok=False, kind=kind, message=message, upstream_status=upstream_status)

    @property
    def status(self) -> int:
        if self.ok:
            return 200
        if self.kind == "github_error":
            # Upstream 5xx and transport failures are a bad gateway from our side
            if self.upstream_status is None or self.upstream_status >= 500:
                return 502
            return self.upstream_status
        return STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> Dict[str, Any]:
        if not self.ok:
            return {"ok": False, "kind": self.kind, "message": self.message}
        data: Dict[str, Any] = {"ok": True}
        if self.new_version:
            data["newVersion"] = self.new_version
        if self.board_id:
            data["boardId"] = self.board_id
        if self.board is not None:
            data["board"] = self.board.to_dict()
        if self.boards is not None:
            data["boards"] = self.boards
        return data


class GitBoardStore:
    """Board transactions against one branch of one repository."""

    def __init__(self, config: Config, client: Optional[GitHubClient] = None,
                 notifier: Optional[ContentNotifier] = None):
        self.config = config
        self.client = client or GitHubClient(config)
        self.notifier = notifier or ContentNotifier(self.client, config.dispatch_event)

    # ── Boundary ─────────────────────────────────────────────────────────────

    def _guard(self, operation: str, fn: Callable[[], Result]) -> Result:
        """Run ``fn`` and turn every exception into a failed Result."""
        try:
            return fn()
        except ValidationError as e:
            logger.info(f"{operation} rejected: {e.message}")
            return Result.failure(e.kind, e.message)
        except BoardNotFoundError as e:
            return Result.failure("board_not_found", str(e))
        except BoardExistsError as e:
            return Result.failure("already_exists", str(e))
        except ConflictError as e:
            logger.info(f"{operation} conflict: {e.message}")
            return Result.failure("conflict", "Concurrent modification detected")
        except DeadlineExceeded as e:
            logger.warning(f"{operation} timed out: {e}")
            return Result.failure("timeout", str(e))
        except GitHubApiError as e:
            logger.error(f"{operation} failed upstream: {e}")
            return Result.failure("github_error", e.message, upstream_status=e.status)
        except (ValueError, yaml.YAMLError) as e:
            logger.error(f"{operation} found malformed board content: {e}")
            return Result.failure("invalid_board_format", str(e))
        except Exception as e:
            logger.exception(f"{operation} failed")
            return Result.failure("internal_error", str(e) or e.__class__.__name__)

    def _deadline(self) -> Deadline:
        return Deadline(self.config.transaction_timeout)

    @staticmethod
    def _message(action: str, board_id: str, author: Optional[str]) -> str:
        message = f"kanban: {action} {board_id}"
        return f"{message} (by {author})" if author else message

    # ── Writes ───────────────────────────────────────────────────────────────

    def save(
        self,
        board: Board,
        board_id: str,
        expected_version: str,
        deleted_card_ids: Optional[List[str]] = None,
        author: Optional[str] = None,
    ) -> Result:
        """Replace a board's files in one commit on top of ``expected_version``.

        A stale ``expected_version`` is reported as a conflict and never
        retried; the caller reloads and decides what to resubmit.
        """
        return self._guard("save", lambda: self._save(
            board, board_id, expected_version, list(deleted_card_ids or []), author))

    def _save(self, board: Board, board_id: str, expected_version: str,
              deleted_card_ids: List[str], author: Optional[str]) -> Result:
        cfg = self.config
        validate_board_save(board, board_id, deleted_card_ids, cfg.max_columns, cfg.allowed_boards)
        if not expected_version:
            raise ValidationError("expectedVersion is required", field="expectedVersion")

        deadline = self._deadline()
        if self.client.read_file(board_meta_path(cfg.content_root, board_id), deadline) is None:
            raise BoardNotFoundError(f"Board {board_id} does not exist")

        head = self.client.read_head(deadline)
        if head != expected_version:
            logger.info(f"save {board_id}: stale version {expected_version[:7]}, head is {head[:7]}")
            return Result.failure("conflict", "Board was modified externally. Please reload.")

        stamped = replace(board, updated_at=utc_now())
        files = serialize_board(stamped, board_id, cfg.content_root)
        deletions = [card_path(cfg.content_root, board_id, card_id) for card_id in deleted_card_ids]

        new_version = commit_atomic(self.client, files, deletions,
                                    self._message("save", board_id, author),
                                    expected_version, deadline)
        self.notifier.notify(board_id, new_version)
        return Result(ok=True, new_version=new_version, board_id=board_id)

    def create_board(
        self,
        board_id: str,
        title: str,
        columns: Optional[List[Column]] = None,
        author: Optional[str] = None,
    ) -> Result:
        """Create a board with columns and no cards.

        Up to ``create_attempts`` read-check-commit cycles; an existing
        board ends the loop immediately.
        """
        return self._guard("create", lambda: self._create(board_id, title, columns, author))

    def _create(self, board_id: str, title: str, columns: Optional[List[Column]],
                author: Optional[str]) -> Result:
        cfg = self.config
        if not columns:
            columns = [Column(id=cid, title=ctitle) for cid, ctitle in DEFAULT_COLUMNS]
        validate_board_create(board_id, title, columns, cfg.max_columns, cfg.allowed_boards)

        meta_path = board_meta_path(cfg.content_root, board_id)
        message = self._message("create board", board_id, author)
        deadline = self._deadline()

        def attempt(n: int) -> Outcome:
            try:
                # Not atomic with the head read below: a board committed between
                # the two reads is already in that head and gets overwritten.
                if self.client.read_file(meta_path, deadline) is not None:
                    return Failed(BoardExistsError(f"Board {board_id} already exists"))
                head = self.client.read_head(deadline)
                now = utc_now()
                board = Board(
                    id=board_id,
                    title=title,
                    columns=[Column(id=c.id, title=c.title, description=c.description,
                                    color=c.color) for c in columns],
                    created_at=now,
                    updated_at=now,
                )
                sha = commit_atomic(self.client, [FileChange(meta_path, serialize_board_meta(board))],
                                    [], message, head, deadline)
                return Committed(sha, board_id)
            except ConflictError as e:
                logger.info(f"create {board_id}: attempt {n} conflicted ({e.message})")
                return Conflict(e.message)
            except GitKanbanError as e:
                return Failed(e)

        outcome = retry_on_conflict(attempt, cfg.create_attempts)
        if isinstance(outcome, Committed):
            self.notifier.notify(board_id, outcome.version)
            return Result(ok=True, new_version=outcome.version, board_id=board_id)
        if isinstance(outcome, Conflict):
            return Result.failure("conflict", "Concurrent modification detected")
        raise outcome.error

    # ── Reads ────────────────────────────────────────────────────────────────

    def load_board(self, board_id: str) -> Result:
        """Read a board and the version it was read at."""
        return self._guard("load", lambda: self._load(board_id))

    def _load(self, board_id: str) -> Result:
        cfg = self.config
        validate_board_id(board_id, cfg.allowed_boards)
        deadline = self._deadline()

        # Pin every read to one commit so the board matches its version
        head = self.client.read_head(deadline)
        meta_file = self.client.read_file(board_meta_path(cfg.content_root, board_id), deadline, ref=head)
        if meta_file is None:
            raise BoardNotFoundError(f"Board {board_id} does not exist")
        meta = parse_board_meta(meta_file.content)

        cards = []
        for entry in self.client.read_directory(board_dir(cfg.content_root, board_id), deadline, ref=head):
            if entry.is_dir or entry.name == BOARD_META_FILE or not entry.name.endswith(CARD_SUFFIX):
                continue
            card_file = self.client.read_file(entry.path, deadline, ref=head)
            if card_file is None:
                continue
            try:
                cards.append(parse_card(card_file.content))
            except (ValueError, yaml.YAMLError) as e:
                logger.warning(f"Skipping unreadable card {entry.path}: {e}")

        board = assemble_board(meta, cards)
        return Result(ok=True, board=board, board_id=board_id, new_version=head)

    def list_boards(self) -> Result:
        """Summaries of every board under content_root."""
        return self._guard("list", self._list)

    def _list(self) -> Result:
        cfg = self.config
        deadline = self._deadline()
        boards = []
        for entry in self.client.read_directory(cfg.content_root, deadline):
            if not entry.is_dir:
                continue
            meta_file = self.client.read_file(board_meta_path(cfg.content_root, entry.name), deadline)
            if meta_file is None:
                continue
            try:
                meta = parse_board_meta(meta_file.content)
            except (ValueError, yaml.YAMLError) as e:
                logger.warning(f"Skipping board {entry.name}: {e}")
                continue
            boards.append({"id": entry.name, "title": meta.title})
        return Result(ok=True, boards=boards)
