"""
Input validation for board writes.

Everything here runs before the first remote call, so a rejected request
never reaches the commit pipeline. Identifiers become file paths, which is
why they are held to a strict slug pattern.
"""
import re
from typing import Iterable, List, Optional

from .errors import ValidationError
from .schema import Board, Card, CardChange, ChangeType, Column

# Lowercase alphanumerics and hyphens, 1-50 chars, no leading hyphen
SAFE_ID = re.compile(r"^[a-z0-9][a-z0-9-]{0,48}[a-z0-9]?$")

MAX_BOARD_TITLE = 100
MAX_COLUMN_TITLE = 50
MAX_COLUMN_DESCRIPTION = 200
MAX_CARD_TITLE = 100
MAX_SUMMARY = 200
MAX_DESCRIPTION = 5000
MAX_LABELS = 20
MAX_LABEL_LENGTH = 50
MAX_ARCHIVE_REASON = 500
MAX_PLAN_FILE = 500


def is_safe_id(value) -> bool:
    """True if ``value`` is a slug that can be used as a path segment."""
    return isinstance(value, str) and SAFE_ID.fullmatch(value) is not None


def slugify(title: str) -> str:
    """Derive a board or card id from a title."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:50].rstrip("-")
    if not slug:
        raise ValidationError(
            f'Cannot generate an id from "{title}": it needs at least one letter or digit',
            kind="invalid_board_id",
        )
    return slug


def _check_length(value: Optional[str], limit: int, field: str, required: bool = False) -> None:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    if not value:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return
    if len(value) > limit:
        raise ValidationError(f"{field} exceeds {limit} characters", field=field)


def validate_board_id(board_id, allowed_boards: Iterable[str] = ()) -> None:
    allowed = list(allowed_boards)
    if not is_safe_id(board_id) or (allowed and board_id not in allowed):
        raise ValidationError(f"Invalid board id: {board_id!r}", kind="invalid_board_id",
                              field="boardId")


def validate_columns(columns: List[Column], max_columns: int) -> None:
    if not columns:
        raise ValidationError("At least one column is required", field="columns")
    if len(columns) > max_columns:
        raise ValidationError(f"A board may have at most {max_columns} columns", field="columns")
    seen = set()
    for column in columns:
        if not is_safe_id(column.id):
            raise ValidationError(f"Invalid column id: {column.id!r}", field="columns")
        if column.id in seen:
            raise ValidationError(f"Duplicate column id: {column.id}", field="columns")
        seen.add(column.id)
        _check_length(column.title, MAX_COLUMN_TITLE, f"Column {column.id} title", required=True)
        _check_length(column.description, MAX_COLUMN_DESCRIPTION, f"Column {column.id} description")


def validate_card(card: Card) -> None:
    if not is_safe_id(card.id):
        raise ValidationError(f"Invalid card id: {card.id!r}", kind="invalid_card_id",
                              field="cardId")
    _check_length(card.title, MAX_CARD_TITLE, f"Card {card.id} title", required=True)
    _check_length(card.summary, MAX_SUMMARY, f"Card {card.id} summary")
    _check_length(card.description, MAX_DESCRIPTION, f"Card {card.id} description")
    _check_length(card.plan_file, MAX_PLAN_FILE, f"Card {card.id} plan file")
    _check_length(card.archive_reason, MAX_ARCHIVE_REASON, f"Card {card.id} archive reason")
    if len(card.labels) > MAX_LABELS:
        raise ValidationError(f"Card {card.id} has more than {MAX_LABELS} labels", field="labels")
    for label in card.labels:
        _check_length(label, MAX_LABEL_LENGTH, f"Card {card.id} label")
    checklist_ids = [item.id for item in card.checklist]
    for item in card.checklist:
        if not is_safe_id(item.id):
            raise ValidationError(f"Card {card.id} has an invalid checklist id: {item.id!r}",
                                  field="checklist")
    if len(checklist_ids) != len(set(checklist_ids)):
        raise ValidationError(f"Card {card.id} has duplicate checklist ids", field="checklist")
    for entry in card.history:
        _validate_change(card.id, entry)


def _validate_change(card_id: str, entry: CardChange) -> None:
    # Written unquoted, so these must stay slugs
    if entry.type not in ChangeType.ALL and not is_safe_id(entry.type):
        raise ValidationError(f"Card {card_id} has an invalid history type: {entry.type!r}",
                              field="history")
    if entry.column_id and not is_safe_id(entry.column_id):
        raise ValidationError(f"Card {card_id} history names an invalid column: {entry.column_id!r}",
                              field="history")
    _check_length(entry.column_title, MAX_COLUMN_TITLE, f"Card {card_id} history column title")


def validate_board_save(
    board: Board,
    board_id: str,
    deleted_card_ids: List[str],
    max_columns: int,
    allowed_boards: Iterable[str] = (),
) -> None:
    """Reject a full-board save before anything is written.

    Raises ValidationError tagged with the kind reported to the caller.
    """
    validate_board_id(board_id, allowed_boards)
    if board.id != board_id:
        raise ValidationError(f"Board id {board.id!r} does not match {board_id!r}",
                              kind="invalid_board_id", field="board.id")
    _check_length(board.title, MAX_BOARD_TITLE, "Board title", required=True)
    validate_columns(board.columns, max_columns)

    seen = set()
    for column in board.columns:
        for card in column.cards:
            validate_card(card)
            if card.id in seen:
                raise ValidationError(f"Duplicate card id: {card.id}", kind="invalid_card_id",
                                      field="cardId")
            seen.add(card.id)

    for card_id in deleted_card_ids:
        if not is_safe_id(card_id):
            raise ValidationError(f"Invalid deleted card id: {card_id!r}",
                                  kind="invalid_deleted_card_id", field="deletedCardIds")
        if card_id in seen:
            raise ValidationError(f"Card {card_id} is both saved and deleted",
                                  kind="invalid_deleted_card_id", field="deletedCardIds")


def validate_board_create(
    board_id: str,
    title: str,
    columns: List[Column],
    max_columns: int,
    allowed_boards: Iterable[str] = (),
) -> None:
    validate_board_id(board_id, allowed_boards)
    _check_length(title, MAX_BOARD_TITLE, "Board title", required=True)
    validate_columns(columns, max_columns)
