"""
Markdown serialization for kanban boards.

Each board is a directory holding ``_board.md`` (board metadata and column
definitions) and one ``<card-id>.md`` per card. Files are YAML frontmatter
followed by a free-text body.

The emitter is hand-written for this closed schema so output is stable:
fixed field order, fixed quoting. Saving an unchanged card produces a
byte-identical file and therefore no diff.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .commits import FileChange
from .schema import Board, Card, Color, Column, format_timestamp, utc_now

logger = logging.getLogger(__name__)

BOARD_META_FILE = "_board.md"
CARD_SUFFIX = ".md"

_LEADING_SPECIAL = (" ", "-", "[", "{")
_RESERVED = {"true", "false", "null"}
_LEADING_DIGIT = re.compile(r"^[0-9]")
_FRONTMATTER = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
_TRUE_WORDS = {"true", "yes", "on"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Paths
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def board_dir(content_root: str, board_id: str) -> str:
    return f"{content_root.strip('/')}/{board_id}"


def board_meta_path(content_root: str, board_id: str) -> str:
    return f"{board_dir(content_root, board_id)}/{BOARD_META_FILE}"


def card_path(content_root: str, board_id: str, card_id: str) -> str:
    return f"{board_dir(content_root, board_id)}/{card_id}{CARD_SUFFIX}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Emitter
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def escape_value(value: str) -> str:
    """Quote a scalar if YAML could misread it, otherwise return it verbatim."""
    needs_quotes = (
        any(ord(ch) > 127 for ch in value)
        or any(ch in value for ch in (":", "#", '"', "'", "\n"))
        or value.startswith(_LEADING_SPECIAL)
        or _LEADING_DIGIT.match(value) is not None
        or value in _RESERVED
    )
    if not needs_quotes:
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _quoted_timestamp(value) -> str:
    return f'"{format_timestamp(value)}"'


def _is_colored(color: Optional[Color]) -> bool:
    return color is not None and color != Color.DEFAULT


def serialize_board_meta(board: Board) -> str:
    """Render ``_board.md`` for a board (columns only, no cards)."""
    lines = ["---"]
    lines.append(f"id: {board.id}")
    lines.append(f"title: {escape_value(board.title)}")
    lines.append(f"createdAt: {_quoted_timestamp(board.created_at)}")
    lines.append(f"updatedAt: {_quoted_timestamp(board.updated_at)}")

    lines.append("columns:")
    for column in board.columns:
        lines.append(f"  - id: {column.id}")
        lines.append(f"    title: {escape_value(column.title)}")
        if column.description:
            lines.append(f"    description: {escape_value(column.description)}")
        if _is_colored(column.color):
            lines.append(f"    color: {column.color.value}")

    lines.append("---")
    lines.append("")
    lines.append(f"Board configuration for {board.title}.")
    lines.append("")
    return "\n".join(lines)


def serialize_card(card: Card, column_id: str) -> str:
    """Render one card file. The body is the card description."""
    lines = ["---"]
    lines.append(f"id: {card.id}")
    lines.append(f"title: {escape_value(card.title)}")
    lines.append(f"column: {column_id}")

    if card.summary:
        lines.append(f"summary: {escape_value(card.summary)}")

    if card.labels:
        lines.append("labels:")
        for label in card.labels:
            lines.append(f"  - {escape_value(label)}")

    if card.checklist:
        lines.append("checklist:")
        for item in card.checklist:
            lines.append(f"  - id: {item.id}")
            lines.append(f"    text: {escape_value(item.text)}")
            lines.append(f"    completed: {'true' if item.completed else 'false'}")

    if card.plan_file:
        lines.append(f"planFile: {escape_value(card.plan_file)}")
    if _is_colored(card.color):
        lines.append(f"color: {card.color.value}")
    if card.pr_status:
        lines.append(f"prStatus: {card.pr_status.value}")

    lines.append(f"createdAt: {_quoted_timestamp(card.created_at or utc_now())}")
    if card.updated_at:
        lines.append(f"updatedAt: {_quoted_timestamp(card.updated_at)}")
    if card.archived_at:
        lines.append(f"archivedAt: {_quoted_timestamp(card.archived_at)}")
    if card.archive_reason:
        lines.append(f"archiveReason: {escape_value(card.archive_reason)}")

    if card.history:
        lines.append("history:")
        for entry in card.history:
            lines.append(f"  - type: {entry.type}")
            lines.append(f"    timestamp: {_quoted_timestamp(entry.timestamp)}")
            if entry.column_id:
                lines.append(f"    columnId: {entry.column_id}")
            if entry.column_title:
                lines.append(f"    columnTitle: {escape_value(entry.column_title)}")
            if entry.from_value is not None:
                lines.append(f"    from: {escape_value(entry.from_value)}")
            if entry.to_value is not None:
                lines.append(f"    to: {escape_value(entry.to_value)}")

    lines.append("---")
    if card.description:
        lines.append("")
        lines.append(card.description)
    lines.append("")
    return "\n".join(lines)


def serialize_board(board: Board, board_id: str, content_root: str) -> List[FileChange]:
    """Metadata file plus one file per card, in board order."""
    files = [FileChange(board_meta_path(content_root, board_id), serialize_board_meta(board))]
    for column in board.columns:
        for card in column.cards:
            files.append(FileChange(card_path(content_root, board_id, card.id),
                                    serialize_card(card, column.id)))
    return files


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Parser
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def parse_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a document into (frontmatter mapping, body).

    Scalars come back as strings: ids such as ``010`` or ``0x10`` are
    written unquoted and must not be read as numbers.
    """
    match = _FRONTMATTER.match(text)
    if not match:
        raise ValueError("Document has no frontmatter block")
    data = yaml.load(match.group(1), Loader=yaml.BaseLoader) or {}
    if not isinstance(data, dict):
        raise ValueError("Frontmatter is not a mapping")
    return data, match.group(2)


def _require(data: Dict[str, Any], keys: Tuple[str, ...], what: str) -> None:
    for key in keys:
        if key not in data or data[key] in (None, ""):
            raise ValueError(f"{what} is missing '{key}'")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return bool(value)


def parse_card(text: str) -> Tuple[Card, str]:
    """Parse a card file into (card, column id)."""
    data, body = parse_frontmatter(text)
    _require(data, ("id", "title", "column"), "Card")
    checklist = data.get("checklist") or []
    if not isinstance(checklist, list):
        raise ValueError("Card checklist is not a list")
    data["checklist"] = [dict(item, completed=_as_bool(item.get("completed")))
                         for item in checklist if isinstance(item, dict)]
    # Older files kept the description in frontmatter
    description = data.get("description") or body.strip() or None
    card = Card.from_dict(dict(data, description=description))
    return card, data["column"]


def parse_board_meta(text: str) -> Board:
    """Parse ``_board.md`` into a Board with empty columns."""
    data, _ = parse_frontmatter(text)
    _require(data, ("id", "title"), "Board metadata")
    columns = data.get("columns") or []
    if not isinstance(columns, list) or not columns:
        raise ValueError("Board metadata has no columns")
    return Board.from_dict(data)


def assemble_board(meta: Board, cards: List[Tuple[Card, str]]) -> Board:
    """Place parsed cards into the metadata's columns, oldest first.

    Cards that reference an unknown column are dropped with a warning.
    """
    by_column: Dict[str, List[Card]] = {column.id: [] for column in meta.columns}
    for card, column_id in sorted(cards, key=lambda pair: pair[0].created_at):
        if column_id not in by_column:
            logger.warning(f"Card {card.id} references unknown column '{column_id}', skipping")
            continue
        by_column[column_id].append(card)
    return Board(
        id=meta.id,
        title=meta.title,
        columns=[
            Column(id=c.id, title=c.title, description=c.description, color=c.color,
                   cards=by_column[c.id])
            for c in meta.columns
        ],
        created_at=meta.created_at,
        updated_at=meta.updated_at,
        schema_version=meta.schema_version,
    )
