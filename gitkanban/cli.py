"""
gitkanban CLI
-------------
Manage cards on a board from the command line. Every change is one commit
on the configured branch, made through the same store the server uses.

Usage:
    gitkanban add  --board roadmap --column ideas --title "My Card" [--labels "Small,Feature"]
    gitkanban move --board roadmap --card my-card --to in-progress
    gitkanban list --board roadmap [--column ideas]
    gitkanban create-board --title "Q3 Plans" [--id q3-plans]
"""
import argparse
import logging
import sys
from typing import List, Optional, Tuple

from .config import Config
from .errors import GitKanbanError
from .schema import Board, Card, CardChange, ChangeType, Column, utc_now
from .store import GitBoardStore
from .validation import slugify

logger = logging.getLogger(__name__)


class CommandError(GitKanbanError):
    """A CLI command could not be carried out."""
    pass


def _load(store: GitBoardStore, board_id: str) -> Tuple[Board, str]:
    result = store.load_board(board_id)
    if not result.ok:
        raise CommandError(result.message)
    return result.board, result.new_version


def _column(board: Board, column_id: str) -> Column:
    for column in board.columns:
        if column.id == column_id:
            return column
    valid = ", ".join(c.id for c in board.columns)
    raise CommandError(f'Column "{column_id}" not found. Valid columns: {valid}')


def _save(store: GitBoardStore, board: Board, version: str, author: Optional[str]) -> str:
    result = store.save(board, board.id, version, author=author)
    if not result.ok:
        raise CommandError(f"{result.kind}: {result.message}")
    return result.new_version


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_add(store: GitBoardStore, args) -> str:
    board, version = _load(store, args.board)
    column = _column(board, args.column)
    card_id = args.id or slugify(args.title)
    if card_id in board.card_ids():
        raise CommandError(f'Card with id "{card_id}" already exists')

    now = utc_now()
    card = Card(
        id=card_id,
        title=args.title,
        description=args.description or None,
        labels=[label.strip() for label in (args.labels or "").split(",") if label.strip()],
        created_at=now,
        history=[CardChange(type=ChangeType.COLUMN, timestamp=now,
                            column_id=column.id, column_title=column.title)],
    )
    column.cards.append(card)
    sha = _save(store, board, version, args.author)
    return f'✓ Card "{card.title}" added to {column.title} (id: {card_id}, commit {sha[:7]})'


def cmd_move(store: GitBoardStore, args) -> str:
    board, version = _load(store, args.board)
    target = _column(board, args.to)

    source = next((c for c in board.columns if any(card.id == args.card for card in c.cards)), None)
    if source is None:
        raise CommandError(f'Card "{args.card}" not found in board "{args.board}"')
    if source.id == target.id:
        return f'Card is already in "{target.id}" column'

    card = next(card for card in source.cards if card.id == args.card)
    source.cards.remove(card)
    now = utc_now()
    card.updated_at = now
    card.history.append(CardChange(type=ChangeType.COLUMN, timestamp=now,
                                   column_id=target.id, column_title=target.title))
    target.cards.append(card)
    logger.info(f"move {card.id}: {source.id} -> {target.id}")
    sha = _save(store, board, version, args.author)
    return f'✓ Card "{card.title}" moved to {target.title} (commit {sha[:7]})'


def cmd_list(store: GitBoardStore, args) -> str:
    board, _ = _load(store, args.board)
    if args.column:
        _column(board, args.column)

    lines: List[str] = [f"📋 {board.title}", ""]
    for column in board.columns:
        if args.column and column.id != args.column:
            continue
        lines.append(f"{column.title} ({len(column.cards)})")
        lines.append("─" * 40)
        for card in column.cards:
            labels = f" [{', '.join(card.labels)}]" if card.labels else ""
            lines.append(f"  • {card.id}: {card.title}{labels}")
        lines.append("")
    return "\n".join(lines)


def cmd_create_board(store: GitBoardStore, args) -> str:
    board_id = args.id or slugify(args.title)
    result = store.create_board(board_id, args.title, author=args.author)
    if not result.ok:
        raise CommandError(f"{result.kind}: {result.message}")
    return f'✓ Board "{args.title}" created (id: {board_id}, commit {result.new_version[:7]})'


COMMANDS = {
    "add": cmd_add,
    "move": cmd_move,
    "list": cmd_list,
    "create-board": cmd_create_board,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitkanban", description="Manage kanban boards in a GitHub repository")
    parser.add_argument("--config", help="Path to config.yaml (overrides GITKANBAN_CONFIG)")
    parser.add_argument("--author", help="Name credited in the commit message")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a new card")
    add.add_argument("--board", required=True)
    add.add_argument("--column", required=True)
    add.add_argument("--title", required=True)
    add.add_argument("--id", help="Card id (default: derived from the title)")
    add.add_argument("--description")
    add.add_argument("--labels", help="Comma-separated labels")

    move = sub.add_parser("move", help="Move a card between columns")
    move.add_argument("--board", required=True)
    move.add_argument("--card", required=True)
    move.add_argument("--to", required=True)

    lst = sub.add_parser("list", help="List cards in a board")
    lst.add_argument("--board", required=True)
    lst.add_argument("--column")

    create = sub.add_parser("create-board", help="Create a board with the default columns")
    create.add_argument("--title", required=True)
    create.add_argument("--id", help="Board id (default: derived from the title)")
    return parser


def main(argv: Optional[List[str]] = None, store: Optional[GitBoardStore] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        store = store or GitBoardStore(Config.load(args.config))
        print(COMMANDS[args.command](store, args))
    except GitKanbanError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
