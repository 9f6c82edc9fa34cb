"""
Kanban board schema.

Board → Columns → Cards. Each card keeps an append-only history of
changes (column moves and field edits).

Field names follow Python conventions; to_dict()/from_dict() speak the
camelCase wire format used in API payloads and in the Markdown files.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value) -> Optional[str]:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``; strings pass through.

    PyYAML turns unquoted timestamps into datetime objects, so values read
    back from frontmatter may be either.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    return str(value)


class Color(Enum):
    """Column and card accent colors."""
    DEFAULT = "default"
    YELLOW = "yellow"
    ORANGE = "orange"
    PURPLE = "purple"
    BLUE = "blue"
    GREEN = "green"
    RED = "red"
    PINK = "pink"

    @classmethod
    def from_str(cls, value: Optional[str]) -> Optional["Color"]:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.DEFAULT


class PrStatus(Enum):
    """CI status of the pull request linked to a card."""
    PASSING = "passing"
    FAILING = "failing"
    PENDING = "pending"

    @classmethod
    def from_str(cls, value: Optional[str]) -> Optional["PrStatus"]:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ChangeType:
    """Known history entry types. Unknown types are kept as plain strings."""
    COLUMN = "column"
    TITLE = "title"
    DESCRIPTION = "description"
    LABELS = "labels"

    ALL = (COLUMN, TITLE, DESCRIPTION, LABELS)


@dataclass
class ChecklistItem:
    id: str
    text: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(
            id=str(data.get("id", "")),
            text=str(data.get("text", "")),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class CardChange:
    """One history entry. Column moves carry column_id/column_title,
    field edits carry from_value/to_value."""
    type: str
    timestamp: str = field(default_factory=utc_now)
    column_id: Optional[str] = None
    column_title: Optional[str] = None
    from_value: Optional[str] = None
    to_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "timestamp": self.timestamp}
        if self.column_id is not None:
            data["columnId"] = self.column_id
        if self.column_title is not None:
            data["columnTitle"] = self.column_title
        if self.from_value is not None:
            data["from"] = self.from_value
        if self.to_value is not None:
            data["to"] = self.to_value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CardChange":
        return cls(
            type=str(data.get("type", "")),
            timestamp=format_timestamp(data.get("timestamp")) or utc_now(),
            column_id=_joined(data.get("columnId")),
            column_title=_joined(data.get("columnTitle")),
            from_value=_joined(data.get("from")),
            to_value=_joined(data.get("to")),
        )


def _joined(value) -> Optional[str]:
    # Label edits may arrive as lists from older clients
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


@dataclass
class Card:
    """A task on the board."""
    id: str
    title: str
    summary: Optional[str] = None
    description: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    checklist: List[ChecklistItem] = field(default_factory=list)
    plan_file: Optional[str] = None
    color: Optional[Color] = None
    pr_status: Optional[PrStatus] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: Optional[str] = None
    archived_at: Optional[str] = None
    archive_reason: Optional[str] = None
    history: List[CardChange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
        }
        optional = {
            "summary": self.summary,
            "description": self.description,
            "planFile": self.plan_file,
            "color": self.color.value if self.color else None,
            "prStatus": self.pr_status.value if self.pr_status else None,
            "updatedAt": self.updated_at,
            "archivedAt": self.archived_at,
            "archiveReason": self.archive_reason,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.labels:
            data["labels"] = list(self.labels)
        if self.checklist:
            data["checklist"] = [item.to_dict() for item in self.checklist]
        if self.history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            summary=data.get("summary"),
            description=data.get("description"),
            labels=[str(label) for label in data.get("labels") or []],
            checklist=[ChecklistItem.from_dict(i) for i in data.get("checklist") or []],
            plan_file=data.get("planFile"),
            color=Color.from_str(data.get("color")),
            pr_status=PrStatus.from_str(data.get("prStatus")),
            created_at=format_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=format_timestamp(data.get("updatedAt")),
            archived_at=format_timestamp(data.get("archivedAt")),
            archive_reason=data.get("archiveReason"),
            history=[CardChange.from_dict(h) for h in data.get("history") or []],
        )


@dataclass
class Column:
    id: str
    title: str
    description: Optional[str] = None
    color: Optional[Color] = None
    cards: List[Card] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title}
        if self.description:
            data["description"] = self.description
        if self.color:
            data["color"] = self.color.value
        data["cards"] = [card.to_dict() for card in self.cards]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            description=data.get("description"),
            color=Color.from_str(data.get("color")),
            cards=[Card.from_dict(c) for c in data.get("cards") or []],
        )


@dataclass
class Board:
    """A board: ordered columns, each holding ordered cards."""
    id: str
    title: str
    columns: List[Column] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    schema_version: int = 1

    def card_ids(self) -> List[str]:
        """All card ids in board order."""
        return [card.id for column in self.columns for card in column.cards]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "id": self.id,
            "title": self.title,
            "columns": [column.to_dict() for column in self.columns],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        now = utc_now()
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            columns=[Column.from_dict(c) for c in data.get("columns") or []],
            created_at=format_timestamp(data.get("createdAt")) or now,
            updated_at=format_timestamp(data.get("updatedAt")) or now,
            schema_version=int(data.get("schemaVersion") or 1),
        )
