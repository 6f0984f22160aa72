"""Data model for stored memories."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContentType(str, Enum):
    """What kind of thing a memory records."""

    INSIGHT = "insight"
    PREFERENCE = "preference"
    ERROR = "error"
    GOAL = "goal"
    DECISION = "decision"
    SECURITY = "security"
    MILESTONE = "milestone"
    CONVERSATION = "conversation"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


@dataclass
class MemoryMetadata:
    """Known metadata fields plus an open-ended ``extra`` mapping."""

    keywords: list[str] = field(default_factory=list)
    source: str = "unknown"
    compressed: bool = False
    original_length: int | None = None
    compressed_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("keywords", "source", "compressed", "original_length", "compressed_at")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MemoryMetadata:
        """Build from a stored or caller-supplied mapping. Unknown keys go to ``extra``."""
        data = dict(data or {})
        extra = dict(data.pop("extra", None) or {})
        for key in list(data):
            if key not in cls._KNOWN:
                extra[key] = data.pop(key)
        return cls(
            keywords=list(data.get("keywords") or []),
            source=str(data.get("source") or "unknown"),
            compressed=bool(data.get("compressed", False)),
            original_length=data.get("original_length"),
            compressed_at=data.get("compressed_at"),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"keywords": list(self.keywords), "source": self.source}
        if self.compressed:
            data["compressed"] = True
            data["original_length"] = self.original_length
            data["compressed_at"] = self.compressed_at
        if self.extra:
            data["extra"] = dict(self.extra)
        return data


@dataclass
class Memory:
    """A single stored memory record."""

    id: str
    agent_id: str
    project: str
    content: str
    content_type: str
    importance: int
    metadata: MemoryMetadata
    created_at: str
    updated_at: str | None = None
    deleted_at: str | None = None
    encrypted: bool = False

    @property
    def created_date(self) -> str:
        """UTC calendar date (``YYYY-MM-DD``) of creation."""
        return self.created_at[:10]

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "agent_id": self.agent_id,
            "project": self.project,
            "content": self.content,
            "content_type": self.content_type,
            "importance": self.importance,
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.encrypted:
            data["encrypted"] = True
        return data


@dataclass
class StoreResult:
    """Echo of a freshly persisted record."""

    id: str
    project: str
    agent_id: str
    content: str
    content_type: str
    importance: int
    created_at: str
    keywords: list[str] = field(default_factory=list)
    encrypted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "id": self.id,
            "project": self.project,
            "agent_id": self.agent_id,
            "content": self.content,
            "type": self.content_type,
            "importance": self.importance,
            "created_at": self.created_at,
            "keywords": list(self.keywords),
            "encrypted": self.encrypted,
        }


@dataclass
class SearchResult:
    """A memory matched by a query, with its ranking inputs."""

    memory: Memory
    relevance: float | None = None

    @property
    def score(self) -> float:
        """Ranking score: relevance x importance (importance alone when unscored)."""
        if self.relevance is None:
            return float(self.memory.importance)
        return self.relevance * self.memory.importance

    def to_dict(self) -> dict[str, Any]:
        data = self.memory.to_dict()
        if self.relevance is not None:
            data["relevance"] = round(self.relevance, 4)
        return data
