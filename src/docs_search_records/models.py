"""Data models for documentation search records."""

from dataclasses import dataclass, field, replace
from typing import Any

from markdown_it.tree import SyntaxTreeNode

HIERARCHY_ROOT = "Documentation"
MAX_HEADING_DEPTH = 6
CONTENT = "content"


def heading_kind(depth: int) -> str:
    """Return the record type for a heading of the given depth.

    Args:
        depth: Heading depth, 1 to 6.

    Returns:
        Record type such as ``lvl2``.

    Raises:
        ValueError: If the depth is outside 1 to 6.
    """
    if not 1 <= depth <= MAX_HEADING_DEPTH:
        msg = f"Heading depth out of range: {depth}"
        raise ValueError(msg)
    return f"lvl{depth}"


@dataclass(frozen=True)
class SdkScope:
    """SDK scoping of a page, normalised once from frontmatter.

    ``declared`` records whether the page listed its available SDKs at all;
    pages that did not are available to every SDK.
    """

    active: str | None = None
    available: tuple[str, ...] = ("all",)
    declared: bool = False

    @classmethod
    def from_frontmatter(cls, active: Any, available: Any) -> "SdkScope":
        """Build a scope from raw frontmatter values.

        Args:
            active: ``activeSdk`` value, if any.
            available: ``availableSdks`` value, either a comma-separated
                string or a list.

        Returns:
            Normalised SdkScope instance.
        """
        if isinstance(available, str):
            items = [item.strip() for item in available.split(",")]
        elif isinstance(available, list | tuple):
            items = [str(item).strip() for item in available]
        else:
            items = []
        items = [item for item in items if item]

        active_sdk = str(active).strip() if active else None
        if items:
            return cls(active=active_sdk or None, available=tuple(items), declared=True)
        return cls(active=active_sdk or None)


@dataclass
class Document:
    """A finished documentation page ready for indexing."""

    path: str
    url: str
    title: str
    description: str | None
    tree: SyntaxTreeNode
    sdk: SdkScope = field(default_factory=SdkScope)
    canonical: str | None = None
    page_rank: int = 0
    keywords: list[str] = field(default_factory=list)


@dataclass
class Hierarchy:
    """Six heading slots below a fixed top-level label.

    Setting a level clears every deeper level and leaves shallower ones alone.
    """

    lvl0: str = HIERARCHY_ROOT
    lvl1: str | None = None
    lvl2: str | None = None
    lvl3: str | None = None
    lvl4: str | None = None
    lvl5: str | None = None
    lvl6: str | None = None

    def set_level(self, depth: int, text: str) -> None:
        """Set a heading level and clear the levels below it.

        Args:
            depth: Heading depth, 1 to 6.
            text: Heading text for the level.
        """
        kind = heading_kind(depth)
        for deeper in range(depth + 1, MAX_HEADING_DEPTH + 1):
            setattr(self, f"lvl{deeper}", None)
        setattr(self, kind, text)

    def snapshot(self) -> "Hierarchy":
        """Return an independent copy of the current state."""
        return replace(self)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "lvl0": self.lvl0,
            "lvl1": self.lvl1,
            "lvl2": self.lvl2,
            "lvl3": self.lvl3,
            "lvl4": self.lvl4,
            "lvl5": self.lvl5,
            "lvl6": self.lvl6,
        }


@dataclass(frozen=True)
class ContentUnit:
    """One piece of indexable text, or a heading marker when content is None."""

    kind: str
    content: str | None
    anchor: str
    hierarchy: Hierarchy

    @property
    def is_heading(self) -> bool:
        return self.kind != CONTENT


@dataclass(frozen=True)
class RecordWeight:
    """Ranking weight of a search record."""

    page_rank: int
    level: int
    position: int

    def to_dict(self) -> dict[str, int]:
        return {"pageRank": self.page_rank, "level": self.level, "position": self.position}


@dataclass(frozen=True)
class SearchRecord:
    """A single record stored in the search index."""

    object_id: str
    url: str
    url_without_anchor: str
    anchor: str
    content: str | None
    type: str
    hierarchy: Hierarchy
    weight: RecordWeight
    sdk: list[str]
    available_sdks: list[str]
    canonical: str | None
    distinct_group: str
    keywords: list[str] = field(default_factory=list)
    branch: str | None = None
    record_batch: str | None = None

    def to_dict(self, include_batch: bool = True) -> dict[str, Any]:
        """Serialise the record into the index JSON shape.

        ``branch`` and ``record_batch`` are only present on records stamped
        for a synchronization run.

        Args:
            include_batch: Whether to include the synchronization fields.

        Returns:
            Dictionary with the persisted field names.
        """
        data: dict[str, Any] = {
            "objectID": self.object_id,
            "url": self.url,
            "url_without_anchor": self.url_without_anchor,
            "anchor": self.anchor,
            "content": self.content,
            "type": self.type,
            "keywords": list(self.keywords),
            "sdk": list(self.sdk),
            "availableSDKs": list(self.available_sdks),
            "canonical": self.canonical,
            "weight": self.weight.to_dict(),
            "hierarchy": self.hierarchy.to_dict(),
            "distinct_group": self.distinct_group,
        }
        if include_batch and self.branch is not None:
            data["branch"] = self.branch
        if include_batch and self.record_batch is not None:
            data["record_batch"] = self.record_batch
        return data


@dataclass
class IndexRun:
    """Summary of one pass over the documentation directory."""

    files_processed: int = 0
    files_skipped: int = 0
    records: list[SearchRecord] = field(default_factory=list)
