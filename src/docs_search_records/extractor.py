"""Content extraction from parsed documentation pages.

The extractor walks a page's Markdown tree in document order and turns it
into a flat list of :class:`ContentUnit` objects: one marker per heading and
one unit per paragraph or flat list item, each tagged with the heading
hierarchy and anchor it appears under.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from markdown_it.tree import SyntaxTreeNode
from slugify import slugify

from docs_search_records.models import CONTENT, ContentUnit, Document, Hierarchy, heading_kind

logger = logging.getLogger(__name__)

MAIN_ANCHOR = "main"
MAX_CONTENT_LENGTH = 5000

SKIPPED_NODE_TYPES = frozenset({"table", "fence", "front_matter"})
LIST_TYPES = frozenset({"bullet_list", "ordered_list"})

_CALLOUT_RE = re.compile(r"\\?\[!(?:NOTE|WARNING|IMPORTANT|TIP|CAUTION|QUIZ)(?:\s+[^\]]+)?\]")
_CALLOUT_ANCHOR_RE = re.compile(r"\\?\[!(?:NOTE|WARNING|IMPORTANT|TIP|CAUTION|QUIZ)\s+([^\]]+)\]")
_HEADING_ID_RE = re.compile(r"\s*\{\{\s*id:\s*(['\"])(?P<id>[^'\"]+)\1\s*\}\}\s*$")
_TOOLTIP_OPEN_RE = re.compile(r"^<TooltipContent(\s[^>]*)?>$")
_TOOLTIP_CLOSE_RE = re.compile(r"^</TooltipContent\s*>$")
_DECAMELIZE_STEPS = (
    (re.compile(r"([A-Z]{2,})(\d+)"), r"\1 \2"),
    (re.compile(r"([a-z\d]+)([A-Z]{2,})"), r"\1 \2"),
    (re.compile(r"([a-z\d])([A-Z])"), r"\1 \2"),
    (re.compile(r"([A-Z]+)([A-Z][a-rt-z\d]+)"), r"\1 \2"),
)
_CONTRACTION_RE = re.compile(r"([a-zA-Z\d]+)'([ts])(\s|$)")


class Visit(Enum):
    """Traversal decision returned for every visited node."""

    CONTINUE = "continue"
    SKIP_SUBTREE = "skip_subtree"


def strip_backticks(text: str) -> str:
    return text.replace("`", "")


def strip_callout_syntax(text: str) -> str:
    """Remove callout markers such as ``[!NOTE]`` from text."""
    return _CALLOUT_RE.sub("", text).strip()


def extract_callout_anchor(text: str) -> str | None:
    """Return the anchor id of a callout marker like ``[!NOTE some-id]``, if any."""
    match = _CALLOUT_ANCHOR_RE.search(text)
    if match:
        return match.group(1).strip()
    return None


def split_heading_id(text: str) -> tuple[str, str | None]:
    """Separate a trailing ``{{ id: 'custom-id' }}`` annotation from heading text.

    Args:
        text: Raw heading text.

    Returns:
        Tuple of heading text without the annotation and the custom id.
    """
    match = _HEADING_ID_RE.search(text)
    if not match:
        return text, None
    return text[: match.start()].strip(), match.group("id")


def decamelize(text: str) -> str:
    """Split camelCase and PascalCase words, e.g. ``useUser`` into ``use User``."""
    for pattern, replacement in _DECAMELIZE_STEPS:
        text = pattern.sub(replacement, text)
    return text


class SlugCounter:
    """Generates anchor slugs that are unique within one document.

    The first occurrence of a slug is returned bare, later ones get ``-2``,
    ``-3`` and so on.
    """

    def __init__(self) -> None:
        self._occurrences: dict[str, int] = {}

    def slug(self, text: str) -> str:
        """Return the unique slug for a heading text.

        Args:
            text: Heading text.

        Returns:
            Slug, suffixed with a counter if it was seen before.
        """
        words = _CONTRACTION_RE.sub(r"\1\2\3", decamelize(text.replace("&", " and ")))
        base = slugify(words)
        if not base:
            return ""
        count = self._occurrences.get(base, 0) + 1
        self._occurrences[base] = count
        if count == 1:
            return base
        return f"{base}-{count}"


def _text_leaves(node: SyntaxTreeNode) -> Iterator[SyntaxTreeNode]:
    for child in node.children:
        if child.type == "image":
            continue
        if child.children:
            yield from _text_leaves(child)
        else:
            yield child


def extract_text(node: SyntaxTreeNode) -> str:
    """Concatenate the text and inline code below a node.

    Inline formatting markup contributes only its text. Images and
    ``<TooltipContent>`` spans are left out.

    Args:
        node: Any content tree node.

    Returns:
        Extracted text, trimmed.
    """
    parts: list[str] = []
    tooltip_depth = 0
    for leaf in _text_leaves(node):
        if leaf.type == "html_inline":
            if _TOOLTIP_OPEN_RE.match(leaf.content.strip()):
                tooltip_depth += 1
            elif _TOOLTIP_CLOSE_RE.match(leaf.content.strip()) and tooltip_depth:
                tooltip_depth -= 1
            continue
        if tooltip_depth:
            continue
        if leaf.type in ("text", "code_inline"):
            parts.append(leaf.content)
        elif leaf.type in ("softbreak", "hardbreak"):
            parts.append("\n")
    return "".join(parts).strip()


def has_nested_list(node: SyntaxTreeNode) -> bool:
    return node.type == "list_item" and any(child.type in LIST_TYPES for child in node.children)


@dataclass
class _ExtractionState:
    """Per-document traversal state; never shared between documents."""

    document: Document
    title: str
    hierarchy: Hierarchy
    slugs: SlugCounter = field(default_factory=SlugCounter)
    current_anchor: str | None = None
    units: list[ContentUnit] = field(default_factory=list)

    @property
    def anchor(self) -> str:
        return self.current_anchor or MAIN_ANCHOR


class ContentExtractor:
    """Turns a document's content tree into an ordered list of content units."""

    def __init__(self, max_content_length: int = MAX_CONTENT_LENGTH) -> None:
        """Initialise content extractor.

        Args:
            max_content_length: Exclusive upper bound on the length of
                paragraph and list item text.
        """
        self.max_content_length = max_content_length

    def extract(self, document: Document) -> list[ContentUnit]:
        """Extract the content units of a document in document order.

        Args:
            document: Parsed document.

        Returns:
            Ordered list of content units, starting with the title marker.
        """
        title = strip_backticks(document.title).strip()
        hierarchy = Hierarchy()
        state = _ExtractionState(document=document, title=title, hierarchy=hierarchy)

        if title:
            hierarchy.set_level(1, title)
            self._emit(state, heading_kind(1), None, MAIN_ANCHOR)

        self._walk(document.tree, state)
        return state.units

    def _walk(self, node: SyntaxTreeNode, state: _ExtractionState) -> None:
        for child in node.children:
            if self._visit(child, state) is Visit.CONTINUE:
                self._walk(child, state)

    def _visit(self, node: SyntaxTreeNode, state: _ExtractionState) -> Visit:
        if node.type in SKIPPED_NODE_TYPES:
            return Visit.SKIP_SUBTREE
        if node.type == "heading":
            self._visit_heading(node, state)
            return Visit.SKIP_SUBTREE
        if node.type == "blockquote":
            self._visit_blockquote(node, state)
            return Visit.SKIP_SUBTREE
        if node.type == "paragraph":
            self._emit_text(state, extract_text(node), state.anchor, "paragraph")
            return Visit.SKIP_SUBTREE
        if node.type == "list_item":
            if has_nested_list(node):
                return Visit.CONTINUE
            self._emit_text(state, extract_text(node), state.anchor, "list item")
            return Visit.SKIP_SUBTREE
        return Visit.CONTINUE

    def _visit_heading(self, node: SyntaxTreeNode, state: _ExtractionState) -> None:
        depth = int(node.tag[1:])
        text, custom_id = split_heading_id(extract_text(node))
        label = strip_backticks(text)

        if depth == 1 and label == state.title:
            # Covered by the title marker.
            state.hierarchy.set_level(1, label)
            state.current_anchor = MAIN_ANCHOR
            return

        anchor = custom_id or state.slugs.slug(text)
        state.hierarchy.set_level(depth, label)
        state.current_anchor = anchor
        self._emit(state, heading_kind(depth), None, anchor)

    def _visit_blockquote(self, node: SyntaxTreeNode, state: _ExtractionState) -> None:
        paragraphs = [child for child in node.children if child.type == "paragraph"]
        callout_anchor = None
        if node.children and node.children[0].type == "paragraph":
            callout_anchor = extract_callout_anchor(extract_text(node.children[0]))
        anchor = callout_anchor or state.anchor
        for paragraph in paragraphs:
            self._emit_text(state, extract_text(paragraph), anchor, "blockquote content")

    def _emit_text(self, state: _ExtractionState, raw_text: str, anchor: str, label: str) -> None:
        text = strip_callout_syntax(raw_text)
        if not text or text.startswith("|"):
            return
        if len(text) >= self.max_content_length:
            logger.warning(
                "Skipping oversized %s (%d chars) in %s", label, len(text), state.document.url
            )
            return
        self._emit(state, CONTENT, text, anchor)

    @staticmethod
    def _emit(state: _ExtractionState, kind: str, content: str | None, anchor: str) -> None:
        state.units.append(
            ContentUnit(kind=kind, content=content, anchor=anchor, hierarchy=state.hierarchy.snapshot())
        )
