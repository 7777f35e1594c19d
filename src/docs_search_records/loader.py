"""Loader for finished documentation pages (MDX with YAML frontmatter)."""

import logging
import re
import textwrap
from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.front_matter import front_matter_plugin

from docs_search_records.models import Document, SdkScope

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".mdx",)

_JSX_OPEN_RE = re.compile(r"^\s*<([A-Z][\w.]*)(?:\s[^>]*)?(?<!/)>\s*$")
_JSX_CLOSE_RE = re.compile(r"^\s*</([A-Z][\w.]*)\s*>\s*$")
_FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})")


def create_markdown_parser() -> MarkdownIt:
    """Create the Markdown parser used for content trees.

    Returns:
        CommonMark parser with tables, strikethrough and frontmatter. HTML
        blocks and indented code are disabled, so component tags parse as
        inline HTML and indentation inside components stays prose.
    """
    return (
        MarkdownIt("commonmark")
        .enable(["table", "strikethrough"])
        .disable(["code", "html_block"])
        .use(front_matter_plugin)
    )


def _fence_states(lines: list[str]) -> list[bool]:
    """Flag each line that sits inside (or delimits) a fenced code block."""
    flags: list[bool] = []
    marker: str | None = None
    for line in lines:
        match = _FENCE_RE.match(line)
        if marker is None:
            if match:
                marker = match.group(1)
            flags.append(marker is not None)
            continue
        flags.append(True)
        if match and match.group(1)[0] == marker[0] and len(match.group(1)) >= len(marker):
            marker = None
    return flags


def _find_closing_tag(lines: list[str], fenced: list[bool], start: int, name: str) -> int | None:
    depth = 0
    for index in range(start, len(lines)):
        if fenced[index]:
            continue
        opening = _JSX_OPEN_RE.match(lines[index])
        if opening and opening.group(1) == name:
            depth += 1
            continue
        closing = _JSX_CLOSE_RE.match(lines[index])
        if closing and closing.group(1) == name:
            if depth == 0:
                return index
            depth -= 1
    return None


def dedent_components(source: str) -> str:
    """Remove the indentation of content nested in component tags.

    MDX reads ``<Tab>``-style component children as ordinary Markdown no
    matter how far they are indented. For each component whose opening and
    closing tags sit alone on their lines, the tag lines are blanked (they
    carry no text) and the children are dedented by their common
    indentation, recursively, so headings and code fences inside components
    parse as such. Fenced code is left untouched.

    Args:
        source: Page source.

    Returns:
        Source with component content dedented.
    """
    lines = source.splitlines(keepends=True)
    return "".join(_dedent_lines(lines))


def _dedent_lines(lines: list[str]) -> list[str]:
    fenced = _fence_states(lines)
    result: list[str] = []
    index = 0
    while index < len(lines):
        line = lines[index]
        opening = None if fenced[index] else _JSX_OPEN_RE.match(line)
        end = _find_closing_tag(lines, fenced, index + 1, opening.group(1)) if opening else None
        if opening is None or end is None:
            result.append(line)
            index += 1
            continue
        inner = textwrap.dedent("".join(lines[index + 1 : end])).splitlines(keepends=True)
        result.append("\n")
        result.extend(_dedent_lines(inner))
        result.append("\n")
        index = end + 1
    return result


def _find_frontmatter(tree: SyntaxTreeNode) -> str | None:
    for child in tree.children:
        if child.type == "front_matter":
            return child.content
    return None


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class DocumentLoader:
    """Discovers and parses finished documentation pages."""

    DEFAULT_BASE_URL = "/docs"

    def __init__(self, base_url: str = DEFAULT_BASE_URL) -> None:
        """Initialise document loader.

        Args:
            base_url: Public URL prefix of the documentation site.
        """
        self.base_url = base_url.rstrip("/")
        self._markdown = create_markdown_parser()

    def discover(self, docs_path: Path) -> list[Path]:
        """List the documents below a directory in sorted order.

        Directories whose name starts with ``_`` hold build internals and
        are not descended into.

        Args:
            docs_path: Root directory of the finished documents.

        Returns:
            Sorted list of document paths.
        """
        found: list[Path] = []
        for path in sorted(docs_path.rglob("*")):
            if not path.is_file() or path.suffix not in DOCUMENT_SUFFIXES:
                continue
            relative_dirs = path.relative_to(docs_path).parts[:-1]
            if any(part.startswith("_") for part in relative_dirs):
                continue
            found.append(path)
        return found

    def parse_file(self, file_path: Path, base_path: Path) -> Document | None:
        """Parse a document and extract its frontmatter and content tree.

        Args:
            file_path: Path to the document.
            base_path: Root directory of the finished documents.

        Returns:
            Document instance, or None if the document must not be indexed.
        """
        relative_path = file_path.relative_to(base_path)
        try:
            source = file_path.read_text(encoding="utf-8")
            tree = SyntaxTreeNode(self._markdown.parse(dedent_components(source)))
        except Exception:  # noqa: BLE001
            logger.warning("Skipping %s: Parse error", relative_path)
            return None

        raw_frontmatter = _find_frontmatter(tree)
        if raw_frontmatter is None:
            logger.warning("Skipping %s: No frontmatter", relative_path)
            return None

        try:
            frontmatter = yaml.safe_load(raw_frontmatter)
        except yaml.YAMLError:
            logger.warning("Skipping %s: Invalid frontmatter", relative_path)
            return None
        if not isinstance(frontmatter, dict):
            logger.warning("Skipping %s: Invalid frontmatter", relative_path)
            return None

        return self._build_document(frontmatter, tree, relative_path)

    def _build_document(
        self, frontmatter: dict[str, Any], tree: SyntaxTreeNode, relative_path: Path
    ) -> Document | None:
        """Apply the exclusion rules and normalise frontmatter fields.

        Args:
            frontmatter: Parsed frontmatter mapping.
            tree: Parsed content tree.
            relative_path: Path relative to the documents root.

        Returns:
            Document instance, or None if the page is excluded.
        """
        if _is_truthy(frontmatter.get("redirectPage")):
            logger.debug("Skipping %s: Redirect page", relative_path)
            return None

        search = frontmatter.get("search")
        if not isinstance(search, dict):
            search = {}
        if _is_truthy(search.get("exclude")):
            logger.warning("Skipping %s: Search excluded", relative_path)
            return None

        title = frontmatter.get("title")
        if title is None or not str(title).strip():
            logger.warning("Skipping %s: No title in frontmatter", relative_path)
            return None

        description = frontmatter.get("description")
        canonical = frontmatter.get("canonical")
        keywords = search.get("keywords") or []
        if not isinstance(keywords, list):
            keywords = [keywords]

        return Document(
            path=relative_path.as_posix(),
            url=self._compute_url(relative_path),
            title=str(title),
            description=str(description) if description is not None else None,
            tree=tree,
            sdk=SdkScope.from_frontmatter(
                frontmatter.get("activeSdk"),
                frontmatter.get("availableSdks"),
            ),
            canonical=str(canonical) if canonical else None,
            page_rank=self._page_rank(frontmatter, search),
            keywords=[str(keyword).strip() for keyword in keywords if str(keyword).strip()],
        )

    @staticmethod
    def _page_rank(frontmatter: dict[str, Any], search: dict[str, Any]) -> int:
        rank = search.get("rank", frontmatter.get("pageRank", 0))
        try:
            return int(rank or 0)
        except (TypeError, ValueError):
            return 0

    def _compute_url(self, relative_path: Path) -> str:
        """Compute the public URL of a document.

        Args:
            relative_path: Path relative to the documents root.

        Returns:
            URL path such as ``/docs/guides/setup``.
        """
        parts = list(PurePosixPath(relative_path.as_posix()).with_suffix("").parts)
        if parts and parts[-1] == "index":
            parts.pop()
        if not parts:
            return self.base_url or "/"
        return f"{self.base_url}/{'/'.join(parts)}"
