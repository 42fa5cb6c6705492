"""TOC Tree Builder.

Builds a path trie from the source paths of the pages. Each node is one path
segment; children keep their insertion order, which follows the reading
order of the pages. The tree is rendered as an indented listing for dry runs
and walked by the EPUB compiler to build the navigation documents.
"""

from pathlib import PurePosixPath
from typing import Iterable

from schemas.page import Page


class TocNode:
    """A path segment of the table of contents.

    Attributes:
        name: Segment name
        children: Child nodes keyed by segment name
        link: Href of the first page under this node
        is_file: The node is a page file rather than a directory
    """

    def __init__(self, name: str, link: str | None = None, is_file: bool = False):
        self.name = name
        self.children: dict[str, TocNode] = {}
        self.link = link
        self.is_file = is_file

    def __repr__(self) -> str:
        return f"TocNode({self.name!r}, children={list(self.children)})"

    def visible_children(self, skip_files: bool = False) -> list["TocNode"]:
        return [c for c in self.children.values() if not (skip_files and c.is_file)]

    def render(self, indent: str = "  ", skip_files: bool = False) -> str:
        """Render the descendants of this node, one ``- name`` line each."""
        lines: list[str] = []
        for child in self.visible_children(skip_files):
            lines.append(f"{indent}- {child.name}")
            below = child.render(indent + "  ", skip_files)
            if below:
                lines.append(below)
        return "\n".join(lines)


class TocTree:
    """Path trie used for the table of contents.

    Example:
        tree = TocTree(strip_first_directory=True)
        tree.add("Vol 1/Chapter 1")
        tree.add("Vol 1/Chapter 2")
        print(tree.render(skip_files=True))
        #   - Chapter 1
        #   - Chapter 2

    Attributes:
        root: Unnamed root node
        strip_first_directory: Collapse a single top-level directory when
                               rendering directories only
    """

    def __init__(self, strip_first_directory: bool = False):
        self.root = TocNode("")
        self.strip_first_directory = strip_first_directory

    def add(self, path: str, link: str | None = None, is_file: bool = False) -> TocNode:
        """Insert every segment of ``path``, creating missing nodes.

        Inserting the same path twice is a no-op. The first link given for a
        node is kept, so each node points at its first page.

        Args:
            path: Slash separated path
            link: Href recorded on every node of the path that has none yet
            is_file: Mark the last segment as a page file

        Returns:
            The node of the last segment (the root for an empty path)
        """
        node = self.root
        parts = [p for p in PurePosixPath(path).parts if p not in ("/", ".")]
        for n, part in enumerate(parts):
            child = node.children.get(part)
            if child is None:
                child = TocNode(part, is_file=is_file and n == len(parts) - 1)
                node.children[part] = child
            if child.link is None:
                child.link = link
            node = child
        return node

    def top(self, skip_files: bool = False) -> TocNode:
        """Node whose children form the first level of the TOC."""
        node = self.root
        if skip_files and self.strip_first_directory:
            children = node.visible_children(skip_files)
            if len(children) == 1:
                node = children[0]
        return node

    def render(self, skip_files: bool = False, indent: str = "  ") -> str:
        return self.top(skip_files).render(indent, skip_files)

    @classmethod
    def from_pages(
        cls,
        pages: Iterable[Page],
        skip_files: bool = False,
        strip_first_directory: bool = False,
    ) -> "TocTree":
        """Build the tree of a page sequence.

        With ``skip_files`` only the directories of the pages are inserted,
        each linked to its first page; otherwise the file names are inserted
        as leaves.
        """
        tree = cls(strip_first_directory)
        for page in pages:
            if skip_files:
                tree.add(page.path, link=page.page_path)
            else:
                tree.add(page.source_path, link=page.page_path, is_file=True)
        return tree
