"""
File tree state and rendering.

Merges the root listing, lazily fetched folder listings and the set of
expanded folders into a render-ready structure.
"""

import asyncio
import logging
import posixpath
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from .errors import Conflict, NotFound
from .file_types import icon_for, language_for
from .models import FileNode, TreeEntry

logger = logging.getLogger(__name__)

FetchListing = Callable[[str], Awaitable[List[FileNode]]]


def parent_path(path: str) -> str:
    return posixpath.dirname(path.strip("/"))


class FileTree:
    """
    Root listing, folder contents cache and expansion set of one
    repository branch.

    The cache is never invalidated: an absent key means the folder was
    never fetched, an empty list means it was fetched and has no children.
    Collapsing keeps the cache, so re-expanding does not fetch again.
    """

    def __init__(self, fetch: FetchListing):
        self._fetch = fetch
        self._root: List[FileNode] = []
        self._root_loaded = False
        self._cache: Dict[str, List[FileNode]] = {}
        self._expanded: Set[str] = set()
        self._nodes: Dict[str, FileNode] = {}
        self._inflight: Dict[str, "asyncio.Future[List[FileNode]]"] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_root(self) -> List[FileNode]:
        listing = await self._fetch("")
        self._root = self._index(listing)
        self._root_loaded = True
        return list(self._root)

    async def ensure_loaded(self, path: str) -> List[FileNode]:
        """
        Return the children of ``path``, fetching them at most once.

        Concurrent callers for the same folder share one fetch. A failed
        fetch leaves the cache untouched so a later call tries again.
        """
        if path == "":
            if not self._root_loaded:
                await self.load_root()
            return list(self._root)

        if path in self._cache:
            return list(self._cache[path])

        pending = self._inflight.get(path)
        if pending is None:
            pending = asyncio.ensure_future(self._load_folder(path))
            self._inflight[path] = pending
        try:
            return list(await pending)
        finally:
            if self._inflight.get(path) is pending and pending.done():
                del self._inflight[path]

    async def _load_folder(self, path: str) -> List[FileNode]:
        listing = await self._fetch(path)
        children = self._index(listing)
        self._cache[path] = children
        logger.info(f"Loaded folder {path} ({len(children)} entries)")
        return children

    def _index(self, listing: Iterable[FileNode]) -> List[FileNode]:
        children = []
        for node in listing:
            if node.path in self._nodes:
                # Keep the node already shown, e.g. a locally created file
                continue
            self._nodes[node.path] = node
            children.append(node)
        return children

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def _directory(self, path: str) -> FileNode:
        node = self._nodes.get(path)
        if node is None or not node.is_dir:
            raise NotFound(f"No folder at '{path}'.")
        return node

    async def expand(self, path: str) -> None:
        self._directory(path)
        await self.ensure_loaded(path)
        self._expanded.add(path)

    def collapse(self, path: str) -> None:
        self._expanded.discard(path)

    async def toggle(self, path: str) -> bool:
        """Flip a folder's expansion and return the new state."""
        if path in self._expanded:
            self.collapse(path)
            return False
        await self.expand(path)
        return True

    def is_expanded(self, path: str) -> bool:
        return path in self._expanded

    def is_loaded(self, path: str) -> bool:
        if path == "":
            return self._root_loaded
        return path in self._cache

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @property
    def root(self) -> List[FileNode]:
        return list(self._root)

    def children(self, path: str) -> Optional[List[FileNode]]:
        if path == "":
            return list(self._root) if self._root_loaded else None
        cached = self._cache.get(path)
        return list(cached) if cached is not None else None

    def find(self, path: str) -> Optional[FileNode]:
        return self._nodes.get(path)

    def __contains__(self, path: str) -> bool:
        return path in self._nodes

    def add(self, node: FileNode) -> None:
        """
        Append a node under its parent folder.

        The parent must be the root or a folder whose contents are loaded.
        """
        if node.path in self._nodes:
            raise Conflict(f"'{node.path}' already exists.")

        parent = parent_path(node.path)
        if parent == "":
            self._root.append(node)
        else:
            self._directory(parent)
            if parent not in self._cache:
                raise NotFound(f"Folder '{parent}' is not loaded.")
            self._cache[parent].append(node)
        self._nodes[node.path] = node

    def add_folder(self, node: FileNode) -> None:
        """Add a new, empty folder and show it expanded without fetching."""
        self.add(node)
        self._cache[node.path] = []
        self._expanded.add(node.path)

    def clear(self) -> None:
        self._root = []
        self._root_loaded = False
        self._cache.clear()
        self._expanded.clear()
        self._nodes.clear()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def materialize(
        self, selected_path: Optional[str] = None, local_paths: Iterable[str] = ()
    ) -> List[TreeEntry]:
        local = set(local_paths)
        return self._render(self._root, selected_path, local)

    def _render(
        self, nodes: List[FileNode], selected_path: Optional[str], local: Set[str]
    ) -> List[TreeEntry]:
        entries = []
        for node in sorted(nodes, key=lambda n: (not n.is_dir, n.name.lower())):
            expanded = node.is_dir and node.path in self._expanded
            cached = self._cache.get(node.path) if node.is_dir else None
            children = None
            if expanded and cached is not None:
                children = self._render(cached, selected_path, local)
            entries.append(
                TreeEntry(
                    path=node.path,
                    name=node.name,
                    kind=node.kind,
                    icon=icon_for(node.name, node.is_dir, expanded),
                    language="plaintext" if node.is_dir else language_for(node.name),
                    selected=node.path == selected_path,
                    local=node.path in local,
                    expanded=expanded,
                    loaded=cached is not None,
                    children=children,
                )
            )
        return entries

    def folder_structure(self) -> str:
        """Indented listing of every known node, for assistant context."""
        lines: List[str] = []

        def walk(nodes: List[FileNode], level: int) -> None:
            for node in nodes:
                marker = "📁" if node.is_dir else "📄"
                lines.append(f"{'  ' * level}{marker} {node.name}")
                if node.is_dir and node.path in self._cache:
                    walk(self._cache[node.path], level + 1)

        walk(self._root, 0)
        return "\n".join(lines)
