"""
Local overlay of files created in this session and not yet committed.

A file is local exactly when its path is a key here.
"""

from typing import Dict, List, Optional, Tuple


class LocalOverlayStore:
    """In-memory path -> content map. Each write replaces one path's value."""

    def __init__(self):
        self._files: Dict[str, str] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)

    def get(self, path: str) -> Optional[str]:
        return self._files.get(path)

    def put(self, path: str, content: str) -> None:
        self._files[path] = content

    def discard(self, path: str) -> Optional[str]:
        return self._files.pop(path, None)

    def paths(self) -> List[str]:
        return list(self._files)

    def items(self) -> List[Tuple[str, str]]:
        # Insertion order, which is creation order
        return list(self._files.items())

    def clear(self) -> None:
        self._files.clear()
