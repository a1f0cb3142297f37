"""
Edit Session

Holds the selected file, its buffer and the last durably saved content.
``dirty`` is true exactly when the two differ.
"""

import difflib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import InvalidPath, NoRepositorySelected, NotFound, SessionBusy
from .github_client import BranchContents
from .models import FileNode
from .overlay import LocalOverlayStore

logger = logging.getLogger(__name__)


class ProposalState(str, Enum):
    PROPOSED = "proposed"
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass
class Proposal:
    """A full-file replacement offered for the selected file."""

    path: str
    code: str
    base: str
    state: ProposalState = ProposalState.PROPOSED

    def diff(self, current: Optional[str] = None) -> str:
        """Unified diff from ``current`` (default: ``base``) to the proposed code."""
        before = self.base if current is None else current
        return "".join(
            difflib.unified_diff(
                before.splitlines(keepends=True),
                self.code.splitlines(keepends=True),
                fromfile=f"a/{self.path}",
                tofile=f"b/{self.path}",
            )
        )


class EditSession:
    """
    The single editing session of a workspace.

    Selection is last-select-wins: every select takes a sequence number
    and a fetch that resolves after a newer select leaves the state alone.
    Edits and saves are refused while a select is in flight.
    """

    def __init__(
        self, overlay: LocalOverlayStore, source: Optional[BranchContents] = None
    ):
        self.overlay = overlay
        self.source = source
        self.selected: Optional[FileNode] = None
        self.current_content = ""
        self.saved_content = ""
        self.proposal: Optional[Proposal] = None
        self._select_seq = 0
        self._loading_seq: Optional[int] = None
        self._saving = False

    @property
    def dirty(self) -> bool:
        return self.current_content != self.saved_content

    @property
    def loading(self) -> bool:
        return self._loading_seq is not None

    @property
    def is_local(self) -> bool:
        return self.selected is not None and self.selected.path in self.overlay

    def _set_selection(self, node: FileNode, content: str, saved: str) -> None:
        if self.selected is None or self.selected.path != node.path:
            self.proposal = None
        self.selected = node
        self.current_content = content
        self.saved_content = saved

    async def select(self, node: FileNode) -> bool:
        """
        Load ``node`` into the session.

        Returns False when a newer select superseded this one before its
        fetch resolved. On failure the previous selection stays intact.
        """
        if node.is_dir:
            raise InvalidPath(f"'{node.path}' is a folder.")

        self._select_seq += 1
        seq = self._select_seq

        local = self.overlay.get(node.path)
        if local is not None:
            self._loading_seq = None
            self._set_selection(node, local, local)
            return True

        if self.source is None:
            raise NoRepositorySelected()

        self._loading_seq = seq
        try:
            remote = await self.source.read_file(node.path)
        except Exception:
            if seq != self._select_seq:
                logger.warning(f"Discarding failed load of superseded selection {node.path}")
                return False
            raise
        finally:
            if self._loading_seq == seq:
                self._loading_seq = None

        if seq != self._select_seq:
            logger.warning(f"Ignoring superseded load of {node.path}")
            return False

        node.sha = remote.sha
        self._set_selection(node, remote.content, remote.content)
        logger.info(f"Opened file: {node.path}")
        return True

    def load_new(self, node: FileNode, content: str) -> None:
        """Select a just-created overlay file against an empty baseline."""
        self._select_seq += 1
        self._loading_seq = None
        self._set_selection(node, content, "")

    def _require_selection(self) -> FileNode:
        if self.loading:
            raise SessionBusy()
        if self.selected is None:
            raise NotFound("No file is selected.")
        return self.selected

    def edit(self, text: str) -> None:
        self._require_selection()
        self.current_content = text

    async def save(self, message: Optional[str] = None) -> Optional[str]:
        """
        Persist the buffer.

        Overlay files are written locally and never fail. Remote files are
        committed with the node's revision token; the new token returned by
        GitHub replaces it. Returns the new token, or None for overlay files.
        """
        node = self._require_selection()
        if self._saving:
            raise SessionBusy("A save is already in progress.")

        content = self.current_content
        if node.path in self.overlay:
            self.overlay.put(node.path, content)
            self.saved_content = content
            return None

        if self.source is None:
            raise NoRepositorySelected()

        self._saving = True
        try:
            new_sha = await self.source.write_file(
                node.path, content, message or f"Update {node.name}", node.sha
            )
        finally:
            self._saving = False

        node.sha = new_sha
        if self.selected is node:
            self.saved_content = content
        logger.info(f"Saved file: {node.path}")
        return new_sha

    async def reload(self, keep_edits: bool = False) -> bool:
        """
        Fetch the selected file again, refreshing its revision token.

        With ``keep_edits`` the buffer is kept and only the saved baseline
        moves to the remote content, so the next save overwrites it.
        """
        node = self._require_selection()
        if not keep_edits or node.path in self.overlay:
            return await self.select(node)

        buffer = self.current_content
        if not await self.select(node):
            return False
        self.current_content = buffer
        return True

    # ------------------------------------------------------------------
    # Proposed replacements
    # ------------------------------------------------------------------

    def propose(self, code: str) -> Proposal:
        node = self._require_selection()
        self.proposal = Proposal(path=node.path, code=code, base=self.current_content)
        return self.proposal

    def _pending_proposal(self) -> Proposal:
        node = self._require_selection()
        proposal = self.proposal
        if (
            proposal is None
            or proposal.state != ProposalState.PROPOSED
            or proposal.path != node.path
        ):
            raise NotFound("There is no pending proposal for this file.")
        return proposal

    def pending_diff(self) -> Optional[str]:
        """Diff of the pending proposal against the buffer as it is now."""
        proposal = self.proposal
        if proposal is None or proposal.state != ProposalState.PROPOSED:
            return None
        return proposal.diff(self.current_content)

    def apply_proposal(self) -> Proposal:
        """
        Overwrite the buffer with the proposed code. Unsaved until saved.

        Edits made after the proposal arrived are replaced too; ``base``
        is moved to the buffer that was overwritten.
        """
        proposal = self._pending_proposal()
        proposal.base = self.current_content
        self.current_content = proposal.code
        proposal.state = ProposalState.APPLIED
        return proposal

    def reject_proposal(self) -> Proposal:
        proposal = self._pending_proposal()
        proposal.state = ProposalState.REJECTED
        return proposal

    def clear(self) -> None:
        self._select_seq += 1
        self._loading_seq = None
        self.selected = None
        self.current_content = ""
        self.saved_content = ""
        self.proposal = None
