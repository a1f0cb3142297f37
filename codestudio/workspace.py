"""
Workspace

The application context: owns the GitHub client, the overlay, the file
tree, the edit session and the assistant, and drives the control flow
from authentication through repository and branch selection to editing.
"""

import logging
import posixpath
from typing import List, Optional, Tuple

import httpx

from .assistant import AssistantBridge, AssistantReply, resolve_question
from .config import GEMINI_API_URL, GITHUB_API_URL, SettingsStore
from .errors import (
    BadRequest,
    Conflict,
    InvalidPath,
    MissingCredential,
    NoRepositorySelected,
    NotFound,
    StudioError,
)
from .file_types import default_content, language_for
from .github_client import BranchContents, GitHubClient
from .models import (
    BranchRef,
    CommitRecord,
    FileNode,
    GitHubUser,
    ProposalResponse,
    RepositoryRef,
    SessionResponse,
    TreeEntry,
)
from .overlay import LocalOverlayStore
from .session import EditSession, Proposal
from .tree import FileTree, parent_path

logger = logging.getLogger(__name__)

AUTO_OPEN_FILE = "index.html"

LoadedBranch = Tuple[BranchContents, FileTree, List[CommitRecord]]


def normalize_path(path: str) -> str:
    """
    Validate a repository-relative path and return it without stray slashes.

    Raises:
        InvalidPath: If the path is empty, absolute-looking or escapes the root
    """
    cleaned = (path or "").strip().strip("/")
    if not cleaned or "\\" in cleaned:
        raise InvalidPath(f"Invalid path: '{path}'")
    segments = cleaned.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise InvalidPath(f"Invalid path: '{path}'")
    return cleaned


class Workspace:
    """
    One user's editing context.

    Every piece of state is a field here; components get what they need
    passed in rather than reaching for module globals.
    """

    def __init__(
        self,
        settings: SettingsStore,
        github_url: str = GITHUB_API_URL,
        gemini_url: str = GEMINI_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.github_url = github_url
        self.gemini_url = gemini_url
        self.transport = transport

        self.github: Optional[GitHubClient] = None
        self.assistant: Optional[AssistantBridge] = None
        self.user: Optional[GitHubUser] = None
        self.repositories: List[RepositoryRef] = []

        self.repo: Optional[RepositoryRef] = None
        self.branches: List[BranchRef] = []
        self.branch: Optional[BranchRef] = None
        self.commits: List[CommitRecord] = []
        self.contents: Optional[BranchContents] = None
        self.tree: Optional[FileTree] = None

        self.overlay = LocalOverlayStore()
        self.session = EditSession(self.overlay)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    async def configure_tokens(self, github_token: str, gemini_token: str) -> GitHubUser:
        if not github_token.strip() or not gemini_token.strip():
            raise MissingCredential("Both a GitHub token and a Gemini API key are required.")

        bridge = AssistantBridge(gemini_token, base_url=self.gemini_url, transport=self.transport)
        try:
            await bridge.verify()
        finally:
            await bridge.close()

        self.settings.set_tokens(github_token, gemini_token)
        return await self.authenticate()

    async def authenticate(self) -> GitHubUser:
        """Verify the stored GitHub token and load the user's repositories."""
        client = GitHubClient(
            self.settings.github_token, base_url=self.github_url, transport=self.transport
        )
        try:
            user = await client.get_user()
            repositories = await client.list_repositories()
        except StudioError:
            await client.close()
            raise

        await self._close_clients()
        self._reset_repository()
        self.github = client
        self.user = user
        self.repositories = repositories
        self.assistant = AssistantBridge(
            self.settings.gemini_token, base_url=self.gemini_url, transport=self.transport
        )
        logger.info(f"Authenticated as {user.login} ({len(repositories)} repositories)")
        return user

    async def logout(self) -> None:
        await self._close_clients()
        self._reset_repository()
        self.user = None
        self.repositories = []
        self.settings.clear_tokens()
        logger.info("Logged out")

    async def _close_clients(self) -> None:
        if self.github:
            await self.github.close()
        if self.assistant:
            await self.assistant.close()
        self.github = None
        self.assistant = None

    def _reset_repository(self) -> None:
        self.repo = None
        self.branches = []
        self.branch = None
        self.commits = []
        self.contents = None
        self.tree = None
        self.overlay.clear()
        self.session = EditSession(self.overlay)

    def _require_github(self) -> GitHubClient:
        if self.github is None:
            raise MissingCredential("Not authenticated with GitHub.")
        return self.github

    def _require_branch(self) -> Tuple[RepositoryRef, BranchRef, BranchContents, FileTree]:
        if self.repo is None or self.branch is None or self.contents is None or self.tree is None:
            raise NoRepositorySelected()
        return self.repo, self.branch, self.contents, self.tree

    # ------------------------------------------------------------------
    # Repository and branch selection
    # ------------------------------------------------------------------

    async def select_repository(self, full_name: str) -> RepositoryRef:
        github = self._require_github()
        repo = next((r for r in self.repositories if r.full_name == full_name), None)
        if repo is None:
            raise NotFound(f"Repository '{full_name}' is not available.")

        branches = await github.list_branches(repo)
        branch = next((b for b in branches if b.name == repo.default_branch), None)
        if branch is None and branches:
            branch = branches[0]

        if branch is None:
            self._reset_repository()
            self.repo = repo
            return repo

        loaded = await self._load_branch(repo, branch)
        await self._activate(repo, branches, branch, loaded)
        return repo

    async def select_branch(self, name: str) -> BranchRef:
        if self.repo is None:
            raise NoRepositorySelected()
        branch = next((b for b in self.branches if b.name == name), None)
        if branch is None:
            raise NotFound(f"Branch '{name}' does not exist.")

        loaded = await self._load_branch(self.repo, branch)
        await self._activate(self.repo, self.branches, branch, loaded)
        return branch

    async def create_branch(self, name: str) -> BranchRef:
        github = self._require_github()
        repo, branch, _, _ = self._require_branch()
        name = name.strip()
        if not name:
            raise BadRequest("Branch name is empty.")

        # Branch from the head GitHub reports now, not the one seen on open
        current = next(
            (b for b in await github.list_branches(repo) if b.name == branch.name), branch
        )
        await github.create_branch(repo, name, current.commit_sha)
        branches = await github.list_branches(repo)
        created = next((b for b in branches if b.name == name), None)
        if created is None:
            raise NotFound(f"Branch '{name}' was not listed after creation.")

        loaded = await self._load_branch(repo, created)
        await self._activate(repo, branches, created, loaded)
        return created

    async def _load_branch(self, repo: RepositoryRef, branch: BranchRef) -> LoadedBranch:
        """Fetch everything a branch needs without touching current state."""
        contents = BranchContents(self._require_github(), repo, branch)
        tree = FileTree(contents.list_dir)
        await tree.load_root()
        commits = await contents.commits()
        return contents, tree, commits

    async def _activate(
        self,
        repo: RepositoryRef,
        branches: List[BranchRef],
        branch: BranchRef,
        loaded: LoadedBranch,
    ) -> None:
        contents, tree, commits = loaded
        self._reset_repository()
        self.repo = repo
        self.branches = branches
        self.branch = branch
        self.contents = contents
        self.tree = tree
        self.commits = commits
        self.session = EditSession(self.overlay, contents)
        logger.info(f"Opened {repo.full_name}@{branch.name}")

        index = next(
            (n for n in tree.root if n.name == AUTO_OPEN_FILE and not n.is_dir), None
        )
        if index is not None:
            try:
                await self.session.select(index)
            except StudioError as e:
                logger.warning(f"Could not open {AUTO_OPEN_FILE}: {e.message}")

    async def refresh_commits(self) -> List[CommitRecord]:
        """Reload the branch history and move the branch head to its newest commit."""
        _, branch, contents, _ = self._require_branch()
        self.commits = await contents.commits()
        if self.commits and self.commits[0].sha != branch.commit_sha:
            branch.commit_sha = self.commits[0].sha
        return self.commits

    # ------------------------------------------------------------------
    # Tree and editing
    # ------------------------------------------------------------------

    async def open(self, path: str) -> Optional[FileNode]:
        """Toggle a folder, or select a file. Returns the selected file."""
        _, _, _, tree = self._require_branch()
        node = tree.find(path)
        if node is None:
            raise NotFound(f"No file or folder at '{path}'.")
        if node.is_dir:
            await tree.toggle(node.path)
            return None
        await self.session.select(node)
        return node

    async def toggle_folder(self, path: str) -> bool:
        _, _, _, tree = self._require_branch()
        return await tree.toggle(path)

    def edit(self, content: str) -> None:
        self.session.edit(content)

    async def save(self, message: Optional[str] = None) -> Optional[str]:
        sha = await self.session.save(message)
        if sha is not None:
            try:
                await self.refresh_commits()
            except StudioError as e:
                logger.warning(f"Saved, but could not reload commits: {e.message}")
        return sha

    async def reload(self, keep_edits: bool = False) -> bool:
        return await self.session.reload(keep_edits=keep_edits)

    async def _prepare_create(self, name: str, path: str) -> Tuple[str, str, FileTree]:
        _, _, _, tree = self._require_branch()
        path = normalize_path(path)
        if posixpath.basename(path) != name.strip():
            raise InvalidPath(f"Name '{name}' does not match path '{path}'.")

        parent = parent_path(path)
        if parent:
            folder = tree.find(parent)
            if folder is None or not folder.is_dir:
                raise NotFound(f"No folder at '{parent}'.")
            # The parent's remote children must be known before the path
            # can be checked for uniqueness
            await tree.expand(parent)
        if path in tree:
            raise Conflict(f"'{path}' already exists.")
        return posixpath.basename(path), path, tree

    async def create_file(self, name: str, path: str) -> FileNode:
        """
        Create an overlay file seeded with its template and select it.

        The saved baseline is empty, so the new file starts dirty.
        """
        name, path, tree = await self._prepare_create(name, path)
        node = FileNode(path=path, name=name, kind="file", size=0)
        content = default_content(name)
        tree.add(node)
        self.overlay.put(path, content)
        self.session.load_new(node, content)
        logger.info(f"Created local file: {path}")
        return node

    async def create_folder(self, name: str, path: str) -> FileNode:
        name, path, tree = await self._prepare_create(name, path)
        node = FileNode(path=path, name=name, kind="directory")
        tree.add_folder(node)
        logger.info(f"Created local folder: {path}")
        return node

    async def publish(self, path: str, message: Optional[str] = None) -> str:
        """Commit an overlay file to the branch as a new file."""
        _, _, contents, tree = self._require_branch()
        content = self.overlay.get(path)
        node = tree.find(path)
        if content is None or node is None:
            raise NotFound(f"'{path}' is not a local file.")

        sha = await contents.write_file(path, content, message or f"Create {node.name}", None)
        node.sha = sha
        self.overlay.discard(path)
        if self.session.selected is node:
            self.session.saved_content = content
        logger.info(f"Published local file: {path}")

        try:
            await self.refresh_commits()
        except StudioError as e:
            logger.warning(f"Published, but could not reload commits: {e.message}")
        return sha

    # ------------------------------------------------------------------
    # Assistant
    # ------------------------------------------------------------------

    async def ask(
        self, text: Optional[str] = None, action: Optional[str] = None
    ) -> Tuple[AssistantReply, Optional[Proposal]]:
        """
        Ask the assistant about the current file.

        A code candidate in the reply becomes a pending proposal; it is
        never applied here.
        """
        if self.assistant is None:
            raise MissingCredential("Gemini API key is not configured.")
        try:
            question = resolve_question(text, action)
        except ValueError as e:
            raise BadRequest(str(e))

        selected = self.session.selected
        reply = await self.assistant.ask(
            question,
            selected.path if selected else None,
            self.session.current_content,
            self.tree.folder_structure() if self.tree else "",
            self.overlay.items(),
        )

        proposal = None
        session = self.session
        if (
            reply.candidate
            and selected is not None
            and session.selected is selected
            and not session.loading
        ):
            proposal = session.propose(reply.candidate)
        return reply, proposal

    def apply_proposal(self) -> Proposal:
        return self.session.apply_proposal()

    def reject_proposal(self) -> Proposal:
        return self.session.reject_proposal()

    # ------------------------------------------------------------------
    # Settings and snapshots
    # ------------------------------------------------------------------

    def toggle_theme(self) -> str:
        theme = "dark" if self.settings.theme == "light" else "light"
        self.settings.set_theme(theme)
        return theme

    def tree_entries(self) -> List[TreeEntry]:
        if self.tree is None:
            return []
        selected = self.session.selected
        return self.tree.materialize(
            selected.path if selected else None, self.overlay.paths()
        )

    def session_state(self) -> SessionResponse:
        session = self.session
        node = session.selected
        return SessionResponse(
            path=node.path if node else None,
            content=session.current_content,
            dirty=session.dirty,
            local=session.is_local,
            language=language_for(node.name) if node else None,
            sha=node.sha if node else None,
            proposal=proposal_response(session.proposal, session.pending_diff()),
        )

    async def close(self) -> None:
        await self._close_clients()


def proposal_response(
    proposal: Optional[Proposal], diff: Optional[str] = None
) -> Optional[ProposalResponse]:
    """Snapshot a proposal; ``diff`` overrides the diff against its base."""
    if proposal is None:
        return None
    return ProposalResponse(
        path=proposal.path,
        state=proposal.state.value,
        code=proposal.code,
        diff=proposal.diff() if diff is None else diff,
    )
