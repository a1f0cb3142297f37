"""
Code Studio Data and API Models

Pydantic models for the repository data model and for request/response
validation.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, computed_field


FileKind = Literal["file", "directory"]


# Repository data model

class GitHubUser(BaseModel):
    """Authenticated GitHub identity."""
    login: str = Field(..., description="Account login")
    name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")


class RepositoryRef(BaseModel):
    """A remote repository, identified by owner and name."""
    owner: str = Field(..., description="Owning account")
    name: str = Field(..., description="Repository name")
    default_branch: str = Field("main", description="Branch selected on open")
    private: bool = Field(False, description="Whether the repository is private")

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class BranchRef(BaseModel):
    """A branch and its head commit."""
    name: str = Field(..., description="Branch name")
    commit_sha: str = Field(..., description="Head commit identifier")


class FileNode(BaseModel):
    """A file or directory in the displayed tree. The path is unique."""
    path: str = Field(..., description="Path within the repository")
    name: str = Field(..., description="Base name")
    kind: FileKind = Field(..., description="'file' or 'directory'")
    sha: Optional[str] = Field(None, description="Revision token for safe overwrite")
    size: Optional[int] = Field(None, description="Size in bytes")

    @property
    def is_dir(self) -> bool:
        return self.kind == "directory"


class RemoteFile(BaseModel):
    """Decoded text of a remote file with its revision token."""
    path: str
    content: str
    sha: str


class CommitRecord(BaseModel):
    """Read-only commit history entry."""
    sha: str = Field(..., description="Commit identifier")
    message: str = Field(..., description="Commit message")
    author: str = Field(..., description="Author name or login")
    date: Optional[str] = Field(None, description="ISO 8601 timestamp")


class TreeEntry(BaseModel):
    """Render-ready tree node."""
    path: str
    name: str
    kind: FileKind
    icon: str = Field(..., description="Icon kind for the front end")
    language: str = Field(..., description="Syntax id for the editor")
    selected: bool = False
    local: bool = Field(False, description="Exists only in the local overlay")
    expanded: bool = False
    loaded: bool = Field(False, description="Children have been fetched")
    children: Optional[List["TreeEntry"]] = Field(
        None, description="None until the folder has been fetched"
    )


TreeEntry.model_rebuild()


# Token and settings models

class TokensRequest(BaseModel):
    """Request to store both credentials."""
    github_token: str = Field(..., description="GitHub personal access token")
    gemini_token: str = Field(..., description="Gemini API key")


class ThemeResponse(BaseModel):
    """Current editor theme."""
    theme: str = Field(..., description="'light' or 'dark'")


class AuthResponse(BaseModel):
    """Identity and repositories after authentication."""
    user: GitHubUser
    repositories: List[RepositoryRef]


# Repository selection models

class SelectRepositoryRequest(BaseModel):
    """Request to open a repository."""
    full_name: str = Field(..., description="'owner/name'")


class SelectBranchRequest(BaseModel):
    """Request to switch or create a branch."""
    name: str = Field(..., description="Branch name")


class BranchesResponse(BaseModel):
    """Branches of the selected repository."""
    branches: List[BranchRef]
    selected: Optional[str] = None


class CommitsResponse(BaseModel):
    """Commit history of the selected branch."""
    commits: List[CommitRecord]


# File operation models

class PathRequest(BaseModel):
    """Request naming a single path."""
    path: str = Field(..., description="Path within the repository")


class CreateRequest(BaseModel):
    """Request to create a file or folder."""
    name: str = Field(..., description="Base name of the new item")
    path: str = Field(..., description="Full path of the new item")


class EditRequest(BaseModel):
    """Replace the editor buffer."""
    content: str = Field(..., description="Full buffer contents")


class SaveRequest(BaseModel):
    """Request to save the selected file."""
    message: Optional[str] = Field(None, description="Commit message override")


class SessionResponse(BaseModel):
    """Snapshot of the edit session."""
    path: Optional[str] = Field(None, description="Selected file path")
    content: str = Field("", description="Current buffer")
    dirty: bool = Field(False, description="Buffer differs from last save")
    local: bool = Field(False, description="Selected file is an overlay file")
    language: Optional[str] = Field(None, description="Syntax id")
    sha: Optional[str] = Field(None, description="Revision token of the selected file")
    proposal: Optional["ProposalResponse"] = None


class TreeResponse(BaseModel):
    """Rendered file tree."""
    entries: List[TreeEntry]


# Assistant models

class AskRequest(BaseModel):
    """Question for the assistant."""
    text: Optional[str] = Field(None, description="Free-form question")
    action: Optional[str] = Field(None, description="Quick action name instead of text")


class ProposalResponse(BaseModel):
    """A code replacement offered by the assistant."""
    path: str
    state: str = Field(..., description="'proposed', 'applied' or 'rejected'")
    code: str
    diff: str = Field(..., description="Unified diff against the buffer")


class AskResponse(BaseModel):
    """Assistant reply."""
    reply: str = Field(..., description="Assistant's reply text")
    proposal: Optional[ProposalResponse] = None


SessionResponse.model_rebuild()


# Error response model

class ErrorResponse(BaseModel):
    """Error response."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
