"""
GitHub Client

Read and write calls against the GitHub REST API. Pure request/response,
no local state beyond the HTTP connection.
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .config import GITHUB_API_URL, REQUEST_TIMEOUT
from .errors import (
    MalformedResponse,
    MissingCredential,
    NetworkError,
    error_for_status,
)
from .models import (
    BranchRef,
    CommitRecord,
    FileNode,
    GitHubUser,
    RemoteFile,
    RepositoryRef,
)

logger = logging.getLogger(__name__)


class GitHubClient:
    """
    Async client for the GitHub contents, branches and commits APIs.

    Failures raise the error taxonomy from ``errors``; nothing is retried.
    """

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise MissingCredential("No GitHub token is configured.")

        self.token = token
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": "codestudio",
            },
            timeout=timeout,
            transport=transport,
        )
        logger.info(f"GitHub client initialized with endpoint: {self.base_url}")

    async def _request(
        self,
        method: str,
        url: str,
        conflict_on_422: bool = False,
        **kwargs,
    ) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(detail=self._redact(str(e))) from e

        error = error_for_status(response, "GitHub", conflict_on_422=conflict_on_422)
        if error is not None:
            raise error

        try:
            return response.json()
        except ValueError:
            raise MalformedResponse("GitHub returned a non-JSON response.")

    def _redact(self, text: str) -> str:
        return text.replace(self.token, "***") if self.token else text

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user(self) -> GitHubUser:
        data = await self._request("GET", "/user")
        try:
            return GitHubUser(
                login=data["login"],
                name=data.get("name"),
                avatar_url=data.get("avatar_url"),
            )
        except (KeyError, TypeError, AttributeError):
            raise MalformedResponse("GitHub user payload is missing 'login'.")

    async def list_repositories(self) -> List[RepositoryRef]:
        data = await self._request(
            "GET", "/user/repos", params={"sort": "updated", "per_page": 100}
        )
        return [_repository(item) for item in _expect_list(data, "repositories")]

    async def list_branches(self, repo: RepositoryRef) -> List[BranchRef]:
        data = await self._request("GET", f"{_repo_url(repo)}/branches")
        try:
            return [
                BranchRef(name=item["name"], commit_sha=item["commit"]["sha"])
                for item in _expect_list(data, "branches")
            ]
        except (KeyError, TypeError):
            raise MalformedResponse("GitHub branch payload is missing name or commit.")

    async def list_contents(
        self, repo: RepositoryRef, path: str, ref: str
    ) -> List[FileNode]:
        """
        List a directory at ``ref``.

        The API order is kept; presentation order is the caller's concern.
        """
        data = await self._request(
            "GET", _contents_url(repo, path), params={"ref": ref}
        )
        if isinstance(data, dict):
            raise MalformedResponse(f"'{path}' is a file, not a directory.")
        return [_file_node(item) for item in _expect_list(data, "directory listing")]

    async def get_file(self, repo: RepositoryRef, path: str, ref: str) -> RemoteFile:
        data = await self._request(
            "GET", _contents_url(repo, path), params={"ref": ref}
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            raise MalformedResponse(f"'{path}' is not a file.")
        if data.get("encoding") != "base64":
            raise MalformedResponse(
                f"Unsupported encoding for '{path}': {data.get('encoding')}"
            )

        try:
            raw = base64.b64decode(data.get("content", "").replace("\n", ""))
            content = raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise MalformedResponse(f"'{path}' is not a text file.")

        return RemoteFile(path=path, content=content, sha=data.get("sha", ""))

    async def get_file_content(self, repo: RepositoryRef, path: str, ref: str) -> str:
        return (await self.get_file(repo, path, ref)).content

    async def list_commits(
        self, repo: RepositoryRef, ref: str, per_page: int = 30
    ) -> List[CommitRecord]:
        data = await self._request(
            "GET",
            f"{_repo_url(repo)}/commits",
            params={"sha": ref, "per_page": per_page},
        )
        return [_commit(item) for item in _expect_list(data, "commits")]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_file(
        self,
        repo: RepositoryRef,
        path: str,
        content: str,
        message: str,
        sha: Optional[str],
        branch: str,
    ) -> str:
        """
        Create or update a file and return the new revision token.

        ``sha`` must be the token of the revision being replaced; a stale
        token raises ``Conflict``. ``None`` creates a new file.
        """
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha

        data = await self._request(
            "PUT", _contents_url(repo, path), conflict_on_422=True, json=payload
        )
        try:
            new_sha = data["content"]["sha"]
        except (KeyError, TypeError):
            raise MalformedResponse("GitHub update response is missing the new sha.")

        logger.info(f"Committed {repo.full_name}:{branch}/{path}")
        return new_sha

    async def create_branch(
        self, repo: RepositoryRef, name: str, from_sha: str
    ) -> BranchRef:
        await self._request(
            "POST",
            f"{_repo_url(repo)}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": from_sha},
        )
        logger.info(f"Created branch {name} in {repo.full_name} at {from_sha[:7]}")
        return BranchRef(name=name, commit_sha=from_sha)

    async def close(self):
        if self.client:
            await self.client.aclose()


class BranchContents:
    """
    A GitHub client bound to one repository and branch.

    The tree and the edit session go through this instead of carrying the
    repository and ref around.
    """

    def __init__(self, client: GitHubClient, repo: RepositoryRef, branch: BranchRef):
        self.client = client
        self.repo = repo
        self.branch = branch

    async def list_dir(self, path: str) -> List[FileNode]:
        return await self.client.list_contents(self.repo, path, self.branch.name)

    async def read_file(self, path: str) -> RemoteFile:
        return await self.client.get_file(self.repo, path, self.branch.name)

    async def write_file(
        self, path: str, content: str, message: str, sha: Optional[str]
    ) -> str:
        return await self.client.update_file(
            self.repo, path, content, message, sha, self.branch.name
        )

    async def commits(self) -> List[CommitRecord]:
        return await self.client.list_commits(self.repo, self.branch.name)


def _repo_url(repo: RepositoryRef) -> str:
    return f"/repos/{quote(repo.owner, safe='')}/{quote(repo.name, safe='')}"


def _contents_url(repo: RepositoryRef, path: str) -> str:
    path = path.strip("/")
    return f"{_repo_url(repo)}/contents/{quote(path)}" if path else f"{_repo_url(repo)}/contents"


def _expect_list(data: Any, what: str) -> list:
    if not isinstance(data, list):
        raise MalformedResponse(f"Expected a list of {what} from GitHub.")
    return data


def _repository(item: Dict[str, Any]) -> RepositoryRef:
    try:
        return RepositoryRef(
            owner=item["owner"]["login"],
            name=item["name"],
            default_branch=item.get("default_branch") or "main",
            private=bool(item.get("private", False)),
        )
    except (KeyError, TypeError):
        raise MalformedResponse("GitHub repository payload is missing owner or name.")


def _file_node(item: Dict[str, Any]) -> FileNode:
    try:
        return FileNode(
            path=item["path"],
            name=item["name"],
            kind="directory" if item.get("type") == "dir" else "file",
            sha=item.get("sha"),
            size=item.get("size"),
        )
    except (KeyError, TypeError):
        raise MalformedResponse("GitHub content entry is missing path or name.")


def _commit(item: Dict[str, Any]) -> CommitRecord:
    try:
        commit = item["commit"]
        author = commit.get("author") or {}
        login = (item.get("author") or {}).get("login")
        return CommitRecord(
            sha=item["sha"],
            message=commit.get("message", ""),
            author=author.get("name") or login or "unknown",
            date=author.get("date"),
        )
    except (KeyError, TypeError, AttributeError):
        raise MalformedResponse("GitHub commit payload is missing sha or commit.")
