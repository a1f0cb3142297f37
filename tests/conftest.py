"""Shared fixtures: in-memory GitHub and Gemini services behind httpx.MockTransport."""

import asyncio
import base64
import hashlib
import json
import sys
from pathlib import Path

import httpx
import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from codestudio.config import SettingsStore  # noqa: E402
from codestudio.github_client import GitHubClient  # noqa: E402
from codestudio.workspace import Workspace  # noqa: E402


GITHUB_URL = "https://api.github.test"
GEMINI_URL = "https://gemini.test/v1beta"
TOKEN = "ghp_testtoken"
GEMINI_KEY = "gemini-test-key-0123456789"
OWNER = "octo"
REPO = "site"


def blob_sha(content):
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


def run(coro):
    return asyncio.run(coro)


class FakeGitHub:
    """A single repository with branches of plain text files."""

    def __init__(self):
        self.token = TOKEN
        self.branches = {
            "main": {
                "index.html": "<!DOCTYPE html>\n<p>home</p>\n",
                "README.md": "# site\n",
                "src/app.js": "console.log('app');\n",
                "src/lib/util.js": "export const one = 1;\n",
                "docs/guide.md": "# Guide\n",
            },
        }
        self.empty_dirs = {"main": {"empty"}}
        self.heads = {"main": "c0ffee0"}
        self.commits = {"main": [self._commit("c0ffee0", "Initial commit")]}
        self.requests = []
        self.gates = {}
        self.failures = {}
        self.created_refs = []

    def _commit(self, sha, message):
        return {
            "sha": sha,
            "commit": {
                "message": message,
                "author": {"name": "Octo Cat", "date": "2024-01-01T00:00:00Z"},
            },
            "author": {"login": OWNER},
        }

    def count(self, method, path):
        return sum(1 for m, p in self.requests if m == method and p == path)

    def sha_of(self, path, branch="main"):
        return blob_sha(self.branches[branch][path])

    def write(self, path, content, branch="main"):
        """Simulate a concurrent remote change."""
        self.branches[branch][path] = content

    async def handle(self, request):
        path = request.url.path
        self.requests.append((request.method, path))

        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()

        failure = self.failures.get((request.method, path))
        if failure is not None:
            status, headers = failure
            return httpx.Response(status, headers=headers, json={"message": "injected"})

        if request.headers.get("authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        if path == "/user":
            return httpx.Response(200, json={"login": OWNER, "name": "Octo Cat", "avatar_url": None})
        if path == "/user/repos":
            return httpx.Response(200, json=[
                {"owner": {"login": OWNER}, "name": REPO, "default_branch": "main", "private": False},
            ])

        prefix = f"/repos/{OWNER}/{REPO}"
        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rest = path[len(prefix):]

        if rest == "/branches":
            return httpx.Response(200, json=[
                {"name": name, "commit": {"sha": self.heads[name]}} for name in sorted(self.branches)
            ])
        if rest == "/commits":
            branch = request.url.params.get("sha", "main")
            return httpx.Response(200, json=list(reversed(self.commits.get(branch, []))))
        if rest == "/git/refs" and request.method == "POST":
            body = json.loads(request.content)
            name = body["ref"][len("refs/heads/"):]
            if name in self.branches:
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.created_refs.append((name, body["sha"]))
            source = next(
                b for b, commits in self.commits.items() if any(c["sha"] == body["sha"] for c in commits)
            )
            self.branches[name] = dict(self.branches[source])
            self.empty_dirs[name] = set(self.empty_dirs.get(source, set()))
            self.heads[name] = body["sha"]
            self.commits[name] = list(self.commits[source])
            return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})
        if rest == "/contents" or rest.startswith("/contents/"):
            file_path = rest[len("/contents/"):] if rest.startswith("/contents/") else ""
            if request.method == "PUT":
                return self._put(file_path, json.loads(request.content))
            branch = request.url.params.get("ref", "main")
            return self._get(file_path, branch)
        return httpx.Response(404, json={"message": "Not Found"})

    def _get(self, path, branch):
        files = self.branches.get(branch)
        if files is None:
            return httpx.Response(404, json={"message": "No commit found for the ref"})
        if path in files:
            content = files[path]
            return httpx.Response(200, json={
                "type": "file",
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": blob_sha(content),
                "size": len(content),
                "encoding": "base64",
                "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            })

        prefix = f"{path}/" if path else ""
        entries = {}
        for file_path, content in files.items():
            if not file_path.startswith(prefix):
                continue
            head, _, tail = file_path[len(prefix):].partition("/")
            child = prefix + head
            if tail:
                entries[head] = {"name": head, "path": child, "type": "dir", "sha": blob_sha(child), "size": 0}
            else:
                entries[head] = {"name": head, "path": child, "type": "file",
                                 "sha": blob_sha(content), "size": len(content)}
        for directory in self.empty_dirs.get(branch, set()):
            if directory.startswith(prefix) and "/" not in directory[len(prefix):]:
                name = directory[len(prefix):]
                entries[name] = {"name": name, "path": directory, "type": "dir", "sha": blob_sha(directory), "size": 0}

        if not entries and path not in self.empty_dirs.get(branch, set()) and path:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=[entries[name] for name in sorted(entries)])

    def _put(self, path, body):
        branch = body.get("branch", "main")
        files = self.branches[branch]
        if path in files:
            if "sha" not in body:
                return httpx.Response(422, json={"message": "\"sha\" wasn't supplied."})
            if body["sha"] != blob_sha(files[path]):
                return httpx.Response(409, json={"message": f"{path} does not match {body['sha']}"})
        content = base64.b64decode(body["content"]).decode("utf-8")
        files[path] = content
        commit_sha = blob_sha(f"{branch}:{path}:{content}:{len(self.commits[branch])}")[:7]
        self.heads[branch] = commit_sha
        self.commits[branch].append(self._commit(commit_sha, body["message"]))
        return httpx.Response(200, json={
            "content": {"name": path.rsplit("/", 1)[-1], "path": path, "sha": blob_sha(content)},
            "commit": {"sha": commit_sha},
        })


class FakeGemini:
    """Returns queued replies and records the prompts it receives."""

    def __init__(self):
        self.key = GEMINI_KEY
        self.replies = []
        self.prompts = []
        self.status = 200
        self.payload = None
        self.verifications = 0

    def reply_with(self, text):
        self.replies.append(text)

    async def handle(self, request):
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"message": "injected"}})
        if request.url.params.get("key") != self.key:
            return httpx.Response(400, json={"error": {"message": "API key not valid"}})
        if request.method == "GET":
            self.verifications += 1
            return httpx.Response(200, json={"models": [{"name": "models/gemini-1.5-flash"}]})
        body = json.loads(request.content)
        self.prompts.append(body["contents"][0]["parts"][0]["text"])
        if self.payload is not None:
            return httpx.Response(200, json=self.payload)
        text = self.replies.pop(0) if self.replies else "Sure."
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class FakeServices:
    def __init__(self):
        self.github = FakeGitHub()
        self.gemini = FakeGemini()

    async def __call__(self, request):
        if request.url.host == "gemini.test":
            return await self.gemini.handle(request)
        return await self.github.handle(request)


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def transport(services):
    return httpx.MockTransport(services)


@pytest.fixture
def github(services):
    return services.github


@pytest.fixture
def gemini(services):
    return services.gemini


@pytest.fixture
def client(transport):
    return GitHubClient(TOKEN, base_url=GITHUB_URL, transport=transport)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def workspace(settings, transport):
    return Workspace(settings, github_url=GITHUB_URL, gemini_url=GEMINI_URL, transport=transport)


@pytest.fixture
def opened(workspace):
    """A workspace signed in with the main branch of octo/site open."""
    async def setup():
        await workspace.configure_tokens(TOKEN, GEMINI_KEY)
        await workspace.select_repository(f"{OWNER}/{REPO}")
    run(setup())
    return workspace
