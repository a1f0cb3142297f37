"""
Code Studio Backend

FastAPI application serving the Code Studio editor.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables before configuration is read
load_dotenv()

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import HOST, PORT, SettingsStore
from .errors import StudioError
from .models import (
    AskRequest,
    AskResponse,
    AuthResponse,
    BranchesResponse,
    CommitsResponse,
    CreateRequest,
    EditRequest,
    ErrorResponse,
    PathRequest,
    SaveRequest,
    SelectBranchRequest,
    SelectRepositoryRequest,
    SessionResponse,
    ThemeResponse,
    TokensRequest,
    TreeResponse,
)
from .workspace import Workspace, proposal_response

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Code Studio",
    description="Web code editor for GitHub repositories with an AI assistant",
    version="1.0.0",
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Create the workspace and sign in with stored tokens, if any."""
    workspace = Workspace(SettingsStore())
    app.state.workspace = workspace
    logger.info(f"Code Studio starting on {HOST}:{PORT}")

    if workspace.settings.tokens_configured:
        try:
            await workspace.authenticate()
        except StudioError as e:
            logger.warning(f"Stored GitHub token was rejected: {e.message}")


@app.on_event("shutdown")
async def shutdown_event():
    """Close remote clients on shutdown."""
    workspace = getattr(app.state, "workspace", None)
    if workspace:
        await workspace.close()
    logger.info("Code Studio shut down")


def get_workspace() -> Workspace:
    return app.state.workspace


frontend_path = Path(__file__).parent.parent / "frontend"
if (frontend_path / "static").exists():
    app.mount("/static", StaticFiles(directory=str(frontend_path / "static")), name="static")


@app.get("/", response_class=FileResponse)
async def serve_index():
    """Serve the main frontend HTML."""
    index_path = frontend_path / "index.html"
    if not index_path.exists():
        raise HTTPException(status_code=404, detail="Frontend not found")
    return FileResponse(index_path)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    workspace = get_workspace()
    return {
        "status": "ok",
        "service": "Code Studio",
        "authenticated": workspace.authenticated,
        "repository": workspace.repo.full_name if workspace.repo else None,
        "branch": workspace.branch.name if workspace.branch else None,
    }


# ============================================================================
# Authentication and Settings Endpoints
# ============================================================================

@app.post("/api/auth/tokens", response_model=AuthResponse)
async def set_tokens(request: TokensRequest):
    """
    Store both credentials and sign in to GitHub.
    """
    workspace = get_workspace()
    user = await workspace.configure_tokens(request.github_token, request.gemini_token)
    return AuthResponse(user=user, repositories=workspace.repositories)


@app.get("/api/auth/user", response_model=AuthResponse)
async def current_user():
    """
    Identity and repositories of the signed-in user.
    """
    workspace = get_workspace()
    if not workspace.authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return AuthResponse(user=workspace.user, repositories=workspace.repositories)


@app.post("/api/auth/logout")
async def logout():
    """
    Sign out and forget stored credentials and all in-memory state.
    """
    await get_workspace().logout()
    return {"status": "ok"}


@app.get("/api/settings/theme", response_model=ThemeResponse)
async def get_theme():
    return ThemeResponse(theme=get_workspace().settings.theme)


@app.post("/api/settings/theme/toggle", response_model=ThemeResponse)
async def toggle_theme():
    return ThemeResponse(theme=get_workspace().toggle_theme())


# ============================================================================
# Repository and Branch Endpoints
# ============================================================================

@app.post("/api/repos/select", response_model=BranchesResponse)
async def select_repository(request: SelectRepositoryRequest):
    """
    Open a repository on its default branch.
    """
    workspace = get_workspace()
    await workspace.select_repository(request.full_name)
    return _branches(workspace)


@app.get("/api/branches", response_model=BranchesResponse)
async def list_branches():
    return _branches(get_workspace())


@app.post("/api/branches/select", response_model=BranchesResponse)
async def select_branch(request: SelectBranchRequest):
    """
    Switch branch. Reloads the tree and commits; local files are dropped.
    """
    workspace = get_workspace()
    await workspace.select_branch(request.name)
    return _branches(workspace)


@app.post("/api/branches/create", response_model=BranchesResponse)
async def create_branch(request: SelectBranchRequest):
    """
    Create a branch at the current head and switch to it.
    """
    workspace = get_workspace()
    await workspace.create_branch(request.name)
    return _branches(workspace)


@app.get("/api/commits", response_model=CommitsResponse)
async def list_commits(refresh: bool = Query(False, description="Fetch again from GitHub")):
    workspace = get_workspace()
    if refresh:
        await workspace.refresh_commits()
    return CommitsResponse(commits=workspace.commits)


def _branches(workspace: Workspace) -> BranchesResponse:
    return BranchesResponse(
        branches=workspace.branches,
        selected=workspace.branch.name if workspace.branch else None,
    )


# ============================================================================
# Tree and File Endpoints
# ============================================================================

@app.get("/api/tree", response_model=TreeResponse)
async def get_tree():
    """
    Render the file tree with expansion state.
    """
    return TreeResponse(entries=get_workspace().tree_entries())


@app.post("/api/tree/toggle", response_model=TreeResponse)
async def toggle_folder(request: PathRequest):
    """
    Expand or collapse a folder, fetching its contents on first expansion.
    """
    workspace = get_workspace()
    await workspace.toggle_folder(request.path)
    return TreeResponse(entries=workspace.tree_entries())


@app.post("/api/files/open", response_model=SessionResponse)
async def open_file(request: PathRequest):
    """
    Select a file, or toggle a folder.
    """
    workspace = get_workspace()
    await workspace.open(request.path)
    return workspace.session_state()


@app.get("/api/files/session", response_model=SessionResponse)
async def get_session():
    return get_workspace().session_state()


@app.post("/api/files/edit", response_model=SessionResponse)
async def edit_file(request: EditRequest):
    workspace = get_workspace()
    workspace.edit(request.content)
    return workspace.session_state()


@app.post("/api/files/save", response_model=SessionResponse)
async def save_file(request: SaveRequest):
    """
    Save the selected file to GitHub, or locally for a local file.
    """
    workspace = get_workspace()
    await workspace.save(request.message)
    return workspace.session_state()


@app.post("/api/files/reload", response_model=SessionResponse)
async def reload_file(keep_edits: bool = Query(False, description="Keep the buffer")):
    """
    Fetch the selected file again to pick up its latest revision token.
    """
    workspace = get_workspace()
    await workspace.reload(keep_edits=keep_edits)
    return workspace.session_state()


@app.post("/api/files/create", response_model=SessionResponse)
async def create_file(request: CreateRequest):
    workspace = get_workspace()
    await workspace.create_file(request.name, request.path)
    return workspace.session_state()


@app.post("/api/folders/create", response_model=TreeResponse)
async def create_folder(request: CreateRequest):
    workspace = get_workspace()
    await workspace.create_folder(request.name, request.path)
    return TreeResponse(entries=workspace.tree_entries())


@app.post("/api/files/publish", response_model=SessionResponse)
async def publish_file(request: PathRequest):
    """
    Commit a local file to the current branch.
    """
    workspace = get_workspace()
    await workspace.publish(request.path)
    return workspace.session_state()


# ============================================================================
# Assistant Endpoints
# ============================================================================

@app.post("/api/assistant/ask", response_model=AskResponse)
async def ask_assistant(request: AskRequest):
    """
    Ask the assistant about the current file. Code in the reply comes back
    as a proposal that must be applied explicitly.
    """
    workspace = get_workspace()
    reply, proposal = await workspace.ask(text=request.text, action=request.action)
    logger.info(f"Assistant replied ({len(reply.text)} chars, proposal: {proposal is not None})")
    return AskResponse(
        reply=reply.text,
        proposal=proposal_response(proposal, workspace.session.pending_diff()),
    )


@app.post("/api/assistant/proposal/apply", response_model=SessionResponse)
async def apply_proposal():
    workspace = get_workspace()
    workspace.apply_proposal()
    return workspace.session_state()


@app.post("/api/assistant/proposal/reject", response_model=SessionResponse)
async def reject_proposal():
    workspace = get_workspace()
    workspace.reject_proposal()
    return workspace.session_state()


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(StudioError)
async def studio_exception_handler(request: Request, exc: StudioError):
    """Map the error taxonomy to its HTTP status."""
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, detail=exc.detail).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom handler for HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            detail=None,
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Catch-all handler for unexpected errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc),
        ).model_dump(),
    )


# ============================================================================
# Development Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "codestudio.main:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info",
    )
