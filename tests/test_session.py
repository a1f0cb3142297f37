"""Tests for selection, dirty tracking, saving and proposals in the edit session."""

import asyncio

import pytest

from codestudio.errors import Conflict, InvalidPath, NotFound, SessionBusy
from codestudio.github_client import BranchContents
from codestudio.models import BranchRef, FileNode, RepositoryRef
from codestudio.overlay import LocalOverlayStore
from codestudio.session import EditSession, ProposalState

from conftest import OWNER, REPO, blob_sha, run

CONTENTS = f"/repos/{OWNER}/{REPO}/contents"


def node(path, sha=None):
    return FileNode(path=path, name=path.rsplit("/", 1)[-1], kind="file", sha=sha)


@pytest.fixture
def overlay():
    return LocalOverlayStore()


@pytest.fixture
def session(client, overlay):
    contents = BranchContents(
        client,
        RepositoryRef(owner=OWNER, name=REPO),
        BranchRef(name="main", commit_sha="c0ffee0"),
    )
    return EditSession(overlay, contents)


class TestSelect:
    def test_select_twice_stays_clean(self, session):
        app = node("src/app.js")
        assert run(session.select(app))
        assert not session.dirty
        assert run(session.select(app))
        assert not session.dirty
        assert session.current_content == "console.log('app');\n"

    def test_select_refreshes_revision_token(self, session, github):
        app = node("src/app.js", sha="outdated")
        run(session.select(app))
        assert app.sha == github.sha_of("src/app.js")

    def test_local_file_loads_without_network(self, session, overlay, github):
        overlay.put("draft.md", "# draft\n")
        before = len(github.requests)
        run(session.select(node("draft.md")))
        assert session.current_content == "# draft\n"
        assert session.saved_content == "# draft\n"
        assert session.is_local
        assert len(github.requests) == before

    def test_failed_select_keeps_previous_selection(self, session):
        app = node("src/app.js")
        run(session.select(app))
        session.edit("edited")
        with pytest.raises(NotFound):
            run(session.select(node("missing.js")))
        assert session.selected is app
        assert session.current_content == "edited"
        assert not session.loading

    def test_folder_cannot_be_selected(self, session):
        with pytest.raises(InvalidPath):
            run(session.select(FileNode(path="src", name="src", kind="directory")))

    def test_last_select_wins(self, session, github):
        async def scenario():
            gate = asyncio.Event()
            github.gates[f"{CONTENTS}/src/app.js"] = gate
            slow = asyncio.ensure_future(session.select(node("src/app.js")))
            await asyncio.sleep(0)
            fast = await session.select(node("README.md"))
            gate.set()
            return await slow, fast

        slow_applied, fast_applied = run(scenario())
        assert fast_applied is True
        assert slow_applied is False
        assert session.selected.path == "README.md"
        assert session.current_content == "# site\n"

    def test_edit_and_save_refused_while_loading(self, session, github):
        async def scenario():
            gate = asyncio.Event()
            github.gates[f"{CONTENTS}/src/app.js"] = gate
            pending = asyncio.ensure_future(session.select(node("src/app.js")))
            await asyncio.sleep(0)
            assert session.loading
            with pytest.raises(SessionBusy):
                session.edit("too early")
            with pytest.raises(SessionBusy):
                await session.save()
            gate.set()
            await pending

        run(scenario())
        assert not session.loading
        session.edit("now fine")
        assert session.dirty


class TestSave:
    def test_remote_round_trip(self, session, github):
        app = node("src/app.js")
        run(session.select(app))
        session.edit("console.log('saved');\n")
        assert session.dirty

        new_sha = run(session.save())
        assert new_sha == blob_sha("console.log('saved');\n")
        assert app.sha == new_sha
        assert not session.dirty

        run(session.select(app))
        assert session.current_content == "console.log('saved');\n"

    def test_second_save_uses_the_returned_token(self, session):
        app = node("src/app.js")
        run(session.select(app))
        session.edit("one\n")
        run(session.save())
        session.edit("two\n")
        run(session.save())
        assert session.saved_content == "two\n"

    def test_stale_token_conflicts_without_mutation(self, session, github):
        app = node("src/app.js")
        run(session.select(app))
        token = app.sha
        github.write("src/app.js", "someone else\n")
        session.edit("mine\n")

        with pytest.raises(Conflict):
            run(session.save())
        assert session.current_content == "mine\n"
        assert session.saved_content == "console.log('app');\n"
        assert session.dirty
        assert app.sha == token

    def test_reload_then_retry_succeeds(self, session, github):
        app = node("src/app.js")
        run(session.select(app))
        github.write("src/app.js", "someone else\n")
        session.edit("mine\n")
        with pytest.raises(Conflict):
            run(session.save())

        run(session.reload(keep_edits=True))
        assert session.current_content == "mine\n"
        assert session.saved_content == "someone else\n"
        run(session.save())
        assert github.branches["main"]["src/app.js"] == "mine\n"

    def test_plain_reload_discards_edits(self, session):
        run(session.select(node("src/app.js")))
        session.edit("scratch")
        run(session.reload())
        assert not session.dirty

    def test_local_save_writes_overlay(self, session, overlay, github):
        overlay.put("draft.md", "# draft\n")
        run(session.select(node("draft.md")))
        session.edit("# better draft\n")
        before = len(github.requests)
        assert run(session.save()) is None
        assert overlay.get("draft.md") == "# better draft\n"
        assert not session.dirty
        assert len(github.requests) == before

    def test_save_without_selection(self, session):
        with pytest.raises(NotFound):
            run(session.save())

    def test_new_file_starts_dirty(self, session, overlay):
        draft = node("draft.md")
        overlay.put("draft.md", "# draft\n")
        session.load_new(draft, "# draft\n")
        assert session.saved_content == ""
        assert session.dirty
        run(session.save())
        assert not session.dirty


class TestProposals:
    CODE = "function greet(name) {\n  return `hi ${name}`;\n}\n"

    def test_apply_overwrites_buffer(self, session):
        run(session.select(node("src/app.js")))
        proposal = session.propose(self.CODE)
        assert proposal.state == ProposalState.PROPOSED
        assert "+function greet(name) {" in proposal.diff()
        assert "-console.log('app');" in proposal.diff()
        assert session.current_content == "console.log('app');\n"

        session.apply_proposal()
        assert proposal.state == ProposalState.APPLIED
        assert session.current_content == self.CODE
        assert session.dirty

    def test_reject_leaves_buffer(self, session):
        run(session.select(node("src/app.js")))
        session.propose(self.CODE)
        proposal = session.reject_proposal()
        assert proposal.state == ProposalState.REJECTED
        assert session.current_content == "console.log('app');\n"
        with pytest.raises(NotFound):
            session.apply_proposal()

    def test_selecting_another_file_drops_proposal(self, session):
        run(session.select(node("src/app.js")))
        session.propose(self.CODE)
        run(session.select(node("README.md")))
        assert session.proposal is None
        with pytest.raises(NotFound):
            session.apply_proposal()

    def test_edits_after_proposal_show_in_diff_and_are_replaced(self, session):
        run(session.select(node("src/app.js")))
        proposal = session.propose(self.CODE)
        session.edit("console.log('app');\nconsole.log('mine');\n")

        assert "-console.log('mine');\n" in session.pending_diff()
        assert "console.log('mine')" not in proposal.diff()

        session.apply_proposal()
        assert session.current_content == self.CODE
        assert proposal.base == "console.log('app');\nconsole.log('mine');\n"
        assert session.pending_diff() is None
