"""Unit tests for workspace preparation and cleanup."""

from pathlib import Path

import pytest

from pairing_bots.lib.errors import WorkspaceError
from pairing_bots.models.pair_config import WorkspaceMode
from pairing_bots.services.workspace_session import prepare_workspace_session


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("print('hi')\n")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / ".pairing-bots" / "logs").mkdir(parents=True)
    (root / "node_modules" / "left-pad").mkdir(parents=True)
    return root


class TestDirectMode:
    def test_runtime_cwd_is_base(self, project):
        session = prepare_workspace_session(str(project))

        assert session.mode == WorkspaceMode.DIRECT
        assert session.runtime_cwd == str(project)
        result = session.cleanup()
        assert result.cleaned is False
        assert result.preserved_path is None
        assert session.describe_cleanup(result) == "Workspace cleanup: n/a (direct mode)"
        assert project.exists()

    def test_missing_directory(self, tmp_path):
        with pytest.raises(WorkspaceError):
            prepare_workspace_session(str(tmp_path / "nope"))


class TestEphemeralCopy:
    """Test scratch copies."""

    def test_copy_excludes_metadata_and_links_dependencies(self, project):
        session = prepare_workspace_session(str(project), WorkspaceMode.EPHEMERAL_COPY)
        runtime = Path(session.runtime_cwd)

        try:
            assert runtime != project
            assert (runtime / "src" / "app.py").read_text() == "print('hi')\n"
            assert not (runtime / ".git").exists()
            assert not (runtime / ".pairing-bots").exists()
            assert (runtime / "node_modules").is_symlink()
            assert (runtime / "node_modules").resolve() == (project / "node_modules").resolve()
        finally:
            result = session.cleanup()

        assert result.cleaned is True
        assert not runtime.exists()
        assert (project / ".git" / "HEAD").exists()
        assert session.describe_cleanup(result) == "Workspace cleanup: deleted ephemeral copy"

    def test_edits_do_not_touch_base(self, project):
        session = prepare_workspace_session(str(project), WorkspaceMode.EPHEMERAL_COPY)
        (Path(session.runtime_cwd) / "src" / "app.py").write_text("changed\n")
        session.cleanup()

        assert (project / "src" / "app.py").read_text() == "print('hi')\n"

    def test_keep_workspace_preserves_copy(self, project):
        session = prepare_workspace_session(str(project), WorkspaceMode.EPHEMERAL_COPY, keep_workspace=True)
        result = session.cleanup()

        assert result.cleaned is False
        assert result.preserved_path == session.scratch_root
        assert Path(session.runtime_cwd).exists()
        assert session.describe_cleanup(result).startswith("Workspace preserved at: ")

    def test_cleanup_is_idempotent(self, project):
        session = prepare_workspace_session(str(project), WorkspaceMode.EPHEMERAL_COPY)
        first = session.cleanup()
        assert session.cleanup() is first
