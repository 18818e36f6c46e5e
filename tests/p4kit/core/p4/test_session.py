"""Tests for Session construction, command execution and workspace helpers."""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path

import pytest

from p4kit.core.config import SessionConfig
from p4kit.core.exceptions import (
    ConfigurationError,
    ProtocolError,
    ServerCommandError,
    ServerConnectionError,
)
from p4kit.core.p4 import Changelist, ExceptionLevel, Session
from tests.fixtures.p4 import FakeConnection


def _created(number: int) -> list[dict[str, object]]:
    return [{"code": "info", "data": f"Change {number} created.", "level": 0}]


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    """Tests for Session.__init__."""

    def test_applies_config_fields(self, fake_connection):
        config = SessionConfig(
            user="iggy_fenton",
            password="ticket",
            client="iggy_fenton_project",
            port="server_name:1666",
            cwd="/work/project",
        )
        session = Session(config, connection_factory=lambda: fake_connection, platform="linux")

        assert fake_connection.user == "iggy_fenton"
        assert fake_connection.password == "ticket"
        assert fake_connection.client == "iggy_fenton_project"
        assert fake_connection.port == "server_name:1666"
        assert fake_connection.cwd == "/work/project"
        assert session.user == "iggy_fenton"
        assert session.client == "iggy_fenton_project"

    def test_keyword_options_override_config(self, fake_connection):
        Session(
            SessionConfig(user="a", client="ws_a"),
            client="ws_b",
            connection_factory=lambda: fake_connection,
            platform="linux",
        )
        assert fake_connection.user == "a"
        assert fake_connection.client == "ws_b"

    def test_absent_fields_are_not_applied(self, fake_connection):
        fake_connection.port = "from-env:1666"
        Session(user="iggy", connection_factory=lambda: fake_connection, platform="linux")
        assert fake_connection.port == "from-env:1666"
        assert fake_connection.password is None

    def test_sets_raise_errors_policy_and_connects(self, make_session, fake_connection):
        session = make_session()
        assert fake_connection.exception_level == ExceptionLevel.RAISE_ERRORS
        assert fake_connection.connect_calls == 1
        assert session.connected is True

    def test_unknown_option_is_configuration_error(self, fake_connection):
        with pytest.raises(ConfigurationError, match="Unknown session option"):
            Session(connection_factory=lambda: fake_connection, hostname="x")

    def test_connect_failure_propagates(self, fake_connection):
        fake_connection.connect_error = ServerConnectionError("Connect to server failed")
        with pytest.raises(ServerConnectionError):
            Session(user="iggy", connection_factory=lambda: fake_connection, platform="linux")


class TestUserResolution:
    """User falls back to environment identity sources."""

    def test_user_resolved_from_first_non_empty_source(self, fake_connection, monkeypatch):
        monkeypatch.setenv("P4KIT_TEST_A", "")
        monkeypatch.setenv("P4KIT_TEST_B", "bob")
        Session(
            connection_factory=lambda: fake_connection,
            platform="linux",
            user_env_vars=("P4KIT_TEST_A", "P4KIT_TEST_B"),
        )
        assert fake_connection.user == "bob"

    def test_missing_user_fails_before_connecting(self, fake_connection, monkeypatch):
        monkeypatch.setenv("P4KIT_TEST_A", "")
        monkeypatch.delenv("P4KIT_TEST_B", raising=False)
        with pytest.raises(ConfigurationError, match="Could not determine username"):
            Session(
                connection_factory=lambda: fake_connection,
                platform="linux",
                user_env_vars=("P4KIT_TEST_A", "P4KIT_TEST_B"),
            )
        assert fake_connection.connect_calls == 0


class TestWorkingDirectoryHint:
    """$PWD is hidden from the connection while it is created."""

    def test_pwd_cleared_during_creation_and_restored(self, monkeypatch):
        monkeypatch.setenv("PWD", "/home/iggy/project-link")
        created: list[FakeConnection] = []

        def factory() -> FakeConnection:
            created.append(FakeConnection())
            return created[-1]

        Session(user="iggy", connection_factory=factory, platform="linux")

        assert created[0].pwd_at_creation is None
        assert os.environ["PWD"] == "/home/iggy/project-link"

    def test_pwd_restored_when_creation_fails(self, monkeypatch):
        monkeypatch.setenv("PWD", "/home/iggy/project-link")

        def factory() -> FakeConnection:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            Session(user="iggy", connection_factory=factory, platform="linux")
        assert os.environ["PWD"] == "/home/iggy/project-link"

    def test_concurrent_constructions_are_serialized(self, monkeypatch):
        monkeypatch.setenv("PWD", "/home/iggy/project-link")
        created: list[FakeConnection] = []
        active = 0
        max_active = 0
        counter_lock = threading.Lock()

        def slow_factory() -> FakeConnection:
            nonlocal active, max_active
            with counter_lock:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.02)
            connection = FakeConnection()
            with counter_lock:
                created.append(connection)
                active -= 1
            return connection

        errors: list[BaseException] = []

        def construct() -> None:
            try:
                Session(user="iggy", connection_factory=slow_factory, platform="linux")
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=construct) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert len(created) == 8
        assert max_active == 1
        assert all(connection.pwd_at_creation is None for connection in created)
        assert os.environ["PWD"] == "/home/iggy/project-link"

    def test_pwd_kept_when_symlinks_allowed(self, monkeypatch):
        monkeypatch.setenv("PWD", "/home/iggy/project-link")
        created: list[FakeConnection] = []

        def factory() -> FakeConnection:
            created.append(FakeConnection())
            return created[-1]

        Session(
            user="iggy",
            allow_working_directory_symlinks=True,
            connection_factory=factory,
            platform="linux",
        )
        assert created[0].pwd_at_creation == "/home/iggy/project-link"

    def test_unset_pwd_stays_unset(self, monkeypatch):
        monkeypatch.delenv("PWD", raising=False)
        Session(user="iggy", connection_factory=FakeConnection, platform="linux")
        assert "PWD" not in os.environ


# =============================================================================
# Command execution
# =============================================================================


class TestRun:
    """Tests for run / run_with_input."""

    def test_run_returns_records(self, make_session, fake_connection):
        fake_connection.responses["info"] = [{"serverVersion": "P4D/LINUX26X86_64/2023.2"}]
        session = make_session()

        records = session.run("info")

        assert records == [{"serverVersion": "P4D/LINUX26X86_64/2023.2"}]
        assert fake_connection.calls == [("info",)]

    def test_arguments_are_stringified(self, make_session, fake_connection):
        session = make_session()
        session.run("describe", "-s", 42, Path("a.txt"))
        assert fake_connection.calls == [("describe", "-s", "42", "a.txt")]

    def test_warnings_are_logged_not_raised(self, make_session, fake_connection, caplog):
        fake_connection.responses["add"] = [{"depotFile": "//depot/a.txt"}]
        fake_connection.warning_responses["add"] = ["//depot/a.txt - currently opened for edit"]
        session = make_session()

        with caplog.at_level(logging.WARNING, logger="p4kit.core.p4.session"):
            records = session.run("add", "a.txt")

        assert records == [{"depotFile": "//depot/a.txt"}]
        assert "currently opened for edit" in caplog.text

    def test_server_errors_propagate(self, make_session, fake_connection):
        fake_connection.responses["edit"] = ServerCommandError("edit", ["x"], ["x - no such file(s)."])
        session = make_session()
        with pytest.raises(ServerCommandError, match="no such file"):
            session.run("edit", "x")

    def test_run_with_input_stages_payload(self, make_session, fake_connection):
        session = make_session()
        session.run_with_input({"Client": "iggy_ws"}, "client", "-i")
        assert fake_connection.inputs == [(("client", "-i"), {"Client": "iggy_ws"})]


# =============================================================================
# Changelists
# =============================================================================


class TestNewChangelist:
    """Tests for Session.new_changelist."""

    def test_parses_change_number(self, make_session, fake_connection):
        fake_connection.responses[("change", "-i")] = _created(1042)
        session = make_session()

        changelist = session.new_changelist("fix bug")

        assert isinstance(changelist, Changelist)
        assert changelist.number == 1042
        assert fake_connection.inputs == [
            (("change", "-i"), {"Change": "new", "Description": "fix bug"})
        ]

    def test_accepts_plain_string_records(self, make_session, fake_connection):
        fake_connection.responses[("change", "-i")] = ["Change 7 created."]
        assert make_session().new_changelist("x").number == 7

    def test_malformed_confirmation_raises_protocol_error(self, make_session, fake_connection):
        fake_connection.responses[("change", "-i")] = [
            {"code": "info", "data": "Change new created?", "level": 0}
        ]
        with pytest.raises(ProtocolError):
            make_session().new_changelist("fix bug")

    def test_empty_response_raises_protocol_error(self, make_session, fake_connection):
        fake_connection.responses[("change", "-i")] = []
        with pytest.raises(ProtocolError):
            make_session().new_changelist("fix bug")


class TestPendingChangelists:
    """Tests for pending_changelists / delete_empty_changelists."""

    def test_scoped_to_user_and_client(self, make_session, fake_connection):
        fake_connection.responses["changes"] = [
            {"change": "12", "status": "pending"},
            {"change": "15", "status": "pending"},
        ]
        session = make_session()

        changelists = session.pending_changelists()

        assert [c.number for c in changelists] == [12, 15]
        assert fake_connection.calls == [
            ("changes", "-u", "iggy", "-c", "iggy_ws", "-s", "pending")
        ]

    def test_client_falls_back_to_server_info(self, fake_connection):
        fake_connection.responses["info"] = [{"clientName": "env_ws"}]
        session = Session(user="iggy", connection_factory=lambda: fake_connection, platform="linux")

        session.pending_changelists()

        assert ("changes", "-u", "iggy", "-c", "env_ws", "-s", "pending") in fake_connection.calls

    def test_delete_empty_changelists_only_deletes_empty(self, make_session, fake_connection):
        fake_connection.responses["changes"] = [{"change": "12"}, {"change": "15"}]
        fake_connection.responses[("describe", "-s", "12")] = [{"change": "12"}]
        fake_connection.responses[("describe", "-s", "15")] = [
            {"change": "15", "depotFile": ["//depot/a.txt"]}
        ]
        session = make_session()

        deleted = session.delete_empty_changelists()

        assert [c.number for c in deleted] == [12]
        assert fake_connection.commands("change") == [("change", "-d", "12")]


class TestEditAndSubmit:
    """Tests for the edit_and_submit workflow."""

    def _script(self, fake_connection: FakeConnection) -> None:
        fake_connection.responses[("change", "-i")] = _created(31)
        fake_connection.responses[("change", "-o")] = [{"Change": "31", "Files": ["//depot/a.txt"]}]
        fake_connection.responses["describe"] = [{"change": "31", "depotFile": ["//depot/a.txt"]}]

    def test_opens_files_then_submits(self, make_session, fake_connection):
        self._script(fake_connection)
        session = make_session()
        seen: list[int] = []

        with session.edit_and_submit("strip whitespace", "a.txt") as changelist:
            seen.append(changelist.number)
            assert fake_connection.commands("submit") == []

        assert seen == [31]
        assert ("edit", "-c", "31", "a.txt") in fake_connection.calls
        assert ("add", "-c", "31", "a.txt") in fake_connection.calls
        assert fake_connection.commands("submit") == [("submit", "-c", "31")]

    def test_failure_in_block_leaves_changelist_open(self, make_session, fake_connection):
        self._script(fake_connection)
        session = make_session()

        with pytest.raises(ValueError):
            with session.edit_and_submit("strip whitespace", ["a.txt"]):
                raise ValueError("rewrite failed")

        assert fake_connection.commands("submit") == []
        assert ("change", "-d", "31") not in fake_connection.calls


class TestFileOperations:
    """Tests for revert_files, revert_and_edit and sync."""

    def test_revert_files_noop_on_empty(self, make_session, fake_connection):
        session = make_session()
        assert session.revert_files() == []
        assert session.revert_files([]) == []
        assert fake_connection.calls == []

    def test_revert_files_flattens_arguments(self, make_session, fake_connection):
        session = make_session()
        session.revert_files(["a.txt", Path("b.txt")], "c.txt")
        assert fake_connection.calls == [("revert", "a.txt", "b.txt", "c.txt")]

    def test_revert_and_edit(self, make_session, fake_connection):
        session = make_session()
        session.revert_and_edit("a.txt")
        assert fake_connection.calls == [("revert", "a.txt"), ("edit", "a.txt")]

    def test_revert_and_edit_into_changelist(self, make_session, fake_connection):
        session = make_session()
        session.revert_and_edit("a.txt", changelist=Changelist(session, 9))
        assert fake_connection.calls == [("revert", "a.txt"), ("edit", "-c", "9", "a.txt")]

    def test_sync_passes_arguments(self, make_session, fake_connection):
        session = make_session()
        session.sync("//depot/...#head")
        assert fake_connection.calls == [("sync", "//depot/...#head")]


# =============================================================================
# Workspace
# =============================================================================


class TestWorkspace:
    """Tests for root, chdir and working_directory."""

    def test_root_without_translation(self, make_session, fake_connection):
        fake_connection.responses[("client", "-o")] = [{"Client": "iggy_ws", "Root": "/home/iggy/ws"}]
        assert make_session().root() == "/home/iggy/ws"
        assert fake_connection.commands("client") == [("client", "-o")]

    def test_chdir_updates_process_and_session(self, make_session, fake_connection, tmp_path, restore_cwd):
        session = make_session()

        result = session.chdir(tmp_path)

        assert result == os.getcwd()
        assert Path(os.getcwd()) == tmp_path.resolve()
        assert session.cwd == os.getcwd()

    def test_chdir_rolls_back_when_connection_rejects(self, tmp_path, restore_cwd):
        class RejectingConnection(FakeConnection):
            reject = False

            def __setattr__(self, name, value):
                if name == "cwd" and self.reject:
                    raise OSError("cannot set cwd")
                super().__setattr__(name, value)

        connection = RejectingConnection()
        session = Session(user="iggy", connection_factory=lambda: connection, platform="linux")
        connection.reject = True

        with pytest.raises(OSError, match="cannot set cwd"):
            session.chdir(tmp_path)
        assert os.getcwd() == restore_cwd

    def test_working_directory_restores_on_exit(self, make_session, tmp_path, restore_cwd):
        session = make_session()
        before_cwd = session.cwd

        with session.working_directory(tmp_path) as inside:
            assert Path(inside) == tmp_path.resolve()
            assert session.cwd == inside

        assert os.getcwd() == restore_cwd
        assert session.cwd == before_cwd

    def test_working_directory_restores_on_error(self, make_session, tmp_path, restore_cwd):
        session = make_session()
        before_cwd = session.cwd

        with pytest.raises(RuntimeError):
            with session.working_directory(tmp_path):
                raise RuntimeError("inside")

        assert os.getcwd() == restore_cwd
        assert session.cwd == before_cwd


class TestLifecycle:
    """Tests for close and the context manager protocol."""

    def test_context_manager_disconnects(self, make_session, fake_connection):
        with make_session() as session:
            assert session.connected
        assert fake_connection.connected() is False

    def test_close_is_idempotent(self, make_session, fake_connection):
        session = make_session()
        session.close()
        session.close()
        assert session.connected is False
