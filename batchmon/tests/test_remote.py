"""Tests for the SSH executor and login verification (subprocess is mocked)."""

import subprocess
import threading
from unittest import mock

import pytest

from batchmon.exceptions import RemoteCommandError, RemoteConnectionError
from batchmon.remote import (
    RemoteExecutor,
    SessionGuard,
    build_remote_command,
    make_verifier,
    strip_script_framing,
    verify_login,
)


class FakeSsh:
    """Stand-in for subprocess.run that models one ssh master connection."""

    def __init__(self, alive=True, connect_failures=0, stdout="", stderr="", returncode=0):
        self.alive = alive
        self.connect_failures = connect_failures
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.connects = 0
        self.commands = []
        self.argvs = []
        self._lock = threading.Lock()

    def __call__(self, cmd, **kwargs):
        with self._lock:
            if "-O" in cmd:
                op = cmd[cmd.index("-O") + 1]
                if op == "exit":
                    self.alive = False
                    return subprocess.CompletedProcess(cmd, 0, "", "")
                return subprocess.CompletedProcess(cmd, 0 if self.alive else 255, "", "")
            if "-M" in cmd:
                self.connects += 1
                if self.connect_failures:
                    self.connect_failures -= 1
                    return subprocess.CompletedProcess(cmd, 255, "", "Connection refused")
                self.alive = True
                return subprocess.CompletedProcess(cmd, 0, "", "")
            self.commands.append(cmd[-1])
            self.argvs.append(cmd)
            return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def executor():
    """Executor with a test-only control path."""
    return RemoteExecutor("svc", "cluster.example.org", control_path="/tmp/batchmon-test-%r@%h")


def patch_ssh(fake):
    """Route every subprocess.run in the executor through ``fake``."""
    return mock.patch("batchmon.remote.command.subprocess.run", side_effect=fake)


class TestCommandBuilding:
    """Tests for build_remote_command() and strip_script_framing()."""

    def test_plain(self):
        """Arguments are joined with spaces."""
        assert build_remote_command("groups", ["alice"]) == "groups alice"

    def test_quoting(self):
        """Arguments with spaces are shell-quoted."""
        assert build_remote_command("verify", ["bob", "p@ss word"]) == "verify bob 'p@ss word'"

    def test_pty_wrapped(self):
        """The pty form runs the command through script."""
        cmd = build_remote_command("jobstat", ["-anL"], wrap_in_pty=True)
        assert cmd == "script -q -c 'jobstat -anL' /dev/null"

    def test_strip_framing(self):
        """script start and done lines are removed."""
        output = "Script started on Mon Oct 14\r\nline1\r\nline2\r\nScript done on Mon Oct 14\r\n"
        assert strip_script_framing(output) == "line1\r\nline2\r\n"

    def test_strip_without_framing(self):
        """Output without framing is returned unchanged."""
        assert strip_script_framing("line1\nline2\n") == "line1\nline2\n"


class TestExecute:
    """Tests for RemoteExecutor.execute()."""

    def test_returns_stdout(self, executor):
        """stdout of a clean run is returned over a live master."""
        fake = FakeSsh(stdout="alice : chem\n")
        with patch_ssh(fake):
            assert executor.execute("groups", ["alice"]) == "alice : chem\n"
        assert fake.commands == ["groups alice"]
        assert fake.connects == 0

    def test_pty_output_stripped(self, executor):
        """Wrapped commands come back without script framing."""
        fake = FakeSsh(stdout="Script started\r\nbody\r\n")
        with patch_ssh(fake):
            assert executor.execute("jobstat", ["-anL"], wrap_in_pty=True) == "body\r\n"
        assert fake.commands == ["script -q -c 'jobstat -anL' /dev/null"]

    def test_stderr_is_error(self, executor):
        """Any stderr output fails the command even with exit 0."""
        fake = FakeSsh(stdout="partial", stderr="warning: something")
        with patch_ssh(fake), pytest.raises(RemoteCommandError) as excinfo:
            executor.execute("jobstat", ["-anL"])
        assert excinfo.value.returncode == 0
        assert "warning" in excinfo.value.stderr

    def test_nonzero_exit_is_error(self, executor):
        """A non-zero exit status raises."""
        fake = FakeSsh(returncode=1)
        with patch_ssh(fake), pytest.raises(RemoteCommandError):
            executor.execute("groups", ["nobody"])

    def test_commands_never_prompt(self, executor):
        """Command runs are non-interactive even if the master is gone."""
        fake = FakeSsh(stdout="ok")
        with patch_ssh(fake):
            executor.execute("groups", ["alice"])
        argv = fake.argvs[0]
        assert argv[argv.index("BatchMode=yes") - 1] == "-o"
        assert argv[-2:] == ["svc@cluster.example.org", "groups alice"]

    def test_timeout(self, executor):
        """A command that overruns its timeout raises."""
        def run(cmd, **kwargs):
            if "-O" in cmd:
                return subprocess.CompletedProcess(cmd, 0, "", "")
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        with patch_ssh(run), pytest.raises(RemoteCommandError, match="timed out"):
            executor.execute("jobstat", ["-anL"], timeout=5)


class TestSessionRecovery:
    """Tests for reconnecting a dead master."""

    def test_reconnects_dead_session(self, executor):
        """A dead master is reconnected before the command runs."""
        fake = FakeSsh(alive=False, stdout="ok")
        with patch_ssh(fake):
            assert executor.execute("true") == "ok"
        assert fake.connects == 1

    def test_retries_until_connected(self, executor):
        """Failed connects back off and retry."""
        fake = FakeSsh(alive=False, connect_failures=2, stdout="ok")
        with patch_ssh(fake), mock.patch("time.sleep") as sleep:
            assert executor.execute("true") == "ok"
        assert fake.connects == 3
        assert sleep.call_count == 2

    def test_concurrent_callers_reconnect_once(self, executor):
        """Threads that all find the session dead trigger one reconnect."""
        fake = FakeSsh(alive=False, stdout="ok")
        results = []

        def call():
            results.append(executor.execute("true"))

        with patch_ssh(fake):
            threads = [threading.Thread(target=call) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=10)

        assert results == ["ok"] * 8
        assert fake.connects == 1

    def test_close(self, executor):
        """close() stops the master."""
        fake = FakeSsh(alive=True)
        with patch_ssh(fake):
            executor.close()
            assert not executor.is_alive()


class TestStatus:
    """Tests for RemoteExecutor.status() and verify_login()."""

    def test_status_returns_exit_code(self, executor):
        """status() returns the exit code and ignores stderr."""
        fake = FakeSsh(returncode=3, stderr="ignored")
        with patch_ssh(fake):
            assert executor.status("check", ["x"]) == 3

    def test_status_single_connect_attempt(self, executor):
        """status() does not retry a failed connect."""
        fake = FakeSsh(alive=False, connect_failures=5)
        with patch_ssh(fake), pytest.raises(RemoteConnectionError):
            executor.status("check")
        assert fake.connects == 1

    def test_verify_success(self, executor):
        """Exit 0 from the verify script is a successful login."""
        fake = FakeSsh(returncode=0)
        with patch_ssh(fake):
            assert verify_login(executor, "alice", "secret", script="/opt/verify.sh")
        assert fake.commands == ["/opt/verify.sh alice secret"]

    def test_verify_rejected(self, executor):
        """A non-zero exit from the verify script is a failed login."""
        fake = FakeSsh(returncode=1)
        with patch_ssh(fake):
            assert not verify_login(executor, "alice", "wrong", script="/opt/verify.sh")

    def test_verify_unreachable(self, executor):
        """A connection failure is a failed login, not an exception."""
        fake = FakeSsh(alive=False, connect_failures=1)
        with patch_ssh(fake):
            assert not verify_login(executor, "alice", "secret", script="/opt/verify.sh")

    def test_make_verifier(self, executor):
        """The verifier is bound to the executor and script."""
        fake = FakeSsh(returncode=0)
        verifier = make_verifier(executor, script="/opt/verify.sh")
        with patch_ssh(fake):
            assert verifier("alice", "secret") is True


class TestSessionGuard:
    """Tests for the shared/exclusive lock."""

    def test_shared_holders_overlap(self):
        """Two shared holders can be inside at once."""
        guard = SessionGuard()
        inside = threading.Barrier(2, timeout=5)

        def reader():
            with guard.shared():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not inside.broken

    def test_exclusive_waits_for_readers(self):
        """An exclusive holder waits for a shared holder to leave."""
        guard = SessionGuard()
        events = []
        reader_in = threading.Event()
        release = threading.Event()

        def reader():
            with guard.shared():
                reader_in.set()
                release.wait(5)
                events.append("reader done")

        def writer():
            reader_in.wait(5)
            with guard.exclusive():
                events.append("writer")

        threads = [threading.Thread(target=reader), threading.Thread(target=writer)]
        for t in threads:
            t.start()
        reader_in.wait(5)
        release.set()
        for t in threads:
            t.join(timeout=5)
        assert events == ["reader done", "writer"]
