import paramiko
import pytest

from paasdeploy.errors import CommandTimeoutError, RemoteCommandError, SSHConnectError
from paasdeploy.utils.ssh_runner import SSHRunner

# ----------------- Fakes for Paramiko -----------------

class FakeChannel:
    def __init__(self, out=(), err=(), rc=0, finishes=True):
        self.out = list(out)
        self.err = list(err)
        self.rc = rc
        self.finishes = finishes
        self.command = None
        self.sent = b""
        self.write_closed = False
        self.closed = False
    def exec_command(self, cmd): self.command = cmd
    def sendall(self, data): self.sent += data
    def shutdown_write(self): self.write_closed = True
    def recv_ready(self): return bool(self.out)
    def recv(self, n): return self.out.pop(0)
    def recv_stderr_ready(self): return bool(self.err)
    def recv_stderr(self, n): return self.err.pop(0)
    def exit_status_ready(self): return self.finishes and not self.out and not self.err
    def recv_exit_status(self): return self.rc
    def close(self): self.closed = True


class LateOutputChannel(FakeChannel):
    """Exit status is ready before the tail of stdout/stderr is."""
    def __init__(self, **kw):
        super().__init__(**kw)
        self.exit_checked = False
    def recv_ready(self): return self.exit_checked and bool(self.out)
    def recv_stderr_ready(self): return self.exit_checked and bool(self.err)
    def exit_status_ready(self):
        self.exit_checked = True
        return True


class FakeTransport:
    def __init__(self, channel, active=True, fail_open=False):
        self.channel = channel
        self.active = active
        self.fail_open = fail_open
    def is_active(self): return self.active
    def open_session(self):
        if self.fail_open:
            raise paramiko.SSHException("ChannelException(2, 'Connect failed')")
        return self.channel


class FakeClient:
    def __init__(self, transport): self.transport = transport; self.closed = False
    def get_transport(self): return self.transport
    def open_sftp(self): raise paramiko.SSHException("subsystem request failed")
    def close(self): self.closed = True


def _runner(channel, **kw):
    return SSHRunner(FakeClient(FakeTransport(channel, **kw)), poll_interval=0.001)


# ----------------- Tests -----------------

def test_collects_stdout_stderr_and_exit_status():
    ch = FakeChannel(out=[b"Docker ", b"version 27\n"], err=[b"warn\n"], rc=0)

    res = _runner(ch).run("docker --version")

    assert ch.command == "docker --version"
    assert res.ok
    assert res.stdout == "Docker version 27\n"
    assert res.stderr == "warn\n"
    assert ch.write_closed and ch.closed


def test_output_arriving_with_exit_status_is_kept():
    ch = LateOutputChannel(out=[b"active\n"], err=[b"late warning\n"], rc=0)

    res = _runner(ch).run("systemctl is-active docker")

    assert res.stdout == "active\n"
    assert res.stderr == "late warning\n"


def test_stdin_is_written_then_closed():
    ch = FakeChannel(rc=0)

    _runner(ch).run("sudo -S -p '' sh -c true", stdin=b"pw\n")

    assert ch.sent == b"pw\n"
    assert ch.write_closed


def test_non_zero_exit_is_returned_not_raised():
    ch = FakeChannel(err=[b"nope\n"], rc=2)

    res = _runner(ch).run("false")

    assert not res.ok
    assert res.exit_status == 2


def test_deadline_raises_and_leaves_channel_open():
    ch = FakeChannel(finishes=False)

    with pytest.raises(CommandTimeoutError) as ei:
        _runner(ch).run("curl -fsSL https://get.docker.com | sh", timeout=0.02)

    assert ei.value.timeout == 0.02
    assert isinstance(ei.value, RemoteCommandError)
    assert not ch.closed


def test_inactive_transport():
    with pytest.raises(RemoteCommandError, match="not active"):
        _runner(FakeChannel(), active=False).run("true")


def test_channel_open_failure():
    with pytest.raises(RemoteCommandError, match="Connect failed"):
        _runner(FakeChannel(), fail_open=True).run("true")


def test_sftp_failure_is_a_connect_error():
    with pytest.raises(SSHConnectError, match="open sftp session"):
        _runner(FakeChannel()).open_sftp()
