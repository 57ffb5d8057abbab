import io
from dataclasses import dataclass
from typing import Optional

import pytest

from paasdeploy.observers.dispatcher import EventBus, ProgressReporter
from paasdeploy.observers.events import LogLine, StepEvent
from paasdeploy.provisioner.models import CertificateBundle, CommandResult


# ----------------- Fake remote executor -----------------

@dataclass
class Call:
    command: str
    stdin: Optional[bytes]
    timeout: Optional[float]


class FakeExecutor:
    """
    Scripted RemoteExecutor. A rule matches when its needle occurs in the
    command; the most recently added matching rule wins. Unmatched commands
    succeed with empty output.
    """

    def __init__(self):
        self.calls = []
        self.rules = []
        self.closed = False
        self.sftp = None

    def on(self, needle, rc=0, out="", err="", exc=None):
        self.rules.append((needle, CommandResult(rc, out, err), exc))
        return self

    def run(self, command, *, stdin=None, timeout=None):
        self.calls.append(Call(command, stdin, timeout))
        for needle, res, exc in reversed(self.rules):
            if needle in command:
                if exc is not None:
                    raise exc
                return res
        return CommandResult(0, "", "")

    def commands(self):
        return [c.command for c in self.calls]

    def ran(self, needle):
        return any(needle in c for c in self.commands())

    def find(self, needle):
        return [c for c in self.calls if needle in c.command]

    # SSHRunner surface used by the orchestrator
    def open_sftp(self):
        return self.sftp

    def close(self):
        self.closed = True


# ----------------- Fake SFTP -----------------

class _FakeFile:
    def __init__(self, sftp, path, fail_write=False):
        self.sftp = sftp
        self.path = path
        self.buf = io.BytesIO()
        self.writes = 0
        self.fail_write = fail_write
    def chmod(self, mode): self.sftp.modes[self.path] = mode
    def write(self, data):
        if self.fail_write:
            raise OSError("Failure")
        self.writes += 1
        self.buf.write(data)
    def __enter__(self): return self
    def __exit__(self, *exc):
        self.sftp.files[self.path] = self.buf.getvalue()
        self.sftp.chunks[self.path] = self.writes
        return False


class FakeSFTP:
    def __init__(self):
        self.dirs = set()
        self.files = {}
        self.modes = {}
        self.chunks = {}
        self.renames = []
        self.deny_mkdir = set()
        self.deny_open = set()
        self.fail_write = False
        self.closed = False

    def stat(self, path):
        if path in self.dirs or path in self.files:
            return object()
        raise FileNotFoundError(path)

    def mkdir(self, path, mode=0o777):
        if path in self.deny_mkdir:
            raise PermissionError(f"Permission denied: {path}")
        self.dirs.add(path)

    def open(self, path, mode="r"):
        if path in self.deny_open:
            raise PermissionError(f"Permission denied: {path}")
        return _FakeFile(self, path, self.fail_write)

    def chmod(self, path, mode):
        self.modes[path] = mode

    def posix_rename(self, old, new):
        self.renames.append((old, new))
        self.files[new] = self.files.pop(old)
        if old in self.modes:
            self.modes[new] = self.modes.pop(old)

    def close(self):
        self.closed = True


# ----------------- Event capture -----------------

class RecordingObserver:
    def __init__(self): self.events = []
    def notify(self, event): self.events.append(event)
    def steps(self):
        return [(e.step_id, e.status) for e in self.events if isinstance(e, StepEvent)]
    def lines(self):
        return [e.line for e in self.events if isinstance(e, LogLine)]


class FakeIssuer:
    def __init__(self): self.calls = []
    def issue_agent_certificate(self, server_id, host):
        self.calls.append((server_id, host))
        return CertificateBundle(ca_pem=b"CA", cert_pem=b"CERT", key_pem=b"KEY")


# ----------------- Fixtures -----------------

@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def sftp():
    return FakeSFTP()


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def progress(recorder):
    return ProgressReporter(EventBus([recorder]), "srv-1", run_id="run-1")


@pytest.fixture
def issuer():
    return FakeIssuer()
