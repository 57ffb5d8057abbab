import pytest

from paasdeploy.errors import RemoteCommandError
from paasdeploy.provisioner.privilege import PrivilegeExecutor, command_succeeds, run_command


def test_root_runs_directly(executor):
    executor.on("whoami", out="root\n")
    p = PrivilegeExecutor(executor, "0", "ignored")

    assert p.is_root
    assert p.run("whoami") == "root"
    assert executor.calls[0].command == "whoami"
    assert executor.calls[0].stdin is None


def test_password_uses_sudo_S_and_writes_password_on_stdin(executor):
    p = PrivilegeExecutor(executor, "1000", "pw")
    p.run("systemctl start docker && systemctl enable docker", timeout=30)

    call = executor.calls[0]
    assert call.command.startswith("sudo -S -p '' sh -c ")
    # the whole compound command runs elevated
    assert "'systemctl start docker && systemctl enable docker'" in call.command
    assert call.stdin == b"pw\n"
    assert call.timeout == 30


def test_no_password_uses_sudo_n(executor):
    p = PrivilegeExecutor(executor, "1000")
    p.run("docker ps")

    assert executor.calls[0].command == "sudo -n docker ps"
    assert executor.calls[0].stdin is None


def test_quoted_inspect_reaches_sudo_verbatim(executor):
    cmd = "docker inspect traefik --format '{{.State.Running}}'"
    executor.on("{{.State.Running}}", out="true\n")

    assert PrivilegeExecutor(executor, "1000").run(cmd) == "true"
    assert executor.calls[0].command == f"sudo -n {cmd}"


def test_failure_reports_original_command_and_clean_stderr(executor):
    executor.on("docker ps", rc=1, err="[sudo] password for deploy:\npermission denied\n")
    p = PrivilegeExecutor(executor, "1000", "pw")

    with pytest.raises(RemoteCommandError) as ei:
        p.run("docker ps")

    err = ei.value
    assert err.command == "docker ps"
    assert err.exit_status == 1
    assert err.stderr == "permission denied"
    assert "sudo" not in str(err)
    assert "pw" not in str(err)


def test_succeeds_never_raises(executor):
    executor.on("docker compose version", rc=127)
    p = PrivilegeExecutor(executor, "0")

    assert p.succeeds("docker compose version") is False
    assert p.succeeds("docker --version") is True


def test_unprivileged_helpers(executor):
    executor.on("id -u", out="1000\n").on("false", rc=1, err="nope")

    assert run_command(executor, "id -u") == "1000"
    assert command_succeeds(executor, "false") is False
    with pytest.raises(RemoteCommandError, match="exit 1"):
        run_command(executor, "false")
