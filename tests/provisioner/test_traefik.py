import pytest
import yaml

from paasdeploy.errors import ConfigValidationError, ProvisionError
from paasdeploy.provisioner.privilege import PrivilegeExecutor
from paasdeploy.provisioner.remote_file import RemoteFileWriter
from paasdeploy.provisioner.traefik import (
    TRAEFIK_CONFIG_PATH,
    TraefikProvisioner,
    build_traefik_config,
    sanitize_acme_email,
)


def _traefik(executor, progress, uid="0"):
    return TraefikProvisioner(PrivilegeExecutor(executor, uid), RemoteFileWriter(executor, uid), progress)


# ----------------- config -----------------

def test_config_contents():
    cfg = yaml.safe_load(build_traefik_config("  ops@example.com "))

    assert cfg["entryPoints"] == {
        "web": {"address": ":80"},
        "websecure": {"address": ":443"},
        "grpc": {"address": ":50051"},
        "traefik": {"address": ":8081"},
    }
    docker = cfg["providers"]["docker"]
    assert docker["endpoint"] == "unix:///var/run/docker.sock"
    assert docker["exposedByDefault"] is False
    assert docker["network"] == "paasdeploy"

    acme = cfg["certificatesResolvers"]["letsencrypt"]["acme"]
    assert acme["email"] == "ops@example.com"
    assert acme["storage"] == "/letsencrypt/acme.json"
    assert acme["httpChallenge"] == {"entryPoint": "web"}
    assert cfg["api"] == {"dashboard": True}
    assert cfg["log"] == {"level": "INFO"}


@pytest.mark.parametrize("email", [
    "",
    "not-an-email",
    "ops@localhost",
    "ops@example.com\n  storage: /etc/passwd",
    "a b@example.com",
])
def test_invalid_email_is_rejected(email):
    with pytest.raises(ConfigValidationError):
        build_traefik_config(email)


def test_sanitize_trims():
    assert sanitize_acme_email(" first.last+tag@mail.example.org\t") == "first.last+tag@mail.example.org"


# ----------------- provisioning -----------------

def test_current_container_is_left_running(executor, progress, recorder):
    executor.on("{{.State.Running}}", out="true\n")
    executor.on("{{.Config.Image}}", out="traefik:v3.2\n")

    _traefik(executor, progress).provision("ops@example.com")

    assert not executor.ran("docker run")
    assert not executor.ran("docker pull")
    assert recorder.steps() == [("traefik_check", "running"), ("traefik_check", "ok")]


def test_version_drift_triggers_pull_and_run(executor, progress, recorder):
    executor.on("{{.State.Running}}", out="true\n")
    executor.on("{{.Config.Image}}", out="traefik:v2.11\n")

    _traefik(executor, progress).provision("ops@example.com")

    cmds = executor.commands()
    order = [
        next(i for i, c in enumerate(cmds) if c.startswith("mkdir -p /opt/traefik /opt/traefik/letsencrypt")),
        next(i for i, c in enumerate(cmds) if c == f"cat > {TRAEFIK_CONFIG_PATH}"),
        cmds.index("docker stop traefik"),
        cmds.index("docker rm traefik"),
        cmds.index("docker pull traefik:v3.2"),
        next(i for i, c in enumerate(cmds) if c.startswith("docker run -d --name traefik")),
    ]
    assert order == sorted(order)

    run = executor.find("docker run")[0]
    assert "--network paasdeploy" in run.command
    assert "--restart unless-stopped" in run.command
    for port in ("80:80", "443:443", "50051:50051", "8081:8081"):
        assert f"-p {port}" in run.command
    assert "-v /var/run/docker.sock:/var/run/docker.sock:ro" in run.command
    assert "-v /opt/traefik/traefik.yml:/etc/traefik/traefik.yml:ro" in run.command
    assert run.command.endswith("traefik:v3.2")
    assert run.timeout == 300
    assert ("traefik_install", "ok") in recorder.steps()


def test_missing_container_is_installed(executor, progress):
    executor.on("docker inspect", rc=1, err="Error: No such object: traefik")
    executor.on("docker stop", rc=1, err="No such container")
    executor.on("docker rm", rc=1, err="No such container")

    _traefik(executor, progress).provision("ops@example.com")

    written = executor.find(f"cat > {TRAEFIK_CONFIG_PATH}")[0]
    assert yaml.safe_load(written.stdin)["certificatesResolvers"]["letsencrypt"]["acme"]["email"] == "ops@example.com"
    assert executor.ran("docker run -d")


def test_invalid_email_fails_before_any_mutation(executor, progress, recorder):
    executor.on("docker inspect", rc=1)

    with pytest.raises(ProvisionError) as ei:
        _traefik(executor, progress).provision("bad email")

    assert isinstance(ei.value.cause, ConfigValidationError)
    assert ei.value.step_id == "traefik_install"
    assert all(c.startswith("docker inspect") for c in executor.commands())


def test_pull_failure_is_not_fatal(executor, progress):
    executor.on("docker inspect", rc=1)
    executor.on("docker pull", rc=1, err="toomanyrequests")

    _traefik(executor, progress).provision("ops@example.com")

    assert executor.ran("docker run -d")


def test_run_failure_is_fatal(executor, progress, recorder):
    executor.on("docker inspect", rc=1)
    executor.on("docker run", rc=125, err="port is already allocated")

    with pytest.raises(ProvisionError, match="port is already allocated") as ei:
        _traefik(executor, progress).provision("ops@example.com")

    assert ei.value.step_id == "traefik_install"
    assert ("traefik_install", "failed") in recorder.steps()


def test_non_root_writes_config_through_sudo(executor, progress):
    executor.on("docker inspect", rc=1)

    _traefik(executor, progress, uid="1000").provision("ops@example.com")

    assert executor.ran(f"sudo -n tee {TRAEFIK_CONFIG_PATH}")
    assert executor.ran("sudo -n docker run -d")
