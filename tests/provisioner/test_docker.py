import pytest

from paasdeploy.errors import ProvisionError
from paasdeploy.provisioner.docker import DockerProvisioner, NetworkProvisioner
from paasdeploy.provisioner.privilege import PrivilegeExecutor


def _docker(executor, progress, uid="1000", password=None):
    return DockerProvisioner(executor, PrivilegeExecutor(executor, uid, password), progress)


def _healthy(executor):
    executor.on("docker --version", out="Docker version 27.3.1, build ce12230\n")
    executor.on("is-active docker", out="active\n")
    return executor


# ----------------- runtime -----------------

def test_installed_and_running_docker_is_left_alone(executor, progress, recorder):
    _docker(_healthy(executor), progress).provision()

    assert not executor.ran("get.docker.com")
    assert not executor.ran("systemctl start docker")
    assert not executor.ran("apt-get")
    assert ("docker_check", "ok") in recorder.steps()
    assert ("docker_start", "ok") in recorder.steps()


def test_missing_docker_is_installed_and_user_added_to_group(executor, progress, recorder):
    _healthy(executor)
    executor.on("docker --version", rc=127, err="docker: command not found")
    executor.on("whoami", out="deploy\n")

    _docker(executor, progress).provision()

    install = executor.find("get.docker.com")
    assert len(install) == 1
    assert install[0].command.startswith("sudo -n sh -c ")
    assert install[0].timeout == 600
    assert executor.ran("usermod -aG docker deploy")
    assert ("docker_install", "ok") in recorder.steps()


def test_root_install_skips_group_membership(executor, progress):
    _healthy(executor)
    executor.on("docker --version", rc=127)

    _docker(executor, progress, uid="0").provision()

    assert executor.ran("get.docker.com")
    assert not executor.ran("usermod")


def test_install_failure_is_fatal(executor, progress, recorder):
    executor.on("docker --version", rc=127)
    executor.on("get.docker.com", rc=1, err="curl: (6) Could not resolve host")

    with pytest.raises(ProvisionError) as ei:
        _docker(executor, progress).provision()

    assert ei.value.step_id == "docker_install"
    assert "Could not resolve host" in str(ei.value)
    assert ("docker_install", "failed") in recorder.steps()


def test_inactive_daemon_is_started_and_enabled(executor, progress):
    _healthy(executor)
    executor.on("is-active docker", rc=3, out="inactive\n")

    _docker(executor, progress).provision()

    start = executor.find("systemctl start docker && systemctl enable docker")
    assert len(start) == 1
    assert start[0].timeout == 30


def test_daemon_start_failure_is_fatal(executor, progress, recorder):
    _healthy(executor)
    executor.on("is-active docker", rc=3, out="inactive\n")
    executor.on("systemctl start docker", rc=1, err="Job for docker.service failed")

    with pytest.raises(ProvisionError) as ei:
        _docker(executor, progress).provision()

    assert ei.value.step_id == "docker_start"
    assert ("docker_start", "failed") in recorder.steps()


# ----------------- plugins -----------------

def test_missing_plugins_are_installed_together(executor, progress):
    _healthy(executor)
    executor.on("docker compose version", rc=1)
    executor.on("docker buildx version", rc=1)

    _docker(executor, progress).provision()

    apt = executor.find("apt-get install")
    assert len(apt) == 1
    assert "docker-compose-plugin" in apt[0].command
    assert "docker-buildx-plugin" in apt[0].command
    assert "DEBIAN_FRONTEND=noninteractive" in apt[0].command
    assert apt[0].timeout == 600


def test_compose_install_failure_is_fatal(executor, progress):
    _healthy(executor)
    executor.on("docker compose version", rc=1)
    executor.on("apt-get", rc=100, err="E: Unable to locate package")

    with pytest.raises(ProvisionError) as ei:
        _docker(executor, progress).provision()

    assert ei.value.step_id == "docker_plugins"


def test_buildx_only_failure_degrades_gracefully(executor, progress, recorder):
    _healthy(executor)
    executor.on("docker buildx version", rc=1)
    executor.on("apt-get", rc=100, err="E: Unable to locate package")

    _docker(executor, progress).provision()

    apt = executor.find("apt-get install")
    assert "docker-compose-plugin" not in apt[0].command
    assert any("legacy builder" in line for line in recorder.lines())
    assert ("docker_plugins", "ok") in recorder.steps()


# ----------------- network -----------------

def _network(executor, progress):
    return NetworkProvisioner(PrivilegeExecutor(executor, "1000"), progress)


def test_existing_network_is_not_recreated(executor, progress):
    _network(executor, progress).ensure()

    assert executor.ran("docker network inspect paasdeploy")
    assert not executor.ran("network create")


def test_missing_network_is_created(executor, progress, recorder):
    executor.on("network inspect", rc=1)

    _network(executor, progress).ensure()

    create = executor.find("docker network create paasdeploy")
    assert len(create) == 1
    assert create[0].timeout == 30
    assert ("docker_network", "ok") in recorder.steps()


def test_concurrent_create_counts_as_success(executor, progress, recorder):
    executor.on("network inspect", rc=1)
    executor.on("network create", rc=1, err="Error response from daemon: network with name paasdeploy already exists")

    _network(executor, progress).ensure()

    assert ("docker_network", "ok") in recorder.steps()


def test_network_create_failure_is_fatal(executor, progress):
    executor.on("network inspect", rc=1)
    executor.on("network create", rc=1, err="Cannot connect to the Docker daemon")

    with pytest.raises(ProvisionError) as ei:
        _network(executor, progress).ensure()

    assert ei.value.step_id == "docker_network"
    assert str(ei.value).startswith("create docker network paasdeploy: ")
