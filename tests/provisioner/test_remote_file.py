import re

import pytest

from paasdeploy.errors import RemoteWriteError
from paasdeploy.provisioner.remote_file import TMP_PREFIX, RemoteFileWriter


def test_root_writes_directly(executor):
    RemoteFileWriter(executor, "0").write("/opt/traefik/traefik.yml", b"data")

    assert len(executor.calls) == 1
    assert executor.calls[0].command == "cat > /opt/traefik/traefik.yml"
    assert executor.calls[0].stdin == b"data"


def test_password_writes_temp_then_moves_with_sudo(executor):
    RemoteFileWriter(executor, "1000", "pw").write("/opt/traefik/traefik.yml", b"data")

    first, second = executor.calls
    m = re.fullmatch(r"cat > (/tmp/\.paasdeploy_[0-9a-f]{32})", first.command)
    assert m, first.command
    assert first.stdin == b"data"

    tmp = m.group(1)
    assert second.command == f"sudo -S -p '' mv {tmp} /opt/traefik/traefik.yml"
    assert second.stdin == b"pw\n"


def test_password_move_failure_cleans_up_temp(executor):
    executor.on("mv ", rc=1, err="mv: cannot move")
    with pytest.raises(RemoteWriteError, match="move file to destination"):
        RemoteFileWriter(executor, "1000", "pw").write("/opt/x", b"data")

    rm = executor.find("rm -f")
    assert len(rm) == 1
    assert TMP_PREFIX in rm[0].command


def test_no_password_uses_sudo_tee(executor):
    RemoteFileWriter(executor, "1000").write("/opt/traefik/traefik.yml", b"data")

    assert executor.calls[0].command == "sudo -n tee /opt/traefik/traefik.yml > /dev/null"
    assert executor.calls[0].stdin == b"data"


def test_direct_write_failure_raises(executor):
    executor.on("cat >", rc=1, err="Permission denied")
    with pytest.raises(RemoteWriteError, match="Permission denied"):
        RemoteFileWriter(executor, "0").write("/opt/x", b"data")
