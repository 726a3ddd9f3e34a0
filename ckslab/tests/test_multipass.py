import io
import json
import logging
import os
import subprocess

import pytest

from ckslab.modules.multipass import Multipass

FAKE_MULTIPASS = """#!/bin/sh
here="$(dirname "$0")"
echo "$*" >> "$here/calls.log"
case "$1" in
  info)
    [ -f "$here/vm-$2.json" ] || exit 1
    if [ "$3" = "--format" ]; then cat "$here/vm-$2.json"; fi
    ;;
  list)
    cat "$here/list.json"
    ;;
  exec)
    shift 3
    exec "$@"
    ;;
esac
"""


@pytest.fixture
def bin_dir(tmp_path):
    path = tmp_path / "bin"
    path.mkdir()
    script = path / "multipass"
    script.write_text(FAKE_MULTIPASS)
    os.chmod(script, 0o755)
    return path


@pytest.fixture
def multipass(bin_dir):
    return Multipass(binary=str(bin_dir / "multipass"))


def add_vm(bin_dir, name, ipv4):
    (bin_dir / f"vm-{name}.json").write_text(json.dumps({"info": {name: {"state": "Running", "ipv4": ipv4}}}))


def calls(bin_dir):
    return (bin_dir / "calls.log").read_text().splitlines()


def test_available(multipass, tmp_path):
    assert multipass.available() is True
    assert Multipass(binary=str(tmp_path / "missing")).available() is False


def test_exists_follows_exit_code(multipass, bin_dir):
    add_vm(bin_dir, "control", ["10.0.0.2"])

    assert multipass.exists("control") is True
    assert multipass.exists("worker1") is False


@pytest.mark.parametrize("reported,expected", [
    (["10.0.0.2", "10.1.0.1"], "10.0.0.2"),
    ("10.0.0.3", "10.0.0.3"),
    (["", "10.0.0.5"], "10.0.0.5"),
])
def test_ipv4(multipass, bin_dir, reported, expected):
    add_vm(bin_dir, "control", reported)
    assert multipass.ipv4("control") == expected
    assert calls(bin_dir) == ["info control --format json"]


def test_ipv4_without_address(multipass, bin_dir):
    add_vm(bin_dir, "control", [])
    with pytest.raises(ValueError, match="No IPv4 address"):
        multipass.ipv4("control")


def test_launch_arguments(multipass, bin_dir, tmp_path):
    cloud_init = tmp_path / "cloud-init.yaml"

    multipass.launch("control", cpus=2, memory="2G", disk="20G", image="22.04", cloud_init=cloud_init)

    assert calls(bin_dir) == [f"launch -n control -c 2 -m 2G -d 20G 22.04 --cloud-init {cloud_init}"]


def test_exec(multipass, bin_dir):
    result = multipass.exec("control", ["echo", "hello"])

    assert result.stdout == "hello\n"
    assert calls(bin_dir) == ["exec control -- echo hello"]


def test_exec_failure(multipass):
    assert multipass.exec("control", ["sh", "-c", "exit 4"], check=False).returncode == 4
    with pytest.raises(subprocess.CalledProcessError):
        multipass.exec("control", ["sh", "-c", "exit 4"])


def test_exec_passes_input(multipass, tmp_path):
    target = tmp_path / "kubeadm-config.yaml"
    multipass.exec("control", ["tee", str(target)], input="kind: InitConfiguration\n")
    assert target.read_text() == "kind: InitConfiguration\n"


def test_exec_can_keep_output_out_of_the_log(multipass, tmp_path, caplog):
    join = tmp_path / "join"
    join.write_text("kubeadm join 10.0.0.2:6443 --token abcdef.0123456789abcdef "
                    "--discovery-token-ca-cert-hash sha256:1234\n")

    with caplog.at_level(logging.DEBUG, logger="ckslab.utils"):
        result = multipass.exec("control", ["cat", str(join)], log_output=False)

    assert "abcdef.0123456789abcdef" in result.stdout
    assert "abcdef.0123456789abcdef" not in caplog.text
    assert "sha256:1234" not in caplog.text


def test_file_exists_and_tail(multipass, tmp_path):
    log = tmp_path / "cloud-init-output.log"
    log.write_text("one\ntwo\nthree\n")

    assert multipass.file_exists("control", str(log)) is True
    assert multipass.file_exists("control", str(tmp_path / "kubeadm-ready")) is False
    assert multipass.tail("control", str(log), lines=2) == "two\nthree\n"
    assert multipass.tail("control", str(tmp_path / "missing.log")) == ""


def test_exec_to_log(multipass, tmp_path):
    log_path = tmp_path / "logs" / "kubeadm-init.log"
    stream = io.StringIO()

    code = multipass.exec_to_log("control", ["sh", "-c", "echo one; echo two >&2; exit 3"], log_path, stream=stream)

    assert code == 3
    assert log_path.read_text().split() == ["one", "two"]
    assert stream.getvalue() == ""


def test_exec_to_log_echoes_when_asked(multipass, tmp_path):
    log_path = tmp_path / "kubeadm-init.log"
    stream = io.StringIO()

    code = multipass.exec_to_log("control", ["echo", "[init] done"], log_path, echo=True, stream=stream)

    assert code == 0
    assert stream.getvalue() == "[init] done\n"
    assert log_path.read_text() == "[init] done\n"


def test_follow_can_be_terminated(multipass, tmp_path):
    log = tmp_path / "cloud-init-output.log"
    log.write_text("Setting up kubelet\n")

    handle = multipass.follow("control", str(log))
    assert handle.poll() is None

    handle.terminate()
    handle.wait()
    assert handle.poll() is not None


def test_delete_purge_and_list(multipass, bin_dir):
    (bin_dir / "list.json").write_text(json.dumps({"list": [{"name": "control"}, {"name": "worker1"}]}))

    multipass.delete("worker1")
    multipass.purge()

    assert multipass.list_names() == ["control", "worker1"]
    assert calls(bin_dir) == ["delete worker1", "purge", "list --format json"]
