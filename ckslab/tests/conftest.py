import io
import subprocess
from collections import defaultdict

import pytest
import yaml
from rich.console import Console

from ckslab.config import ClusterConfig

ADMIN_CONF = {
    "apiVersion": "v1",
    "kind": "Config",
    "clusters": [{
        "name": "kubernetes",
        "cluster": {
            "certificate-authority-data": "Q0EK",
            "server": "https://127.0.0.1:6443",
        },
    }],
    "contexts": [{"name": "kubernetes-admin@kubernetes",
                  "context": {"cluster": "kubernetes", "user": "kubernetes-admin"}}],
    "current-context": "kubernetes-admin@kubernetes",
    "users": [{"name": "kubernetes-admin",
               "user": {"client-certificate-data": "Q0VSVAo=", "client-key-data": "S0VZCg=="}}],
}

JOIN_COMMAND = (
    "kubeadm join 10.0.0.2:6443 --token abcdef.0123456789abcdef "
    "--discovery-token-ca-cert-hash sha256:1234\n"
)


class FakeStream:
    def __init__(self):
        self.terminated = False
        self.waited = False

    def terminate(self):
        self.terminated = True

    def wait(self):
        self.waited = True
        return 0


class FakeMultipass:
    """In-memory stand-in for the multipass CLI."""

    def __init__(self, existing=(), installed=True):
        self.installed = installed
        self.vms = list(existing)
        self.ips = {name: f"10.0.0.{i + 2}" for i, name in enumerate(self.vms)}
        self.calls = []
        self.launched = []
        self.deleted = []
        self.purged = 0
        self.streams = []
        self.files = {}
        self.unlogged = []

        # Behaviour knobs
        self.launch_failures = set()
        self.delete_failures = set()
        self.sentinel_after = {}
        self.sentinel_checks = defaultdict(int)
        self.log_text = {}
        self.init_code = 0
        self.join_failures = set()
        self.tool_failures = set()
        self.cni_failures = set()
        self.not_ready_polls = 0
        self.node_polls = 0
        self.joined = []
        self.initialized = False
        self.admin_conf = ADMIN_CONF

    # multipass surface

    def available(self):
        return self.installed

    def exists(self, name):
        self.calls.append(("exists", name))
        return name in self.vms

    def launch(self, name, cpus, memory, disk, image, cloud_init):
        self.calls.append(("launch", name))
        if name in self.launch_failures:
            raise subprocess.CalledProcessError(2, ["multipass", "launch", "-n", name])
        self.vms.append(name)
        self.ips[name] = f"10.0.0.{len(self.ips) + 2}"
        self.launched.append((name, cpus, memory, disk, image, str(cloud_init)))

    def ipv4(self, name):
        return self.ips[name]

    def file_exists(self, name, path):
        self.sentinel_checks[name] += 1
        return self.sentinel_checks[name] >= self.sentinel_after.get(name, 1)

    def tail(self, name, path, lines=20):
        return self.log_text.get(name, "")

    def follow(self, name, path):
        stream = FakeStream()
        self.streams.append((name, path, stream))
        return stream

    def exec_to_log(self, name, command, log_path, echo=False, stream=None):
        self.calls.append(("exec_to_log", name, tuple(command), echo))
        log_path.write_text("[init] Using Kubernetes version\n")
        if self.init_code == 0:
            self.initialized = True
        return self.init_code

    def delete(self, name):
        self.calls.append(("delete", name))
        if name in self.delete_failures:
            raise subprocess.CalledProcessError(1, ["multipass", "delete", name])
        self.vms.remove(name)
        self.deleted.append(name)

    def purge(self):
        self.purged += 1

    def list_names(self):
        return list(self.vms)

    def exec(self, name, command, *, check=True, input=None, log_output=True):
        command = list(command)
        self.calls.append(("exec", name, tuple(command)))
        if not log_output:
            self.unlogged.append(tuple(command))

        if command[:2] == ["sudo", "tee"]:
            self.files[(name, command[2])] = input
            return self._result(command, 0, check, stdout=input)
        if command[:3] == ["kubectl", "get", "nodes"] and "--no-headers" in command:
            return self._result(command, 0, check, stdout=self._node_table())
        if command[:3] == ["kubectl", "get", "nodes"]:
            return self._result(command, 0, check, stdout="NAME STATUS\n" + self._node_table())
        if command[:4] == ["sudo", "kubeadm", "token", "create"]:
            return self._result(command, 0, check, stdout=JOIN_COMMAND)
        if command[:3] == ["sudo", "kubeadm", "join"]:
            if name in self.join_failures:
                return self._result(command, 1, check)
            self.joined.append(name)
            return self._result(command, 0, check)
        if command[:3] == ["kubectl", "create", "-f"]:
            return self._result(command, 1 if command[3] in self.cni_failures else 0, check)
        if command[:2] == ["bash", "-c"] and ("apt-get" in command[2] or "dpkg" in command[2]):
            failed = any(tool in command[2] for tool in self.tool_failures)
            return self._result(command, 100 if failed else 0, check)
        if command[:2] == ["sudo", "cat"]:
            return self._result(command, 0, check, stdout=yaml.safe_dump(self.admin_conf))
        return self._result(command, 0, check)

    # helpers

    def _node_table(self):
        self.node_polls += 1
        if not self.initialized:
            return ""
        status = "NotReady" if self.node_polls <= self.not_ready_polls else "Ready"
        names = [self.vms[0], *self.joined] if self.vms else []
        return "".join(f"{n}   {status}   <none>   1m   v1.35.0\n" for n in names)

    @staticmethod
    def _result(command, code, check, stdout=""):
        if check and code != 0:
            raise subprocess.CalledProcessError(code, command, output=stdout, stderr="boom")
        return subprocess.CompletedProcess(command, code, stdout=stdout, stderr="")

    def exec_commands(self, name=None):
        return [c[2] for c in self.calls if c[0] == "exec" and (name is None or c[1] == name)]


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides):
        values = dict(
            k8s_version="1.35",
            control_node="control",
            worker_nodes=("worker1", "worker2"),
            workdir=tmp_path,
            stabilize_delay=0,
            cni_settle_delay=0,
            node_ready_interval=0,
            node_ready_attempts=5,
            cloud_init_timeout=30,
            strict_tools=False,
        )
        values.update(overrides)
        return ClusterConfig(**values)
    return factory


@pytest.fixture
def cluster_config(make_config):
    return make_config()


@pytest.fixture
def make_backend():
    return FakeMultipass


@pytest.fixture
def backend():
    return FakeMultipass()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None, force_terminal=False)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append
