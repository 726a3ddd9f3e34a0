import pytest
import yaml

from ckslab.modules.errors import ControlPlaneError, PrerequisiteError
from ckslab.modules.kubeadm import REMOTE_CONFIG_PATH
from ckslab.modules.models import SchemaVersion
from ckslab.modules.orchestrator import ClusterBootstrap


def kubeadm_api_versions(backend):
    documents = yaml.safe_load_all(backend.files[("control", REMOTE_CONFIG_PATH)])
    return {doc["apiVersion"] for doc in documents}


@pytest.mark.parametrize("version,schema", [
    ("1.30", SchemaVersion.LEGACY),
    ("1.35", SchemaVersion.NEW),
])
def test_full_bootstrap(make_config, backend, console, fake_sleep, version, schema):
    config = make_config(k8s_version=version)

    report = ClusterBootstrap(config, backend=backend, console=console, sleep=fake_sleep).run()

    assert report.schema == schema
    assert kubeadm_api_versions(backend) == {schema.api_version}
    assert report.node_ips == {"control": "10.0.0.2", "worker1": "10.0.0.3", "worker2": "10.0.0.4"}
    assert report.nodes_ready is True
    assert report.complete
    assert "3/3 Ready" in console.file.getvalue()

    saved = yaml.safe_load(report.kubeconfig.read_text())
    assert saved["clusters"][0]["cluster"]["server"] == "https://10.0.0.2:6443"
    assert f"v{version}/deb/" in config.cloud_init_path.read_text()


def test_rerun_reuses_existing_vms(cluster_config, make_backend, console, fake_sleep):
    backend = make_backend(existing=["control", "worker1", "worker2"])

    ClusterBootstrap(cluster_config, backend=backend, console=console, sleep=fake_sleep).run()

    assert backend.launched == []
    assert console.file.getvalue().count("already exists, skipping") == 3


def test_partial_join_still_exports_kubeconfig(cluster_config, backend, console, fake_sleep):
    backend.join_failures.add("worker2")

    report = ClusterBootstrap(cluster_config, backend=backend, console=console, sleep=fake_sleep).run()

    assert [r.name for r in report.failed_joins] == ["worker2"]
    assert report.nodes_ready is False
    assert not report.complete
    assert report.kubeconfig.exists()
    assert [r.ok for r in report.tools] == [True, True, True]


def test_stops_before_provisioning_without_multipass(cluster_config, make_backend, console):
    backend = make_backend(installed=False)

    with pytest.raises(PrerequisiteError):
        ClusterBootstrap(cluster_config, backend=backend, console=console).run()

    assert backend.calls == []
    assert not cluster_config.cloud_init_path.exists()


def test_failed_init_stops_the_pipeline(cluster_config, backend, console, fake_sleep):
    backend.init_code = 1

    with pytest.raises(ControlPlaneError):
        ClusterBootstrap(cluster_config, backend=backend, console=console, sleep=fake_sleep).run()

    assert not any(c[:2] == ("kubectl", "create") for c in backend.exec_commands())
    assert backend.joined == []
    assert not cluster_config.kubeconfig_path.exists()
