from ckslab.modules.teardown import teardown


def test_nothing_to_delete(cluster_config, backend, console):
    report = teardown(backend, cluster_config, console)

    assert report.deleted == []
    assert report.missing == ["control", "worker1", "worker2"]
    assert report.purged is True
    assert "not found, skipping" in console.file.getvalue()


def test_deletes_vms_and_local_files(cluster_config, make_backend, console):
    backend = make_backend(existing=["control", "worker1", "worker2"])
    for path in cluster_config.generated_files:
        path.write_text("x")

    report = teardown(backend, cluster_config, console)

    assert report.deleted == ["control", "worker1", "worker2"]
    assert backend.purged == 1
    assert report.removed_files == cluster_config.generated_files
    assert not any(path.exists() for path in cluster_config.generated_files)


def test_partial_cluster(cluster_config, make_backend, console):
    backend = make_backend(existing=["worker2"])

    report = teardown(backend, cluster_config, console)

    assert report.deleted == ["worker2"]
    assert report.missing == ["control", "worker1"]


def test_failed_delete_does_not_stop_teardown(cluster_config, make_backend, console):
    backend = make_backend(existing=["control", "worker1", "worker2"])
    backend.delete_failures.add("control")
    cluster_config.kubeconfig_path.write_text("x")

    report = teardown(backend, cluster_config, console)

    assert report.failed == ["control"]
    assert report.deleted == ["worker1", "worker2"]
    assert report.purged is True
    assert not cluster_config.kubeconfig_path.exists()


def test_second_run_is_harmless(cluster_config, make_backend, console):
    backend = make_backend(existing=["control", "worker1", "worker2"])
    teardown(backend, cluster_config, console)

    report = teardown(backend, cluster_config, console)

    assert report.deleted == []
    assert report.removed_files == []
    assert backend.purged == 2


def test_missing_multipass_still_cleans_files(cluster_config, make_backend, console):
    backend = make_backend(installed=False)
    cluster_config.cloud_init_path.write_text("x")

    report = teardown(backend, cluster_config, console)

    assert report.purged is False
    assert report.removed_files == [cluster_config.cloud_init_path]
    assert backend.calls == []
