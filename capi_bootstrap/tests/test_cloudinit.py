import io
import tarfile
from unittest.mock import MagicMock

import pytest
import yaml

from capi_bootstrap.cloudinit.generator import (
    CLOUD_CONFIG_HEADER,
    DEBUG_COMMANDS,
    TAR_EXTRACT_COMMANDS,
    TAR_PATH,
    create_tar,
    generate_capi_manifests,
    generate_cloud_init,
)
from capi_bootstrap.cloudinit.models import CloudConfig, InitFile, ParsedManifest
from capi_bootstrap.exceptions import AssemblyError, ManifestError, NoCertificatesError
from capi_bootstrap.manifests import get_cluster_def, split

MANIFEST_DIR = "/var/lib/rancher/k3s/server/manifests/"


def cloud_config(user_data: bytes) -> dict:
    text = user_data.decode("utf-8")
    assert text.startswith(CLOUD_CONFIG_HEADER)
    return yaml.safe_load(text[len(CLOUD_CONFIG_HEADER):])


def test_init_file_path_must_be_absolute():
    with pytest.raises(ManifestError):
        InitFile(path="relative/file")


def test_init_file_to_dict_omits_empty_fields():
    assert InitFile(path="/etc/a", content="x", permissions="0600").to_dict() == {
        "path": "/etc/a",
        "content": "x",
        "permissions": "0600",
    }


def test_cloud_config_keeps_order():
    config = CloudConfig(write_files=[InitFile(path="/b"), InitFile(path="/a")], runcmd=["2", "1"])
    assert config.to_dict() == {"write_files": [{"path": "/b"}, {"path": "/a"}], "runcmd": ["2", "1"]}


def test_parsed_manifest_merge():
    first = ParsedManifest(pre_run_cmd=["a"], additional_files=[InitFile(path="/a")])
    first.merge(ParsedManifest(pre_run_cmd=["b"], post_run_cmd=["c"], additional_files=[InitFile(path="/b")]))
    assert first.pre_run_cmd == ["a", "b"]
    assert first.post_run_cmd == ["c"]
    assert [f.path for f in first.additional_files] == ["/a", "/b"]


def test_generate_capi_manifests(deployed):
    values, providers = deployed
    parsed = generate_capi_manifests(values, providers)

    assert parsed.manifest_file.path == MANIFEST_DIR + "capi-manifests.yaml"
    documents = split(parsed.manifest_file.content)
    _, cluster = get_cluster_def(documents)
    assert cluster.spec.control_plane_ref.name == "demo-control-plane"
    assert "172.234.0.10" in parsed.manifest_file.content
    # still escaped: cloud-init renders the payload once more on the node
    assert "{{ '{{ ds.meta_data.region }}' }}" in parsed.manifest_file.content
    assert parsed.pre_run_cmd == ['echo "{{ ds.meta_data.id }}" > /etc/node-id']


def test_generate_cloud_init_ordering(deployed):
    values, providers = deployed
    config = cloud_config(generate_cloud_init(values, providers, offload=False))

    paths = [f["path"] for f in config["write_files"]]
    assert paths == [
        MANIFEST_DIR + "cert-manager.yaml",
        MANIFEST_DIR + "capi-operator.yaml",
        MANIFEST_DIR + "capi-k3s.yaml",
        MANIFEST_DIR + "capi-linode.yaml",
        MANIFEST_DIR + "capi-pivot-machine.yaml",
        MANIFEST_DIR + "capi-manifests.yaml",
        MANIFEST_DIR + "cp-secrets.yaml",
        MANIFEST_DIR + "kubeconfig-secret.yaml",
        "/tmp/init-cluster.sh",
        MANIFEST_DIR + "linode-ccm.yaml",
        "/etc/rancher/k3s/config.yaml",
        MANIFEST_DIR + "etcd-proxy.yaml",
        "/var/lib/rancher/k3s/server/tls/server-ca.crt",
        "/var/lib/rancher/k3s/server/tls/server-ca.key",
        "/var/lib/rancher/k3s/server/tls/client-ca.crt",
        "/var/lib/rancher/k3s/server/tls/client-ca.key",
        "/etc/node-region",
    ]

    runcmd = config["runcmd"]
    assert runcmd[:len(DEBUG_COMMANDS)] == DEBUG_COMMANDS
    assert runcmd[len(DEBUG_COMMANDS)].startswith("curl -sfL https://get.k3s.io")
    assert runcmd[len(DEBUG_COMMANDS) + 1:] == [
        'echo "{{ ds.meta_data.id }}" > /etc/node-id',
        "bash /tmp/init-cluster.sh",
        "echo post",
    ]


def test_generate_cloud_init_tar_mode(deployed):
    values, providers = deployed
    values.tar_write_files = True
    config = cloud_config(generate_cloud_init(values, providers, offload=False))

    (archive,) = config["write_files"]
    assert archive["path"] == TAR_PATH
    assert config["runcmd"][:2] == TAR_EXTRACT_COMMANDS

    with tarfile.open(fileobj=io.BytesIO(archive["content"]), mode="r:gz") as tar:
        members = tar.getmembers()
        names = [m.name for m in members]
        assert names[0] == MANIFEST_DIR.lstrip("/") + "cert-manager.yaml"
        assert "tmp/init-cluster.sh" in names
        assert all(m.mode == 0o644 for m in members)


def test_generate_cloud_init_offload_commands_come_first(deployed):
    values, providers = deployed
    backend = MagicMock()
    backend.write_files.return_value = ["curl -s 'https://example.com/f' | xargs -0 cloud-init query -f > /f"]
    providers.backend = backend

    config = cloud_config(generate_cloud_init(values, providers))

    assert config["runcmd"][0] == "curl -s 'https://example.com/f' | xargs -0 cloud-init query -f > /f"
    assert config["runcmd"][1:1 + len(DEBUG_COMMANDS)] == DEBUG_COMMANDS
    cluster_name, files = backend.write_files.call_args.args
    assert cluster_name == "demo"
    assert len(files) == len(config["write_files"])


def test_generate_cloud_init_offload_to_file_backend_fails(deployed, monkeypatch):
    values, providers = deployed
    monkeypatch.setattr("capi_bootstrap.config.Config.USERDATA_LIMIT", 1024)
    with pytest.raises(AssemblyError, match="offloaded files"):
        generate_cloud_init(values, providers)


def test_generate_cloud_init_tar_mode_counts_encoded_archive(deployed, monkeypatch):
    values, providers = deployed
    values.tar_write_files = True
    user_data = generate_cloud_init(values, providers, offload=False)
    archive = cloud_config(user_data)["write_files"][0]["content"]

    limit = len(user_data) - 64
    assert len(archive) < limit
    monkeypatch.setattr("capi_bootstrap.config.Config.USERDATA_LIMIT", limit)
    with pytest.raises(AssemblyError, match="offloaded files"):
        generate_cloud_init(values, providers)


def test_init_file_size_of_binary_content_is_base64_length():
    assert InitFile(path="/tmp/a.tgz", content=bytes(10)).size == 16
    assert InitFile(path="/etc/a", content="é").size == 2


def test_generate_cloud_init_without_certificates(values, providers):
    providers.infrastructure.pre_deploy(values)
    values.bootstrap_manifest_dir = MANIFEST_DIR
    with pytest.raises(AssemblyError) as excinfo:
        generate_cloud_init(values, providers, offload=False)
    assert excinfo.value.artifact == "control plane certificates"
    assert isinstance(excinfo.value.cause, NoCertificatesError)


def test_create_tar_strips_leading_slash():
    archive = create_tar([InitFile(path="/etc/a.yaml", content="a"), InitFile(path="/bin/b", content=b"\x00")])
    assert archive.path == TAR_PATH
    with tarfile.open(fileobj=io.BytesIO(archive.content), mode="r:gz") as tar:
        assert tar.getnames() == ["etc/a.yaml", "bin/b"]
        assert tar.extractfile("bin/b").read() == b"\x00"
