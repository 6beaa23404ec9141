from unittest.mock import MagicMock

import pytest
import yaml
from typer.testing import CliRunner

from capi_bootstrap import __version__
from capi_bootstrap.cli import app
from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import LinodeAPIError, RemoteCallError

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch, manifest_text, linode_client):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.setenv("LINODE_TOKEN", "linode-token")
    monkeypatch.delenv("CLUSTER_NAME", raising=False)
    monkeypatch.setattr("capi_bootstrap.providers.infrastructure.linode.provider.LinodeClient",
                        MagicMock(return_value=linode_client))
    manifest = tmp_path / "demo.yaml"
    manifest.write_text(manifest_text)
    return manifest


def state_file(tmp_path):
    return tmp_path / "cluster-api" / "bootstrap" / "demo" / "kubeconfig.yaml"


def create(manifest):
    return runner.invoke(app, ["cluster", str(manifest), "--name", "demo"])


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Usage" in result.stdout
    for command in ("cluster", "delete", "get", "kubectl", "list"):
        assert command in result.stdout


def test_cluster_help():
    result = runner.invoke(app, ["cluster", "--help"])
    assert "--dry-run" in result.stdout
    assert "--tar-write-files" in result.stdout


def test_version():
    result = runner.invoke(app, ["version"])
    assert __version__ in result.stdout


def test_create_cluster(workspace, tmp_path, linode_client, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    result = create(workspace)

    assert result.exit_code == 0, result.output
    linode_client.create_instance.assert_called_once()
    state = yaml.safe_load(state_file(tmp_path).read_text())
    assert state["clusters"][0]["cluster"]["server"] == "https://172.234.0.10:6443"
    assert state["extensions"][0]["name"] == "capi-bootstrap"


def test_create_cluster_dry_run(workspace, tmp_path, linode_client):
    result = runner.invoke(app, ["cluster", str(workspace), "--name", "demo", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "## template: jinja" in result.stdout
    assert "#cloud-config" in result.stdout
    linode_client.create_node_balancer.assert_not_called()
    linode_client.create_instance.assert_not_called()
    assert not state_file(tmp_path).exists()


def test_create_cluster_fails_when_state_exists(workspace, tmp_path, linode_client):
    state_file(tmp_path).parent.mkdir(parents=True)
    state_file(tmp_path).write_text("kind: Config\n")

    result = create(workspace)

    assert result.exit_code == 1
    linode_client.create_node_balancer.assert_not_called()


def test_create_cluster_unknown_backend(workspace, linode_client):
    result = runner.invoke(app, ["cluster", str(workspace), "--name", "demo", "--backend", "ftp"])
    assert result.exit_code == 1
    linode_client.create_node_balancer.assert_not_called()


def test_create_cluster_missing_manifest(workspace, tmp_path):
    result = runner.invoke(app, ["cluster", str(tmp_path / "missing.yaml"), "--name", "demo"])
    assert result.exit_code == 1


def test_get_state_and_kubeconfig(workspace, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0

    result = runner.invoke(app, ["get", "state", "demo"])
    assert result.exit_code == 0, result.output
    assert "cluster_name: demo" in result.stdout
    assert "name: LinodeCluster" in result.stdout
    assert "linode-token" not in result.stdout

    result = runner.invoke(app, ["get", "kubeconfig", "demo"])
    assert result.exit_code == 0, result.output
    assert "current-context: demo-admin@demo" in result.stdout
    assert "capi-bootstrap" not in result.stdout


def test_get_state_missing_cluster(workspace):
    result = runner.invoke(app, ["get", "state", "nope"])
    assert result.exit_code == 1


def test_delete_forced(workspace, tmp_path, linode_client, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0
    linode_client.list_instances.return_value = [{"id": 303, "label": "demo-bootstrap"}]

    result = runner.invoke(app, ["delete", "demo", "--force"])

    assert result.exit_code == 0, result.output
    linode_client.delete_instance.assert_called_once_with(303)
    assert not state_file(tmp_path).exists()


def test_delete_declined_keeps_state(workspace, tmp_path, linode_client, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0
    linode_client.list_instances.return_value = [{"id": 303, "label": "demo-bootstrap"}]

    result = runner.invoke(app, ["delete", "demo"], input="n\n")

    assert result.exit_code == 0
    linode_client.delete_instance.assert_not_called()
    assert state_file(tmp_path).exists()


def test_delete_after_failed_create(workspace, tmp_path, linode_client, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    linode_client.create_instance.side_effect = LinodeAPIError("create instance", "region is full", 400)
    assert create(workspace).exit_code == 1
    assert not state_file(tmp_path).exists()

    linode_client.list_node_balancers.return_value = [{"id": 101, "label": "demo"}]
    assert create(workspace).exit_code == 1

    result = runner.invoke(app, ["delete", "demo", "--force"])

    assert result.exit_code == 0, result.output
    linode_client.list_node_balancers.assert_called_with({"tags": "demo"})
    linode_client.delete_node_balancer.assert_called_once_with(101)


def test_delete_without_state_declined(workspace, linode_client):
    linode_client.list_node_balancers.return_value = [{"id": 101, "label": "demo"}]
    result = runner.invoke(app, ["delete", "demo"], input="n\n")
    assert result.exit_code == 0
    linode_client.delete_node_balancer.assert_not_called()


def test_delete_without_state_unknown_infrastructure(workspace, linode_client):
    result = runner.invoke(app, ["delete", "demo", "--infrastructure", "AWSCluster", "--force"])
    assert result.exit_code == 1
    linode_client.list_node_balancers.assert_not_called()


def test_kubectl_runs_with_state_kubeconfig(workspace, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0
    seen = {}

    def fake_run(command):
        seen["command"] = command
        with open(command[2]) as f:
            seen["kubeconfig"] = yaml.safe_load(f)
        return MagicMock(returncode=3)

    monkeypatch.setattr("capi_bootstrap.commands.kubectl.subprocess.run", fake_run)
    result = runner.invoke(app, ["kubectl", "demo", "get", "nodes", "-o", "wide"])

    assert result.exit_code == 3
    assert seen["command"][:2] == ["kubectl", "--kubeconfig"]
    assert seen["command"][3:] == ["get", "nodes", "-o", "wide"]
    assert seen["kubeconfig"]["current-context"] == "demo-admin@demo"
    assert "extensions" not in seen["kubeconfig"]


def test_kubectl_missing_binary(workspace, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0
    monkeypatch.setattr("capi_bootstrap.commands.kubectl.subprocess.run", MagicMock(side_effect=FileNotFoundError))
    assert runner.invoke(app, ["kubectl", "demo", "get", "nodes"]).exit_code == 1


def test_kubectl_missing_cluster(workspace):
    assert runner.invoke(app, ["kubectl", "nope", "get", "nodes"]).exit_code == 1


def test_list_reports_unreachable_clusters(workspace, monkeypatch):
    monkeypatch.setattr(Config, "USERDATA_LIMIT", 1024 * 1024)
    assert create(workspace).exit_code == 0
    monkeypatch.setattr("capi_bootstrap.commands.list.build_node_info_list",
                        MagicMock(side_effect=RemoteCallError("list nodes", "connection refused")))

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0, result.output
    assert "demo" in result.stdout
    assert "Unreachable" in result.stdout


def test_list_without_clusters(workspace):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No clusters found." in result.stdout


def test_invalid_config_file(workspace, tmp_path):
    config = tmp_path / "bootstrap.yaml"
    config.write_text("defaults: [broken]\n")
    result = runner.invoke(app, ["--config", str(config), "list"])
    assert result.exit_code == 1
