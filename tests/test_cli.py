"""
Tests for the cert-sync CLI.
"""

from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from cert_sync.engine.reconcile import TickResult
from cert_sync.errors import OrchestrationUnreachable
from cert_sync.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def env(config):
    return {
        "PROXY_IP": config.proxy_ip,
        "SSH_KEY_PATH": str(config.ssh_key_path),
        "STATE_DIR": str(config.state_dir),
        "LOG_FORMAT": "text",
    }


class TestRenderConfig:
    """Tests for `cert-sync render-config`."""

    def test_default_cert_dir(self, runner):
        result = runner.invoke(cli, ["render-config", "example.com"], env={"REMOTE_CERT_DIR": None})

        assert result.exit_code == 0
        entry = yaml.safe_load(result.output)["tls"]["certificates"][0]
        assert entry == {
            "certFile": "/opt/traefik/certs/example.com/tls.crt",
            "keyFile": "/opt/traefik/certs/example.com/tls.key",
            "stores": ["default"],
        }

    def test_cert_dir_option(self, runner):
        result = runner.invoke(cli, ["render-config", "example.com", "--cert-dir", "/srv/certs/"])

        assert result.exit_code == 0
        assert "certFile: /srv/certs/example.com/tls.crt" in result.output

    def test_cert_dir_from_env(self, runner):
        result = runner.invoke(cli, ["render-config", "example.com"], env={"REMOTE_CERT_DIR": "/data/certs"})

        assert "keyFile: /data/certs/example.com/tls.key" in result.output


class TestConfigErrors:
    """Tests for fatal configuration handling."""

    @pytest.mark.parametrize("command", ["run", "once", "check"])
    def test_missing_proxy_ip(self, runner, command):
        result = runner.invoke(cli, [command], env={"PROXY_IP": None})

        assert result.exit_code == 1
        assert "PROXY_IP environment variable is required" in result.output

    def test_missing_ssh_key(self, runner, env, tmp_path):
        env["SSH_KEY_PATH"] = str(tmp_path / "missing")

        result = runner.invoke(cli, ["once"], env=env)

        assert result.exit_code == 1
        assert "SSH key not found" in result.output


class TestOnce:
    """Tests for `cert-sync once`."""

    def _controller(self, tick):
        controller = MagicMock()
        controller.run_once.return_value = tick
        return controller

    def test_all_in_sync(self, runner, env):
        tick = TickResult(tick_id="T-20260101T000000-ABCDEF", started_at="", found=2,
                          unchanged=["a.example.com"], transferred=["b.example.com"])
        controller = self._controller(tick)

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["once"], env=env)

        assert result.exit_code == 0
        assert "T-20260101T000000-ABCDEF" in result.output
        assert "b.example.com" in result.output
        assert "All sources in sync" in result.output
        controller.setup.assert_called_once()

    def test_failures_exit_nonzero(self, runner, env):
        tick = TickResult(tick_id="T-20260101T000000-ABCDEF", started_at="", found=1, failed=["bad.example.com"])

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = self._controller(tick)
            result = runner.invoke(cli, ["once"], env=env)

        assert result.exit_code == 1
        assert "bad.example.com" in result.output

    def test_unreachable_cluster_exits(self, runner, env):
        controller = MagicMock()
        controller.setup.side_effect = OrchestrationUnreachable("Cannot access Kubernetes API: 401")

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["once"], env=env)

        assert result.exit_code == 1
        assert "Cannot access Kubernetes API" in result.output
        controller.run_once.assert_not_called()


class TestCheck:
    """Tests for `cert-sync check`."""

    def test_all_ok(self, runner, env):
        controller = MagicMock()
        controller.probe_remote.return_value = True

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["check"], env=env)

        assert result.exit_code == 0
        assert "Proxy: cert-sync@10.0.0.5" in result.output
        assert "Kubernetes API reachable" in result.output
        assert "SSH to cert-sync@10.0.0.5" in result.output
        controller.setup.assert_not_called()

    def test_ssh_failure_is_only_a_warning(self, runner, env):
        controller = MagicMock()
        controller.probe_remote.return_value = False

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["check"], env=env)

        assert result.exit_code == 0
        assert "Cannot connect to cert-sync@10.0.0.5" in result.output

    def test_cluster_failure_exits(self, runner, env):
        controller = MagicMock()
        controller.cluster.probe.side_effect = OrchestrationUnreachable("Kubernetes config not available")

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["check"], env=env)

        assert result.exit_code == 1
        assert "Kubernetes config not available" in result.output


class TestRun:
    """Tests for `cert-sync run`."""

    def test_run_delegates_to_controller(self, runner, env):
        controller = MagicMock()

        with patch("cert_sync.main.Controller") as controller_cls:
            controller_cls.from_config.return_value = controller
            result = runner.invoke(cli, ["run"], env=env)

        assert result.exit_code == 0
        controller.setup.assert_called_once()
        controller.run.assert_called_once()
