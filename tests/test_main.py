"""
Startup Tests
=============

Precondition checks and the CLI's refusal to start without them.
"""

from unittest.mock import Mock, patch

import yaml
from click.testing import CliRunner

import main


def make_client(installed=True, running=True):
    client = Mock()
    client.is_installed.return_value = installed
    client.is_running.return_value = running
    return client


def all_tools(tool):
    return f"/usr/sbin/{tool}"


class TestCheckPrerequisites:

    def test_all_met(self):
        with patch("main.os.geteuid", return_value=0), \
             patch("main.shutil.which", side_effect=all_tools):
            ready, issues = main.check_prerequisites(make_client())

        assert ready
        assert issues == []

    def test_requires_root(self):
        with patch("main.os.geteuid", return_value=1000), \
             patch("main.shutil.which", side_effect=all_tools):
            ready, issues = main.check_prerequisites(make_client())

        assert not ready
        assert any("root" in issue for issue in issues)

    def test_missing_tool(self):
        def no_iptables(tool):
            return None if tool == "iptables" else all_tools(tool)

        with patch("main.os.geteuid", return_value=0), \
             patch("main.shutil.which", side_effect=no_iptables):
            ready, issues = main.check_prerequisites(make_client())

        assert not ready
        assert issues == ["Missing required tool: iptables"]

    def test_tailscale_not_installed(self):
        client = make_client(installed=False)

        with patch("main.os.geteuid", return_value=0), \
             patch("main.shutil.which", side_effect=all_tools):
            ready, issues = main.check_prerequisites(client)

        assert not ready
        assert any("not installed" in issue for issue in issues)
        client.is_running.assert_not_called()

    def test_tailscale_not_running(self):
        with patch("main.os.geteuid", return_value=0), \
             patch("main.shutil.which", side_effect=all_tools):
            ready, issues = main.check_prerequisites(make_client(running=False))

        assert not ready
        assert any("not running" in issue for issue in issues)


class TestCli:

    def write_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            "logging": {"file": str(tmp_path / "router.log")},
            "router": {"mode_file": str(tmp_path / "mode.json")},
        }))
        return str(config_file)

    def test_exits_when_prerequisites_fail(self, tmp_path):
        with patch("main.setup_logging"), \
             patch("main.check_prerequisites", return_value=(False, ["Tailscale is not running."])), \
             patch("main.RouterDaemon") as daemon:
            result = CliRunner().invoke(main.main, ["--config", self.write_config(tmp_path)])

        assert result.exit_code == 1
        assert "PREREQUISITES NOT MET" in result.output
        daemon.assert_not_called()

    def test_missing_config_file(self, tmp_path):
        with patch("main.setup_logging"), patch("main.RouterDaemon") as daemon:
            result = CliRunner().invoke(main.main, ["--config", str(tmp_path / "absent.yaml")])

        assert result.exit_code == 1
        daemon.assert_not_called()

    def test_skip_checks_starts_daemon(self, tmp_path):
        with patch("main.setup_logging"), \
             patch("main.signal.signal"), \
             patch("main.check_prerequisites") as checks, \
             patch("main.RouterDaemon") as daemon:
            result = CliRunner().invoke(
                main.main, ["--config", self.write_config(tmp_path), "--skip-checks", "--port", "8080"]
            )

        assert result.exit_code == 0
        checks.assert_not_called()
        config = daemon.call_args[0][0]
        assert config["api"]["port"] == 8080
        daemon.return_value.start.assert_called_once()
        daemon.return_value.stop.assert_called_once()
