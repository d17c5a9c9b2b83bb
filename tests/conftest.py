"""
Router Test Fixtures
====================

Shared pytest fixtures: a scripted command runner standing in for the
privileged system tools, and the router components wired on top of it.
"""

import json
import sys
import threading
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.api_auth import SessionAuth
from core.background import BackgroundTasks
from core.config import RouterConfig
from core.exit_nodes import ExitNodeDirectory
from core.interfaces import InterfaceDetector
from core.mode import ModeStore
from core.routing import RoutingConfigurator
from core.state_machine import ModeStateMachine
from core.system_runner import CommandResult
from core.tailscale_client import TailscaleClient


EXIT_NODE_LIST = """\
 IP                  HOSTNAME                          COUNTRY     CITY        STATUS
 100.101.102.103     homeserver                        -           -           -
 100.88.1.7          nodeA                             US          NYC         -
 100.88.1.8          nodeB                             SE          Gothenburg  offline
 fd7a:115c:a1e0::1   v6only                            -           -           -
 100.88.1.9          truncated
 10.0.0.5            lanbox                            -           -           -

# To (have traffic routed through an exit node, run tailscale set --exit-node=<ip>
"""

IP_ROUTE_DEFAULT = "default via 192.168.1.1 dev eth0 proto dhcp src 192.168.1.20 metric 100\n"

IP_LINK = json.dumps([
    {"ifname": "lo"},
    {"ifname": "eth0"},
    {"ifname": "eth1"},
    {"ifname": "wlan0"},
    {"ifname": "tailscale0"},
])

IP_ADDR = {
    "eth1": json.dumps([{"ifname": "eth1", "addr_info": [
        {"family": "inet6", "local": "fe80::1"},
        {"family": "inet", "local": "192.168.50.1"},
    ]}]),
    "wlan0": json.dumps([{"ifname": "wlan0", "addr_info": [
        {"family": "inet", "local": "10.42.0.1"},
    ]}]),
}


class FakeCommandRunner:
    """
    Records every command and answers from a table of argv prefixes.

    The longest matching prefix wins; unmatched commands succeed with
    empty output.
    """

    def __init__(self):
        self.calls = []
        self._responses = {}
        self._lock = threading.Lock()

    def respond(self, prefix, stdout="", returncode=0, stderr=""):
        self._responses[tuple(prefix)] = (returncode, stdout, stderr)

    def run(self, args):
        argv = list(args)
        with self._lock:
            self.calls.append(argv)

        match = None
        for prefix in self._responses:
            if tuple(argv[:len(prefix)]) == prefix and (match is None or len(prefix) > len(match)):
                match = prefix

        if match is None:
            return CommandResult(argv, 0, "", "")

        returncode, stdout, stderr = self._responses[match]
        return CommandResult(argv, returncode, stdout, stderr)

    def commands(self, *prefix):
        """Recorded calls starting with the given argv prefix."""
        with self._lock:
            return [c for c in self.calls if tuple(c[:len(prefix)]) == prefix]


@pytest.fixture
def fake_runner():
    runner = FakeCommandRunner()
    runner.respond(["tailscale", "exit-node", "list"], stdout=EXIT_NODE_LIST)
    runner.respond(["ip", "route", "show", "default"], stdout=IP_ROUTE_DEFAULT)
    runner.respond(["ip", "-j", "link", "show"], stdout=IP_LINK)
    for iface, addr in IP_ADDR.items():
        runner.respond(["ip", "-j", "addr", "show", iface], stdout=addr)
    return runner


@pytest.fixture
def router_config(tmp_path):
    return RouterConfig(mode_file=str(tmp_path / "tailscale-mode.json"))


@pytest.fixture
def tailscale(fake_runner):
    return TailscaleClient(fake_runner)


@pytest.fixture
def directory(tailscale):
    return ExitNodeDirectory(tailscale)


@pytest.fixture
def detector(fake_runner):
    return InterfaceDetector(fake_runner, vpn_interface="tailscale0")


@pytest.fixture
def tasks():
    pool = BackgroundTasks(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def configurator(fake_runner, tailscale, directory, detector, tasks, router_config):
    return RoutingConfigurator(fake_runner, tailscale, directory, detector, tasks, router_config)


@pytest.fixture
def store(router_config):
    return ModeStore(router_config.mode_file)


@pytest.fixture
def state_machine(configurator, store, directory):
    return ModeStateMachine(configurator, store, directory)


@pytest.fixture
def session_auth():
    return SessionAuth({"username": "admin", "password": "secret"},
                       environ={"SESSION_SECRET": "test-session-secret"})


@pytest.fixture
def app(state_machine, tailscale, session_auth):
    from api.app import create_app

    config = {"general": {"debug": False}, "api": {}, "auth": {}}
    flask_app = create_app(config, state_machine, tailscale, session_auth)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def http(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def logged_in(http):
    """Test client holding a valid session cookie."""
    response = http.post("/login", data={"username": "admin", "password": "secret"})
    assert response.status_code == 303
    return http
