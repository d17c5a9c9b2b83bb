"""
Startup Restorer Tests
======================
"""

from unittest.mock import Mock

from core.errors import ClientConfigFailed, DirectoryUnavailable
from core.exit_nodes import ExitNode
from core.mode import Mode, ModeStore
from core.restorer import StartupRestorer
from core.state_machine import ModeStateMachine

NODES = {"homeserver": ExitNode(ip="100.101.102.103", display_name="homeserver", active=True)}


def make_restorer(directory, state_machine, store, attempts=10):
    sleeps = []
    restorer = StartupRestorer(directory, state_machine, store,
                               attempts=attempts, interval=1.0, sleep=sleeps.append)
    return restorer, sleeps


class TestWaitForExitNodes:

    def test_polls_until_nodes_appear(self, tmp_path):
        directory = Mock()
        directory.list = Mock(side_effect=[{}, DirectoryUnavailable("starting"), NODES])
        store = ModeStore(str(tmp_path / "mode.json"))

        restorer, sleeps = make_restorer(directory, Mock(), store)

        assert restorer.wait_for_exit_nodes() == NODES
        assert sleeps == [1.0, 1.0]

    def test_gives_up_after_all_attempts(self, tmp_path):
        directory = Mock()
        directory.list = Mock(return_value={})
        machine = Mock()
        store = ModeStore(str(tmp_path / "mode.json"))

        restorer, sleeps = make_restorer(directory, machine, store)

        assert restorer.run() is False
        assert directory.list.call_count == 10
        assert len(sleeps) == 9
        machine.transition.assert_not_called()


class TestRestore:

    def test_restores_persisted_exit_node(self, tmp_path):
        store = ModeStore(str(tmp_path / "mode.json"))
        store.save(Mode.exit_node("homeserver"))
        directory = Mock()
        directory.list = Mock(return_value=NODES)
        machine = Mock()

        restorer, _ = make_restorer(directory, machine, store)

        assert restorer.run() is True
        machine.remember_exit_nodes.assert_called_once_with(NODES)
        machine.transition.assert_called_once_with(Mode.exit_node("homeserver"))

    def test_restores_direct_by_default(self, tmp_path):
        store = ModeStore(str(tmp_path / "mode.json"))
        directory = Mock()
        directory.list = Mock(return_value=NODES)
        machine = Mock()

        restorer, _ = make_restorer(directory, machine, store)
        restorer.run()

        machine.transition.assert_called_once_with(Mode.direct())

    def test_transition_failure_is_logged(self, tmp_path):
        store = ModeStore(str(tmp_path / "mode.json"))
        directory = Mock()
        directory.list = Mock(return_value=NODES)
        machine = Mock()
        machine.transition = Mock(side_effect=ClientConfigFailed("rejected"))

        restorer, _ = make_restorer(directory, machine, store)

        assert restorer.run() is False

    def test_round_trip_across_restart(self, configurator, directory, router_config, fake_runner):
        """A mode chosen before a restart is re-selected after it."""
        first = ModeStateMachine(configurator, ModeStore(router_config.mode_file), directory)
        first.set_exit_node("nodeA (US, NYC)")

        # Fresh process: new store and state machine on the same file
        store = ModeStore(router_config.mode_file)
        second = ModeStateMachine(configurator, store, directory)
        mark = len(fake_runner.calls)

        restorer, _ = make_restorer(directory, second, store)

        assert restorer.run() is True
        assert second.mode == Mode.exit_node("nodeA (US, NYC)")
        assert ["tailscale", "set", "--exit-node=100.88.1.7"] in fake_runner.calls[mark:]

    def test_start_runs_in_background(self, tmp_path):
        store = ModeStore(str(tmp_path / "mode.json"))
        directory = Mock()
        directory.list = Mock(return_value=NODES)
        machine = Mock()

        restorer, _ = make_restorer(directory, machine, store)
        thread = restorer.start()
        thread.join(timeout=5)

        assert thread.daemon
        machine.transition.assert_called_once()
