"""
Routing Configurator
====================

Installs the NAT and forwarding rules for a routing mode.

The packet filter has no atomic multi-rule commit, so every apply
flushes the previous rule set and rebuilds it from scratch. This
converges to a consistent state even after an earlier apply failed
half-way, at the cost of a short window without NAT.

Each apply is an ordered list of steps. A step is either FATAL (its
failure aborts the transition) or BEST_EFFORT (its failure is logged
and the plan continues). Only pointing the Tailscale client at the new
exit node is fatal.

Exit node mode::

    LAN ifaces --FORWARD--> tailscale0 --MASQUERADE--> exit node

Direct mode::

    LAN ifaces --FORWARD--> WAN iface --MASQUERADE--> internet
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from loguru import logger

from .background import BackgroundTasks
from .config import RouterConfig
from .errors import ClientConfigFailed, InterfaceDetectionFailed, NoDefaultRoute
from .exit_nodes import ExitNodeDirectory
from .interfaces import InterfaceDetector
from .mode import Mode
from .system_runner import SystemCommandRunner
from .tailscale_client import TailscaleClient

CONNTRACK_MODULES = ["nf_conntrack", "xt_conntrack"]
FORWARD_STATES = "NEW,ESTABLISHED,RELATED"


class FailurePolicy(Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


@dataclass
class Step:
    """One external command in a routing plan."""
    description: str
    args: List[str]
    policy: FailurePolicy = FailurePolicy.BEST_EFFORT


@dataclass
class RoutingPlan:
    """Everything an apply will do for one mode."""
    mode: Mode
    egress_interface: str
    probe_address: str
    lan_interfaces: Optional[List[str]]
    steps: List[Step] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True if LAN detection failed and forwarding is permissive."""
        return self.lan_interfaces is None


class RoutingConfigurator:
    """
    Applies the rule set for a routing mode.

    Safe to re-invoke with the same mode: the resulting rule set is
    identical because every apply starts with a flush.
    """

    def __init__(self, runner: SystemCommandRunner, client: TailscaleClient,
                 directory: ExitNodeDirectory, detector: InterfaceDetector,
                 tasks: BackgroundTasks, config: Optional[RouterConfig] = None):
        self.runner = runner
        self.client = client
        self.directory = directory
        self.detector = detector
        self.tasks = tasks
        self.config = config or RouterConfig()

    def apply(self, mode: Mode) -> RoutingPlan:
        """
        Reconfigure the host for a mode.

        Only installs rules; the follow-up hygiene tasks are queued
        separately with :meth:`schedule_hygiene`.

        Raises:
            NodeNotFound: exit node not in the directory
            DirectoryUnavailable: directory could not be listed
            ClientConfigFailed: Tailscale refused the exit-node change
        """
        plan = self.plan(mode)
        logger.info(f"Applying routing mode {mode} via {plan.egress_interface}")

        self._execute(plan.steps)

        logger.info(f"Routing mode {mode} applied")
        return plan

    def schedule_hygiene(self, plan: RoutingPlan) -> None:
        """Queue the liveness probe and neighbour refresh for an applied plan."""
        self.tasks.submit(f"liveness probe {plan.probe_address}",
                          self._probe, plan.probe_address)
        self.tasks.submit("neighbour cache refresh",
                          self._refresh_neighbours, plan.lan_interfaces or [])

    def plan(self, mode: Mode) -> RoutingPlan:
        """Resolve the mode against live state and build its steps."""
        if mode.is_direct:
            egress = self._detect_wan()
            client_step = Step(
                "clear Tailscale exit node",
                self.client.exit_node_command(None),
                FailurePolicy.FATAL,
            )
            probe_address = self.config.direct_probe_address
        else:
            node = self.directory.lookup(mode.node_name)
            egress = self.config.vpn_interface
            client_step = Step(
                f"set Tailscale exit node {node.display_name} ({node.ip})",
                self.client.exit_node_command(node.ip),
                FailurePolicy.FATAL,
            )
            probe_address = node.ip

        lans = self._detect_lans()

        steps = []
        steps.extend(self._flush_steps())
        steps.extend(self._kernel_steps())
        steps.append(client_step)
        steps.append(Step(
            f"masquerade on {egress}",
            ["iptables", "-t", "nat", "-A", "POSTROUTING", "-o", egress, "-j", "MASQUERADE"],
        ))
        steps.extend(self._forward_steps(lans, egress))

        return RoutingPlan(
            mode=mode,
            egress_interface=egress,
            probe_address=probe_address,
            lan_interfaces=lans,
            steps=steps,
        )

    def _detect_wan(self) -> str:
        try:
            return self.detector.active_wan()
        except NoDefaultRoute as e:
            fallback = self.config.fallback_wan_interface
            logger.warning(f"Error detecting active interface ({e}), defaulting to {fallback}")
            return fallback

    def _detect_lans(self) -> Optional[List[str]]:
        try:
            return self.detector.lan_interfaces()
        except (NoDefaultRoute, InterfaceDetectionFailed) as e:
            logger.warning(f"LAN interface detection failed: {e}")
            return None

    def _flush_steps(self) -> List[Step]:
        return [
            Step("flush NAT table", ["iptables", "-t", "nat", "-F"]),
            Step("flush FORWARD chain", ["iptables", "-F", "FORWARD"]),
        ]

    def _kernel_steps(self) -> List[Step]:
        steps = [Step("enable IP forwarding", ["sysctl", "-w", "net.ipv4.ip_forward=1"])]
        for module in CONNTRACK_MODULES:
            steps.append(Step(f"load {module}", ["modprobe", module]))

        steps.append(Step(
            "raise TCP conntrack timeout",
            ["sysctl", "-w",
             f"net.netfilter.nf_conntrack_tcp_timeout_established={self.config.conntrack_tcp_timeout_established}"],
        ))
        steps.append(Step(
            "raise UDP conntrack timeout",
            ["sysctl", "-w",
             f"net.netfilter.nf_conntrack_udp_timeout_stream={self.config.conntrack_udp_timeout_stream}"],
        ))
        return steps

    def _forward_steps(self, lans: Optional[List[str]], egress: str) -> List[Step]:
        if lans is None:
            logger.warning("Degraded mode: accepting forwarded traffic on all interfaces")
            return [Step("permissive forwarding", ["iptables", "-A", "FORWARD", "-j", "ACCEPT"])]

        steps = []
        for lan in lans:
            for src, dst in ((lan, egress), (egress, lan)):
                steps.append(Step(
                    f"forward {src} -> {dst}",
                    ["iptables", "-A", "FORWARD", "-i", src, "-o", dst,
                     "-m", "conntrack", "--ctstate", FORWARD_STATES, "-j", "ACCEPT"],
                ))
        return steps

    def _execute(self, steps: List[Step]) -> None:
        for step in steps:
            result = self.runner.run(step.args)
            if result.ok:
                continue

            if step.policy is FailurePolicy.FATAL:
                logger.error(f"{step.description} failed (rc={result.returncode}): {result.stderr}")
                raise ClientConfigFailed(
                    f"{step.description} failed: {result.stderr or f'exit status {result.returncode}'}"
                )

            logger.warning(f"{step.description} failed (rc={result.returncode}), continuing: {result.stderr}")

    def _probe(self, address: str) -> None:
        result = self.runner.run(["ping", "-c", "2", "-W", "1", address])
        if not result.ok:
            logger.warning(f"Liveness probe failed for {address}: {result.stdout.strip() or result.stderr}")
        else:
            logger.debug(f"Liveness probe ok for {address}")

    def _refresh_neighbours(self, lans: List[str]) -> None:
        """Drop stale ARP/route cache entries and announce ourselves on each LAN."""
        for args in (["ip", "neigh", "flush", "all"], ["ip", "route", "flush", "cache"]):
            result = self.runner.run(args)
            if not result.ok:
                logger.warning(f"{' '.join(args)} failed: {result.stderr}")

        for lan in lans:
            address = self.detector.ipv4_address(lan)
            if not address:
                logger.debug(f"No IPv4 address on {lan}, skipping ARP announcement")
                continue

            result = self.runner.run([
                "arping", "-U", "-c", str(self.config.arp_announce_count), "-I", lan, address,
            ])
            if not result.ok:
                logger.warning(f"Gratuitous ARP on {lan} failed: {result.stderr}")
