# fibertrace/simple_scripts/vfl.py
# Visual fault locator: light every cable reachable from one port.

import logging
from dataclasses import dataclass

from fibertrace.basic.log_configs import emit_for
from fibertrace.basic.topology import Direction, PortRef
from fibertrace.hard_scripts.path_tracer import CableHop, JunctionHop, trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VflResult:
    start: PortRef
    lit_cable_ids: frozenset
    lit_ports: frozenset
    terminals: tuple

    @property
    def is_error(self) -> bool:
        return any(t.is_error for t in self.terminals)


def illuminate(snapshot, start: PortRef, direction: Direction | None = None) -> VflResult:
    """
    Inject light at `start` and follow every splitter leg, fusion and patch
    until each branch ends. Loops stop at the tracer's step cap.

      • direction None → light travels both ways from the port: into the
        element owning it (ALONG) and over its own fusion / patch (ACROSS)
      • ALONG / ACROSS → only that side of the port
    """
    directions = [Direction.ALONG, Direction.ACROSS] if direction is None else [Direction(direction)]

    cables, ports, terminals = set(), {start}, []
    for d in directions:
        result = trace(snapshot, start, d)
        terminals.extend(result.terminals)
        for branch in result.branches:
            for hop in branch.hops:
                if isinstance(hop, CableHop):
                    cables.add(hop.cable_id)
                    pid = _fiber_port(snapshot, hop)
                    ports.add(PortRef(hop.entry_box_id, pid))
                    if hop.exit_box_id is not None:
                        ports.add(PortRef(hop.exit_box_id, pid))
                elif isinstance(hop, JunctionHop):
                    ports.add(PortRef(hop.box_id, hop.port_id))

    out = VflResult(start, frozenset(cables), frozenset(ports), tuple(terminals))
    emit_for(logger)("[VFL] %s lit %d cable(s), %d port(s)", start, len(out.lit_cable_ids), len(out.lit_ports))
    return out


def _fiber_port(snapshot, hop: CableHop) -> str:
    cable = snapshot.cable(hop.cable_id)
    return cable.port_id(cable.global_index(hop.fiber))


def trace_vfl(snapshot, start: PortRef) -> frozenset:
    """Ids of every cable lit by a VFL injected at `start` (both sides of the port)."""
    return illuminate(snapshot, start).lit_cable_ids
