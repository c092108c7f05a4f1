# fibertrace/hard_scripts/path_tracer.py
# Iterative, depth-guarded walk of the fiber network from one port.

import logging
from dataclasses import dataclass
from enum import Enum

import fibertrace.config
from fibertrace.basic.log_configs import emit_for
from fibertrace.basic.topology import (
    CableNotFoundError,
    ConnectivityMismatchError,
    Direction,
    EventKind,
    FiberRef,
    PortKind,
    PortRef,
)

logger = logging.getLogger(__name__)


def emit(msg: str, *args, **kwargs):
    """Level-aware emitter: DEBUG when LOG_DETAIL='DEBUG', else INFO."""
    emit_for(logger)(msg, *args, **kwargs)


class TerminalKind(str, Enum):
    OPEN_END = "OPEN_END"
    NOT_SPLICED = "NOT_SPLICED"
    EQUIPMENT_CONNECTION = "EQUIPMENT_CONNECTION"
    MAX_DEPTH_REACHED = "MAX_DEPTH_REACHED"
    CABLE_NOT_FOUND = "CABLE_NOT_FOUND"
    CONNECTIVITY_MISMATCH = "CONNECTIVITY_MISMATCH"


# Terminals caused by inconsistent project data rather than by the network itself
DATA_ERROR_KINDS = frozenset({TerminalKind.CABLE_NOT_FOUND, TerminalKind.CONNECTIVITY_MISMATCH})


@dataclass(frozen=True)
class CableHop:
    cable_id: str
    fiber: FiberRef
    length_m: float
    loss_db: float
    entry_box_id: str
    exit_box_id: str | None
    reversed: bool


@dataclass(frozen=True)
class JunctionHop:
    box_id: str
    port_id: str          # port reached after crossing
    kind: EventKind
    device_id: str
    loss_db: float
    leg_index: int | None = None


@dataclass(frozen=True)
class TraceTerminal:
    kind: TerminalKind
    box_id: str | None = None
    port_id: str | None = None
    cable_id: str | None = None
    equipment_id: str | None = None
    message: str = ""

    @property
    def is_error(self) -> bool:
        return self.kind in DATA_ERROR_KINDS


@dataclass(frozen=True)
class TraceBranch:
    hops: tuple
    terminal: TraceTerminal
    steps: int = 0

    @property
    def cable_hops(self) -> list[CableHop]:
        return [h for h in self.hops if isinstance(h, CableHop)]

    @property
    def total_length_m(self) -> float:
        return sum(h.length_m for h in self.cable_hops)

    @property
    def total_loss_db(self) -> float:
        return sum(h.loss_db for h in self.hops)

    @property
    def cable_ids(self) -> list[str]:
        seen = []
        for h in self.cable_hops:
            if h.cable_id not in seen:
                seen.append(h.cable_id)
        return seen

    @property
    def end_port(self) -> PortRef | None:
        """Port the branch stopped at, usable as the start of a reverse trace."""
        t = self.terminal
        if t.box_id is None or t.port_id is None:
            return None
        return PortRef(t.box_id, t.port_id)


@dataclass(frozen=True)
class TraceResult:
    start: PortRef
    direction: Direction
    branches: tuple

    @property
    def terminals(self) -> list[TraceTerminal]:
        return [b.terminal for b in self.branches]

    @property
    def is_error(self) -> bool:
        return any(t.is_error for t in self.terminals)

    @property
    def cable_ids(self) -> frozenset:
        return frozenset(cid for b in self.branches for cid in b.cable_ids)


@dataclass
class _Pending:
    box_id: str
    port_id: str
    direction: Direction
    arrived_by: EventKind | None
    hops: tuple
    steps: int


def _start_arrival(snapshot, start: PortRef, direction: Direction) -> EventKind | None:
    # A DIO slot taken ALONG is entered from its patch face; taken ACROSS it leaves by the patch.
    try:
        kind = snapshot.classify_port(start.box_id, start.port_id).kind
    except (CableNotFoundError, ConnectivityMismatchError):
        return None
    if kind != PortKind.DIO:
        return None
    return EventKind.PATCH if direction == Direction.ALONG else EventKind.FUSION


def trace(snapshot, start: PortRef, direction: Direction = Direction.ALONG, max_depth: int | None = None,
          max_total_steps: int | None = None) -> TraceResult:
    """
    Walk the network from `start` and return every branch reached.

    Steps:
      1) ALONG a fiber port → cross its cable to the far box (OpenEnd when there is none).
      2) ALONG a device port → through the splitter / DIO; a splitter input fans out.
      3) ACROSS → over the attached fusion / patch (NotSpliced when there is none).
      4) Equipment reached ALONG → EquipmentConnection.
      5) Each branch is capped at `max_depth` steps and the whole trace at
         `max_total_steps`; hitting either yields MaxDepthReached with the partial path.

    Missing cables and inconsistent splicing end the branch with CableNotFound /
    ConnectivityMismatch terminals; nothing here raises for data problems.
    """
    max_depth = fibertrace.config.MAX_DEPTH if max_depth is None else max_depth
    max_total = fibertrace.config.MAX_TOTAL_STEPS if max_total_steps is None else max_total_steps
    direction = Direction(direction)
    graph = snapshot.splice_graph

    branches = []
    stack = [_Pending(start.box_id, start.port_id, direction, _start_arrival(snapshot, start, direction), (), 0)]
    total_steps = 0

    def finish(item, terminal):
        branches.append(TraceBranch(item.hops, terminal, item.steps))
        if fibertrace.config.LOG_TRACE_HOPS:
            emit("[Trace] %s → %s after %d hops", start, terminal.kind.value, len(item.hops))

    while stack:
        item = stack.pop()

        if item.steps >= max_depth or total_steps >= max_total:
            finish(item, TraceTerminal(
                TerminalKind.MAX_DEPTH_REACHED, item.box_id, item.port_id,
                message=f"Stopped after {item.steps} steps",
            ))
            continue
        total_steps += 1
        steps = item.steps + 1

        try:
            info = snapshot.classify_port(item.box_id, item.port_id)

            if item.direction == Direction.ALONG and info.kind == PortKind.FIBER:
                # 1) cross the cable
                cable = snapshot.cable(info.owner_id)
                exit_box, reversed_ = cable.traverse_from(item.box_id)
                hop = CableHop(
                    cable.id, cable.fiber(info.index), cable.length_m, cable.loss_for(cable.length_m),
                    item.box_id, exit_box, reversed_,
                )
                hops = item.hops + (hop,)
                if exit_box is None:
                    finish(_Pending(item.box_id, item.port_id, item.direction, None, hops, steps),
                           TraceTerminal(TerminalKind.OPEN_END, cable_id=cable.id, message="Open End"))
                    continue
                stack.append(_Pending(exit_box, item.port_id, Direction.ACROSS, None, hops, steps))
                continue

            if item.direction == Direction.ALONG and info.kind == PortKind.EQUIPMENT:
                # 4) OLT / ONT port
                finish(item, TraceTerminal(
                    TerminalKind.EQUIPMENT_CONNECTION, item.box_id, item.port_id,
                    equipment_id=info.owner_id, message="Equipment Connection",
                ))
                continue

            links = graph.adjacency(item.box_id, item.port_id, item.direction, item.arrived_by)
        except CableNotFoundError as e:
            finish(item, TraceTerminal(
                TerminalKind.CABLE_NOT_FOUND, item.box_id, item.port_id, cable_id=e.cable_id, message=str(e),
            ))
            continue
        except ConnectivityMismatchError as e:
            finish(item, TraceTerminal(
                TerminalKind.CONNECTIVITY_MISMATCH, item.box_id, item.port_id, message=e.reason,
            ))
            continue

        if not links:
            finish(item, TraceTerminal(TerminalKind.NOT_SPLICED, item.box_id, item.port_id, message="Not Spliced"))
            continue

        children = []
        for link in links:
            hop = JunctionHop(item.box_id, link.port_id, link.kind, link.device_id, link.loss_db, link.leg_index)
            if item.direction == Direction.ACROSS:
                # 3) over a fusion / patch: next leave through the element owning the port
                nxt = _Pending(item.box_id, link.port_id, Direction.ALONG, link.kind, item.hops + (hop,), steps)
            else:
                # 2) through a splitter or DIO slot; a DIO keeps the face it came in on
                arrived = item.arrived_by if link.kind == EventKind.DIO else None
                nxt = _Pending(item.box_id, link.port_id, Direction.ACROSS, arrived, item.hops + (hop,), steps)
            children.append(nxt)
        # reversed so branches come out in leg order
        stack.extend(reversed(children))

    result = TraceResult(start, direction, tuple(branches))
    emit(
        "[Trace] %s %s: %d branch(es), %d step(s), terminals=%s",
        start, direction.value, len(branches), total_steps,
        ",".join(sorted({t.kind.value for t in result.terminals})),
    )
    return result
