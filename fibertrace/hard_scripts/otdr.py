# fibertrace/hard_scripts/otdr.py
# OTDR distance-to-event resolution on top of the path tracer.

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

import fibertrace.config
from fibertrace.basic.distance_utils import point_along_polyline
from fibertrace.basic.log_configs import emit_for
from fibertrace.basic.topology import FIBER_PORT_RE, CableNotFoundError, Direction, PortRef
from fibertrace.hard_scripts.path_tracer import CableHop, TerminalKind, trace

logger = logging.getLogger(__name__)


def emit(msg: str, *args, **kwargs):
    """Level-aware emitter: DEBUG when LOG_DETAIL='DEBUG', else INFO."""
    emit_for(logger)(msg, *args, **kwargs)


class OtdrKind(str, Enum):
    IN_CABLE = "IN_CABLE"
    SPLICED_JUNCTION = "SPLICED_JUNCTION"
    NOT_SPLICED = "NOT_SPLICED"
    EQUIPMENT_CONNECTION = "EQUIPMENT_CONNECTION"
    OPEN_END = "OPEN_END"
    DISTANCE_EXCEEDS_NETWORK = "DISTANCE_EXCEEDS_NETWORK"
    DISTANCE_EXCEEDS_LENGTH = "DISTANCE_EXCEEDS_LENGTH"
    MAX_DEPTH_REACHED = "MAX_DEPTH_REACHED"
    CABLE_NOT_FOUND = "CABLE_NOT_FOUND"
    CONNECTIVITY_MISMATCH = "CONNECTIVITY_MISMATCH"


_ERROR_KINDS = {OtdrKind.CABLE_NOT_FOUND, OtdrKind.CONNECTIVITY_MISMATCH}
_PARTIAL_PATH_KINDS = _ERROR_KINDS | {OtdrKind.MAX_DEPTH_REACHED}

# Branch terminal → OTDR result when the probe lands on the last cable end
_TERMINAL_TO_OTDR = {
    TerminalKind.OPEN_END: OtdrKind.OPEN_END,
    TerminalKind.NOT_SPLICED: OtdrKind.NOT_SPLICED,
    TerminalKind.EQUIPMENT_CONNECTION: OtdrKind.EQUIPMENT_CONNECTION,
    TerminalKind.MAX_DEPTH_REACHED: OtdrKind.MAX_DEPTH_REACHED,
    TerminalKind.CABLE_NOT_FOUND: OtdrKind.CABLE_NOT_FOUND,
    TerminalKind.CONNECTIVITY_MISMATCH: OtdrKind.CONNECTIVITY_MISMATCH,
}


@dataclass(frozen=True)
class OtdrResult:
    """
    Where a probe distance lands.

      • IN_CABLE: `cable_id`, `length_left_m` (metres into the cable from the end
        light entered by) and the interpolated `point` (lat, lon)
      • SPLICED_JUNCTION / NOT_SPLICED / EQUIPMENT_CONNECTION: `box_id`
      • OPEN_END: `cable_id`
      • DISTANCE_EXCEEDS_NETWORK: `max_reachable_m`
      • DISTANCE_EXCEEDS_LENGTH: `cable_length_m` (single-cable probes)
      • MAX_DEPTH_REACHED / CABLE_NOT_FOUND / CONNECTIVITY_MISMATCH: `hops`, the
        partial path walked before the branch stopped
    """
    kind: OtdrKind
    distance_m: float
    cable_id: str | None = None
    box_id: str | None = None
    length_left_m: float | None = None
    point: tuple[float, float] | None = None
    max_reachable_m: float | None = None
    cable_length_m: float | None = None
    message: str = ""
    alternatives: tuple = field(default=(), compare=False)
    hops: tuple = field(default=(), compare=False)

    @property
    def is_error(self) -> bool:
        return self.kind in _ERROR_KINDS

    def _key(self):
        # identity used to collapse identical answers coming from different legs
        return (self.kind, self.cable_id, self.box_id,
                None if self.length_left_m is None else round(self.length_left_m, 6))


def _interpolate(cable, reversed_: bool, meters_in: float):
    coords = list(cable.coordinates)
    if reversed_:
        coords.reverse()
    if cable.length_m <= 0:
        return coords[0] if coords else None
    return point_along_polyline(coords, meters_in / cable.length_m)


def _in_cable(snapshot, hop: CableHop, distance_m: float, meters_in: float) -> OtdrResult:
    cable = snapshot.cable(hop.cable_id)
    return OtdrResult(
        OtdrKind.IN_CABLE, distance_m,
        cable_id=cable.id,
        length_left_m=meters_in,
        point=_interpolate(cable, hop.reversed, meters_in),
        cable_length_m=cable.length_m,
        message=f"{meters_in:.1f} m into cable {cable.name or cable.id}",
    )


def _resolve_branch(snapshot, branch, distance_m: float, eps: float) -> OtdrResult:
    remaining = distance_m
    hops = branch.hops
    for i, hop in enumerate(hops):
        if not isinstance(hop, CableHop):
            continue
        if remaining < hop.length_m - eps:
            return _in_cable(snapshot, hop, distance_m, max(0.0, remaining))
        if remaining <= hop.length_m + eps:
            # 1) probe lands on the far end of this cable
            if any(isinstance(h, CableHop) for h in hops[i + 1:]):
                return OtdrResult(
                    OtdrKind.SPLICED_JUNCTION, distance_m,
                    cable_id=hop.cable_id, box_id=hop.exit_box_id, message="Spliced Junction",
                )
            return _from_terminal(branch, distance_m, hop)
        remaining -= hop.length_m

    # 2) every cable consumed; data problems and loops are reported as they are
    stopped_early = branch.terminal.kind in (
        TerminalKind.MAX_DEPTH_REACHED, TerminalKind.CABLE_NOT_FOUND, TerminalKind.CONNECTIVITY_MISMATCH,
    )
    if remaining <= eps or stopped_early:
        return _from_terminal(branch, distance_m, None)
    return OtdrResult(
        OtdrKind.DISTANCE_EXCEEDS_NETWORK, distance_m,
        max_reachable_m=branch.total_length_m,
        message=f"Distance exceeds network ({branch.total_length_m:.1f}m reachable)",
    )


def _from_terminal(branch, distance_m: float, last_hop: CableHop | None) -> OtdrResult:
    terminal = branch.terminal
    kind = _TERMINAL_TO_OTDR[terminal.kind]
    cable_id = terminal.cable_id or (last_hop.cable_id if last_hop else None)
    box_id = terminal.box_id
    if kind == OtdrKind.OPEN_END:
        box_id = None
    # stopped walks keep the path gathered so far for diagnostics
    hops = branch.hops if kind in _PARTIAL_PATH_KINDS else ()
    return OtdrResult(kind, distance_m, cable_id=cable_id, box_id=box_id, message=terminal.message, hops=hops)


def trace_otdr(snapshot, start: PortRef, direction: Direction, distance_m: float) -> OtdrResult:
    """
    Resolve what lies `distance_m` metres from `start`.

    Splitter fan-out is resolved leg by leg; the first leg's answer is the
    primary result and distinct answers from other legs go to `alternatives`.
    DistanceExceedsNetwork is returned only when no leg reaches the distance,
    carrying the longest reachable length.
    """
    if distance_m is None or distance_m < 0:
        raise ValueError(f"OTDR distance must be >= 0, got {distance_m!r}")

    eps = fibertrace.config.OTDR_EPSILON_M
    result = trace(snapshot, start, direction)

    located, exceeded = [], []
    for branch in result.branches:
        r = _resolve_branch(snapshot, branch, distance_m, eps)
        (exceeded if r.kind == OtdrKind.DISTANCE_EXCEEDS_NETWORK else located).append(r)

    if not located:
        reach = max(r.max_reachable_m for r in exceeded)
        out = OtdrResult(
            OtdrKind.DISTANCE_EXCEEDS_NETWORK, distance_m,
            max_reachable_m=reach, message=f"Distance exceeds network ({reach:.1f}m reachable)",
        )
    else:
        seen, distinct = set(), []
        for r in located:
            if r._key() not in seen:
                seen.add(r._key())
                distinct.append(r)
        out = replace(distinct[0], alternatives=tuple(distinct[1:]))

    emit("[OTDR] %s %s @ %.1fm → %s %s", start, Direction(direction).value, distance_m,
         out.kind.value, out.cable_id or out.box_id or "")
    return out


def locate_on_cable(snapshot, cable_id: str, distance_m: float, from_end: str = "A") -> OtdrResult:
    """
    Single-cable probe measured from one end of the cable:
      • from_end "A" → From Start/Node A (from_box → to_box)
      • from_end "B" → From End/Node B   (to_box → from_box)
    Beyond the cable this reports DistanceExceedsLength instead of following splices.
    """
    if distance_m is None or distance_m < 0:
        raise ValueError(f"OTDR distance must be >= 0, got {distance_m!r}")
    end = str(from_end).upper()
    if end not in ("A", "B"):
        raise ValueError(f"from_end must be 'A' or 'B', got {from_end!r}")

    try:
        cable = snapshot.cable(cable_id)
    except CableNotFoundError as e:
        return OtdrResult(OtdrKind.CABLE_NOT_FOUND, distance_m, cable_id=cable_id, message=str(e))

    eps = fibertrace.config.OTDR_EPSILON_M
    reversed_ = end == "B"
    label = "From End/Node B" if reversed_ else "From Start/Node A"
    far_box = cable.from_box_id if reversed_ else cable.to_box_id

    if distance_m < cable.length_m - eps:
        return OtdrResult(
            OtdrKind.IN_CABLE, distance_m,
            cable_id=cable.id,
            length_left_m=distance_m,
            point=_interpolate(cable, reversed_, distance_m),
            cable_length_m=cable.length_m,
            message=f"{label}: {distance_m:.1f} m into cable {cable.name or cable.id}",
        )
    if distance_m <= cable.length_m + eps:
        if far_box is None:
            return OtdrResult(OtdrKind.OPEN_END, distance_m, cable_id=cable.id, message=f"{label}: Open End")
        spliced = any(
            m and m.group("cable") == cable.id
            for m in (FIBER_PORT_RE.match(p) for p in snapshot.occupied_ports(far_box))
        )
        kind = OtdrKind.SPLICED_JUNCTION if spliced else OtdrKind.NOT_SPLICED
        return OtdrResult(kind, distance_m, cable_id=cable.id, box_id=far_box, message=f"{label}: cable end")
    return OtdrResult(
        OtdrKind.DISTANCE_EXCEEDS_LENGTH, distance_m,
        cable_id=cable.id,
        cable_length_m=cable.length_m,
        message=f"Distance exceeds cable length ({cable.length_m:.0f}m)",
    )
