# fibertrace/simple_scripts/attenuation.py
# Optical loss along traced paths, and the OLT → splitter power budget.

import logging
from dataclasses import dataclass

import fibertrace.config
from fibertrace.basic.log_configs import emit_for
from fibertrace.basic.topology import Direction, EventKind, PortRef
from fibertrace.hard_scripts.path_tracer import CableHop, JunctionHop, TerminalKind, trace

logger = logging.getLogger(__name__)


def emit(msg: str, *args, **kwargs):
    """Level-aware emitter: DEBUG when LOG_DETAIL='DEBUG', else INFO."""
    emit_for(logger)(msg, *args, **kwargs)


@dataclass(frozen=True)
class LossEvent:
    position_m: float       # distance from the start where the event ends
    kind: str               # "CABLE", "FUSION", "SPLITTER", "PATCH", "DIO"
    ref_id: str             # cable id or device id
    loss_db: float
    cumulative_db: float
    box_id: str | None = None


@dataclass(frozen=True)
class PathElement:
    """Compressed path element; consecutive cables are merged into one."""
    kind: str
    ids: tuple
    length_m: float
    loss_db: float
    details: str = ""


@dataclass(frozen=True)
class PowerBudget:
    splitter_id: str
    box_id: str
    olt_id: str | None
    olt_port_id: str | None
    slot: int | None
    port: int | None
    olt_power_dbm: float | None
    total_loss_db: float
    final_power_dbm: float
    status: str            # "OK" | "MARGINAL" | "FAIL"
    source: str            # "OLT" | "NO_SIGNAL"
    path: tuple = ()


def loss_profile(branch) -> list[LossEvent]:
    """Cumulative loss at every hop of one traced branch."""
    events = []
    position = 0.0
    cumulative = 0.0
    for hop in branch.hops:
        cumulative += hop.loss_db
        if isinstance(hop, CableHop):
            position += hop.length_m
            events.append(LossEvent(position, "CABLE", hop.cable_id, hop.loss_db, cumulative, hop.exit_box_id))
        else:
            events.append(LossEvent(position, hop.kind.value, hop.device_id, hop.loss_db, cumulative, hop.box_id))
    return events


def branch_loss(branch, up_to_distance_m: float | None = None) -> float:
    """
    Loss of one branch, optionally cut at a distance from the start:
      • cables crossed entirely contribute their full loss
      • the cable holding the cut contributes pro-rata
      • events sitting exactly at the cut distance are included
    """
    if up_to_distance_m is None:
        return branch.total_loss_db

    eps = fibertrace.config.OTDR_EPSILON_M
    remaining = up_to_distance_m
    total = 0.0
    for hop in branch.hops:
        if isinstance(hop, CableHop):
            if remaining < hop.length_m - eps:
                if hop.length_m > 0:
                    total += hop.loss_db * max(0.0, remaining) / hop.length_m
                return total
            total += hop.loss_db
            remaining = max(0.0, remaining - hop.length_m)
        else:
            total += hop.loss_db
    return total


def compute_attenuation(snapshot, start: PortRef, direction: Direction = Direction.ALONG,
                        up_to_distance_m: float | None = None) -> float:
    """
    Total dB from `start`. With splitter fan-out the worst (highest-loss) leg
    is reported, which is the figure a power budget has to cover.
    """
    if up_to_distance_m is not None and up_to_distance_m < 0:
        raise ValueError(f"Distance must be >= 0, got {up_to_distance_m!r}")
    result = trace(snapshot, start, direction)
    worst = max((branch_loss(b, up_to_distance_m) for b in result.branches), default=0.0)
    emit("[Attenuation] %s %s → %.3f dB over %d branch(es)",
         start, Direction(direction).value, worst, len(result.branches))
    return worst


def compress_path(branch) -> list[PathElement]:
    """
    Path elements for reporting.
      • zero-loss fusions (pass-through splices) are left out
      • the cables on either side of them are then merged into one element
    Total loss is unchanged.
    """
    out: list[PathElement] = []
    for hop in branch.hops:
        if isinstance(hop, JunctionHop) and hop.kind == EventKind.FUSION and hop.loss_db == 0:
            continue
        if isinstance(hop, CableHop):
            if out and out[-1].kind == "CABLE":
                prev = out[-1]
                out[-1] = PathElement(
                    "CABLE", prev.ids + (hop.cable_id,), prev.length_m + hop.length_m,
                    prev.loss_db + hop.loss_db, f"{prev.length_m + hop.length_m:.0f}m",
                )
            else:
                out.append(PathElement("CABLE", (hop.cable_id,), hop.length_m, hop.loss_db, f"{hop.length_m:.0f}m"))
        elif isinstance(hop, JunctionHop):
            details = f"leg {hop.leg_index + 1}" if hop.leg_index is not None else ""
            out.append(PathElement(hop.kind.value, (hop.device_id,), 0.0, hop.loss_db, details))
    return out


def _status(final_power_dbm: float) -> str:
    if final_power_dbm < fibertrace.config.POWER_FAIL_DBM:
        return "FAIL"
    if final_power_dbm < fibertrace.config.POWER_MARGINAL_DBM:
        return "MARGINAL"
    return "OK"


def compute_power_budget(snapshot, splitter_id: str, leg_index: int | None = None) -> list[PowerBudget]:
    """
    Signal level at the outputs of a splitter, traced back to the OLT.

    1) The splitter's own loss is counted (its worst leg unless `leg_index` is given).
    2) From the splitter input the network is walked upstream; every branch that
       ends on an OLT port yields one budget entry.
    3) OLT output power comes from the equipment record (catalog default applied at load).
    4) No OLT reached → a single FAIL entry with source NO_SIGNAL and -inf dBm.
    """
    spl = snapshot.splitters.get(splitter_id)
    if spl is None:
        raise KeyError(f"Splitter '{splitter_id}' not found")
    own_loss = spl.worst_leg_loss if leg_index is None else spl.leg_loss(leg_index)
    own = PathElement("SPLITTER", (spl.id,), 0.0, own_loss, f"1:{len(spl.output_port_ids)}")

    result = trace(snapshot, PortRef(spl.box_id, spl.input_port_id), Direction.ACROSS)
    budgets = []
    for branch in result.branches:
        t = branch.terminal
        if t.kind != TerminalKind.EQUIPMENT_CONNECTION:
            continue
        olt = snapshot.equipment.get(t.equipment_id)
        if olt is None or str(olt.kind).upper() != "OLT":
            continue
        power = olt.output_power_dbm
        if power is None:
            power = fibertrace.config.DEFAULT_OLT_POWER_DBM
        total = own_loss + branch.total_loss_db
        final = power - total
        slot, port = olt.slot_and_port(t.port_id)
        path = tuple(reversed(compress_path(branch))) + (own,)
        budgets.append(PowerBudget(
            spl.id, spl.box_id, olt.id, t.port_id, slot, port, power,
            round(total, 4), round(final, 4), _status(final), "OLT", path,
        ))

    if not budgets:
        budgets.append(PowerBudget(
            spl.id, spl.box_id, None, None, None, None, None,
            own_loss, float("-inf"), "FAIL", "NO_SIGNAL", (own,),
        ))

    for b in budgets:
        emit("[Power Budget] %s ← %s: %.2f dBm (%s)", b.splitter_id, b.olt_id or "no OLT", b.final_power_dbm, b.status)
    return budgets
