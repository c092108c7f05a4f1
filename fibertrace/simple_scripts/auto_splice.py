# fibertrace/simple_scripts/auto_splice.py
# "Auto Pass-Through": propose 1:1 fusions between two cables meeting in a box.

import logging
from dataclasses import dataclass

import fibertrace.config
from fibertrace.basic.fiber_colors import color_hex, tube_and_fiber_colors
from fibertrace.basic.log_configs import emit_for
from fibertrace.basic.topology import CableNotFoundError, FiberRef, Fusion, TopologyError

logger = logging.getLogger(__name__)


class AutoSpliceError(TopologyError):
    """The two cables cannot be spliced through (same cable, no shared box, ...)."""


@dataclass(frozen=True)
class SplicePair:
    fiber_a: FiberRef
    fiber_b: FiberRef
    port_a: str
    port_b: str


def shared_box(cable_a, cable_b, box_id=None):
    """Box both cables terminate in (the requested one, else the first found)."""
    shared = [b for b in cable_a.ends() if b is not None and b in cable_b.ends()]
    if box_id is not None:
        if box_id not in shared:
            raise AutoSpliceError(f"Cables '{cable_a.id}' and '{cable_b.id}' do not both enter box '{box_id}'")
        return box_id
    if not shared:
        raise AutoSpliceError(f"Cables '{cable_a.id}' and '{cable_b.id}' share no box")
    return shared[0]


def _same_layout(cable_a, cable_b) -> bool:
    return cable_a.fiber_count == cable_b.fiber_count and cable_a.fibers_per_tube == cable_b.fibers_per_tube


def _colour_key(cable, index):
    # keyed on the swatch so cables of different standards still pair up
    fiber = cable.fiber(index)
    tube, colour = tube_and_fiber_colors(fiber.tube_index, fiber.fiber_index, cable.color_standard)
    return color_hex(tube), color_hex(colour)


def propose_auto_splice(snapshot, cable_a_id: str, cable_b_id: str, box_id: str | None = None,
                        fallback: str | None = None) -> list[SplicePair]:
    """
    Pair the fibers of two cables that meet in a box.

      • Same tube/fiber layout → tube n fiber m goes to tube n fiber m.
      • Different layout → config.AUTO_SPLICE_FALLBACK (or `fallback`):
          - "color":      same tube colour and fiber colour, first free fiber wins
          - "sequential": global fiber index 1:1 up to the smaller fiber count
      • Fibers already spliced / patched in the box are left alone.

    Returns proposals only; the snapshot is never modified.
    """
    if cable_a_id == cable_b_id:
        raise AutoSpliceError(f"Cannot splice cable '{cable_a_id}' to itself")
    try:
        cable_a = snapshot.cable(cable_a_id)
        cable_b = snapshot.cable(cable_b_id)
    except CableNotFoundError as e:
        raise AutoSpliceError(str(e)) from e

    box = shared_box(cable_a, cable_b, box_id)
    used = snapshot.occupied_ports(box)
    free_a = [i for i in range(cable_a.fiber_count) if cable_a.port_id(i) not in used]
    free_b = [i for i in range(cable_b.fiber_count) if cable_b.port_id(i) not in used]

    mode = str(fallback or fibertrace.config.AUTO_SPLICE_FALLBACK).lower()
    if _same_layout(cable_a, cable_b):
        mode = "layout"

    pairs: list[tuple[int, int]] = []
    if mode in ("layout", "sequential"):
        free_b_set = set(free_b)
        pairs = [(i, i) for i in free_a if i in free_b_set]
    elif mode == "color":
        # colour pairs repeat past 12 tubes, so keep a queue per pair
        by_colour = {}
        for j in free_b:
            by_colour.setdefault(_colour_key(cable_b, j), []).append(j)
        for i in free_a:
            candidates = by_colour.get(_colour_key(cable_a, i))
            if candidates:
                pairs.append((i, candidates.pop(0)))
    else:
        raise ValueError(f"Unknown auto-splice fallback '{mode}' (expected 'color' or 'sequential')")

    out = [
        SplicePair(cable_a.fiber(i), cable_b.fiber(j), cable_a.port_id(i), cable_b.port_id(j))
        for i, j in pairs
    ]
    emit_for(logger)(
        "[Auto Pass-Through] %s ↔ %s in %s (%s): %d pair(s), %d/%d fibers already in use",
        cable_a.id, cable_b.id, box, mode, len(out),
        cable_a.fiber_count - len(free_a), cable_b.fiber_count - len(free_b),
    )
    return out


def as_fusions(pairs: list[SplicePair], box_id: str, loss_db: float | None = None, prefix: str = "auto") -> list[Fusion]:
    """Fusion records for accepted proposals, ready for TopologySnapshot.with_added_fusions()."""
    loss = fibertrace.config.DEFAULT_FUSION_LOSS_DB if loss_db is None else loss_db
    return [
        Fusion(f"{prefix}-{box_id}-{p.port_a}-{p.port_b}", box_id, p.port_a, p.port_b, loss)
        for p in pairs
    ]
