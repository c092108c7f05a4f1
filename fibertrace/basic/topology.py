# fibertrace/basic/topology.py
# Read-only, typed view of one project's outside-plant network:
# boxes, cables, splices, splitters, patch panels and active equipment.

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

FIBER_PORT_RE = re.compile(r"^(?P<cable>.+)-fiber-(?P<index>\d+)$")


# ----------
# Exceptions
# ----------
class TopologyError(Exception):
    """Base class for every topology / tracing data problem."""


class SnapshotError(TopologyError):
    """Malformed project data rejected while the snapshot is being built."""

    def __init__(self, message: str, record_id: str | None = None):
        self.record_id = record_id
        if record_id:
            message = f"{message} (record '{record_id}')"
        super().__init__(message)


class CableNotFoundError(TopologyError):
    def __init__(self, cable_id: str):
        self.cable_id = cable_id
        super().__init__(f"Cable '{cable_id}' not found")


class ConnectivityMismatchError(TopologyError):
    def __init__(self, box_id: str | None, port_id: str | None, reason: str):
        self.box_id = box_id
        self.port_id = port_id
        self.reason = reason
        super().__init__(f"Connectivity mismatch at {box_id}/{port_id}: {reason}")


# -----
# Enums
# -----
class BoxKind(str, Enum):
    CTO = "CTO"
    CEO = "CEO"
    POP = "POP"
    POLE = "POLE"


class Direction(str, Enum):
    """
    How light leaves a port:
      • ALONG  → through the element that owns the port (cable, splitter, DIO slot)
      • ACROSS → over the fusion / patch edge attached to the port
    """
    ALONG = "ALONG"
    ACROSS = "ACROSS"


class PortKind(str, Enum):
    FIBER = "FIBER"
    SPLITTER_IN = "SPLITTER_IN"
    SPLITTER_OUT = "SPLITTER_OUT"
    DIO = "DIO"
    EQUIPMENT = "EQUIPMENT"


class EventKind(str, Enum):
    FUSION = "FUSION"
    SPLITTER = "SPLITTER"
    PATCH = "PATCH"
    DIO = "DIO"


# ----------
# Data model
# ----------
@dataclass(frozen=True)
class PortRef:
    box_id: str
    port_id: str

    def __str__(self):
        return f"{self.box_id}/{self.port_id}"


@dataclass(frozen=True)
class FiberRef:
    """One fiber of a cable, 0-based tube and 0-based position inside the tube."""
    cable_id: str
    tube_index: int
    fiber_index: int


@dataclass(frozen=True)
class Box:
    id: str
    kind: BoxKind
    name: str = ""
    coordinates: tuple[float, float] | None = None


@dataclass(frozen=True)
class Cable:
    id: str
    fiber_count: int
    length_m: float
    from_box_id: str | None = None
    to_box_id: str | None = None
    tube_count: int = 1
    name: str = ""
    attenuation_db_per_km: float = 0.3
    coordinates: tuple = ()
    color_standard: str = "ABNT"
    status: str = "PLANNED"
    technical_reserve_m: float = 0.0

    @property
    def fibers_per_tube(self) -> int:
        return max(1, math.ceil(self.fiber_count / max(1, self.tube_count)))

    def fiber(self, global_index: int) -> FiberRef:
        per_tube = self.fibers_per_tube
        return FiberRef(self.id, global_index // per_tube, global_index % per_tube)

    def global_index(self, fiber: FiberRef) -> int:
        return fiber.tube_index * self.fibers_per_tube + fiber.fiber_index

    def port_id(self, global_index: int) -> str:
        return f"{self.id}-fiber-{global_index}"

    def ends(self) -> tuple:
        return (self.from_box_id, self.to_box_id)

    def traverse_from(self, box_id: str) -> tuple[str | None, bool]:
        """
        Walk the cable starting at `box_id`.
        Returns (exit box id or None for an open end, reversed) where
        reversed means the walk runs to → from.
        """
        if box_id is not None and box_id == self.from_box_id:
            return self.to_box_id, False
        if box_id is not None and box_id == self.to_box_id:
            return self.from_box_id, True
        raise ConnectivityMismatchError(box_id, None, f"cable '{self.id}' does not terminate in this box")

    def loss_for(self, length_m: float) -> float:
        return self.attenuation_db_per_km * length_m / 1000.0


@dataclass(frozen=True)
class Fusion:
    id: str
    box_id: str
    port_a: str
    port_b: str
    loss_db: float = 0.0


@dataclass(frozen=True)
class Patch:
    id: str
    box_id: str
    port_a: str
    port_b: str
    loss_db: float = 0.5


@dataclass(frozen=True)
class Splitter:
    """
    1xN splitter. `leg_losses` holds one loss per output leg; a balanced
    splitter repeats the same value for every leg.
    """
    id: str
    box_id: str
    input_port_id: str
    output_port_ids: tuple
    leg_losses: tuple
    balanced: bool = True
    name: str = ""

    def leg_loss(self, leg_index: int) -> float:
        return self.leg_losses[leg_index]

    @property
    def worst_leg_loss(self) -> float:
        return max(self.leg_losses) if self.leg_losses else 0.0


@dataclass(frozen=True)
class Dio:
    id: str
    box_id: str
    port_ids: tuple
    name: str = ""


@dataclass(frozen=True)
class Equipment:
    id: str
    box_id: str
    kind: str
    port_ids: tuple
    name: str = ""
    output_power_dbm: float | None = None
    ports_per_slot: int = 16

    def slot_and_port(self, port_id: str) -> tuple[int, int]:
        """1-based (slot, port) of a port on this equipment."""
        idx = self.port_ids.index(port_id)
        per_slot = max(1, self.ports_per_slot)
        return idx // per_slot + 1, idx % per_slot + 1


@dataclass(frozen=True)
class PortInfo:
    kind: PortKind
    owner_id: str
    index: int = 0


# --------
# Snapshot
# --------
class TopologySnapshot:
    """
    Immutable in-memory network used by every trace.

    The only mutable state is the lazily built splice graph, which lives on
    this instance; two snapshots never share adjacency.
    """

    def __init__(self, boxes=(), cables=(), fusions=(), splitters=(), patches=(), dios=(), equipment=()):
        self.boxes: dict[str, Box] = {}
        self.cables: dict[str, Cable] = {}
        self.fusions: dict[str, Fusion] = {}
        self.splitters: dict[str, Splitter] = {}
        self.patches: dict[str, Patch] = {}
        self.dios: dict[str, Dio] = {}
        self.equipment: dict[str, Equipment] = {}

        for kind, items, target in (
            ("box", boxes, self.boxes),
            ("cable", cables, self.cables),
            ("fusion", fusions, self.fusions),
            ("splitter", splitters, self.splitters),
            ("patch", patches, self.patches),
            ("dio", dios, self.dios),
            ("equipment", equipment, self.equipment),
        ):
            for item in items:
                if item.id in target:
                    raise SnapshotError(f"Duplicate {kind} id", item.id)
                target[item.id] = item

        self._cables_by_box = defaultdict(list)
        self._by_box = defaultdict(lambda: defaultdict(list))
        self._device_ports = defaultdict(dict)   # box_id -> port_id -> PortInfo
        self._splice_graph = None
        self._validate_and_index()

    # 1) structural checks + per-box indexes
    def _validate_and_index(self):
        for cable in self.cables.values():
            if cable.fiber_count < 0 or cable.length_m < 0:
                raise SnapshotError("Cable fiber count and length must be non-negative", cable.id)
            if cable.from_box_id is not None and cable.from_box_id == cable.to_box_id:
                raise SnapshotError("Cable cannot start and end in the same box", cable.id)
            for end in cable.ends():
                if end is None:
                    continue
                if end not in self.boxes:
                    raise SnapshotError(f"Cable terminates in unknown box '{end}'", cable.id)
                self._cables_by_box[end].append(cable)

        for kind, items in (
            ("fusions", self.fusions),
            ("splitters", self.splitters),
            ("patches", self.patches),
            ("dios", self.dios),
            ("equipment", self.equipment),
        ):
            for item in items.values():
                box = self.boxes.get(item.box_id)
                if box is None:
                    raise SnapshotError(f"Unknown box '{item.box_id}'", item.id)
                if box.kind == BoxKind.POLE:
                    raise SnapshotError("Poles are pass-through only and cannot hold splices or devices", item.id)
                self._by_box[item.box_id][kind].append(item)

        # 2) device port ownership (splitter legs, DIO slots, equipment ports)
        for spl in self.splitters.values():
            if not spl.output_port_ids:
                raise SnapshotError("Splitter needs at least one output", spl.id)
            if len(spl.leg_losses) != len(spl.output_port_ids):
                raise SnapshotError("Splitter leg losses do not match its outputs", spl.id)
            self._claim(spl.box_id, spl.input_port_id, PortInfo(PortKind.SPLITTER_IN, spl.id), spl.id)
            for i, pid in enumerate(spl.output_port_ids):
                self._claim(spl.box_id, pid, PortInfo(PortKind.SPLITTER_OUT, spl.id, i), spl.id)
        for dio in self.dios.values():
            for i, pid in enumerate(dio.port_ids):
                self._claim(dio.box_id, pid, PortInfo(PortKind.DIO, dio.id, i), dio.id)
        for eq in self.equipment.values():
            for i, pid in enumerate(eq.port_ids):
                self._claim(eq.box_id, pid, PortInfo(PortKind.EQUIPMENT, eq.id, i), eq.id)

    def _claim(self, box_id, port_id, info, record_id):
        ports = self._device_ports[box_id]
        if port_id in ports:
            raise SnapshotError(f"Port '{port_id}' is declared twice in box '{box_id}'", record_id)
        ports[port_id] = info

    # ---------
    # Lookups
    # ---------
    def cable(self, cable_id: str) -> Cable:
        cable = self.cables.get(cable_id)
        if cable is None:
            raise CableNotFoundError(cable_id)
        return cable

    def box(self, box_id: str) -> Box:
        box = self.boxes.get(box_id)
        if box is None:
            raise ConnectivityMismatchError(box_id, None, "unknown box")
        return box

    def cables_at(self, box_id: str) -> list[Cable]:
        return list(self._cables_by_box.get(box_id, []))

    def fusions_in(self, box_id: str) -> list[Fusion]:
        return list(self._by_box[box_id]["fusions"]) if box_id in self._by_box else []

    def patches_in(self, box_id: str) -> list[Patch]:
        return list(self._by_box[box_id]["patches"]) if box_id in self._by_box else []

    def splitters_in(self, box_id: str) -> list[Splitter]:
        return list(self._by_box[box_id]["splitters"]) if box_id in self._by_box else []

    def equipment_in(self, box_id: str) -> list[Equipment]:
        return list(self._by_box[box_id]["equipment"]) if box_id in self._by_box else []

    def occupied_ports(self, box_id: str) -> set[str]:
        """Every port id in the box that already has a fusion or patch attached."""
        used = set()
        for edge in self.fusions_in(box_id) + self.patches_in(box_id):
            used.add(edge.port_a)
            used.add(edge.port_b)
        return used

    def classify_port(self, box_id: str, port_id: str) -> PortInfo:
        """
        Resolve what a port in a box belongs to.
        Raises CableNotFoundError for a fiber port naming a missing cable and
        ConnectivityMismatchError for ports that cannot exist in that box.
        """
        self.box(box_id)
        info = self._device_ports.get(box_id, {}).get(port_id)
        if info is not None:
            return info

        m = FIBER_PORT_RE.match(port_id or "")
        if not m:
            raise ConnectivityMismatchError(box_id, port_id, "unknown port")
        cable = self.cable(m.group("cable"))
        index = int(m.group("index"))
        if index >= cable.fiber_count:
            raise ConnectivityMismatchError(box_id, port_id, f"cable '{cable.id}' has only {cable.fiber_count} fibers")
        if box_id not in cable.ends():
            raise ConnectivityMismatchError(box_id, port_id, f"cable '{cable.id}' does not terminate in this box")
        return PortInfo(PortKind.FIBER, cable.id, index)

    # ---------------
    # Derived objects
    # ---------------
    @property
    def splice_graph(self):
        """Per-box adjacency, created on first use and cached on this snapshot only."""
        if self._splice_graph is None:
            from fibertrace.hard_scripts.splice_graph import SpliceGraph
            self._splice_graph = SpliceGraph(self)
        return self._splice_graph

    def with_added_fusions(self, fusions) -> "TopologySnapshot":
        """New snapshot with extra fusion records; caches are not carried over."""
        return TopologySnapshot(
            boxes=self.boxes.values(),
            cables=self.cables.values(),
            fusions=list(self.fusions.values()) + list(fusions),
            splitters=self.splitters.values(),
            patches=self.patches.values(),
            dios=self.dios.values(),
            equipment=self.equipment.values(),
        )

    def __repr__(self):
        return (
            f"TopologySnapshot(boxes={len(self.boxes)}, cables={len(self.cables)}, "
            f"fusions={len(self.fusions)}, splitters={len(self.splitters)}, patches={len(self.patches)})"
        )
