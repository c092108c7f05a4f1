# fibertrace/hard_scripts/splice_graph.py
# Per-box adjacency of fusion / splitter / patch / DIO connections,
# built the first time a trace touches a box.

import logging
from collections import defaultdict
from dataclasses import dataclass

from fibertrace.basic.topology import (
    ConnectivityMismatchError,
    TopologyError,
    Direction,
    EventKind,
    PortKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Link:
    """One way out of a port: the port reached, the loss paid and what was crossed."""
    port_id: str
    loss_db: float
    kind: EventKind
    device_id: str
    leg_index: int | None = None


class _BoxAdjacency:
    def __init__(self, box_id: str):
        self.box_id = box_id
        self.edges = defaultdict(list)   # port_id -> [Link] over fusions / patches
        self.conflicts = {}              # port_id -> reason


class SpliceGraph:
    """
    Resolves, for a port inside a box, where light goes next.

    Adjacency for a box is built on first request and kept on this object.
    Conflicting records (a port holding two edges, a patch on a bare fiber)
    are remembered per port and raised as ConnectivityMismatchError only when
    a trace actually touches that port.
    """

    def __init__(self, snapshot):
        self._snapshot = snapshot
        self._boxes: dict[str, _BoxAdjacency] = {}

    @property
    def built_boxes(self) -> frozenset:
        return frozenset(self._boxes)

    def _box(self, box_id: str) -> _BoxAdjacency:
        adj = self._boxes.get(box_id)
        if adj is None:
            adj = self._build_box(box_id)
            self._boxes[box_id] = adj
        return adj

    def _build_box(self, box_id: str) -> _BoxAdjacency:
        snap = self._snapshot
        adj = _BoxAdjacency(box_id)

        # 1) fusions and patch cords become undirected edges
        for kind, records in (
            (EventKind.FUSION, snap.fusions_in(box_id)),
            (EventKind.PATCH, snap.patches_in(box_id)),
        ):
            for rec in records:
                if rec.port_a == rec.port_b:
                    adj.conflicts[rec.port_a] = f"{kind.value.lower()} '{rec.id}' joins a port to itself"
                    continue
                adj.edges[rec.port_a].append(Link(rec.port_b, rec.loss_db, kind, rec.id))
                adj.edges[rec.port_b].append(Link(rec.port_a, rec.loss_db, kind, rec.id))

        # 2) every port may hold one edge; DIO slots one fusion (rear) + one patch (front)
        for port_id, links in adj.edges.items():
            kind = self._port_kind(box_id, port_id)
            if kind == PortKind.DIO:
                for edge_kind in (EventKind.FUSION, EventKind.PATCH):
                    same = [l for l in links if l.kind == edge_kind]
                    if len(same) > 1:
                        adj.conflicts[port_id] = f"DIO slot has {len(same)} {edge_kind.value.lower()} edges"
            elif len(links) > 1:
                ids = ", ".join(l.device_id for l in links)
                adj.conflicts[port_id] = f"port holds {len(links)} edges ({ids})"
            if kind not in (PortKind.DIO, PortKind.EQUIPMENT) and any(l.kind == EventKind.PATCH for l in links):
                adj.conflicts.setdefault(port_id, "patch cord attached to a port that is neither DIO nor equipment")

        logger.debug(
            "[Splice Graph] Built box %s: %d connected ports, %d conflicts",
            box_id, len(adj.edges), len(adj.conflicts),
        )
        return adj

    def _port_kind(self, box_id, port_id):
        # Unknown ports are reported when traced, not while building
        try:
            return self._snapshot.classify_port(box_id, port_id).kind
        except TopologyError:
            return None

    def edges(self, box_id: str, port_id: str) -> list[Link]:
        """Raw fusion / patch links attached to a port."""
        adj = self._box(box_id)
        if port_id in adj.conflicts:
            raise ConnectivityMismatchError(box_id, port_id, adj.conflicts[port_id])
        return list(adj.edges.get(port_id, []))

    def adjacency(self, box_id: str, port_id: str, direction: Direction, arrived_by: EventKind | None = None) -> list[Link]:
        """
        Where light leaving `port_id` in `direction` goes next.

          • ACROSS → the fusion / patch attached to the port. On a DIO slot the
            edge of kind `arrived_by` is the one light came in on, so it is skipped.
          • ALONG on a splitter input → every output leg (leg order).
          • ALONG on a splitter output → the input, paying that leg's loss.
          • ALONG on a DIO slot → the same slot, other face (no loss).
          • ALONG on equipment → nothing (terminal).

        Fiber ports taken ALONG leave through their cable, which the tracer
        walks itself; asking for them here is a caller error.
        """
        info = self._snapshot.classify_port(box_id, port_id)

        if direction == Direction.ACROSS:
            links = self.edges(box_id, port_id)
            if info.kind == PortKind.DIO and arrived_by is not None:
                links = [l for l in links if l.kind != arrived_by]
            return links

        if info.kind == PortKind.SPLITTER_IN:
            spl = self._snapshot.splitters[info.owner_id]
            return [
                Link(pid, spl.leg_loss(i), EventKind.SPLITTER, spl.id, i)
                for i, pid in enumerate(spl.output_port_ids)
            ]
        if info.kind == PortKind.SPLITTER_OUT:
            spl = self._snapshot.splitters[info.owner_id]
            return [Link(spl.input_port_id, spl.leg_loss(info.index), EventKind.SPLITTER, spl.id, info.index)]
        if info.kind == PortKind.DIO:
            return [Link(port_id, 0.0, EventKind.DIO, info.owner_id)]
        if info.kind == PortKind.EQUIPMENT:
            return []
        raise ValueError(f"Fiber port {port_id} leaves ALONG through its cable, not the splice graph")
