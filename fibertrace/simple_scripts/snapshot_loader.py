# fibertrace/simple_scripts/snapshot_loader.py
# Build a TopologySnapshot from a project JSON export, validating catalog values.

import glob
import json
import logging
import math
import os

import fibertrace.config
from fibertrace.basic.distance_utils import polyline_length_m
from fibertrace.basic.fiber_colors import COLOR_STANDARDS
from fibertrace.basic.topology import (
    Box,
    BoxKind,
    Cable,
    Dio,
    Equipment,
    Fusion,
    Patch,
    SnapshotError,
    Splitter,
    TopologySnapshot,
)

logger = logging.getLogger(__name__)


def _get(rec: dict, *keys, default=None):
    """First present key; project exports mix snake_case and camelCase."""
    for k in keys:
        if k in rec and rec[k] is not None:
            return rec[k]
    return default


def _number(value, record_id: str, what: str, allow_negative: bool = False) -> float:
    """Strict float parse. Accepts numbers and numeric strings only."""
    if isinstance(value, bool):
        raise SnapshotError(f"Invalid {what}: {value!r}", record_id)
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        try:
            out = float(value.strip().replace(",", "."))
        except ValueError:
            raise SnapshotError(f"Invalid {what}: {value!r}", record_id) from None
    else:
        raise SnapshotError(f"Invalid {what}: {value!r}", record_id)
    if math.isnan(out) or math.isinf(out) or (out < 0 and not allow_negative):
        raise SnapshotError(f"Invalid {what}: {value!r}", record_id)
    return out


def parse_attenuation(value, record_id: str) -> float:
    """
    Attenuation in dB. Accepted encodings:
      • 3.5  /  "3.5"
      • {"value": 3.5}  /  {"x": 3.5}
    Anything else raises SnapshotError.
    """
    if isinstance(value, dict):
        for key in ("value", "x"):
            if key in value:
                return _number(value[key], record_id, "attenuation")
        raise SnapshotError(f"Invalid attenuation object: {value!r}", record_id)
    return _number(value, record_id, "attenuation")


def parse_leg_losses(value, outputs: int, balanced: bool, record_id: str) -> tuple:
    """
    Per-leg losses for a splitter with `outputs` legs.
      • Balanced → a single attenuation value repeated for every leg
      • Unbalanced → {"port1": x, "port2": y, ...} or [x, y, ...], one per leg
    """
    if balanced:
        return tuple([parse_attenuation(value, record_id)] * outputs)

    if isinstance(value, dict):
        try:
            legs = [value[f"port{i + 1}"] for i in range(outputs)]
        except KeyError as e:
            raise SnapshotError(f"Unbalanced splitter is missing leg {e.args[0]}", record_id) from None
        if len(value) != outputs:
            raise SnapshotError(f"Unbalanced splitter lists {len(value)} legs for {outputs} outputs", record_id)
    elif isinstance(value, (list, tuple)):
        legs = list(value)
        if len(legs) != outputs:
            raise SnapshotError(f"Unbalanced splitter lists {len(legs)} legs for {outputs} outputs", record_id)
    else:
        raise SnapshotError(f"Unbalanced splitter needs a leg table, got {value!r}", record_id)
    return tuple(parse_attenuation(v, record_id) for v in legs)


def parse_coordinate(value, record_id: str) -> tuple[float, float]:
    """(lat, lon) from {"lat", "lng"} / {"lat", "lon"} or [lat, lon]."""
    if isinstance(value, dict):
        lat = _get(value, "lat")
        lon = _get(value, "lng", "lon")
    elif isinstance(value, (list, tuple)) and len(value) >= 2:
        lat, lon = value[0], value[1]
    else:
        raise SnapshotError(f"Invalid coordinate {value!r}", record_id)
    return (
        _number(lat, record_id, "latitude", allow_negative=True),
        _number(lon, record_id, "longitude", allow_negative=True),
    )


# ------------------
# Catalog resolution
# ------------------
def _normalize(name) -> str:
    return str(name or "").strip().lower()


def _find_splitter_catalog(catalog: list[dict], rec: dict) -> dict | None:
    """By catalog id, exact name, normalized name, then output count."""
    cid = _get(rec, "catalog_id", "catalogId")
    if cid is not None:
        for item in catalog:
            if item.get("id") == cid:
                return item
    name = _get(rec, "type", "name", default="")
    for item in catalog:
        if item.get("name") == name:
            return item
    for item in catalog:
        if _normalize(item.get("name")) == _normalize(name):
            return item
    outputs = _splitter_outputs(rec)
    for item in catalog:
        if outputs is not None and _get(item, "outputs") == outputs:
            return item
    return None


def _splitter_outputs(rec: dict) -> int | None:
    ports = _get(rec, "output_port_ids", "outputPortIds")
    if ports is not None:
        return len(ports)
    n = _get(rec, "outputs")
    if n is not None:
        return int(_number(n, rec.get("id"), "output count"))
    kind = str(_get(rec, "type", default=""))
    if ":" in kind:
        tail = kind.split(":", 1)[1]
        if tail.isdigit():
            return int(tail)
    return None


def _find_by_id_or_name(catalog: list[dict], rec: dict) -> dict | None:
    cid = _get(rec, "catalog_id", "catalogId")
    for item in catalog:
        if cid is not None and item.get("id") == cid:
            return item
    name = _normalize(_get(rec, "name"))
    for item in catalog:
        if name and _normalize(item.get("name")) == name:
            return item
    return None


def _find_olt_catalog(catalog: list[dict], rec: dict) -> dict | None:
    """Catalog id first, then the longest catalog name the OLT name starts with."""
    cid = _get(rec, "catalog_id", "catalogId")
    for item in catalog:
        if cid is not None and item.get("id") == cid:
            return item
    name = _normalize(_get(rec, "name"))
    best = None
    for item in catalog:
        cname = _normalize(item.get("name"))
        if cname and name.startswith(cname) and (best is None or len(cname) > len(_normalize(best.get("name")))):
            best = item
    return best


# -------
# Records
# -------
def _build_box(rec: dict) -> Box:
    bid = rec.get("id")
    kind = str(_get(rec, "kind", "type", default="")).upper()
    try:
        box_kind = BoxKind(kind)
    except ValueError:
        raise SnapshotError(f"Unknown box kind '{kind}'", bid) from None
    coords = _get(rec, "coordinates")
    return Box(bid, box_kind, _get(rec, "name", default=""), parse_coordinate(coords, bid) if coords is not None else None)


def _build_cable(rec: dict, catalog: list[dict]) -> Cable:
    cid = rec.get("id")
    cat = _find_by_id_or_name(catalog, rec) or {}

    fiber_count = _get(rec, "fiber_count", "fiberCount", default=_get(cat, "fiber_count", "fiberCount"))
    if fiber_count is None:
        raise SnapshotError("Cable has no fiber count", cid)
    fiber_count = int(_number(fiber_count, cid, "fiber count"))
    tube_count = int(_number(
        _get(rec, "tube_count", "looseTubeCount", default=_get(cat, "tube_count", "looseTubeCount", default=1)),
        cid, "tube count",
    ))
    if tube_count < 1:
        raise SnapshotError("Cable needs at least one tube", cid)

    coords = tuple(parse_coordinate(c, cid) for c in _get(rec, "coordinates", default=[]))
    reserve = _number(_get(rec, "technical_reserve_m", "technicalReserve", default=0), cid, "technical reserve")
    explicit = _get(rec, "length_m", "length")
    base = _number(explicit, cid, "length") if explicit is not None else polyline_length_m(coords)

    db_km = _get(rec, "attenuation_db_per_km", default=_get(cat, "attenuation"))
    db_km = fibertrace.config.DEFAULT_CABLE_DB_PER_KM if db_km is None else parse_attenuation(db_km, cid)

    standard = str(_get(rec, "color_standard", "colorStandard", default=fibertrace.config.DEFAULT_COLOR_STANDARD))
    standard = standard.upper().replace("-", "").replace("_", "")
    if standard not in COLOR_STANDARDS:
        raise SnapshotError(f"Unknown colour standard '{standard}'", cid)

    return Cable(
        id=cid,
        fiber_count=fiber_count,
        length_m=base + reserve,
        from_box_id=_get(rec, "from_box", "fromNodeId"),
        to_box_id=_get(rec, "to_box", "toNodeId"),
        tube_count=tube_count,
        name=_get(rec, "name", default=""),
        attenuation_db_per_km=db_km,
        coordinates=coords,
        color_standard=standard,
        status=str(_get(rec, "status", default="PLANNED")).upper(),
        technical_reserve_m=reserve,
    )


def _build_fusion(rec: dict, catalog: list[dict]) -> Fusion:
    fid = rec.get("id")
    loss = _get(rec, "loss_db", "attenuation")
    if loss is None:
        cat = _find_by_id_or_name(catalog, rec)
        loss = cat.get("attenuation") if cat else None
    loss = fibertrace.config.DEFAULT_FUSION_LOSS_DB if loss is None else parse_attenuation(loss, fid)
    return Fusion(fid, rec.get("box_id"), _get(rec, "port_a", "sourceId"), _get(rec, "port_b", "targetId"), loss)


def _build_patch(rec: dict) -> Patch:
    pid = rec.get("id")
    loss = _get(rec, "loss_db", "attenuation")
    loss = fibertrace.config.DEFAULT_CONNECTOR_LOSS_DB if loss is None else parse_attenuation(loss, pid)
    return Patch(pid, rec.get("box_id"), _get(rec, "port_a", "sourceId"), _get(rec, "port_b", "targetId"), loss)


def _build_splitter(rec: dict, catalog: list[dict]) -> Splitter:
    sid = rec.get("id")
    outputs = _splitter_outputs(rec)
    if not outputs:
        raise SnapshotError("Splitter output count is missing", sid)

    ports = _get(rec, "output_port_ids", "outputPortIds")
    ports = tuple(ports) if ports is not None else tuple(f"{sid}-out-{i}" for i in range(outputs))
    input_port = _get(rec, "input_port_id", "inputPortId", default=f"{sid}-in")

    cat = _find_splitter_catalog(catalog, rec) or {}
    mode = str(_get(rec, "mode", default=_get(cat, "mode", default="Balanced"))).lower()
    if mode not in ("balanced", "unbalanced"):
        raise SnapshotError(f"Unknown splitter mode '{mode}'", sid)
    balanced = mode == "balanced"

    raw = _get(rec, "attenuation", default=_get(cat, "attenuation"))
    if raw is None:
        if not balanced:
            raise SnapshotError("Unbalanced splitter has no leg table", sid)
        raw = fibertrace.config.DEFAULT_SPLITTER_LOSS_DB
    legs = parse_leg_losses(raw, outputs, balanced, sid)

    return Splitter(sid, rec.get("box_id"), input_port, ports, legs, balanced, _get(rec, "name", default=""))


def _build_dio(rec: dict) -> Dio:
    did = rec.get("id")
    ports = _get(rec, "port_ids", "portIds")
    if ports is None:
        n = int(_number(_get(rec, "ports", default=0), did, "port count"))
        ports = [f"{did}-p-{i}" for i in range(n)]
    return Dio(did, rec.get("box_id"), tuple(ports), _get(rec, "name", default=""))


def _build_equipment(rec: dict, catalog: list[dict]) -> Equipment:
    eid = rec.get("id")
    kind = str(_get(rec, "kind", "type", default="OLT")).upper()
    per_slot = _get(rec, "ports_per_slot", "portsPerSlot")
    ports = _get(rec, "port_ids", "portIds")
    power = _get(rec, "output_power_dbm", "outputPower")

    cat = _find_olt_catalog(catalog, rec) if kind == "OLT" else None
    if cat:
        per_slot = per_slot if per_slot is not None else _get(cat, "ports_per_slot", "portsPerSlot")
        power = power if power is not None else _get(cat, "output_power_dbm", "outputPower")
    per_slot = int(_number(per_slot, eid, "ports per slot")) if per_slot is not None else fibertrace.config.DEFAULT_PORTS_PER_SLOT
    if per_slot < 1:
        raise SnapshotError("Ports per slot must be at least 1", eid)

    if ports is None:
        slots = int(_number(_get(rec, "slots", default=1), eid, "slot count"))
        ports = [f"{eid}-s{s}-p{p}" for s in range(1, slots + 1) for p in range(1, per_slot + 1)]

    if power is not None:
        power = _number(power, eid, "output power", allow_negative=True)
    elif kind == "OLT":
        power = fibertrace.config.DEFAULT_OLT_POWER_DBM

    return Equipment(eid, rec.get("box_id"), kind, tuple(ports), _get(rec, "name", default=""), power, per_slot)


def build_snapshot(data: dict) -> TopologySnapshot:
    """
    Parse a project dict into a TopologySnapshot.

    Expected top-level keys (all optional except boxes/cables):
      boxes, cables, fusions, splitters, patches, dios, equipment, catalog
    where catalog = {fusions, splitters, cables, olts}.
    """
    catalog = data.get("catalog") or {}
    snapshot = TopologySnapshot(
        boxes=[_build_box(r) for r in data.get("boxes", [])],
        cables=[_build_cable(r, catalog.get("cables", [])) for r in data.get("cables", [])],
        fusions=[_build_fusion(r, catalog.get("fusions", [])) for r in data.get("fusions", [])],
        splitters=[_build_splitter(r, catalog.get("splitters", [])) for r in data.get("splitters", [])],
        patches=[_build_patch(r) for r in data.get("patches", [])],
        dios=[_build_dio(r) for r in data.get("dios", [])],
        equipment=[_build_equipment(r, catalog.get("olts", [])) for r in data.get("equipment", [])],
    )
    logger.info("Loaded %r", snapshot)
    return snapshot


def find_topology_file() -> str | None:
    """First *topology*.json in DATA_DIR, or None."""
    files = sorted(glob.glob(os.path.join(fibertrace.config.DATA_DIR, fibertrace.config.TOPOLOGY_GLOB)))
    return files[0] if files else None


def load_snapshot(path: str | None = None) -> TopologySnapshot:
    """Read a project JSON file (default: the topology file in DATA_DIR) into a snapshot."""
    path = path or find_topology_file()
    if not path:
        raise FileNotFoundError(f"No {fibertrace.config.TOPOLOGY_GLOB} found in {fibertrace.config.DATA_DIR}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    logger.info("Reading topology from %s", path)
    return build_snapshot(data)
