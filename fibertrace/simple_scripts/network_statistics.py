# fibertrace/simple_scripts/network_statistics.py

import logging

import pandas as pd

from fibertrace.basic.topology import BoxKind

logger = logging.getLogger(__name__)

DEPLOYED_STATUSES = {"DEPLOYED", "IMPLANTED", "ACTIVE"}


def cable_dataframe(snapshot) -> pd.DataFrame:
    """One row per cable: id, fiber_count, length_m (reserve included), status."""
    rows = [
        {
            "cable_id": c.id,
            "fiber_count": c.fiber_count,
            "length_m": c.length_m,
            "status": c.status,
        }
        for c in snapshot.cables.values()
    ]
    return pd.DataFrame(rows, columns=["cable_id", "fiber_count", "length_m", "status"])


def collect_network_statistics(snapshot) -> dict:
    """
    Gather counts for network components and cable footage.

    Returns a dict consumed by excel_writer.write_network_statistics(), including:
      - cto_count, ceo_count, pop_count, pole_count
      - cable_count, total_cable_m, deployed_cable_m, planned_cable_m
      - fusion_count, splitter_count, patch_count, olt_count
      - cable_groups: [{fiber_count, count, total_m}] sorted by fiber count
    Issue totals (trace issues, mismatches) are added by main.py after probing.
    """
    kinds = pd.Series([b.kind.value for b in snapshot.boxes.values()], dtype=object).value_counts()

    df = cable_dataframe(snapshot)
    if df.empty:
        groups = []
        deployed = planned = total = 0.0
    else:
        grouped = (
            df.groupby("fiber_count")
            .agg(cables=("cable_id", "size"), total_m=("length_m", "sum"))
            .reset_index()
            .sort_values("fiber_count")
        )
        groups = [
            {"fiber_count": int(r.fiber_count), "count": int(r.cables), "total_m": round(float(r.total_m), 2)}
            for r in grouped.itertuples(index=False)
        ]
        is_deployed = df["status"].isin(DEPLOYED_STATUSES)
        deployed = float(df.loc[is_deployed, "length_m"].sum())
        planned = float(df.loc[~is_deployed, "length_m"].sum())
        total = float(df["length_m"].sum())

    stats = {
        "cto_count": int(kinds.get(BoxKind.CTO.value, 0)),
        "ceo_count": int(kinds.get(BoxKind.CEO.value, 0)),
        "pop_count": int(kinds.get(BoxKind.POP.value, 0)),
        "pole_count": int(kinds.get(BoxKind.POLE.value, 0)),
        "cable_count": len(snapshot.cables),
        "total_cable_m": round(total, 2),
        "deployed_cable_m": round(deployed, 2),
        "planned_cable_m": round(planned, 2),
        "fusion_count": len(snapshot.fusions),
        "splitter_count": len(snapshot.splitters),
        "patch_count": len(snapshot.patches),
        "olt_count": sum(1 for e in snapshot.equipment.values() if str(e.kind).upper() == "OLT"),
        "cable_groups": groups,
    }
    logger.info(
        "Network: %d CTO, %d CEO, %d POP, %d poles, %d cables (%.0f m)",
        stats["cto_count"], stats["ceo_count"], stats["pop_count"], stats["pole_count"],
        stats["cable_count"], stats["total_cable_m"],
    )
    return stats
