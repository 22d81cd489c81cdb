"""
Tabular export of batch runs with pandas.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from ..utils.geometry import representative_latlon
from .runner import BatchRun

logger = logging.getLogger(__name__)

FEATURE_COLUMNS = [
    "row",
    "address",
    "latitude",
    "longitude",
    "source",
    "confidence",
    "enrichment",
    "feature_name",
    "feature_latitude",
    "feature_longitude",
    "distance_miles",
    "containing",
]


def results_frame(run: BatchRun) -> pd.DataFrame:
    """One row per input item, in input order, with flattened enrichment summaries."""
    rows = []
    for item in run.items:
        row: dict = {"row": item.index, "address": item.address}
        if item.ok:
            row["status"] = "ok"
            row.update(item.outcome.to_row())
        elif item.failure is not None:
            row["status"] = str(item.failure.reason)
            row["error"] = item.failure.message
        else:
            row["status"] = "pending"
        rows.append(row)
    return pd.DataFrame(rows)


def features_frame(run: BatchRun) -> pd.DataFrame:
    """One row per returned feature across all successful items."""
    rows = []
    for item in run.items:
        if not item.ok:
            continue
        location = item.outcome.location
        for identifier, record in item.outcome.enrichments.items():
            for feature in record.features:
                point = representative_latlon(feature.geometry)
                rows.append({
                    "row": item.index,
                    "address": item.address,
                    "latitude": location.lat,
                    "longitude": location.lon,
                    "source": location.source,
                    "confidence": location.confidence,
                    "enrichment": identifier,
                    "feature_name": feature.name(),
                    "feature_latitude": point[0] if point else None,
                    "feature_longitude": point[1] if point else None,
                    "distance_miles": feature.distance_miles,
                    "containing": feature.containing,
                })
    return pd.DataFrame(rows, columns=FEATURE_COLUMNS)


def write_csv(run: BatchRun, path: Path | str, detailed: bool = False) -> Path:
    """Write the summary table, or one row per feature when ``detailed``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = features_frame(run) if detailed else results_frame(run)
    frame.to_csv(path, index=False)
    logger.info(f"Wrote {len(frame)} rows to {path}")
    return path
