"""
Export helpers for spreadsheets and manual review.

All functions write to disk and return the written ``Path``.
They accept generic ``list[dict]`` data to stay decoupled from the
strategy dataclasses.

CSV exports are flat (no nested lists) so they open directly in Excel.
``flatten_stream_rows_for_export()`` and
``flatten_recommendations_for_export()`` adapt ``WasteStrategy.to_dict()``
to that shape.
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

STREAM_ROW_COLUMNS = [
    "project_id", "stream_name", "total_kg", "total_tonnes", "significance",
    "outcome_label", "intended_outcomes", "handling_mode", "recommended_handling",
    "destination_mode", "destination_name", "facility_id", "partner_id",
    "distance_km", "duration_min", "recommended_facility_id",
    "recommended_facility_name", "recommended_distance_km",
]

RECOMMENDATION_COLUMNS = [
    "project_id", "rec_id", "priority", "category", "stream_name", "title",
    "description", "action_type", "action_payload",
]


def export_to_csv(
    records: list[dict],
    path: Path,
    fieldnames: list[str] | None = None,
) -> Path:
    """Write ``records`` to a UTF-8 CSV file.

    Args:
        records:    List of row dicts.
        path:       Destination file path (parent dirs created if missing).
        fieldnames: Column order. If None, uses the keys of the first record.

    Returns:
        ``path`` as written. With no records and no ``fieldnames`` the file
        is empty; with ``fieldnames`` it holds just the header.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if not records and not fieldnames:
        path.write_text("", encoding="utf-8")
        return path
    cols = fieldnames or list(records[0].keys())
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=cols, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)
    return path


def export_to_json(data: dict | list, path: Path) -> Path:
    """Write ``data`` to a pretty-printed JSON file (parent dirs created)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return path


def flatten_stream_rows_for_export(strategy: dict[str, Any]) -> list[dict]:
    """One flat row per stream plan; outcome lists are joined with ``"; "``."""
    project_id = strategy.get("project_id", "")
    rows: list[dict] = []
    for row in strategy.get("stream_rows", []):
        flat = {col: row.get(col, "") for col in STREAM_ROW_COLUMNS}
        flat["project_id"] = project_id
        flat["intended_outcomes"] = "; ".join(row.get("intended_outcomes") or [])
        flat["total_tonnes"] = round(float(row.get("total_tonnes") or 0.0), 3)
        for key in ("distance_km", "duration_min", "recommended_distance_km"):
            if flat[key] is None:
                flat[key] = ""
        rows.append({k: ("" if v is None else v) for k, v in flat.items()})
    return rows


def flatten_recommendations_for_export(strategy: dict[str, Any]) -> list[dict]:
    """One flat row per recommendation.

    ``action_payload`` is the payload serialised as compact JSON so the CSV
    stays single-valued per cell; advisory rows leave both action columns
    empty.
    """
    project_id = strategy.get("project_id", "")
    rows: list[dict] = []
    for rec in strategy.get("recommendations", []):
        action = rec.get("apply_action") or {}
        rows.append(
            {
                "project_id":     project_id,
                "rec_id":         rec.get("rec_id", ""),
                "priority":       rec.get("priority", ""),
                "category":       rec.get("category", ""),
                "stream_name":    rec.get("stream_name") or "",
                "title":          rec.get("title", ""),
                "description":    rec.get("description", ""),
                "action_type":    action.get("type", ""),
                "action_payload": (
                    json.dumps(action.get("payload", {}), sort_keys=True) if action else ""
                ),
            }
        )
    return rows


def export_strategy(strategy: dict[str, Any], out_dir: Path) -> list[Path]:
    """Write the stream rows CSV, recommendations CSV and full JSON for a project.

    Returns:
        The three written paths, in that order.
    """
    project_id = strategy.get("project_id", "project")
    return [
        export_to_csv(
            flatten_stream_rows_for_export(strategy),
            out_dir / f"streams_{project_id}.csv",
            fieldnames=STREAM_ROW_COLUMNS,
        ),
        export_to_csv(
            flatten_recommendations_for_export(strategy),
            out_dir / f"recommendations_{project_id}.csv",
            fieldnames=RECOMMENDATION_COLUMNS,
        ),
        export_to_json(strategy, out_dir / f"strategy_{project_id}.json"),
    ]
