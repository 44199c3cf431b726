"""
ASCII terminal formatters for the ``strategy``, ``optimise`` and ``checklist``
CLI commands.

All formatters accept ``to_dict()`` output (or parts of it) and return plain
multi-line strings suitable for ``typer.echo()``.

Unknown distances print as ``n/a``, never as ``0.0``.
"""

from __future__ import annotations

from typing import Any


def _km(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.1f}"


def format_summary(strategy: dict[str, Any]) -> str:
    s = strategy["summary"]
    agg = strategy["aggregation"]
    lines = [
        "",
        f"=== Waste Strategy: {strategy['project_id']} ===",
        f"  Plan revision:      {strategy.get('revision') or '-'}",
        f"  Total forecast:     {s['total_tonnes']:.2f} t",
        f"  Diverted:           {s['diverted_tonnes']:.2f} t ({s['diversion_percent']:.1f}%)",
        f"  Landfill:           {s['landfill_tonnes']:.2f} t ({s['landfill_percent']:.1f}%)",
        f"  Unknown outcome:    {s['unknown_tonnes']:.2f} t",
        f"  Streams / facilities: {s['streams_count']} / {s['facilities_utilised_count']}",
        f"  Unallocated items:  {agg['unallocated_count']}",
        f"  Need conversion:    {agg['conversion_required_count']}",
    ]
    if not strategy.get("distances_loaded"):
        missing = strategy.get("missing_facility_ids") or []
        lines.append(f"  [WARN] Distances incomplete ({len(missing)} facility/ies missing)")
    return "\n".join(lines)


def format_stream_table(rows: list[dict[str, Any]]) -> str:
    """Stream rows as a fixed-width table::

        Stream                       Tonnes  Sig     Handling   Destination            km
        ----------------------------------------------------------------------------------
        Metals                         1.25  major   mixed      Metal recycling yard  12.3
    """
    if not rows:
        return "\n  (no stream plans yet; run 'apply' with create_stream or seed defaults)"
    header = (
        f"  {'Stream':<36}  {'Tonnes':>7}  {'Sig':<6}  {'Handling':<9}  "
        f"{'Destination':<36}  {'km':>6}"
    )
    lines = ["", header, "  " + "-" * (len(header) - 2)]
    for r in rows:
        if r.get("has_destination"):
            dest = r.get("destination_name") or r.get("facility_id") or ""
            km = _km(r.get("distance_km"))
        elif r.get("recommended_facility_name"):
            dest = f"-> {r['recommended_facility_name']}"
            km = _km(r.get("recommended_distance_km"))
        else:
            dest, km = "(none)", "n/a"
        lines.append(
            f"  {r['stream_name'][:36]:<36}  {r['total_tonnes']:>7.2f}  "
            f"{r['significance']:<6}  {r['handling_mode']:<9}  {dest[:36]:<36}  {km:>6}"
        )
    return "\n".join(lines)


def format_recommendations(recs: list[dict[str, Any]]) -> str:
    if not recs:
        return "\n  [OK] No recommendations; the plan is complete."
    lines = ["", "  Recommendations:"]
    for rec in recs:
        marker = "" if rec.get("apply_action") else "  (advisory)"
        lines.append(f"    P{rec['priority']}  {rec['rec_id']:<40}  {rec['title']}{marker}")
        impact = rec.get("estimated_impact") or {}
        if impact.get("cost_savings_nzd_range"):
            cost_lo, cost_hi = impact["cost_savings_nzd_range"]
            co2_lo, co2_hi = impact["carbon_savings_tco2e_range"]
            lines.append(
                f"         +{impact['diversion_delta_percent']:.1f}% diversion, "
                f"saves ${cost_lo:,.0f}-${cost_hi:,.0f}, {co2_lo:.2f}-{co2_hi:.2f} tCO2e"
            )
    return "\n".join(lines)


def format_strategy(strategy: dict[str, Any]) -> str:
    return "\n".join(
        [
            format_summary(strategy),
            format_stream_table(strategy["stream_rows"]),
            format_recommendations(strategy["recommendations"]),
        ]
    )


def format_optimiser(report: dict[str, Any]) -> str:
    """Optimiser picks per stream, with alternatives and the reason."""
    weights = report["weights"]
    lines = [
        "",
        f"=== Facility Optimiser: {report['project_id']} ===",
        "  Weights:            "
        + ", ".join(f"{k}={v:g}" for k, v in weights.items()),
        f"  Facilities:         {report['facilities_geocoded']} geocoded / "
        f"{report['facilities_total']} total",
        f"  Distances cached:   {report['distances_cached']}"
        + (f" (updated {report['last_updated_at']})" if report.get("last_updated_at") else ""),
    ]
    if not report["results"]:
        lines.append("\n  (no streams with forecast tonnes)")
        return "\n".join(lines)

    for result in report["results"]:
        best = result["recommended"]
        lines.append("")
        lines.append(f"  {result['stream_name']}  ({result['planned_tonnes']:.2f} t)")
        if best is None:
            lines.append(f"    {result['reason']['primary']}")
            continue
        current = "  [current]" if result["is_current"] else ""
        lines.append(
            f"    -> {best['facility_name']} ({best['facility_id']})  "
            f"score {best['score']:.2f}  {_km(best['distance_km'])} km{current}"
        )
        lines.append(f"       {result['reason']['primary']}")
        for note in result["reason"]["breakdown"]:
            lines.append(f"         - {note}")
        for alt in result["alternatives"]:
            lines.append(
                f"       alt: {alt['facility_name']:<30}  score {alt['score']:.2f}  "
                f"{_km(alt['distance_km'])} km"
            )
    return "\n".join(lines)


_STATUS_MARK = {"complete": "[x]", "incomplete": "[ ]", "blocked": "[!]"}


def format_checklist(checklist: dict[str, Any]) -> str:
    lines = [
        "",
        f"=== Planning Checklist: {checklist['project_id']} ===",
        f"  Readiness: {checklist['readiness_score']}%",
        "",
    ]
    for item in checklist["items"]:
        mark = _STATUS_MARK.get(item["status"], "[?]")
        lines.append(f"  {mark} {item['label']:<38}  {item['detail']}")
    action = checklist.get("next_best_action")
    if action:
        lines.append("")
        lines.append(f"  Next: {action['label']}")
        lines.append(f"        {action['command']}")
    return "\n".join(lines)
