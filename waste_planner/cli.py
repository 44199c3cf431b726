"""
Waste Planner — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Run the operation through ``PlanningService``.
  5. Report result to stdout.

Install and run::

    pip install -e .
    waste-planner --help
    waste-planner init-db
    waste-planner seed-catalog
    waste-planner add-item --project p-1 --name "GIB offcuts" --quantity 12 --unit m3
    waste-planner strategy --project p-1
    waste-planner apply --project p-1 --recommendation allocate-to-mixed
    waste-planner apply --project p-1 --action set_facility \\
        --payload '{"stream_name": "Metals", "facility_id": "akl-metal-1"}'
    waste-planner optimise --project p-1 --apply
    waste-planner checklist --project p-1
    waste-planner export --project p-1 --out data/outputs
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="waste-planner",
    help="Construction waste stream planner — allocation, facilities and recommendations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from waste_planner.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from waste_planner.utils.logging import configure_logging
    configure_logging(config.logging)


def _connect(config, db_path: Optional[str] = None):
    from waste_planner.db.connection import get_connection

    return get_connection(
        db_path or config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )


def _fail(exc: Exception) -> None:
    typer.echo(f"[ERROR] {exc}", err=True)
    raise typer.Exit(code=1)


_DB_PATH_HELP = "Override DB path from config (e.g. data/db/test.db)."
_CONFIG_HELP = "Path to TOML config file."


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from waste_planner.db.migrations import run_migrations
    from waste_planner.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with _connect(config, target_path) as conn:
        apply_schema(conn)
        migrations_applied = run_migrations(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file (default: config/default.toml)."
    ),
    show_full: bool = typer.Option(False, "--full", help="Print full config including all fields."),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Mixed stream:     {config.planning.mixed_stream_key}")
    typer.echo(f"  Fallback streams: {', '.join(config.planning.fallback_streams)}")
    typer.echo(
        f"  Significance:     major >= {config.planning.major_tonnes} t, "
        f"medium >= {config.planning.medium_tonnes} t"
    )
    typer.echo(f"  Maps provider:    {config.maps.provider} (batch {config.maps.batch_size})")
    typer.echo(f"  Maps API key:     {'set' if config.maps.api_key else 'NOT SET'}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config is valid.")


@app.command("seed-catalog")
def seed_catalog(
    seed_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Facilities JSON. Defaults to config.catalog.seed_file."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Load built-in stream defaults plus partner/facility seed data.

    Uses UPSERT semantics — re-running refreshes existing rows.
    """
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    path = Path(seed_file) if seed_file else Path(config.catalog.seed_file)
    if seed_file and not path.exists():
        typer.echo(f"[ERROR] Seed file not found: {path}", err=True)
        raise typer.Exit(code=1)

    try:
        with _connect(config, db_path) as conn:
            streams, partners, facilities = PlanningService(conn, config).seed_catalog(path)
    except PlanningError as exc:
        _fail(exc)

    typer.echo(f"  Stream defaults: {streams}")
    typer.echo(f"  Partners:        {partners}")
    typer.echo(f"  Facilities:      {facilities}")
    typer.echo("[OK] Catalog seeded.")


@app.command("create-project")
def create_project(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    name: str = typer.Option(..., "--name", help="Project name."),
    address: Optional[str] = typer.Option(None, "--address", help="Site address (geocoded on first use)."),
    region: Optional[str] = typer.Option(None, "--region", help="Region slug."),
    partner: Optional[str] = typer.Option(None, "--partner", help="Primary waste partner id."),
    stream: Optional[list[str]] = typer.Option(
        None, "--stream", "-s", help="Selected waste stream (repeatable)."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Create or replace a project."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    data = {
        "project_id": project,
        "name": name,
        "site_address": address,
        "region": region,
        "primary_partner_id": partner,
        "selected_streams": stream or [],
    }
    try:
        with _connect(config, db_path) as conn:
            saved = PlanningService(conn, config).create_project(data)
    except PlanningError as exc:
        _fail(exc)

    typer.echo(f"  Project: {saved.project_id} ({saved.name})")
    typer.echo(f"  Selected streams: {len(saved.selected_streams)}")
    typer.echo("[OK] Project saved.")


@app.command("add-item")
def add_item(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    name: str = typer.Option("", "--name", help="Item description."),
    quantity: float = typer.Option(..., "--quantity", "-q", help="Raw quantity."),
    unit: str = typer.Option(..., "--unit", "-u", help="tonne, kg, m, m3, L, m2 or count."),
    excess: float = typer.Option(0.0, "--excess", help="Excess percent (0-100)."),
    stream: Optional[str] = typer.Option(None, "--stream", "-s", help="Waste stream key."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Add a forecast item and re-sync the project's stream totals."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    data = {
        "item_name": name,
        "quantity": quantity,
        "unit": unit,
        "excess_percent": excess,
        "waste_stream_key": stream,
    }
    try:
        with _connect(config, db_path) as conn:
            item, result = PlanningService(conn, config).create_item(project, data)
    except PlanningError as exc:
        _fail(exc)

    kg = "n/a" if item.computed_waste_kg is None else f"{item.computed_waste_kg:.1f} kg"
    typer.echo(f"  Item {item.item_id}: {item.quantity} {item.unit.value} ({kg})")
    typer.echo(f"  Project total: {result.total_kg / 1000.0:.2f} t")
    typer.echo("[OK] Item added.")


@app.command("recompute")
def recompute(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Recompute every forecast item's mass and the per-stream totals."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            result = PlanningService(conn, config).recompute_aggregation(project)
    except PlanningError as exc:
        _fail(exc)

    for stream, kg in result.stream_totals.items():
        typer.echo(f"  {stream:<40} {kg / 1000.0:>9.3f} t")
    typer.echo(f"  Included:          {result.included_count}")
    typer.echo(f"  Unallocated:       {result.unallocated_count}")
    typer.echo(f"  Need conversion:   {result.conversion_required_count}")
    typer.echo(f"  Non-mass (m2/ea):  {result.non_mass_count}")
    typer.echo("[OK] Aggregation recomputed.")


@app.command("seed-plans")
def seed_plans(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Create plan entries for selected streams, padded with fallback streams."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            record = PlanningService(conn, config).seed_default_plans(project)
    except PlanningError as exc:
        _fail(exc)

    typer.echo(f"  Streams: {', '.join(record.document.stream_names())}")
    typer.echo(f"  Revision: {record.revision}")
    typer.echo("[OK] Default plans ready.")


@app.command("strategy")
def strategy(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    as_json: bool = typer.Option(False, "--json", help="Print the full strategy as JSON."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Show stream rows, diversion summary and recommendations for a project."""
    from waste_planner.errors import PlanningError
    from waste_planner.reporting.formatters import format_strategy
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            data = PlanningService(conn, config).get_strategy(project).to_dict()
    except PlanningError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
    else:
        typer.echo(format_strategy(data))


@app.command("apply")
def apply(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    recommendation: Optional[str] = typer.Option(
        None, "--recommendation", "-r", help="Recommendation id from 'strategy'."
    ),
    action: Optional[str] = typer.Option(
        None, "--action", "-a",
        help="Raw action type (set_facility, set_outcome, mark_stream_separate, "
             "create_stream, allocate_to_mixed).",
    ),
    payload: Optional[str] = typer.Option(None, "--payload", help="Action payload as JSON."),
    expected_revision: Optional[int] = typer.Option(
        None, "--expected-revision", help="Refuse to save if the plan moved past this revision."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Apply a recommendation by id, or a raw action with a JSON payload."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if (recommendation is None) == (action is None):
        typer.echo("[ERROR] Pass exactly one of --recommendation or --action.", err=True)
        raise typer.Exit(code=1)

    raw_action = None
    if action is not None:
        try:
            raw_payload = json.loads(payload) if payload else {}
        except json.JSONDecodeError as exc:
            typer.echo(f"[ERROR] --payload is not valid JSON: {exc}", err=True)
            raise typer.Exit(code=1)
        raw_action = {"type": action, "payload": raw_payload}

    try:
        with _connect(config, db_path) as conn:
            result = PlanningService(conn, config).apply_recommendation(
                project,
                recommendation_id=recommendation,
                action=raw_action,
                expected_revision=expected_revision,
            )
    except PlanningError as exc:
        _fail(exc)

    outcome = result.outcome
    if outcome.ignored:
        typer.echo(f"  Stream '{outcome.stream_name}' has no plan entry; nothing changed.")
    elif not result.changed:
        typer.echo("  Plan already in the requested state; nothing changed.")
    else:
        typer.echo(f"  Updated stream: {outcome.stream_name}")
        if result.items_reassigned:
            typer.echo(f"  Items reassigned: {result.items_reassigned}")
    if result.record is not None:
        typer.echo(f"  Plan revision: {result.record.revision}")
    typer.echo(f"  Open recommendations: {len(result.strategy.recommendations)}")
    typer.echo("[OK] Apply complete.")


@app.command("optimise")
def optimise(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    apply_picks: bool = typer.Option(
        False, "--apply", help="Assign the optimiser's picks (or --assign pairs) to the plan."
    ),
    assign: Optional[list[str]] = typer.Option(
        None, "--assign", help="Explicit STREAM=FACILITY_ID assignment (repeatable; implies --apply)."
    ),
    expected_revision: Optional[int] = typer.Option(
        None, "--expected-revision", help="Refuse to save if the plan moved past this revision."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the optimiser report as JSON."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Score accepting facilities per stream and optionally assign the best ones."""
    from waste_planner.errors import PlanningError
    from waste_planner.reporting.formatters import format_optimiser
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    assignments: Optional[dict[str, str]] = None
    if assign:
        assignments = {}
        for pair in assign:
            stream_name, sep, facility_id = pair.partition("=")
            if not sep or not stream_name.strip() or not facility_id.strip():
                typer.echo(f"[ERROR] --assign expects STREAM=FACILITY_ID, got '{pair}'.", err=True)
                raise typer.Exit(code=1)
            assignments[stream_name.strip()] = facility_id.strip()

    applied = None
    try:
        with _connect(config, db_path) as conn:
            service = PlanningService(conn, config)
            if apply_picks or assignments:
                applied = service.apply_optimiser(
                    project, assignments, expected_revision=expected_revision
                )
            data = service.run_optimiser(project).to_dict()
    except PlanningError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
    else:
        typer.echo(format_optimiser(data))

    if applied is not None:
        for stream_name in applied.skipped:
            typer.echo(f"  Stream '{stream_name}' has no plan entry; skipped.")
        if applied.changed:
            typer.echo(f"  Assigned: {', '.join(applied.applied)}")
            typer.echo(f"  Plan revision: {applied.record.revision}")
        else:
            typer.echo("  Plan already uses these facilities; nothing changed.")
        typer.echo("[OK] Optimiser assignments applied.")


@app.command("checklist")
def checklist(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    as_json: bool = typer.Option(False, "--json", help="Print the checklist as JSON."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Show planning readiness and the next best action."""
    from waste_planner.errors import PlanningError
    from waste_planner.reporting.formatters import format_checklist
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            data = PlanningService(conn, config).get_checklist(project).to_dict()
    except PlanningError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
    else:
        typer.echo(format_checklist(data))


@app.command("recompute-distances")
def recompute_distances(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    facility: Optional[list[str]] = typer.Option(
        None, "--facility", help="Restrict to these facility ids (repeatable)."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Force fresh site→facility distances (needs GOOGLE_MAPS_API_KEY)."""
    from waste_planner.errors import PlanningError
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not config.maps.api_key:
        typer.echo(
            f"[WARN] {config.maps.api_key_env} is not set; only cached distances are available."
        )

    try:
        with _connect(config, db_path) as conn:
            result = PlanningService(conn, config).recompute_distances(project, facility or None)
    except PlanningError as exc:
        _fail(exc)

    typer.echo(f"  Site geocoded:  {result.project_geocoded}")
    typer.echo(f"  Computed:       {result.computed_count}")
    typer.echo(f"  Cached total:   {len(result.distance_map)}")
    if result.skipped_facility_ids:
        typer.echo(f"  No coordinates: {', '.join(result.skipped_facility_ids)}")
    if result.missing_facility_ids:
        typer.echo(f"  Missing:        {', '.join(result.missing_facility_ids)}")
    if result.distances_loaded:
        typer.echo("[OK] All facility distances loaded.")
    else:
        typer.echo("[WARN] Some facility distances are unavailable.")


@app.command("export")
def export(
    project: str = typer.Option(..., "--project", "-p", help="Project id."),
    out: str = typer.Option("data/outputs", "--out", "-o", help="Output directory."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Export stream rows and recommendations as CSV, plus the full strategy JSON."""
    from waste_planner.errors import PlanningError
    from waste_planner.reporting.export import export_strategy
    from waste_planner.service import PlanningService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            data = PlanningService(conn, config).get_strategy(project).to_dict()
    except PlanningError as exc:
        _fail(exc)

    for path in export_strategy(data, Path(out)):
        typer.echo(f"  Wrote {path}")
    typer.echo("[OK] Export complete.")


if __name__ == "__main__":
    app()
