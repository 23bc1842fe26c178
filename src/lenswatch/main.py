from __future__ import annotations

import json
import logging
import threading
from datetime import date as date_type
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from lenswatch.api import deps
from lenswatch.config import settings
from lenswatch.domain.models import InterventionFilter
from lenswatch.exceptions import LensWatchError
from lenswatch.logic import aggregation, alerts, filters

cli = typer.Typer(help="Lenswatch CLI: laser lens maintenance log")


@cli.callback()
def main() -> None:
    logging.basicConfig(level=getattr(logging, settings.logging.level.upper(), logging.INFO))


def _fail(exc: LensWatchError) -> None:
    typer.secho(f"Erreur : {exc}", fg=typer.colors.RED, err=True)
    for detail in getattr(exc, "errors", [])[:20]:
        typer.secho(f"  - {detail}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"{settings.app.name} {settings.app.version}")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the Lenswatch API server."""
    uvicorn.run(
        "lenswatch.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@cli.command()
def add(
    machine: str = typer.Option(..., help="Machine name"),
    intervenant: str = typer.Option(..., help="Technician"),
    type: str = typer.Option("Nettoyage", help="Nettoyage | Remplacement"),
    date: Optional[str] = typer.Option(None, help="Intervention day (YYYY-MM-DD), defaults to today"),
    lentille: Optional[str] = typer.Option(None, help="Lens; defaults to the lens mounted on the machine"),
    compteur_laser: Optional[str] = typer.Option(None, "--compteur-laser"),
    laser_on: Optional[str] = typer.Option(None, "--laser-on"),
    commentaire: Optional[str] = typer.Option(None),
) -> None:
    """Record an intervention."""
    from lenswatch.data.store import parse_new_intervention

    payload = {
        "machine": machine,
        "intervenant": intervenant,
        "type": type,
        "date": date or date_type.today().isoformat(),
        "lentille": lentille,
        "compteurLaser": compteur_laser,
        "laserOn": laser_on,
        "commentaire": commentaire,
    }
    try:
        new = parse_new_intervention(payload).with_default_lens(settings.catalog.lens_for)
        record = deps.get_store().add(new)
    except LensWatchError as exc:
        _fail(exc)
    typer.echo(f"Intervention {record.id} enregistrée ({record.machine}, {record.date.isoformat()})")


@cli.command("list")
def list_interventions(
    search: str = typer.Option("", help="Free-text search over every field"),
    machine: str = typer.Option(""),
    intervenant: str = typer.Option(""),
    type: str = typer.Option(""),
    lentille: str = typer.Option(""),
    date: str = typer.Option("", help="Date prefix: YYYY, YYYY-MM or YYYY-MM-DD"),
) -> None:
    """List interventions, most recent first."""
    spec = InterventionFilter(
        search=search, machine=machine, intervenant=intervenant, type=type, lentille=lentille, date=date
    )
    try:
        rows = filters.apply_filters(deps.get_store().snapshot(), spec)
    except LensWatchError as exc:
        _fail(exc)
    if not rows:
        typer.echo("Aucune intervention ne correspond à vos filtres.")
        return
    for r in rows:
        line = f"{r.date.isoformat()}  {r.machine:<8} {r.type.value:<12} {r.intervenant:<10} {r.lentille or '-':<9} {r.id}"
        if r.commentaire:
            line += f"  # {r.commentaire}"
        typer.echo(line)


@cli.command()
def dashboard() -> None:
    """Totals and machines overdue for service."""
    try:
        records = deps.get_store().snapshot()
    except LensWatchError as exc:
        _fail(exc)
    t = aggregation.totals(records)
    typer.echo(f"Total Interventions: {t.total}  Nettoyages: {t.nettoyages}  Remplacements: {t.remplacements}")
    stale = alerts.stale_machines(records, threshold_days=settings.thresholds.stale_days)
    if stale:
        typer.secho("Machines nécessitant une maintenance", fg=typer.colors.YELLOW)
        for a in stale:
            typer.echo(f"  {a.machine} - Dernière intervention: il y a {a.jours} jours")


@cli.command()
def stats() -> None:
    """Grouped counts and monthly evolution as JSON."""
    try:
        records = deps.get_store().snapshot()
    except LensWatchError as exc:
        _fail(exc)
    payload = aggregation.statistics(records)
    payload.pop("chart", None)
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command()
def export(
    output_dir: Optional[Path] = typer.Option(None, help="Directory for the backup file"),
    excel: bool = typer.Option(False, "--excel", help="Write an Excel workbook instead of JSON"),
) -> None:
    """Write a dated backup of every intervention."""
    from lenswatch.services.exporter import ExcelExporter, JsonExporter

    try:
        records = deps.get_store().snapshot()
    except LensWatchError as exc:
        _fail(exc)
    exporter = ExcelExporter(output_dir) if excel else JsonExporter(output_dir)
    path = exporter.export(records)
    typer.echo(f"{len(records)} interventions exportées dans {path}")


@cli.command("import-file")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON backup to append"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Append the interventions of a JSON backup (no deduplication)."""
    svc = deps.get_import_service()
    try:
        items = svc.parse_payload(path.read_bytes())
        if not yes:
            typer.confirm(f"Vous allez importer {len(items)} interventions. Voulez-vous continuer ?", abort=True)
        imported = svc.store.bulk_import(items)
    except LensWatchError as exc:
        _fail(exc)
    typer.echo(f"Importation réussie ! {len(imported)} interventions ajoutées.")


@cli.command()
def purge(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")) -> None:
    """Delete every intervention. Irreversible."""
    if not yes:
        typer.confirm(
            "Êtes-vous sûr de vouloir supprimer TOUTES les interventions ? Cette action est irréversible.",
            abort=True,
        )
    try:
        removed = deps.get_store().delete_all()
    except LensWatchError as exc:
        _fail(exc)
    typer.echo(f"Toutes les interventions ont été supprimées ({removed}).")


@cli.command()
def analyse() -> None:
    """Ask the AI provider for trends and recommendations over the whole log. Ctrl+C cancels."""
    cancel = threading.Event()
    try:
        records = deps.get_store().snapshot()
        result = deps.get_analysis_service().analyse(records, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        typer.secho("Analyse annulée.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)
    except LensWatchError as exc:
        _fail(exc)
    typer.echo(result["content"])


@cli.command("set-key")
def set_key(api_key: str = typer.Option(..., prompt=True, hide_input=True)) -> None:
    """Save the analysis API key for reuse."""
    try:
        deps.get_credentials().save(api_key)
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo("Clé API enregistrée.")


@cli.command("clear-key")
def clear_key() -> None:
    """Forget the saved analysis API key."""
    deps.get_credentials().clear()
    typer.echo("Clé API supprimée.")


if __name__ == "__main__":
    cli()
