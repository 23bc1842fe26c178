"""
View router: turns a view selector into the data payload of that screen.
Every payload is computed from a store snapshot; nothing here mutates the store.
"""
from datetime import UTC, date, datetime
from enum import Enum
from typing import Optional

from lenswatch.ai.credentials import CredentialStore
from lenswatch.config import Settings
from lenswatch.data.store import InterventionStore
from lenswatch.domain.models import InterventionFilter, InterventionType
from lenswatch.logic import aggregation, alerts, filters


class View(str, Enum):
    HOME = "home"
    LIST = "list"
    ADD = "add"
    STATS = "stats"
    DATA_TOOLS = "dataTools"
    ANALYSE = "analyse"


VIEW_TITLES = {
    View.HOME: "Accueil",
    View.LIST: "Liste des Interventions",
    View.ADD: "Ajouter une Intervention",
    View.STATS: "Statistiques",
    View.DATA_TOOLS: "Outils de Données",
    View.ANALYSE: "Analyse IA",
}


def resolve_view(name: Optional[str]) -> View:
    """Unknown or missing selectors fall back to the dashboard."""
    try:
        return View(name)
    except ValueError:
        return View.HOME


class ViewRouter:
    def __init__(self, store: InterventionStore, settings: Settings, credentials: CredentialStore):
        self.store = store
        self.settings = settings
        self.credentials = credentials

    def render(
        self,
        view: View | str,
        spec: Optional[InterventionFilter] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        selected = view if isinstance(view, View) else resolve_view(view)
        handlers = {
            View.HOME: lambda: self.dashboard(now=now),
            View.LIST: lambda: self.listing(spec or InterventionFilter()),
            View.ADD: self.add_form,
            View.STATS: self.stats,
            View.DATA_TOOLS: self.data_tools,
            View.ANALYSE: self.analyse,
        }
        return {
            "view": selected.value,
            "title": VIEW_TITLES[selected],
            "content": handlers[selected](),
        }

    def dashboard(self, now: Optional[datetime] = None) -> dict:
        records = self.store.snapshot()
        stale = alerts.stale_machines(
            records,
            now=now or datetime.now(UTC),
            threshold_days=self.settings.thresholds.stale_days,
        )
        return {
            "totals": aggregation.totals(records).model_dump(),
            "alertes": [a.model_dump(mode="json") for a in stale],
        }

    def listing(self, spec: InterventionFilter) -> dict:
        records = self.store.snapshot()
        selected = filters.apply_filters(records, spec)
        return {
            "filters": spec.model_dump(),
            "count": len(selected),
            "interventions": [r.to_wire() for r in selected],
            "options": {
                "machines": self.settings.catalog.machines,
                "intervenants": self.settings.catalog.intervenants,
                "types": [t.value for t in InterventionType],
                "lentilles": filters.distinct_lenses(records),
            },
        }

    def add_form(self) -> dict:
        catalog = self.settings.catalog
        return {
            "machines": catalog.machines,
            "intervenants": catalog.intervenants,
            "types": [t.value for t in InterventionType],
            "machine_lenses": catalog.machine_lenses,
            "defaults": {"date": date.today().isoformat(), "type": InterventionType.NETTOYAGE.value},
            "required": ["machine", "date", "intervenant", "type"],
        }

    def stats(self) -> dict:
        return aggregation.statistics(self.store.snapshot())

    def data_tools(self) -> dict:
        records = self.store.snapshot()
        return {
            "count": len(records),
            "can_export": bool(records),
            "export_url": "/tools/export",
            "import_url": "/tools/import",
            "delete_all_url": "/tools/interventions?confirm=true",
        }

    def analyse(self) -> dict:
        return {
            "credential_configured": self.credentials.is_configured,
            "provider": self.settings.ai.provider,
            "model": self.settings.ai.model,
            "record_count": len(self.store.snapshot()),
        }
