from datetime import UTC, datetime

import pytest

from lenswatch.ai.credentials import CredentialStore
from lenswatch.config import Settings
from lenswatch.domain.models import InterventionFilter
from lenswatch.services.views import View, ViewRouter, resolve_view


@pytest.fixture
def router(store, tmp_path, workshop_log):
    store.bulk_import(workshop_log)
    return ViewRouter(store=store, settings=Settings(), credentials=CredentialStore(tmp_path / "key.json"))


@pytest.mark.parametrize(
    "name, expected",
    [("home", View.HOME), ("dataTools", View.DATA_TOOLS), ("analyse", View.ANALYSE), ("nope", View.HOME), (None, View.HOME)],
)
def test_resolve_view(name, expected):
    assert resolve_view(name) is expected


def test_home_view(router):
    page = router.render("home", now=datetime(2024, 4, 25, tzinfo=UTC))

    assert page["title"] == "Accueil"
    content = page["content"]
    assert content["totals"]["total"] == 5
    assert [a["machine"] for a in content["alertes"]] == ["Mach02", "Mach01", "Adige"]
    assert content["alertes"][0]["jours"] == 75


def test_list_view(router):
    page = router.render(View.LIST, spec=InterventionFilter(type="Remplacement"))

    content = page["content"]
    assert content["count"] == 2
    assert [r["date"] for r in content["interventions"]] == ["2024-01-15", "2023-12-01"]
    assert content["options"]["lentilles"] == ["Lenti035", "Lenti227"]
    assert "Gérard" in content["options"]["intervenants"]


def test_add_view_lists_catalog(router):
    content = router.render("add")["content"]
    assert content["machine_lenses"]["Mach02"] == "Lenti035"
    assert content["defaults"]["type"] == "Nettoyage"
    assert content["required"] == ["machine", "date", "intervenant", "type"]


def test_stats_and_tools_views(router):
    assert router.render("stats")["content"]["totals"]["remplacements"] == 2
    tools = router.render("dataTools")["content"]
    assert tools["count"] == 5
    assert tools["can_export"] is True


def test_analyse_view_reports_credential(router):
    assert router.render("analyse")["content"]["credential_configured"] is False
    router.credentials.save("k")
    assert router.render("analyse")["content"]["credential_configured"] is True
