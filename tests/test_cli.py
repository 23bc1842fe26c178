from datetime import date

import pytest
from typer.testing import CliRunner

from lenswatch import main as cli_main
from lenswatch.api import deps
from lenswatch.config import settings

runner = CliRunner()


@pytest.fixture
def cli_store(tmp_path, monkeypatch):
    monkeypatch.setattr(settings.storage, "backend", "sqlite")
    monkeypatch.setattr(settings.paths, "db_path", tmp_path / "cli.db")
    deps.reset_store()
    yield deps.get_store
    deps.reset_store()


class FrozenDate(date):
    @classmethod
    def today(cls):
        return cls(2030, 1, 2)


def test_add_defaults_to_the_day_it_runs(cli_store, monkeypatch):
    monkeypatch.setattr(cli_main, "date_type", FrozenDate)

    result = runner.invoke(cli_main.cli, ["add", "--machine", "Mazak", "--intervenant", "Emeric"])

    assert result.exit_code == 0, result.output
    [record] = cli_store().snapshot()
    assert record.date == date(2030, 1, 2)
    assert record.lentille == "Lenti068"


def test_add_with_explicit_date(cli_store):
    result = runner.invoke(
        cli_main.cli,
        ["add", "--machine", "Mach02", "--intervenant", "Gérard", "--type", "Remplacement", "--date", "2024-02-03"],
    )

    assert result.exit_code == 0, result.output
    assert cli_store().snapshot()[0].date == date(2024, 2, 3)


def test_add_rejects_unknown_type(cli_store):
    result = runner.invoke(cli_main.cli, ["add", "--machine", "Mach02", "--intervenant", "Gérard", "--type", "Graissage"])

    assert result.exit_code == 1
    assert cli_store().snapshot() == ()
