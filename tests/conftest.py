import itertools

import pytest

from lenswatch.data.storage import Database
from lenswatch.data.store import InterventionStore
from lenswatch.domain.models import Intervention

_ids = itertools.count(1)


@pytest.fixture
def make_intervention():
    """
    Factory for stored interventions; defaults describe a Mach01 cleaning on 2024-01-01.
    """

    def _make(
        machine: str = "Mach01",
        day: str = "2024-01-01",
        intervenant: str = "Gérard",
        type: str = "Nettoyage",
        lentille=None,
        **extra,
    ) -> Intervention:
        data = {
            "id": extra.pop("id", f"rec-{next(_ids)}"),
            "machine": machine,
            "date": day,
            "intervenant": intervenant,
            "type": type,
            "lentille": "Lenti227" if lentille is None and machine == "Mach01" else lentille,
        }
        data.update(extra)
        return Intervention.model_validate(data)

    return _make


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "lenswatch.db")


@pytest.fixture
def store(db):
    return InterventionStore(db)


@pytest.fixture
def workshop_log(make_intervention):
    """A small log spread over three machines and four months, deliberately unsorted."""
    return [
        make_intervention("Mach01", "2024-03-05", "Gérard", "Nettoyage", commentaire="Lentille rayée"),
        make_intervention("Mach02", "2023-12-01", "Emeric", "Remplacement", "Lenti035", compteurLaser="1520"),
        make_intervention("Mach01", "2024-01-15", "Belgacem", "Remplacement"),
        make_intervention("Adige", "2024-03-20", "Gérard", "Nettoyage", ""),
        make_intervention("Mach02", "2024-02-10", "Gérard", "Nettoyage", "Lenti035", laserOn="880"),
    ]
