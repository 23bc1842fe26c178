import json
import logging
from pathlib import Path
from typing import Any, Union

from lenswatch.data.store import InterventionStore
from lenswatch.domain.models import Intervention
from lenswatch.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ImportService:
    """
    Loads JSON backups (array of interventions without ids) into the store.
    Not idempotent: importing the same file twice appends its interventions twice.
    """

    def __init__(self, store: InterventionStore):
        self.store = store

    @staticmethod
    def parse_payload(raw: Union[str, bytes]) -> list[Any]:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ValidationError("Le fichier est invalide (encodage non UTF-8).") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Le fichier est invalide : JSON mal formé ({exc.msg}, ligne {exc.lineno}).") from exc
        if not isinstance(data, list):
            raise ValidationError("Le fichier JSON ne contient pas une liste d'interventions.")
        return data

    def import_json(self, raw: Union[str, bytes]) -> list[Intervention]:
        items = self.parse_payload(raw)
        logger.info(f"Importing {len(items)} interventions from JSON payload")
        return self.store.bulk_import(items)

    def import_file(self, file_path: Path) -> list[Intervention]:
        path = Path(file_path)
        if not path.is_file():
            raise ValidationError(f"Fichier introuvable : {path}")
        return self.import_json(path.read_bytes())
