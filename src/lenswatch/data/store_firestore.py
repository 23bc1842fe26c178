from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from lenswatch.data.storage import InterventionBackend
from lenswatch.domain.models import Intervention
from lenswatch.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Firestore rejects write batches above this many operations.
MAX_BATCH_WRITES = 500


class FirestoreInterventionBackend(InterventionBackend):
    """
    Firestore-backed intervention collection with live change notifications.
    Mirrors the Database interface; writes become visible through `subscribe`.
    """

    live = True

    def __init__(
        self,
        *,
        project_id: Optional[str] = None,
        database: str = "(default)",
        collection: str = "interventions",
        client: Any = None,
    ):
        try:
            from google.api_core.exceptions import GoogleAPIError
        except ImportError as exc:  # pragma: no cover - depends on optional runtime deps
            raise RuntimeError(
                "Firestore backend requested but google-cloud-firestore is not installed"
            ) from exc
        self._api_error = GoogleAPIError

        if client is None:
            from google.cloud import firestore

            client_kwargs: dict[str, Any] = {}
            if project_id:
                client_kwargs["project"] = project_id
            if database and database != "(default)":
                client_kwargs["database"] = database
            client = firestore.Client(**client_kwargs)

        self._client = client
        self._collection_name = str(collection).strip() or "interventions"

    def _collection(self):
        return self._client.collection(self._collection_name)

    def list_all(self) -> list[Intervention]:
        try:
            docs = list(self._collection().stream())
        except self._api_error as exc:
            raise PersistenceError(f"Failed to read interventions: {exc}") from exc
        return self._to_records(docs)

    def add_one(self, record: Intervention) -> None:
        try:
            self._collection().document(record.id).create(self._to_document(record, seq=0))
        except self._api_error as exc:
            logger.error(f"Firestore insert failed for {record.id}: {exc}")
            raise PersistenceError(f"Failed to insert {record.id}: {exc}") from exc

    def delete_one(self, intervention_id: str) -> bool:
        doc_ref = self._collection().document(intervention_id)
        try:
            if not doc_ref.get().exists:
                return False
            doc_ref.delete()
        except self._api_error as exc:
            raise PersistenceError(f"Failed to delete {intervention_id}: {exc}") from exc
        return True

    def clear_all(self) -> int:
        try:
            refs = [doc.reference for doc in self._collection().stream()]
            self._delete_refs(refs)
        except self._api_error as exc:
            raise PersistenceError(f"Failed to clear interventions: {exc}") from exc
        return len(refs)

    def batch_add(self, records: list[Intervention]) -> None:
        """
        Writes in batches of MAX_BATCH_WRITES. Each batch is atomic; if a later batch fails,
        the batches already committed are deleted again so the import lands all-or-nothing.
        """
        committed: list[Any] = []
        for start in range(0, len(records), MAX_BATCH_WRITES):
            chunk = records[start : start + MAX_BATCH_WRITES]
            batch = self._client.batch()
            refs = []
            for offset, record in enumerate(chunk):
                ref = self._collection().document(record.id)
                batch.set(ref, self._to_document(record, seq=start + offset))
                refs.append(ref)
            try:
                batch.commit()
            except self._api_error as exc:
                logger.error(f"Firestore batch import failed after {len(committed)} writes: {exc}")
                self._rollback(committed)
                raise PersistenceError(f"Failed to import interventions: {exc}") from exc
            committed.extend(refs)

    def subscribe(
        self,
        on_change: Callable[[list[Intervention]], None],
        on_error: Callable[[Exception], None],
    ) -> Callable[[], None]:
        def _callback(docs, _changes, _read_time):
            try:
                records = self._to_records(docs)
            except Exception as exc:
                on_error(exc)
                return
            on_change(records)

        try:
            watch = self._collection().on_snapshot(_callback)
        except self._api_error as exc:
            on_error(PersistenceError(f"Failed to subscribe to interventions: {exc}"))
            return lambda: None
        return watch.unsubscribe

    def _rollback(self, refs: list[Any]) -> None:
        try:
            self._delete_refs(refs)
        except self._api_error:
            logger.exception("failed to roll back partial Firestore import", extra={"writes": len(refs)})

    def _delete_refs(self, refs: list[Any]) -> None:
        for start in range(0, len(refs), MAX_BATCH_WRITES):
            batch = self._client.batch()
            for ref in refs[start : start + MAX_BATCH_WRITES]:
                batch.delete(ref)
            batch.commit()

    @staticmethod
    def _to_document(record: Intervention, seq: int) -> dict[str, Any]:
        data = record.to_wire()
        data.pop("id", None)
        data["inserted_at"] = datetime.now(UTC).isoformat()
        data["seq"] = seq
        return data

    @staticmethod
    def _to_records(docs) -> list[Intervention]:
        rows = []
        for doc in docs:
            data = doc.to_dict() or {}
            rows.append((str(data.get("inserted_at") or ""), int(data.get("seq") or 0), doc.id, data))
        # Newest stored documents first; the store applies the date ordering on top.
        rows.sort(key=lambda r: (r[0], r[1]), reverse=True)

        records = []
        for _, _, doc_id, data in rows:
            fields = {k: v for k, v in data.items() if k not in ("inserted_at", "seq")}
            try:
                records.append(Intervention.model_validate({**fields, "id": doc_id}))
            except PydanticValidationError as exc:
                logger.warning(f"Skipping invalid Firestore document {doc_id}: {exc.error_count()} validation error(s)")
        return records
