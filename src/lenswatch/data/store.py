from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from lenswatch.data.storage import InterventionBackend
from lenswatch.domain.models import Intervention, NewIntervention
from lenswatch.exceptions import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class StoreStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


def new_intervention_id() -> str:
    return uuid4().hex


def sort_by_date_desc(records: Iterable[Intervention]) -> list[Intervention]:
    # sorted() stays stable with reverse=True: equal dates keep their incoming order.
    return sorted(records, key=lambda r: r.date, reverse=True)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_new_intervention(data: Any) -> NewIntervention:
    if isinstance(data, Intervention):
        return data.without_id()
    if isinstance(data, NewIntervention):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Une intervention doit être un objet JSON.", errors=["record: not an object"])
    try:
        return NewIntervention.model_validate(data)
    except PydanticValidationError as exc:
        detail = _describe(exc)
        raise ValidationError(
            f"Les champs Machine, Date, Intervenant et Type sont obligatoires ({detail}).",
            errors=[detail],
        ) from exc


def parse_new_interventions(items: Sequence[Any]) -> list[NewIntervention]:
    """Validates every entry before returning; one bad entry rejects the whole list."""
    parsed: list[NewIntervention] = []
    errors: list[str] = []
    for index, item in enumerate(items):
        try:
            parsed.append(parse_new_intervention(item))
        except ValidationError as exc:
            errors.extend(f"#{index}: {e}" for e in exc.errors)
    if errors:
        raise ValidationError(
            f"{len(errors)} intervention(s) invalide(s) ; aucune donnée importée.",
            errors=errors,
        )
    return parsed


class InterventionStore:
    """
    Owns the intervention collection and every mutation of it.

    With a local backend (`backend.live` is False) writes are committed to the backend first
    and mirrored in memory only once confirmed. With a live backend the collection is a read
    model: writes go to the backend and show up when its change notification arrives.
    """

    def __init__(
        self,
        backend: InterventionBackend,
        *,
        ready_timeout: float = 10.0,
        id_factory: Callable[[], str] = new_intervention_id,
    ):
        self.backend = backend
        self.ready_timeout = ready_timeout
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._records: tuple[Intervention, ...] = ()
        self._status = StoreStatus.LOADING
        self._error: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        if backend.live:
            self._unsubscribe = backend.subscribe(self._on_change, self._on_error)
        else:
            try:
                self.refresh()
            except PersistenceError:
                logger.exception("initial load of interventions failed")

    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def error(self) -> Optional[str]:
        return self._error

    # -------- reads --------

    def refresh(self) -> None:
        try:
            records = self.backend.list_all()
        except PersistenceError as exc:
            self._mark_unavailable(str(exc))
            raise
        self._replace(records)

    def wait_until_ready(self, timeout: Optional[float] = None) -> None:
        timeout = self.ready_timeout if timeout is None else timeout
        if not self._ready.wait(timeout):
            self._mark_unavailable(f"no data received from the backend within {timeout:g}s")
        if self._status is not StoreStatus.READY:
            raise PersistenceError(f"Données indisponibles : {self._error or 'backend unavailable'}")

    def snapshot(self) -> tuple[Intervention, ...]:
        """Current interventions, most recent date first."""
        if self._status is not StoreStatus.READY:
            if self.backend.live:
                self.wait_until_ready()
            else:
                self.refresh()
        return self._records

    def get(self, intervention_id: str) -> Optional[Intervention]:
        return next((r for r in self.snapshot() if r.id == intervention_id), None)

    # -------- writes --------

    def add(self, new: NewIntervention | dict) -> Intervention:
        self._ensure_writable()
        parsed = parse_new_intervention(new)
        record = Intervention.from_new(parsed, self._fresh_ids(1)[0])
        self.backend.add_one(record)
        if not self.backend.live:
            with self._lock:
                self._records = tuple(sort_by_date_desc([record, *self._records]))
        logger.info(f"Added intervention {record.id} ({record.machine}, {record.date.isoformat()}, {record.type.value})")
        return record

    def delete(self, intervention_id: str) -> None:
        self._ensure_writable()
        if not self.backend.delete_one(intervention_id):
            raise NotFoundError(intervention_id)
        if not self.backend.live:
            with self._lock:
                self._records = tuple(r for r in self._records if r.id != intervention_id)
        logger.info(f"Deleted intervention {intervention_id}")

    def delete_all(self) -> int:
        """Irreversible. Callers are responsible for asking for confirmation."""
        self._ensure_writable()
        removed = self.backend.clear_all()
        if not self.backend.live:
            with self._lock:
                self._records = ()
        logger.warning(f"Deleted all interventions ({removed} removed)")
        return removed

    def bulk_import(self, items: Sequence[Any]) -> list[Intervention]:
        """
        Appends every entry with a fresh id. Validation runs before any write; the backend
        write itself is all-or-nothing. No deduplication against existing records.
        """
        parsed = parse_new_interventions(items)
        if not parsed:
            return []
        self._ensure_writable()
        ids = self._fresh_ids(len(parsed))
        records = [Intervention.from_new(new, rid) for new, rid in zip(parsed, ids)]
        self.backend.batch_add(records)
        if not self.backend.live:
            with self._lock:
                # Latest stored first among equal dates, matching a reload from the backend.
                self._records = tuple(sort_by_date_desc([*reversed(records), *self._records]))
        logger.info(f"Imported {len(records)} interventions")
        return records

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -------- internals --------

    def _ensure_writable(self) -> None:
        if not self.backend.live and self._status is not StoreStatus.READY:
            # The in-memory mirror must reflect the backend before it is mutated.
            self.refresh()

    def _fresh_ids(self, count: int) -> list[str]:
        taken = {r.id for r in self._records}
        ids: list[str] = []
        while len(ids) < count:
            candidate = self._id_factory()
            if candidate in taken:
                continue
            taken.add(candidate)
            ids.append(candidate)
        return ids

    def _replace(self, records: Iterable[Intervention]) -> None:
        with self._lock:
            self._records = tuple(sort_by_date_desc(records))
            self._status = StoreStatus.READY
            self._error = None
        self._ready.set()

    def _mark_unavailable(self, reason: str) -> None:
        logger.error(f"Interventions unavailable: {reason}")
        with self._lock:
            self._status = StoreStatus.UNAVAILABLE
            self._error = reason

    def _on_change(self, records: list[Intervention]) -> None:
        self._replace(records)
        logger.debug(f"Received {len(records)} interventions from live backend")

    def _on_error(self, exc: Exception) -> None:
        self._mark_unavailable(str(exc))
        self._ready.set()
