from __future__ import annotations

from typing import Optional

from lenswatch.ai import AnalysisService, CredentialStore, build_ai_client
from lenswatch.config import settings
from lenswatch.data.import_service import ImportService
from lenswatch.data.storage import Database, InterventionBackend
from lenswatch.data.store import InterventionStore
from lenswatch.services.exporter import ExcelExporter, JsonExporter
from lenswatch.services.views import ViewRouter

# Global/Cached instances
_store_instance: Optional[InterventionStore] = None
_store_backend: Optional[str] = None


def build_backend(backend: str) -> InterventionBackend:
    if backend == "firestore":
        from lenswatch.data.store_firestore import FirestoreInterventionBackend

        return FirestoreInterventionBackend(
            project_id=settings.storage.firestore_project_id,
            database=settings.storage.firestore_database,
            collection=settings.storage.firestore_collection,
        )
    return Database(settings.paths.db_path)


def get_store() -> InterventionStore:
    global _store_instance, _store_backend
    backend = (settings.storage.backend or "sqlite").strip().lower()
    if _store_instance is None or _store_backend != backend:
        if _store_instance is not None:
            _store_instance.close()
        _store_instance = InterventionStore(
            build_backend(backend),
            ready_timeout=settings.storage.ready_timeout_seconds,
        )
        _store_backend = backend
    return _store_instance


def reset_store() -> None:
    global _store_instance, _store_backend
    if _store_instance is not None:
        _store_instance.close()
    _store_instance = None
    _store_backend = None


def get_credentials() -> CredentialStore:
    return CredentialStore(settings.paths.credential_path, fallback=settings.ai.api_key)


def get_import_service() -> ImportService:
    return ImportService(store=get_store())


def get_json_exporter() -> JsonExporter:
    return JsonExporter()


def get_excel_exporter() -> ExcelExporter:
    return ExcelExporter()


def get_view_router() -> ViewRouter:
    return ViewRouter(store=get_store(), settings=settings, credentials=get_credentials())


def get_analysis_service() -> AnalysisService:
    ai_client = build_ai_client(settings, api_key=get_credentials().get())
    return AnalysisService(ai_client=ai_client)
