from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

class AppSettings(BaseSettings):
    name: str = "Lenswatch"
    title: str = "Suivi de Maintenance Lentilles"
    version: str = "1.0.0"

class PathSettings(BaseSettings):
    db_path: Path = Path("./data/lenswatch.db")
    export_dir: Path = Path("./exports")
    credential_path: Path = Path("./data/analysis_credential.json")


class StorageSettings(BaseSettings):
    """
    Runtime persistence selection:
    - sqlite (local, writes visible immediately)
    - firestore (live collection, eventually consistent read model)
    """
    backend: str = "sqlite"  # sqlite|firestore
    firestore_project_id: Optional[str] = None
    firestore_database: str = "(default)"
    firestore_collection: str = "interventions"
    ready_timeout_seconds: float = 10.0


class CatalogSettings(BaseSettings):
    """
    Fixed workshop inventory: machines, technicians and the lens mounted on each machine.
    """
    machines: list[str] = [
        "Mach01",
        "Mach02",
        "Mach04",
        "7000-01",
        "7000-02",
        "7000-03",
        "7000-04",
        "Mazak",
        "Adige",
    ]
    intervenants: list[str] = ["Gérard", "Emeric", "Belgacem"]
    machine_lenses: dict[str, str] = {
        "Mach02": "Lenti035",
        "Mach01": "Lenti227",
        "7000-03": "Lenti227",
        "7000-04": "Lenti227",
        "7000-01": "Lenti192",
        "7000-02": "Lenti192",
        "Mach04": "Lenti192",
        "Mazak": "Lenti068",
        "Adige": "",
    }

    def lens_for(self, machine: str) -> str:
        return self.machine_lenses.get(machine, "") or ""

class ThresholdSettings(BaseSettings):
    stale_days: int = 30

class SecuritySettings(BaseSettings):
    max_upload_mb: int = 15  # Hard cap for uploads (Content-Length guard)

class LoggingSettings(BaseSettings):
    log_requests: bool = True
    level: str = "INFO"


class AISettings(BaseSettings):
    provider: str = "gemini"  # gemini|http|offline
    base_url: Optional[str] = None  # used when provider=http
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    api_key: Optional[str] = None  # fallback when no credential was saved by the user
    model: str = "gemini-2.5-pro"
    system_instruction: str = "En tant qu'expert en maintenance industrielle"
    max_tokens: int = 4096
    temperature: float = 0.2
    timeout_seconds: float = 60.0

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    storage: StorageSettings = StorageSettings()
    catalog: CatalogSettings = CatalogSettings()
    thresholds: ThresholdSettings = ThresholdSettings()
    security: SecuritySettings = SecuritySettings()
    logging: LoggingSettings = LoggingSettings()
    ai: AISettings = AISettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

settings = Settings.load()
