import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Keeps the analysis API key entered by the user on local disk for reuse.
    A key saved here takes precedence over the one in settings.
    """

    def __init__(self, path: Path, fallback: Optional[str] = None):
        self.path = Path(path)
        self.fallback = fallback or None

    def get(self) -> Optional[str]:
        stored = self._read().get("api_key")
        return stored or self.fallback

    @property
    def is_configured(self) -> bool:
        return bool(self.get())

    def save(self, api_key: str) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("API key must not be empty")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps({"api_key": key, "saved_at": datetime.now(UTC).isoformat()}),
            encoding="utf-8",
        )
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.warning(f"Could not restrict permissions on {self.path}")
        logger.info("Analysis API key saved")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("Analysis API key cleared")

    def _read(self) -> dict:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("unreadable credential file", extra={"path": str(self.path)})
            return {}
        return data if isinstance(data, dict) else {}
