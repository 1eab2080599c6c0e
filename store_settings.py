from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import ValidationError

from database import get_document, insert_if_absent, upsert_document
from schemas import StoreSettings

logger = logging.getLogger(__name__)

COLLECTION = "settings"
SETTINGS_ID = "global"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "id": SETTINGS_ID,
    "store_name": "ESTOFADOS ELITE",
    "whatsapp_number": "21965091676",
    "contact_email": "contato@estofadoselite.com.br",
    "contact_address": "Av. das Américas, 4200 - Barra da Tijuca, Rio de Janeiro - RJ",
    "hours_mon_fri": "09h às 18h",
    "hours_sat": "09h às 13h",
    "primary_color": "#d97706",
    "secondary_color": "#0f172a",
}


class SettingsSaveError(RuntimeError):
    pass


def merge_settings(stored: Dict[str, Any] | None) -> StoreSettings:
    """
    Overlay stored values on the defaults; missing or null fields keep the
    default. A malformed field falls back to its default on its own, the
    other stored values are kept.
    """
    merged = dict(DEFAULT_SETTINGS)
    for key, value in (stored or {}).items():
        if value is not None:
            merged[key] = value
    merged["id"] = SETTINGS_ID
    try:
        return StoreSettings(**merged)
    except ValidationError as e:
        bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
        for key in sorted(bad, key=str):
            logger.warning("Stored setting %s has an unexpected shape, using the default", key)
            if key in DEFAULT_SETTINGS:
                merged[key] = DEFAULT_SETTINGS[key]
            else:
                merged.pop(key, None)
    try:
        return StoreSettings(**merged)
    except ValidationError:
        logger.warning("Stored settings have an unexpected shape, using defaults")
        return StoreSettings(**DEFAULT_SETTINGS)


class SettingsStore:
    def __init__(self) -> None:
        self._current = StoreSettings(**DEFAULT_SETTINGS)
        self.loaded = False

    @property
    def current(self) -> StoreSettings:
        return self._current

    async def load(self) -> StoreSettings:
        try:
            doc = await get_document(COLLECTION, SETTINGS_ID)
            if doc is None:
                logger.info("No settings record found, creating defaults")
                doc = await insert_if_absent(COLLECTION, SETTINGS_ID, self._defaults_payload())
            self._current = merge_settings(doc)
        except Exception:
            logger.warning("Could not load settings, using defaults", exc_info=True)
        self.loaded = True
        return self._current

    async def update(self, changes: Dict[str, Any]) -> StoreSettings:
        payload = self._current.model_dump()
        payload.update({k: v for k, v in changes.items() if v is not None})
        payload["id"] = SETTINGS_ID
        payload["updated_at"] = datetime.now(timezone.utc)
        try:
            updated = StoreSettings(**payload)
            await upsert_document(COLLECTION, SETTINGS_ID, updated.model_dump())
        except Exception as e:
            logger.error("Settings upsert failed: %s", e)
            raise SettingsSaveError(f"Could not save settings: {e}") from e
        self._current = updated
        logger.info("Settings updated: %s", ", ".join(sorted(changes)))
        return updated

    @staticmethod
    def _defaults_payload() -> Dict[str, Any]:
        payload = dict(DEFAULT_SETTINGS)
        payload["updated_at"] = datetime.now(timezone.utc)
        return payload
