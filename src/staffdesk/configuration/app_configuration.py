from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, FrozenSet
import yaml

from staffdesk.configuration.workflow_settings import (
    InfractionSettings,
    OfficeSettings,
    PromotionSettings,
    SweepSettings,
    TicketSettings,
)
from staffdesk.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("STAFFDESK_CONFIG", "./config/app_config.yml")).resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    the workflow sections through typed settings helpers. Uses fcntl file locks
    for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns an empty dict when the file is missing or unreadable; every
        accessor then falls back to its default.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def ticket_settings(self) -> TicketSettings:
        return TicketSettings(self.section("tickets"))

    @property
    def infraction_settings(self) -> InfractionSettings:
        return InfractionSettings(self.section("infractions"))

    @property
    def office_settings(self) -> OfficeSettings:
        return OfficeSettings(self.section("offices"))

    @property
    def promotion_settings(self) -> PromotionSettings:
        return PromotionSettings(self.section("promotions"))

    @property
    def sweep_settings(self) -> SweepSettings:
        return SweepSettings(self.section("sweeps"))

    @property
    def role_ids(self) -> Dict[str, int]:
        """Platform role id for each configured role key.

        Entries that are not integers are dropped with a warning.
        """
        result: Dict[str, int] = {}
        for key, value in self.section("role_ids").items():
            try:
                result[str(key)] = int(value)
            except (TypeError, ValueError):
                logger.warning("[APP CONFIGURATION] Ignoring role id %r for %s", value, key)
        return result

    @property
    def channels(self) -> Dict[str, str]:
        """Channel refs keyed by purpose (``staff_log``, ``infraction_approval`` ...)."""
        return {str(k): str(v) for k, v in self.section("channels").items() if v is not None}

    @property
    def staff_log_channel(self) -> str | None:
        return self.channels.get("staff_log")

    @property
    def top_authority_id(self) -> str | None:
        """Member notified out-of-band when a directive-level report is elevated."""
        value = self._data.get("top_authority_id")
        return str(value) if value else None

    @property
    def override_member_ids(self) -> FrozenSet[str]:
        """Owner/developer ids that pass every rank check."""
        values = self._data.get("override_member_ids") or []
        if not isinstance(values, list):
            return frozenset()
        return frozenset(str(v) for v in values)

    @property
    def collaborator_timeout(self) -> float:
        """Upper bound (seconds) for any single persistence, role or notification call."""
        try:
            return float(self._data.get("collaborator_timeout_seconds", 10.0))
        except (TypeError, ValueError):
            return 10.0

    @property
    def guild_id(self) -> int | None:
        """The single guild whose staff this process manages."""
        try:
            return int(self._data["guild_id"])
        except (KeyError, TypeError, ValueError):
            return None

    @property
    def database_path(self) -> Path:
        return Path(self._data.get("database_path") or "./data/staffdesk.db").resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
