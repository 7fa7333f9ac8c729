"""
Typed views over the workflow sections of ``app_config.yml``.

Each section (tickets, infractions, offices, promotions, sweeps) is wrapped
in a small settings object whose properties carry the defaults, so the
lifecycles never read raw YAML.
"""

from datetime import timedelta
from typing import Any, Dict


class SectionSettings:
    """Typed accessors over one section of the YAML configuration.

    Missing or malformed values fall back to the defaults baked into each
    property, so an empty section is always valid.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _hours(self, key: str, default: float) -> timedelta:
        try:
            return timedelta(hours=float(self.data.get(key, default)))
        except (TypeError, ValueError):
            return timedelta(hours=default)

    def _seconds(self, key: str, default: float) -> float:
        try:
            return float(self.data.get(key, default))
        except (TypeError, ValueError):
            return default


class TicketSettings(SectionSettings):
    @property
    def reminder_after(self) -> timedelta:
        return self._hours("reminder_after_hours", 24)

    @property
    def auto_close_after(self) -> timedelta:
        return self._hours("auto_close_after_hours", 72)

    @property
    def delete_closed_after(self) -> timedelta:
        """Delay before a closed ticket's channel is released for deletion; zero disables it."""
        return self._hours("delete_closed_after_hours", 24)


class InfractionSettings(SectionSettings):
    @property
    def notify_on_expiration(self) -> bool:
        return bool(self.data.get("notify_on_expiration", True))

    @property
    def draft_ttl(self) -> timedelta:
        return timedelta(seconds=self._seconds("draft_ttl_seconds", 900))


class OfficeSettings(SectionSettings):
    @property
    def delete_delay(self) -> timedelta:
        return self._hours("delete_delay_hours", 24)


class PromotionSettings(SectionSettings):
    @property
    def min_reason_length(self) -> int:
        try:
            return int(self.data.get("min_reason_length", 10))
        except (TypeError, ValueError):
            return 10


class SweepSettings(SectionSettings):
    """Intervals (seconds) of the reconciliation ticks."""

    @property
    def suspension_interval(self) -> float:
        return self._seconds("suspension_interval_seconds", 300.0)

    @property
    def ticket_interval(self) -> float:
        return self._seconds("ticket_interval_seconds", 6 * 3600.0)

    @property
    def intent_interval(self) -> float:
        return self._seconds("intent_interval_seconds", 3600.0)

    @property
    def draft_purge_interval(self) -> float:
        return self._seconds("draft_purge_interval_seconds", 600.0)
