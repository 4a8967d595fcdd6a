from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import sqlite3

from ...constants import (
    DEFAULT_POINT_RULE,
    SETTING_POINT_RULE_BASE_AMOUNT,
    SETTING_POINT_RULE_ENABLED,
    SETTING_POINT_RULE_MULTIPLIER,
)
from ...utils.helpers import now_str
from ...utils.loggers import get_logger
from ...utils.validators import try_parse_decimal

_log = get_logger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class PointRuleSettings:
    enabled: bool
    base_amount: Decimal
    point_multiplier: Decimal

    @classmethod
    def defaults(cls) -> "PointRuleSettings":
        return cls(
            enabled=bool(DEFAULT_POINT_RULE["enabled"]),
            base_amount=Decimal(str(DEFAULT_POINT_RULE["base_amount"])),
            point_multiplier=Decimal(str(DEFAULT_POINT_RULE["point_multiplier"])),
        )


class SettingsRepo:
    """Key/value application settings (the `settings` table)."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get_setting(self, key: str) -> str | None:
        r = self.conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
        return None if r is None else r["value"]

    def set_setting(self, key: str, value: str) -> None:
        """Upsert one key. Does not commit."""
        self.conn.execute(
            """
            INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """,
            (key, value, now_str()),
        )

    # ------------------------------------------------------------------
    # Point rule
    # ------------------------------------------------------------------
    def get_point_rule_settings(self) -> PointRuleSettings:
        """
        Read the three pointRule.* keys. A missing key takes its default; an
        unreadable value also takes its default and is logged.
        """
        d = PointRuleSettings.defaults()

        raw_enabled = self.get_setting(SETTING_POINT_RULE_ENABLED)
        enabled = d.enabled
        if raw_enabled is not None:
            text = str(raw_enabled).strip().lower()
            if text in _TRUE:
                enabled = True
            elif text in _FALSE:
                enabled = False
            else:
                _log.warning("Invalid %s=%r; using default", SETTING_POINT_RULE_ENABLED, raw_enabled)

        base_amount = self._positive_decimal(SETTING_POINT_RULE_BASE_AMOUNT, d.base_amount)
        multiplier = self._positive_decimal(SETTING_POINT_RULE_MULTIPLIER, d.point_multiplier)
        return PointRuleSettings(enabled=enabled, base_amount=base_amount, point_multiplier=multiplier)

    def set_point_rule_settings(
        self,
        *,
        enabled: bool | None = None,
        base_amount: Decimal | int | str | None = None,
        point_multiplier: Decimal | int | str | None = None,
    ) -> PointRuleSettings:
        """Write whichever values are given, commit, and return the effective settings."""
        with self.conn:
            if enabled is not None:
                self.set_setting(SETTING_POINT_RULE_ENABLED, "true" if enabled else "false")
            if base_amount is not None:
                self.set_setting(SETTING_POINT_RULE_BASE_AMOUNT, self._require_positive("base_amount", base_amount))
            if point_multiplier is not None:
                self.set_setting(
                    SETTING_POINT_RULE_MULTIPLIER, self._require_positive("point_multiplier", point_multiplier)
                )
        return self.get_point_rule_settings()

    # ------------------------------------------------------------------
    def _positive_decimal(self, key: str, default: Decimal) -> Decimal:
        raw = self.get_setting(key)
        if raw is None:
            return default
        ok, value = try_parse_decimal(raw)
        if not ok or value <= 0:
            _log.warning("Invalid %s=%r; using default %s", key, raw, default)
            return default
        return value

    @staticmethod
    def _require_positive(name: str, value) -> str:
        ok, parsed = try_parse_decimal(value)
        if not ok or parsed <= 0:
            raise ValueError(f"{name} must be a positive number.")
        return str(parsed)
