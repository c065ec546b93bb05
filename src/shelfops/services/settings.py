"""
Application settings stored as key/value rows.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..models import Setting

DEFAULTS = {
    "app-name": "ShelfWiki",
    "app-public": "false",
    "registration-enabled": "false",
    "registration-confirmation": "false",
    "registration-restrict": "",
    "registration-role": "viewer",
}

TRUE_VALUES = ("1", "true", "yes", "on")


class SettingService:
    def __init__(self, session: Session, defaults: Optional[dict[str, str]] = None) -> None:
        self.session = session
        self.defaults = dict(DEFAULTS)
        if defaults:
            self.defaults.update(defaults)

    def get(self, key: str, default: Optional[str] = None) -> str:
        row = self.session.get(Setting, key)
        if row is not None:
            return row.value
        if default is not None:
            return default
        return self.defaults.get(key, "")

    def get_bool(self, key: str) -> bool:
        return self.get(key).strip().lower() in TRUE_VALUES

    def get_list(self, key: str) -> list[str]:
        """Comma separated setting as a list of trimmed, lowercased values."""
        return [v.strip().lower() for v in self.get(key).split(",") if v.strip()]

    def has(self, key: str) -> bool:
        return self.session.get(Setting, key) is not None

    def put(self, key: str, value) -> None:
        if isinstance(value, bool):
            value = "true" if value else "false"
        value = "" if value is None else str(value)

        row = self.session.get(Setting, key)
        if row is None:
            self.session.add(Setting(setting_key=key, value=value))
            self.session.flush()
        else:
            row.value = value

    def remove(self, key: str) -> None:
        row = self.session.get(Setting, key)
        if row is not None:
            self.session.delete(row)
