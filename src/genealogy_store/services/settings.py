"""Tree and per-user tree preferences, stored as name/value rows."""

from __future__ import annotations

from genealogy_store.core.models import TreeSettings
from genealogy_store.services.audit import AuditLog, LogType
from genealogy_store.storage.database import Database


class SettingsStore:
    """Reads and writes ``gedcom_setting`` and ``user_gedcom_setting``."""

    def __init__(self, db: Database, audit: AuditLog | None = None):
        self.db = db
        self.audit = audit or AuditLog(db)

    def rows(self, tree_id: int) -> dict[str, str]:
        rows = self.db.select("gedcom_setting", {"gedcom_id": tree_id})
        return {row["setting_name"]: row["setting_value"] for row in rows}

    def load(self, tree_id: int) -> TreeSettings:
        return TreeSettings.from_rows(self.rows(tree_id))

    def save(self, tree_id: int, settings: TreeSettings) -> None:
        with self.db.transaction():
            for name, value in settings.to_rows().items():
                self.set(tree_id, name, value, log=False)

    def get(self, tree_id: int, name: str, default: str = "") -> str:
        row = self.db.select_one("gedcom_setting", {"gedcom_id": tree_id, "setting_name": name})
        return row["setting_value"] if row else default

    def set(self, tree_id: int, name: str, value: str, log: bool = True) -> None:
        """Set a preference; an audit entry records each changed value."""
        current = self.db.select_one("gedcom_setting", {"gedcom_id": tree_id, "setting_name": name})
        if current is not None and current["setting_value"] == value:
            return

        self.db.execute(
            "INSERT INTO gedcom_setting (gedcom_id, setting_name, setting_value) VALUES (?, ?, ?) "
            "ON CONFLICT (gedcom_id, setting_name) DO UPDATE SET setting_value = excluded.setting_value",
            (tree_id, name, value),
        )
        if log:
            self.audit.add(f'Tree preference "{name}" set to "{value}"', tree_id=tree_id, log_type=LogType.CONFIG)

    def get_user(self, tree_id: int, user_id: int, name: str, default: str = "") -> str:
        row = self.db.select_one(
            "user_gedcom_setting",
            {"gedcom_id": tree_id, "user_id": user_id, "setting_name": name},
        )
        return row["setting_value"] if row else default

    def set_user(self, tree_id: int, user_id: int, name: str, value: str) -> None:
        self.db.execute(
            "INSERT INTO user_gedcom_setting (user_id, gedcom_id, setting_name, setting_value) "
            "VALUES (?, ?, ?, ?) ON CONFLICT (user_id, gedcom_id, setting_name) "
            "DO UPDATE SET setting_value = excluded.setting_value",
            (user_id, tree_id, name, value),
        )
