"""Audit-log sink: the ``log`` table, mirrored to the ``genealogy_store.audit`` logger."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from genealogy_store.storage.database import Database

logger = logging.getLogger("genealogy_store.audit")


class LogType(str, Enum):
    AUTH = "auth"
    CONFIG = "config"
    DEBUG = "debug"
    EDIT = "edit"
    ERROR = "error"
    MEDIA = "media"
    SEARCH = "search"


class AuditLog:
    """Append-only record of edits, configuration changes and errors."""

    def __init__(self, db: Database):
        self.db = db

    def add(
        self,
        message: str,
        tree_id: int | None = None,
        log_type: LogType | str = LogType.EDIT,
        user_id: int | None = None,
        ip_address: str = "127.0.0.1",
    ) -> int:
        log_type = LogType(log_type)
        level = logging.ERROR if log_type is LogType.ERROR else logging.INFO
        logger.log(level, "[%s] tree=%s user=%s %s", log_type.value, tree_id, user_id, message)

        return self.db.insert("log", {
            "log_time": datetime.now().isoformat(timespec="seconds"),
            "log_type": log_type.value,
            "log_message": message,
            "ip_address": ip_address,
            "user_id": user_id,
            "gedcom_id": tree_id,
        })

    def entries(
        self,
        tree_id: int | None = None,
        log_type: LogType | str | None = None,
    ) -> list[dict]:
        where = {}
        if tree_id is not None:
            where["gedcom_id"] = tree_id
        if log_type is not None:
            where["log_type"] = LogType(log_type).value
        rows = self.db.select("log", where, order_by="log_id")
        return [dict(row) for row in rows]
