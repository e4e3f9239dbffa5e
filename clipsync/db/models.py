"""Peewee ORM models for the local key/value store."""

from __future__ import annotations

import datetime as _dt

import peewee
from playhouse.sqlite_ext import JSONField

from clipsync.core.time_utils import utc_now

# Bound to a concrete database by ``LocalStore`` for the duration of each operation.
database_proxy: peewee.Database = peewee.DatabaseProxy()


def _utcnow() -> _dt.datetime:
    return utc_now()


class BaseModel(peewee.Model):
    class Meta:
        database = database_proxy
        legacy_table_names = False


class StoreEntry(BaseModel):
    """One JSON value per storage key (``bookmarks``, ``categories``, retry queue)."""

    key = peewee.CharField(primary_key=True, max_length=255)
    value = JSONField(null=True)
    updated_at = peewee.DateTimeField(default=_utcnow)


ALL_MODELS = (StoreEntry,)
