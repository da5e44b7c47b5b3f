import operator
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from rideprobe.core.exceptions.exceptions import InvalidProbeRequestError, QueryError
from rideprobe.schemas.records import stored_names
from rideprobe.utils.log import app_logger


# comparison filters: {"otp_expires_at": {"gt": now}}
COMPARISONS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


class CollectionService:
    """Read-only queries against named collections (tables).

    Tables are reflected at query time, so nothing about their columns is
    assumed. Rows come back as plain dicts.
    """

    @staticmethod
    def _reflect(connection: Connection, collection: str) -> Table:
        try:
            return Table(collection, MetaData(), autoload_with=connection)
        except NoSuchTableError as e:
            app_logger.error("db.no_such_collection", collection=collection)
            raise QueryError(collection, "no such collection") from e
        except SQLAlchemyError as e:
            app_logger.error("db.reflect_failed", collection=collection, error=str(e))
            raise QueryError(collection, str(e)) from e

    @staticmethod
    def _run(connection: Connection, collection: str, stmt) -> List[Dict[str, Any]]:
        try:
            rows = connection.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            app_logger.error("db.query_failed", collection=collection, error=str(e))
            raise QueryError(collection, str(getattr(e, 'orig', None) or e)) from e
        return [dict(row) for row in rows]

    @staticmethod
    def column_name(table: Table, collection: str, field: str) -> Optional[str]:
        """the column `field` is stored under, trying snake_case and camelCase spellings"""
        for name in stored_names(collection, field):
            if name in table.c:
                return name
        return None

    @staticmethod
    def _condition(column, value):
        if isinstance(value, (list, tuple, set)):
            return column.in_(list(value))
        if not isinstance(value, dict):
            return column == value

        conditions = []
        for op, operand in value.items():
            if op == "exists":
                conditions.append(column.isnot(None) if operand else column.is_(None))
            elif op in COMPARISONS:
                conditions.append(COMPARISONS[op](column, operand))
            else:
                raise InvalidProbeRequestError(f"unknown filter operator '{op}'")
        return conditions

    @staticmethod
    def fetch(connection: Connection, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return every record of `collection` matching all `filters`.

        A list/tuple/set filter value matches any of its members. A dict value
        holds comparisons (`eq`, `ne`, `gt`, `gte`, `lt`, `lte`, `exists`) that
        must all hold. Filtering on a field the collection doesn't have matches
        nothing.
        """
        table = CollectionService._reflect(connection, collection)
        stmt = select(table)
        for field, value in (filters or {}).items():
            name = CollectionService.column_name(table, collection, field)
            if name is None:
                app_logger.warning("db.unknown_field", collection=collection, field=field)
                return []
            condition = CollectionService._condition(table.c[name], value)
            if isinstance(condition, list):
                stmt = stmt.where(*condition)
            else:
                stmt = stmt.where(condition)

        records = CollectionService._run(connection, collection, stmt)
        app_logger.debug("db.fetched", collection=collection, filters=filters, count=len(records))
        return records

    @staticmethod
    def fetch_by_ids(connection: Connection, collection: str, ids: Iterable[Any], key: str = "id") -> Dict[Any, Dict[str, Any]]:
        """Return records of `collection` whose `key` is in `ids`, keyed by that value.

        `key` resolves like a filter field, so `id` also finds an `_id` column.
        """
        wanted = list({i for i in ids if i is not None})
        if not wanted:
            return {}
        table = CollectionService._reflect(connection, collection)
        name = CollectionService.column_name(table, collection, key)
        if name is None:
            app_logger.warning("db.unknown_field", collection=collection, field=key)
            return {}
        records = CollectionService.fetch(connection, collection, {name: wanted})
        return {r.get(name): r for r in records}
