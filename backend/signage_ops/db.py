from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Sequence

import psycopg
from psycopg import errors, sql
from psycopg.rows import dict_row

from .errors import NotFoundError, ServiceUnavailableError, TransportError, ValidationError
from .stores import ColumnInfo

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def ensure_db_url(url: str | None) -> str | None:
    if not url:
        return None
    if "sslmode=" in url:
        return url
    if "localhost" in url or "127.0.0.1" in url:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}sslmode=require"


def check_identifier(value: str) -> str:
    if not value or not _IDENTIFIER.match(value):
        raise ValidationError(f"unsafe SQL identifier: {value!r}")
    return value


def split_table_name(table: str, default_schema: str = "public") -> tuple[str, str]:
    raw = (table or "").strip()
    if "." in raw:
        schema, name = raw.split(".", 1)
    else:
        schema, name = default_schema, raw
    return check_identifier(schema), check_identifier(name)


class PostgresStore:
    """Relational store backed by one psycopg connection.

    The connection runs in autocommit mode and every mutation gets its own
    transaction block, so a rejected write never poisons the statements that
    follow it.
    """

    def __init__(self, conn: psycopg.Connection, *, schema: str = "public") -> None:
        self._conn = conn
        self._schema = check_identifier(schema)

    @classmethod
    def connect(
        cls,
        database_url: str,
        *,
        schema: str = "public",
        connect_timeout: int = 10,
    ) -> "PostgresStore":
        try:
            conn = psycopg.connect(
                ensure_db_url(database_url),
                autocommit=True,
                connect_timeout=connect_timeout,
            )
        except psycopg.OperationalError as exc:
            raise ServiceUnavailableError(f"Database unreachable: {exc}") from exc
        return cls(conn, schema=schema)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "PostgresStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _table(self, table: str) -> sql.Identifier:
        schema, name = split_table_name(table, self._schema)
        return sql.Identifier(schema, name)

    def _where(self, where: Mapping[str, Any] | None) -> tuple[sql.Composable, list[Any]]:
        if not where:
            return sql.SQL(""), []
        clauses = [
            sql.SQL("{} = %s").format(sql.Identifier(check_identifier(column)))
            for column in where
        ]
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), list(where.values())

    def _run(
        self,
        query: sql.Composable,
        params: Sequence[Any] | None = None,
        *,
        fetch: bool = False,
    ):
        try:
            with self._conn.transaction():
                with self._conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, params or None)
                    rows = cur.fetchall() if fetch and cur.description else []
                    return rows, int(cur.rowcount or 0)
        except errors.UndefinedTable as exc:
            raise NotFoundError(str(exc)) from exc
        except psycopg.OperationalError as exc:
            if self._conn.closed or self._conn.broken:
                raise ServiceUnavailableError(f"Database connection lost: {exc}") from exc
            raise TransportError(f"Database error: {exc}") from exc
        except psycopg.Error as exc:
            raise TransportError(
                f"Database error: {exc}",
                error=getattr(exc, "sqlstate", None),
            ) from exc

    def select(
        self,
        table: str,
        columns: Sequence[str],
        *,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        where_sql, params = self._where(where)
        query = sql.SQL("SELECT {columns} FROM {table}{where}").format(
            columns=sql.SQL(", ").join(
                sql.Identifier(check_identifier(column)) for column in columns
            ),
            table=self._table(table),
            where=where_sql,
        )
        if order_by:
            query += sql.SQL(" ORDER BY ") + sql.SQL(", ").join(
                sql.Identifier(check_identifier(column)) for column in order_by
            )
        rows, _ = self._run(query, params, fetch=True)
        return [dict(row) for row in rows]

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any] | None:
        if row:
            query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *").format(
                table=self._table(table),
                columns=sql.SQL(", ").join(
                    sql.Identifier(check_identifier(column)) for column in row
                ),
                values=sql.SQL(", ").join(sql.Placeholder() * len(row)),
            )
        else:
            query = sql.SQL("INSERT INTO {table} DEFAULT VALUES RETURNING *").format(
                table=self._table(table)
            )
        rows, _ = self._run(query, list(row.values()), fetch=True)
        return dict(rows[0]) if rows else None

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        where: Mapping[str, Any],
    ) -> int:
        if not values:
            raise ValidationError("update requires at least one column")
        if not where:
            raise ValidationError("update requires a key filter")
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(check_identifier(column)))
            for column in values
        )
        where_sql, where_params = self._where(where)
        query = sql.SQL("UPDATE {table} SET {assignments}{where}").format(
            table=self._table(table),
            assignments=assignments,
            where=where_sql,
        )
        _, rowcount = self._run(query, [*values.values(), *where_params])
        return rowcount

    def delete(self, table: str, *, where: Mapping[str, Any]) -> int:
        if not where:
            raise ValidationError("delete requires a key filter")
        where_sql, params = self._where(where)
        query = sql.SQL("DELETE FROM {table}{where}").format(
            table=self._table(table),
            where=where_sql,
        )
        _, rowcount = self._run(query, params)
        return rowcount

    def introspect_columns(self, table: str) -> list[ColumnInfo]:
        schema, name = split_table_name(table, self._schema)
        query = sql.SQL(
            """
            SELECT column_name, data_type, is_nullable, column_default
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """
        )
        rows, _ = self._run(query, (schema, name), fetch=True)
        return [
            ColumnInfo(
                name=str(row["column_name"]),
                data_type=str(row["data_type"]),
                is_nullable=str(row["is_nullable"]).upper() == "YES",
                default=str(row["column_default"]) if row["column_default"] is not None else None,
            )
            for row in rows
        ]

    def table_exists(self, table: str) -> bool:
        schema, name = split_table_name(table, self._schema)
        rows, _ = self._run(
            sql.SQL("SELECT to_regclass(%s) IS NOT NULL AS present"),
            (f'"{schema}"."{name}"',),
            fetch=True,
        )
        return bool(rows[0]["present"]) if rows else False

    def execute_ddl(self, statement: str) -> None:
        logger.debug("Executing DDL", extra={"statement": statement})
        self._run(sql.SQL(statement))


__all__ = ["PostgresStore", "check_identifier", "ensure_db_url", "split_table_name"]
