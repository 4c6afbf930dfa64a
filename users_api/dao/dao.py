import logging
import typing as t

import psycopg2
import psycopg2.extras

from users_api.config import DatabaseOptions

logger = logging.getLogger(__name__)


class DAO:
    def __init__(self, connection=None, opts: t.Optional[DatabaseOptions] = None):
        self.__connection = connection
        self.__owns_connection = connection is None
        self.__opts = opts

    @property
    def connection(self):
        if self.__connection is None:
            opts = self.__opts or DatabaseOptions.from_env()
            logger.debug("Connecting to %s:%s/%s", opts.host, opts.port, opts.database)
            self.__connection = psycopg2.connect(**opts.connect_kwargs())
        return self.__connection

    def _cursor(self):
        return self.connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def execute(self, sql: str, parameters: tuple) -> int:
        """
        Runs a statement that changes data and returns the number of affected rows
        """
        with self._cursor() as cursor:
            try:
                cursor.execute(sql, parameters)
                self.connection.commit()
            except Exception:
                self.connection.rollback()
                raise
            return cursor.rowcount

    def execute_returning(self, sql: str, parameters: tuple) -> t.Optional[dict]:
        """
        Runs a statement with a RETURNING clause and returns its first row
        """
        with self._cursor() as cursor:
            try:
                cursor.execute(sql, parameters)
                row = cursor.fetchone()
                self.connection.commit()
            except Exception:
                self.connection.rollback()
                raise
            return row

    def fetch_all(self, sql: str, parameters: tuple = ()) -> t.List[dict]:
        with self._cursor() as cursor:
            try:
                cursor.execute(sql, parameters)
                return cursor.fetchall()
            finally:
                # read statements still open a transaction
                self.connection.rollback()

    def fetch_one(self, sql: str, parameters: tuple = ()) -> t.Optional[dict]:
        rows = self.fetch_all(sql, parameters)
        return rows[0] if rows else None

    def close(self):
        if self.__owns_connection and self.__connection is not None:
            self.__connection.close()
            self.__connection = None

    def __del__(self):
        self.close()
