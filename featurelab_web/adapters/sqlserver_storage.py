from __future__ import annotations

from configparser import ConfigParser
from typing import Callable, Optional

from featurelab_web.adapters.storage import KeyValueStorage
from featurelab_web.domain.errors import StorageError

# Expected table:
#   CREATE TABLE dbo.FeatureLabState (
#       storage_key   NVARCHAR(200) NOT NULL PRIMARY KEY,
#       storage_value NVARCHAR(MAX) NOT NULL,
#       updated_at    DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME()
#   )


def _default_connect(conn_str: str):
    import pyodbc

    return pyodbc.connect(conn_str)


class SqlServerStorage(KeyValueStorage):
    def __init__(
        self,
        ini_path: str,
        table_name: str = "dbo.FeatureLabState",
        connect: Optional[Callable[[str], object]] = None,
    ):
        self.ini_path = ini_path
        self.table_name = table_name
        self._connect_fn = connect or _default_connect

        cfg = ConfigParser()
        ok = cfg.read(self.ini_path, encoding="utf-8-sig")
        if not ok:
            raise FileNotFoundError(f"INI not found or unreadable: {self.ini_path}")

        if "sqlserver" not in cfg:
            raise KeyError("Missing [sqlserver] section in INI")

        s = cfg["sqlserver"]
        self._driver = (s.get("driver", "ODBC Driver 17 for SQL Server") or "").strip()
        self._server = (s.get("server", "localhost") or "").strip()
        self._database = (s.get("database", "") or "").strip()
        self._username = (s.get("username", "") or "").strip()
        self._password = (s.get("password", "") or "").strip()

        trust_raw = (s.get("trust_cert", "yes") or "").strip().lower()
        self._trust_cert = trust_raw in ("yes", "true", "1")

        if not self._database:
            raise ValueError("sqlserver.database is empty in INI")

    def connection_string(self) -> str:
        parts = [
            f"DRIVER={{{self._driver}}}",
            f"SERVER={self._server}",
            f"DATABASE={self._database}",
        ]

        if self._username:
            parts.append(f"UID={self._username}")
            parts.append(f"PWD={self._password}")
        else:
            parts.append("Trusted_Connection=yes")

        if self._trust_cert:
            parts.append("TrustServerCertificate=yes")

        return ";".join(parts) + ";"

    def _connect(self):
        return self._connect_fn(self.connection_string())

    @staticmethod
    def _get(r, name: str, default=None):
        return getattr(r, name, default)

    def get(self, key: str) -> Optional[str]:
        q = f"SELECT storage_value FROM {self.table_name} WHERE storage_key = ?"
        try:
            with self._connect() as conn:
                cur = conn.cursor()
                row = cur.execute(q, key).fetchone()
        except Exception as e:
            raise StorageError(f"SQL Server read failed for {key!r}: {e}") from e

        if not row:
            return None
        value = self._get(row, "storage_value")
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        update_q = f"""
        UPDATE {self.table_name}
        SET storage_value = ?, updated_at = SYSUTCDATETIME()
        WHERE storage_key = ?
        """
        insert_q = f"INSERT INTO {self.table_name} (storage_key, storage_value) VALUES (?, ?)"
        try:
            with self._connect() as conn:
                cur = conn.cursor()
                cur.execute(update_q, value, key)
                if cur.rowcount == 0:
                    cur.execute(insert_q, key, value)
                conn.commit()
        except Exception as e:
            raise StorageError(f"SQL Server write failed for {key!r}: {e}") from e

    def remove(self, key: str) -> None:
        q = f"DELETE FROM {self.table_name} WHERE storage_key = ?"
        try:
            with self._connect() as conn:
                cur = conn.cursor()
                cur.execute(q, key)
                conn.commit()
        except Exception as e:
            raise StorageError(f"SQL Server delete failed for {key!r}: {e}") from e
