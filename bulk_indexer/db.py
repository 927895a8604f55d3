import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pymysql

from bulk_indexer.config import Settings
from bulk_indexer.jobs import JobPayload

JOB_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS bulk_index_job (
  job_id BIGINT AUTO_INCREMENT PRIMARY KEY,
  job_kind VARCHAR(32) NOT NULL,
  index_name VARCHAR(255) NOT NULL,
  batch_id BIGINT NULL,
  payload_json JSON NOT NULL,
  status VARCHAR(16) NOT NULL,
  attempts INT NOT NULL DEFAULT 0,
  error_json JSON NULL,
  error_message TEXT NULL,
  created_at DATETIME NOT NULL,
  updated_at DATETIME NOT NULL,
  finished_at DATETIME NULL,
  KEY idx_bulk_index_job_status (status, created_at)
)
"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_json(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return None


class JobQueue:
    """Job runner backed by a MySQL table; workers claim rows with ``FOR UPDATE``."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def connect(self):
        return pymysql.connect(
            host=self.settings.mysql_host,
            port=self.settings.mysql_port,
            user=self.settings.mysql_user,
            password=self.settings.mysql_password,
            database=self.settings.mysql_database,
            charset="utf8mb4",
            cursorclass=pymysql.cursors.DictCursor,
            autocommit=False,
        )

    @contextmanager
    def cursor(self):
        conn = self.connect()
        try:
            with conn.cursor() as cursor:
                yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self.cursor() as cursor:
            cursor.execute(JOB_TABLE_DDL)

    def enqueue(self, payload: JobPayload) -> int:
        with self.cursor() as cursor:
            cursor.execute(
                "INSERT INTO bulk_index_job (job_kind, index_name, batch_id, payload_json, status, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s)",
                (
                    payload.kind,
                    payload.index_name,
                    payload.batch_id,
                    json.dumps(payload.to_json_dict()),
                    "QUEUED",
                    utc_now(),
                    utc_now(),
                ),
            )
            return cursor.lastrowid

    def fetch_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute("SELECT * FROM bulk_index_job WHERE job_id=%s", (job_id,))
            row = cursor.fetchone()
        if not row:
            return None
        row["payload_json"] = parse_json(row.get("payload_json"))
        row["error_json"] = parse_json(row.get("error_json"))
        return row

    def claim_next_job(self) -> Optional[Dict[str, Any]]:
        with self.cursor() as cursor:
            cursor.execute(
                "SELECT job_id FROM bulk_index_job WHERE status='QUEUED' "
                "ORDER BY created_at ASC, job_id ASC LIMIT 1 FOR UPDATE SKIP LOCKED"
            )
            row = cursor.fetchone()
            if not row:
                return None
            job_id = row["job_id"]
            cursor.execute(
                "UPDATE bulk_index_job SET status='RUNNING', attempts=attempts+1, updated_at=%s WHERE job_id=%s",
                (utc_now(), job_id),
            )
        return self.fetch_job(job_id)

    def mark_succeeded(self, job_id: int) -> None:
        with self.cursor() as cursor:
            cursor.execute(
                "UPDATE bulk_index_job SET status='SUCCESS', finished_at=%s, updated_at=%s WHERE job_id=%s",
                (utc_now(), utc_now(), job_id),
            )

    def mark_failed(self, job_id: int, error: Dict[str, Any], error_message: str) -> None:
        with self.cursor() as cursor:
            cursor.execute(
                "UPDATE bulk_index_job SET status='FAILED', error_json=%s, error_message=%s, finished_at=%s, updated_at=%s "
                "WHERE job_id=%s",
                (json.dumps(error, default=str), error_message, utc_now(), utc_now(), job_id),
            )

    def _failed_filter(self, index_name: Optional[str]):
        clauses = ["status='FAILED'"]
        params = []
        if index_name:
            clauses.append("index_name=%s")
            params.append(index_name)
        return " AND ".join(clauses), params

    def count_failed(self, index_name: Optional[str] = None) -> int:
        where, params = self._failed_filter(index_name)
        with self.cursor() as cursor:
            cursor.execute(f"SELECT COUNT(*) AS n FROM bulk_index_job WHERE {where}", params)
            row = cursor.fetchone()
        return int(row["n"]) if row else 0

    def requeue_failed(self, index_name: Optional[str] = None) -> int:
        where, params = self._failed_filter(index_name)
        with self.cursor() as cursor:
            cursor.execute(
                f"UPDATE bulk_index_job SET status='QUEUED', updated_at=%s WHERE {where}",
                [utc_now(), *params],
            )
            return cursor.rowcount
