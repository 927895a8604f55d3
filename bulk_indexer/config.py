import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional


def _coerce_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "y"}:
        return True
    if lowered in {"0", "false", "no", "n"}:
        return False
    return default


def _coerce_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _coerce_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _split_columns(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    os_url: str
    timeout_sec: int
    index_name: str
    batch_size: int

    redis_url: str
    namespace: str

    mysql_host: str
    mysql_port: int
    mysql_user: str
    mysql_password: str
    mysql_database: str

    source_table: str
    source_class_name: str
    source_primary_key: str
    source_columns: List[str]
    source_routing_column: Optional[str]
    source_eligible_column: Optional[str]

    job_poll_interval_sec: float
    worker_enabled: bool

    @staticmethod
    def from_env() -> "Settings":
        table = os.environ.get("SOURCE_TABLE", "material")
        return Settings(
            os_url=os.environ.get("OS_URL", "http://localhost:9200"),
            timeout_sec=_coerce_int(os.environ.get("OS_TIMEOUT_SEC"), 30),
            index_name=os.environ.get("INDEX_NAME", f"{table}_index"),
            batch_size=_coerce_int(os.environ.get("BULK_BATCH_SIZE"), 1000),
            redis_url=os.environ.get("REDIS_URL", "").strip(),
            namespace=os.environ.get("BULK_NAMESPACE", "bulk_indexer"),
            mysql_host=os.environ.get("MYSQL_HOST", "127.0.0.1"),
            mysql_port=_coerce_int(os.environ.get("MYSQL_PORT"), 3306),
            mysql_user=os.environ.get("MYSQL_USER", "bulk"),
            mysql_password=os.environ.get("MYSQL_PASSWORD", "bulk"),
            mysql_database=os.environ.get("MYSQL_DATABASE", "bulk"),
            source_table=table,
            source_class_name=os.environ.get("SOURCE_CLASS_NAME", table.title().replace("_", "")),
            source_primary_key=os.environ.get("SOURCE_PRIMARY_KEY", "id"),
            source_columns=_split_columns(os.environ.get("SOURCE_COLUMNS")),
            source_routing_column=os.environ.get("SOURCE_ROUTING_COLUMN") or None,
            source_eligible_column=os.environ.get("SOURCE_ELIGIBLE_COLUMN") or None,
            job_poll_interval_sec=_coerce_float(os.environ.get("JOB_POLL_INTERVAL_SEC"), 2.0),
            worker_enabled=_coerce_bool(os.environ.get("WORKER_ENABLED"), True),
        )

    def override(self, params: Optional[Dict[str, Any]]) -> "Settings":
        if not params:
            return self
        values = {}
        for field in fields(self):
            current = getattr(self, field.name)
            if field.name not in params or params[field.name] is None:
                values[field.name] = current
                continue
            raw = params[field.name]
            if isinstance(current, bool):
                values[field.name] = bool(raw)
            elif isinstance(current, int):
                values[field.name] = int(raw)
            elif isinstance(current, float):
                values[field.name] = float(raw)
            elif isinstance(current, list):
                values[field.name] = list(raw) if isinstance(raw, (list, tuple)) else _split_columns(str(raw))
            else:
                values[field.name] = raw
        return Settings(**values)
