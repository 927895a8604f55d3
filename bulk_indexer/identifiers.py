"""Routing-aware record identifiers.

A record that lives on a custom shard can only be deleted if the delete
request carries its routing value, so ids pushed to the reindex queue keep
the routing alongside: ``"42"`` or ``"42|tenant-a"``. A ``|`` inside the
routing value is doubled. Ids themselves may not contain ``|``; ``encode``
raises ``ValueError`` for them, which keeps the first ``|`` the separator
for every routing value, including ones that start or end with ``|``.
"""

from dataclasses import dataclass
from typing import Any, Optional

SEPARATOR = "|"
ESCAPED_SEPARATOR = SEPARATOR * 2


@dataclass(frozen=True)
class RecordIdentifier:
    id: str
    routing: Optional[str] = None

    def encode(self) -> str:
        return encode(self.id, self.routing)


def escape(value: str) -> str:
    return value.replace(SEPARATOR, ESCAPED_SEPARATOR)


def unescape(value: str) -> str:
    return value.replace(ESCAPED_SEPARATOR, SEPARATOR)


def encode(record_id: Any, routing: Optional[Any] = None) -> str:
    value = str(record_id)
    if SEPARATOR in value:
        raise ValueError(f"record id may not contain {SEPARATOR!r}: {value!r}")
    if routing is None:
        return value
    return f"{value}{SEPARATOR}{escape(str(routing))}"


def decode(value: str) -> RecordIdentifier:
    # ids never contain the separator, so the first one ends the id
    record_id, sep, routing = value.partition(SEPARATOR)
    if not sep:
        return RecordIdentifier(record_id)
    return RecordIdentifier(record_id, unescape(routing))
