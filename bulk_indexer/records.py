from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class Indexable(Protocol):
    """Capability every record handed to the indexer must provide."""

    id: Any

    def should_index(self) -> bool:
        ...

    def search_routing(self) -> Optional[str]:
        ...

    def search_data(self) -> Dict[str, Any]:
        ...


@dataclass
class RowRecord:
    id: Any
    data: Dict[str, Any] = field(default_factory=dict)
    routing_column: Optional[str] = None
    eligible_column: Optional[str] = None

    def should_index(self) -> bool:
        if not self.eligible_column:
            return True
        return bool(self.data.get(self.eligible_column))

    def search_routing(self) -> Optional[str]:
        if not self.routing_column:
            return None
        value = self.data.get(self.routing_column)
        return None if value is None else str(value)

    def search_data(self) -> Dict[str, Any]:
        return dict(self.data)


@dataclass
class PlaceholderRecord:
    """Stand-in for a record that can no longer be loaded; only good for deletes."""

    id: Any
    routing: Optional[str] = None

    def should_index(self) -> bool:
        return False

    def search_routing(self) -> Optional[str]:
        return self.routing

    def search_data(self) -> Dict[str, Any]:
        return {}
