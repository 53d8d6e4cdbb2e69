"""
Leaderboards

Ranks derived roster/operator rows by a caller-selected key. Unknown keys fall
back to the board's default key. Ties always break by name, then id, so a
board is stable across repeated runs.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from sr_dashboard.analytics.metrics import to_float

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SortKey:
    """
    One sortable column.

    requires names a count that must be non-zero for the row's value to be
    meaningful; rows failing it rank after every row that passes.
    """
    field: str
    descending: bool = True
    requires: Optional[str] = None


@dataclass(frozen=True)
class Leaderboard:
    name: str
    keys: Mapping[str, SortKey]
    default: str

    def resolve(self, sort_by: Optional[str]) -> str:
        """Validate a caller's key, falling back to the default"""
        if sort_by is None or sort_by == "":
            return self.default
        if sort_by not in self.keys:
            logger.warning(
                "leaderboard_sort_fallback",
                leaderboard=self.name,
                sort_by=sort_by,
                fallback=self.default,
            )
            return self.default
        return sort_by

    def rank(self, rows: Iterable[Mapping[str, Any]], sort_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """Sorted copies of rows, each with a 1-based rank"""
        key = self.keys[self.resolve(sort_by)]

        # Stable sorts: tie-breakers first, primary key last
        ordered = sorted(rows, key=lambda row: (str(row.get("name") or ""), to_float(row.get("id"))))
        ordered = sorted(ordered, key=lambda row: _primary(row, key))

        return [dict(row, rank=position) for position, row in enumerate(ordered, start=1)]


def _primary(row: Mapping[str, Any], key: SortKey):
    value = to_float(row.get(key.field))
    unusable = key.requires is not None and to_float(row.get(key.requires)) == 0
    return (unusable, -value if key.descending else value)


SR_LEADERBOARD = Leaderboard(
    name="sr",
    keys={
        "registrations": SortKey("total_customers_registered"),
        "orders": SortKey("total_orders"),
        "revenue": SortKey("total_order_value"),
        "conversion": SortKey("conversion_rate"),
    },
    default="registrations",
)

DRIVER_LEADERBOARD = Leaderboard(
    name="drivers",
    keys={
        "delivered": SortKey("delivered_count"),
        "success_rate": SortKey("delivery_success_rate"),
        "assigned": SortKey("total_orders_assigned"),
        "delivery_time": SortKey("avg_delivery_time_minutes", descending=False, requires="timed_deliveries"),
    },
    default="delivered",
)

CSR_LEADERBOARD = Leaderboard(
    name="csr",
    keys={
        "interactions": SortKey("total_interactions"),
        "success_rate": SortKey("success_rate"),
        "orders": SortKey("successful_orders"),
        "revenue": SortKey("total_order_value"),
    },
    default="interactions",
)

PACKING_LEADERBOARD = Leaderboard(
    name="packing",
    keys={
        "packed": SortKey("total_orders_packed"),
        "success_rate": SortKey("success_rate"),
        "shipped": SortKey("orders_shipped"),
    },
    default="packed",
)
