"""
Synthetic Data Generator

Generates a realistic demo dataset for the dashboard's read schema.
Includes:
- Referrers (SRs), with the placeholder/test entries the classifier must reject
- Users registering with valid, invalid, unknown or missing referral codes
- Orders across the full status lifecycle, with payment transactions
- Status events, delivery drivers, packers and CSR interactions
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import polars as pl
from faker import Faker

from sr_dashboard.database.models import (
    InteractionOutcome,
    InteractionType,
    OrderStatus,
    ReferrerStatus,
    StaffRole,
    TransactionStatus,
)


# =============================================================================
# CONFIGURATION
# =============================================================================

# Referrer rows that exist in production data but are not real SRs
PLACEHOLDER_REFERRERS = [
    ("Marketing Person", ReferrerStatus.ACTIVE),
    ("ggh", ReferrerStatus.ACTIVE),
    ("tuii", ReferrerStatus.ACTIVE),
    ("test agent", ReferrerStatus.ACTIVE),
    ("sr@example.com", ReferrerStatus.ACTIVE),
    ("Bob", ReferrerStatus.ACTIVE),
]

REFERRAL_MIX = {
    "valid": 0.60,
    "invalid": 0.08,
    "none": 0.22,
    "unknown": 0.10,
}

ORDER_STATUS_WEIGHTS = {
    OrderStatus.AWAITING_PAYMENT: 0.06,
    OrderStatus.RECEIVED: 0.06,
    OrderStatus.PROCESSED: 0.08,
    OrderStatus.SHIPPED: 0.08,
    OrderStatus.OUT_FOR_DELIVERY: 0.07,
    OrderStatus.DELIVERED: 0.55,
    OrderStatus.CANCELLED: 0.06,
    OrderStatus.RETURNED: 0.04,
}

# Lifecycle each final status is reached through
LIFECYCLE = [
    OrderStatus.AWAITING_PAYMENT,
    OrderStatus.RECEIVED,
    OrderStatus.PROCESSED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]

DELIVERY_CHARGES = [0.0, 0.0, 1.5, 2.5, 3.0]

INTERACTION_WEIGHTS = {
    InteractionType.NEW_ORDER: 0.45,
    InteractionType.COMPLAINT: 0.20,
    InteractionType.REGISTRATION: 0.20,
    InteractionType.FOLLOW_UP: 0.15,
}


@dataclass
class DatasetSize:
    referrers: int = 25
    users: int = 2000
    drivers: int = 8
    csrs: int = 6
    packers: int = 5
    max_orders_per_user: int = 3
    interactions: int = 1500
    days: int = 120


@dataclass
class DemoDataset:
    """One frame per table, in foreign-key insertion order"""
    tables: Dict[str, pl.DataFrame] = field(default_factory=dict)

    def __getitem__(self, name: str) -> pl.DataFrame:
        return self.tables[name]

    def save(self, output_dir: Path) -> List[Path]:
        """Write each table as CSV"""
        output_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for name, df in self.tables.items():
            path = output_dir / f"{name}.csv"
            df.write_csv(path)
            paths.append(path)
        return paths


# =============================================================================
# GENERATOR
# =============================================================================

class DemoDataGenerator:
    """
    Seeded generator; the same seed and reference time give the same dataset.

    Example:
        dataset = DemoDataGenerator(seed=7).generate(DatasetSize(users=500))
    """

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        self.rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.now = (now or datetime.now()).replace(microsecond=0)

    def _pick(self, weights: Dict):
        options = list(weights.keys())
        index = self.rng.choice(len(options), p=np.array(list(weights.values())) / sum(weights.values()))
        return options[int(index)]

    def _timestamp(self, days: int) -> datetime:
        offset = int(self.rng.integers(0, days * 24 * 3600))
        return self.now - timedelta(seconds=offset)

    def generate(self, size: Optional[DatasetSize] = None) -> DemoDataset:
        size = size or DatasetSize()

        referrers = self._referrers(size)
        users = self._users(size, referrers)
        drivers = self._drivers(size)
        staff = self._staff(size)
        orders, transactions, events = self._orders(size, users, drivers, staff)
        interactions = self._interactions(size, users, orders, staff)

        return DemoDataset(tables={
            "marketing_persons": pl.DataFrame(referrers, infer_schema_length=None),
            "users": pl.DataFrame(users, infer_schema_length=None),
            "delivery_boys": pl.DataFrame(drivers),
            "staff": pl.DataFrame(staff),
            "orders": pl.DataFrame(orders, infer_schema_length=None),
            "transactions": pl.DataFrame(transactions),
            "order_statuses": pl.DataFrame(events, infer_schema_length=None),
            "csr_interactions": pl.DataFrame(interactions, infer_schema_length=None),
        })

    def _referrers(self, size: DatasetSize) -> List[dict]:
        rows = []
        for i in range(size.referrers):
            active = self.rng.random() > 0.1
            rows.append({
                "id": i + 1,
                "name": self.fake.name(),
                "referral_code": f"SR{i + 1:04d}",
                "mobile": self.fake.msisdn()[:12],
                "email": self.fake.email(),
                "status": int(ReferrerStatus.ACTIVE if active else ReferrerStatus.INACTIVE),
                "created_at": self._timestamp(size.days * 3),
            })
        for name, status in PLACEHOLDER_REFERRERS:
            next_id = len(rows) + 1
            rows.append({
                "id": next_id,
                "name": name,
                "referral_code": f"XX{next_id:04d}",
                "mobile": None,
                "email": None,
                "status": int(status),
                "created_at": self._timestamp(size.days * 3),
            })
        return rows

    def _users(self, size: DatasetSize, referrers: List[dict]) -> List[dict]:
        valid_codes = [r["referral_code"] for r in referrers if r["referral_code"].startswith("SR")]
        invalid_codes = [r["referral_code"] for r in referrers if r["referral_code"].startswith("XX")]

        rows = []
        for i in range(size.users):
            mix = self._pick(REFERRAL_MIX)
            if mix == "valid":
                code = str(self.rng.choice(valid_codes))
            elif mix == "invalid":
                code = str(self.rng.choice(invalid_codes))
            elif mix == "unknown":
                code = f"ZZ{int(self.rng.integers(1000, 9999))}"
            else:
                code = None if self.rng.random() < 0.5 else ""
            rows.append({
                "id": i + 1,
                "name": self.fake.name(),
                "mobile": self.fake.msisdn()[:12],
                "email": self.fake.email(),
                "referral_code": code,
                "created_at": self._timestamp(size.days),
            })
        return rows

    def _drivers(self, size: DatasetSize) -> List[dict]:
        return [
            {
                "id": i + 1,
                "name": self.fake.name(),
                "mobile": self.fake.msisdn()[:12],
                "status": 1,
                "created_at": self._timestamp(size.days * 2),
            }
            for i in range(size.drivers)
        ]

    def _staff(self, size: DatasetSize) -> List[dict]:
        rows = []
        roles = [StaffRole.CSR] * size.csrs + [StaffRole.PACKER] * size.packers
        for i, role in enumerate(roles):
            rows.append({
                "id": i + 1,
                "name": self.fake.name(),
                "email": self.fake.company_email(),
                "role": role.value,
                "status": 1,
                "created_at": self._timestamp(size.days * 2),
            })
        return rows

    def _orders(self, size: DatasetSize, users: List[dict], drivers: List[dict], staff: List[dict]):
        packers = [s["id"] for s in staff if s["role"] == StaffRole.PACKER.value]
        orders, transactions, events = [], [], []

        for user in users:
            for _ in range(int(self.rng.integers(0, size.max_orders_per_user + 1))):
                status = self._pick(ORDER_STATUS_WEIGHTS)
                placed = user["created_at"] + timedelta(hours=int(self.rng.integers(1, 24 * 14)))
                if placed > self.now:
                    continue

                order_id = len(orders) + 1
                total = round(float(self.rng.uniform(3, 120)), 2)
                delivery_charge = float(self.rng.choice(DELIVERY_CHARGES))
                ships = status in LIFECYCLE[3:] or status == OrderStatus.RETURNED
                orders.append({
                    "id": order_id,
                    "user_id": user["id"],
                    "delivery_boy_id": int(self.rng.choice([d["id"] for d in drivers])) if ships and drivers else None,
                    "total": total,
                    "delivery_charge": delivery_charge,
                    "final_total": round(total + delivery_charge, 2),
                    "active_status": status.value,
                    "created_at": placed,
                })

                paid = status != OrderStatus.AWAITING_PAYMENT
                transactions.append({
                    "id": len(transactions) + 1,
                    "order_id": order_id,
                    "amount": round(total + delivery_charge, 2),
                    "status": (TransactionStatus.SUCCESS if paid else TransactionStatus.PENDING).value,
                    "created_at": placed,
                })

                events.extend(self._status_events(order_id, status, placed, packers, len(events)))

        return orders, transactions, events

    def _status_events(self, order_id: int, status: OrderStatus, placed: datetime, packers: List[int], offset: int):
        if status in LIFECYCLE:
            path = LIFECYCLE[: LIFECYCLE.index(status) + 1]
        elif status == OrderStatus.RETURNED:
            path = LIFECYCLE + [OrderStatus.RETURNED]
        else:
            path = [OrderStatus.AWAITING_PAYMENT, OrderStatus.CANCELLED]

        rows = []
        at = placed
        for step in path:
            if step == OrderStatus.DELIVERED:
                at += timedelta(minutes=int(self.rng.integers(10, 90)))
            else:
                at += timedelta(minutes=int(self.rng.integers(5, 240)))
            created_by = int(self.rng.choice(packers)) if step == OrderStatus.PROCESSED and packers else None
            rows.append({
                "id": offset + len(rows) + 1,
                "order_id": order_id,
                "status": step.value,
                "created_by": created_by,
                "created_at": min(at, self.now),
            })
        return rows

    def _interactions(self, size: DatasetSize, users: List[dict], orders: List[dict], staff: List[dict]):
        csrs = [s["id"] for s in staff if s["role"] == StaffRole.CSR.value]
        if not csrs or not users:
            return []

        orders_by_user: Dict[int, List[int]] = {}
        for order in orders:
            orders_by_user.setdefault(order["user_id"], []).append(order["id"])

        rows = []
        for i in range(size.interactions):
            kind = self._pick(INTERACTION_WEIGHTS)
            user = users[int(self.rng.integers(0, len(users)))]
            user_orders = orders_by_user.get(user["id"], [])

            if kind == InteractionType.COMPLAINT:
                outcome = InteractionOutcome.RESOLVED if self.rng.random() < 0.7 else InteractionOutcome.PENDING
            else:
                outcome = InteractionOutcome.SUCCESS if self.rng.random() < 0.6 else InteractionOutcome.FAILED

            order_id = None
            if kind == InteractionType.NEW_ORDER and outcome == InteractionOutcome.SUCCESS and user_orders:
                order_id = int(self.rng.choice(user_orders))

            rows.append({
                "id": i + 1,
                "csr_id": int(self.rng.choice(csrs)),
                "user_id": user["id"],
                "order_id": order_id,
                "interaction_type": kind.value,
                "outcome": outcome.value,
                "duration_seconds": int(self.rng.integers(30, 900)),
                "created_at": self._timestamp(size.days),
            })
        return rows
