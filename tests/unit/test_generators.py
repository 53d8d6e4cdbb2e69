"""
Unit Tests - Demo Data Generation and Seeding
"""
from datetime import datetime

import pytest

from sr_dashboard.analytics.date_window import parse_range_token
from sr_dashboard.analytics.queries import MetricFamily, run_aggregation
from sr_dashboard.data.generators import PLACEHOLDER_REFERRERS, DatasetSize, DemoDataGenerator
from sr_dashboard.ingestion.seed_db import TABLE_MODELS, seed_dataset

NOW = datetime(2025, 8, 17, 18, 0)
SMALL = DatasetSize(referrers=5, users=200, drivers=3, csrs=2, packers=2, interactions=100, days=30)


@pytest.fixture
def dataset():
    return DemoDataGenerator(seed=7, now=NOW).generate(SMALL)


class TestDemoDataGenerator:
    """Tests for DemoDataGenerator"""

    def test_every_table_is_generated(self, dataset):
        assert set(dataset.tables) == set(TABLE_MODELS)
        assert len(dataset["users"]) == 200
        assert len(dataset["marketing_persons"]) == 5 + len(PLACEHOLDER_REFERRERS)

    def test_placeholders_are_included(self, dataset):
        names = set(dataset["marketing_persons"]["name"].to_list())

        assert {name for name, _ in PLACEHOLDER_REFERRERS} <= names

    def test_same_seed_same_data(self, dataset):
        again = DemoDataGenerator(seed=7, now=NOW).generate(SMALL)

        for name, frame in dataset.tables.items():
            assert frame.equals(again[name]), name

    def test_nothing_happens_in_the_future(self, dataset):
        assert dataset["orders"]["created_at"].max() <= NOW
        assert dataset["users"]["created_at"].max() <= NOW

    def test_final_total_includes_delivery(self, dataset):
        orders = dataset["orders"]
        for row in orders.head(20).to_dicts():
            assert row["final_total"] == round(row["total"] + row["delivery_charge"], 2)

    def test_save_writes_csv(self, dataset, tmp_path):
        paths = dataset.save(tmp_path / "generated")

        assert sorted(p.name for p in paths) == sorted(f"{name}.csv" for name in TABLE_MODELS)


class TestSeeding:
    """Tests for loading a dataset into the schema"""

    async def test_seeded_store_aggregates(self, dataset, session_factory):
        counts = await seed_dataset(dataset, session_factory)

        assert counts["users"] == 200
        assert counts["orders"] == len(dataset["orders"])

        window = parse_range_token("all")
        sources = await run_aggregation(MetricFamily.REGISTRATION_SOURCES, window, session_factory=session_factory)
        roster = await run_aggregation(MetricFamily.SR_ROSTER, window, session_factory=session_factory)

        assert sum(row["registrations"] for row in sources.rows) == 200
        assert len(roster) <= 5
        placeholder_names = {name for name, _ in PLACEHOLDER_REFERRERS}
        assert not placeholder_names & {row["name"] for row in roster.rows}
