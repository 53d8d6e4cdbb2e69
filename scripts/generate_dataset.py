"""
Demo Dataset Generator

Writes a synthetic SR dashboard dataset as CSV files and, optionally, loads
it into the database named by DATABASE_URL / POSTGRES_* settings.

Usage:
    python scripts/generate_dataset.py --users 5000 --output data/generated
    python scripts/generate_dataset.py --seed-db --create-schema
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sr_dashboard.config.logging import configure_logging  # noqa: E402
from sr_dashboard.data.generators import DatasetSize, DemoDataGenerator  # noqa: E402
from sr_dashboard.ingestion.seed_db import seed_database  # noqa: E402

DEFAULT_OUTPUT = Path(__file__).parent.parent / "data" / "generated"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate demo data for the SR dashboard")
    parser.add_argument("--referrers", type=int, default=25, help="Genuine SRs to create")
    parser.add_argument("--users", type=int, default=2000, help="Registrations to create")
    parser.add_argument("--days", type=int, default=120, help="History length in days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="CSV output directory")
    parser.add_argument("--seed-db", action="store_true", help="Load the dataset into the database")
    parser.add_argument("--database-url", default=None, help="Override the configured database URL")
    parser.add_argument("--create-schema", action="store_true", help="Create tables before loading")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    configure_logging()

    size = DatasetSize(referrers=args.referrers, users=args.users, days=args.days)

    if args.seed_db:
        counts = asyncio.run(
            seed_database(url=args.database_url, size=size, seed=args.seed, create=args.create_schema)
        )
        for table, rows in counts.items():
            print(f"   {table}: {rows:,} rows loaded")
        return

    dataset = DemoDataGenerator(seed=args.seed).generate(size)
    for path in dataset.save(args.output):
        print(f"   {path.name}: {len(dataset[path.stem]):,} rows")
    print(f"\nOutput: {args.output}")


if __name__ == "__main__":
    main()
