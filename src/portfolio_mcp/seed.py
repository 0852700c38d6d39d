"""
Seed the store with the initial portfolio dataset (seed_data.yaml).

Companies are upserted by slug, so re-running refreshes their descriptions.
Milestones, requirements and activity are inserted only for companies that
have none of that kind yet, which keeps repeated runs from duplicating rows.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from portfolio_mcp.store import Store

logger = logging.getLogger(__name__)

SEED_FILE = Path(__file__).parent / "seed_data.yaml"
CHILD_TABLES = ("milestones", "requirements", "activity")
COMPANY_FIELDS = ("slug", "name", "description", "status", "tools")


def load_seed_data(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the seed dataset from YAML."""
    with open(path or SEED_FILE) as f:
        return yaml.safe_load(f) or {}


async def seed(store: Store, data: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    """
    Upsert companies and insert their initial child rows.

    Args:
        store: Target store
        data: Parsed seed data (defaults to the bundled seed_data.yaml)

    Returns:
        dict: Number of rows written per table
    """
    data = data if data is not None else load_seed_data()
    companies = data.get("companies", [])
    counts = {"companies": 0, **{table: 0 for table in CHILD_TABLES}}

    rows = await store.run(
        store.table("companies").upsert(
            [{field: c.get(field) for field in COMPANY_FIELDS} for c in companies],
            on_conflict="slug",
        ),
        step="seed companies",
    )
    company_ids = {row["slug"]: row["id"] for row in rows}
    counts["companies"] = len(rows)
    logger.info(f"Seeded {len(rows)} companies")

    for company in companies:
        company_id = company_ids.get(company["slug"])
        if company_id is None:
            logger.warning(f"Company {company['slug']} missing after upsert; skipping its rows")
            continue

        for table in CHILD_TABLES:
            entries = company.get(table) or []
            if not entries:
                continue
            existing = await store.first(
                store.table(table).select("id").eq("company_id", company_id).limit(1),
                step=f"check existing {table} for {company['slug']}",
            )
            if existing:
                logger.info(f"{company['slug']} already has {table}; skipping")
                continue
            inserted = await store.run(
                store.table(table).insert([{"company_id": company_id, **entry} for entry in entries]),
                step=f"seed {table} for {company['slug']}",
            )
            counts[table] += len(inserted)

    logger.info(f"Seed complete: {counts}")
    return counts
