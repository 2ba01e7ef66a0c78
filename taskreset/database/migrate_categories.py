"""Migration script to rewrite legacy category labels.

Rows written by earlier versions of the app carry display labels instead of
the canonical category names:
- "24h Countdown" → Countdown24h
- "Weekly (Monday)" → WeeklyMonday
- "Specific Day" → SpecificDay
- "Specific Hours" → SpecificHours

Reads already accept both; this rewrites the stored rows once so other
consumers of the table see canonical labels only.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from taskreset.database.database import SessionLocal
from taskreset.database.models import TaskDB
from taskreset.models.task import LEGACY_CATEGORY_LABELS

logger = logging.getLogger(__name__)


def migrate_categories(db: Optional[Session] = None) -> int:
    """Rewrite legacy category labels to canonical ones.

    Args:
        db: Session to use (a new one is opened and closed when omitted)

    Returns:
        Number of rows updated
    """
    owns_session = db is None
    db = db or SessionLocal()

    try:
        updated_count = 0
        for legacy_label, category in LEGACY_CATEGORY_LABELS.items():
            rows = db.query(TaskDB).filter(TaskDB.category == legacy_label).all()
            if rows:
                logger.info(f"Migrating {len(rows)} tasks from '{legacy_label}' to '{category.value}'")
            for row in rows:
                row.category = category.value
                updated_count += 1

        db.commit()
        logger.info(f"Migrated {updated_count} task categories")
        return updated_count
    except Exception as e:
        db.rollback()
        logger.error(f"Error during category migration: {e}")
        raise
    finally:
        if owns_session:
            db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("=" * 60)
    print("Task Category Migration Script")
    print("=" * 60)
    print()
    print("This script will rewrite legacy category labels:")
    for label, category in LEGACY_CATEGORY_LABELS.items():
        print(f"  {label} → {category.value}")
    print()

    response = input("Do you want to proceed? (yes/no): ")
    if response.lower() in ['yes', 'y']:
        migrate_categories()
        print()
        print("Migration complete!")
    else:
        print("Migration cancelled.")
