import csv
import sys
from typing import Optional

from sqlalchemy.orm import sessionmaker

from backend.app.store import EventStore
from shared.database import Base, SessionLocal

CSV_FIELDS = (
    "event_id", "discount_id", "action", "occurred_at",
    "user_id", "device_type", "city", "region", "age_group", "gender",
)


def import_csv(csv_path: str, session_factory: Optional[sessionmaker] = None) -> int:
    """Load a discount_actions CSV export; returns the number of new rows."""
    session_factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=session_factory.kw["bind"])

    with open(csv_path, encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        rows = [{field: row.get(field) for field in CSV_FIELDS} for row in reader]

    return EventStore(session_factory).record_many(rows)


if __name__ == "__main__":
    print(f"Imported {import_csv(sys.argv[1])} actions")
