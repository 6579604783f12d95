#!/usr/bin/env python3
"""
Create all tables (and the partial unique index on warranty_checks).
Run from the project root: python -m scripts.init_db
"""
from app.db.base import Base
from app.db.session import engine
import app.models  # noqa: F401  registers every table on Base.metadata


def main():
    Base.metadata.create_all(bind=engine)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
