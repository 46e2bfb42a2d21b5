import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import asyncio
import os

# Point the module-level engine at SQLite before database.py is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
from sqlalchemy.pool import NullPool

from database import build_engine, build_session_factory, create_tables


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'scores.db'}", echo=False, poolclass=NullPool)
    asyncio.run(create_tables(engine))
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())
