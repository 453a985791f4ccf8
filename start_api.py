#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
Ensures tables exist before seed and app start.
"""
import logging
import os
import sys

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# 1) Wait for DB
import wait_for_db  # noqa: F401

# 2) Run migrations using the same settings as the app
from valence.core.config import settings
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed with an engine created *after* migrations
from valence.db.session import make_engine, make_session_factory
from valence.seed import run as run_seed

seed_engine = make_engine(settings.DATABASE_URL)
seed_db = make_session_factory(seed_engine)()
try:
    run_seed(seed_db)
finally:
    seed_db.close()
    seed_engine.dispose()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "valence.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
