from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

ROOT = Path(__file__).resolve().parents[1]


def _scripts() -> ScriptDirectory:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return ScriptDirectory.from_config(cfg)


def test_single_linear_history():
    scripts = _scripts()
    assert scripts.get_heads() == ["0003_catalogue_reviews"]
    chain = [rev.revision for rev in scripts.walk_revisions()]
    assert chain == ["0003_catalogue_reviews", "0002_webhooks_messages_audit", "0001_initial"]


def test_revision_ids_fit_default_version_table():
    # alembic_version.version_num is VARCHAR(32) unless something widens it.
    for rev in _scripts().walk_revisions():
        assert len(rev.revision) <= 32, rev.revision


def test_env_runs_no_ddl_of_its_own():
    env = (ROOT / "alembic" / "env.py").read_text()
    assert "ALTER TABLE" not in env
    assert "CREATE TABLE" not in env
