from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from valence.core.config import settings
from valence.db.session import make_engine, make_session_factory


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "valence",
    broker=_redis_url,
    backend=_redis_url,
    include=["valence.tasks.jobs"],
)

celery.conf.timezone = "UTC"

celery.conf.beat_schedule = {
    "process-email-queue-every-2-minutes": {
        "task": "valence.tasks.jobs.process_email_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}

# Worker-side session factory; the worker process owns it like create_app owns the API's.
session_factory = make_session_factory(make_engine(settings.DATABASE_URL))
