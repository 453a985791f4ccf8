from valence.tasks.celery_app import celery, session_factory
from valence.tasks import worker_jobs


@celery.task(name="valence.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(session_factory, limit=limit)
