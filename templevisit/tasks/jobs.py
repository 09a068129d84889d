from templevisit.tasks.celery_app import celery
from templevisit.tasks import worker_jobs


@celery.task(name="templevisit.tasks.jobs.expire_pending_bookings")
def expire_pending_bookings():
    return worker_jobs.expire_pending_bookings()
