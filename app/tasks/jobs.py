from app.tasks.celery_app import celery
from app.tasks import worker_jobs


@celery.task(name="app.tasks.jobs.payment_confirmed")
def payment_confirmed(order_id: int):
    return worker_jobs.handle_payment_confirmed(order_id)


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)


@celery.task(name="app.tasks.jobs.reconcile_stale_payments")
def reconcile_stale_payments():
    return worker_jobs.reconcile_stale_payments()
