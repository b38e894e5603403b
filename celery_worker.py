from app.celery_app import celery_app as app  # noqa: F401

# celery -A celery_worker worker -Q domains --loglevel=info
# celery -A celery_worker beat --loglevel=info
