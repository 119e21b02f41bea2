"""
Celery tasks package.

- notifications: alert fan-out for recorded violations
- households: household location learning from watch history

Run a worker:
    celery -A app.core.celery_app worker -Q default,alerts --beat
"""
