from celery import Celery
from celery.schedules import crontab

from app_factory import create_app

flask_app = create_app()


def make_celery(app):
    celery = Celery(
        app.import_name,
        broker=app.config["CELERY_BROKER_URL"],
        backend=app.config["CELERY_RESULT_BACKEND"],
        include=["tasks"],
    )

    celery.conf.update(app.config)

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery.Task = ContextTask
    return celery


celery = make_celery(flask_app)

celery.conf.beat_schedule = {
    "sweep-overdue-bookings": {
        "task": "tasks.sweep_overdue_bookings",
        "schedule": crontab(minute=f"*/{flask_app.config['SWEEP_INTERVAL_MINUTES']}"),
    }
}

celery.conf.timezone = "UTC"
