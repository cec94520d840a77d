"""
Reschedule notifications

Publishes the "rescheduling required" event consumed by the external
forward scheduler after a displacement run, and re-publishes any event
whose first delivery failed. Delivery is at-least-once; the consumer
must treat a repeated event as a no-op.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from celery import Celery, Task
from decouple import config
from flask import current_app

from app.error_handlers.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    'cnc_scheduler',
    broker=config('CELERY_BROKER_URL', default='redis://localhost:6379/0'),
    backend=config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
)

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # 4 minute soft limit
    broker_connection_retry_on_startup=True,
)


class FlaskTask(Task):
    """Custom Celery task that runs within Flask app context"""
    _app = None

    def __call__(self, *args, **kwargs):
        if self._app is None:
            from app import create_app
            self._app = create_app()

        with self._app.app_context():
            return super().__call__(*args, **kwargs)


celery_app.Task = FlaskTask


BACKEND_CELERY = 'celery'
BACKEND_MEMORY = 'memory'


class RescheduleNotifier:
    """
    Sends reschedule-required events

    The celery backend sends a task message by name so the consumer can
    live in another service. The memory backend keeps payloads in
    ``sent`` and is used by tests.
    """

    def __init__(self, backend: str = BACKEND_CELERY, task_name: str = 'scheduling.reschedule_required',
                 queue: Optional[str] = 'rescheduling'):
        if backend not in (BACKEND_CELERY, BACKEND_MEMORY):
            raise ConfigurationException(f'Unknown reschedule notifier backend: {backend}')
        self.backend = backend
        self.task_name = task_name
        self.queue = queue
        self.sent: List[Dict[str, Any]] = []

    @classmethod
    def from_config(cls, app_config):
        return cls(
            backend=app_config.get('RESCHEDULE_NOTIFIER', BACKEND_CELERY),
            task_name=app_config.get('RESCHEDULE_TASK_NAME', 'scheduling.reschedule_required'),
            queue=app_config.get('RESCHEDULE_QUEUE', 'rescheduling'),
        )

    def init_app(self, app):
        app.extensions['reschedule_notifier'] = self

    def publish(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Publish one event

        Returns:
            The Celery task id, or None for the memory backend
        """
        if self.backend == BACKEND_MEMORY:
            self.sent.append(payload)
            logger.info(f"Recorded reschedule notification for log {payload.get('displacement_log_id')}")
            return None

        result = celery_app.send_task(self.task_name, kwargs={'payload': payload}, queue=self.queue)
        logger.info(f"Published reschedule notification {result.id} for log {payload.get('displacement_log_id')}")
        return result.id


def get_notifier(app=None) -> RescheduleNotifier:
    """Notifier registered on the app by create_app()"""
    app = app or current_app
    return app.extensions['reschedule_notifier']


def mark_sent(log):
    log.notification_sent = True
    log.notification_sent_at = datetime.utcnow()


def republish_pending_notifications(db_session, models, notifier: RescheduleNotifier, limit: int = 100) -> int:
    """
    Re-send notifications of completed displacement runs that were never delivered

    Returns:
        Number of notifications sent
    """
    DisplacementLog = models['DisplacementLog']
    pending = db_session.query(DisplacementLog).filter(
        DisplacementLog.execution_status == DisplacementLog.STATUS_COMPLETED,
        DisplacementLog.notification_sent.is_(False),
        DisplacementLog.notification_payload.isnot(None)
    ).order_by(DisplacementLog.id).limit(limit).all()

    sent = 0
    for log in pending:
        try:
            notifier.publish(log.notification_payload)
        except Exception as e:
            logger.warning(f"Republish failed for displacement log {log.id}: {e}")
            continue
        mark_sent(log)
        db_session.commit()
        sent += 1

    if pending:
        logger.info(f"Republished {sent} of {len(pending)} pending reschedule notifications")
    return sent


@celery_app.task(bind=True, name='reschedule.sweep_pending_notifications', max_retries=3, default_retry_delay=60)
def sweep_pending_notifications(self):
    """Background task that re-sends undelivered reschedule notifications"""
    from app.extensions import db
    from app.models import get_models

    try:
        republished = republish_pending_notifications(db.session, get_models(), get_notifier())
        return {'success': True, 'republished': republished}
    except Exception as e:
        logger.error(f"Notification sweep failed: {e}", exc_info=True)
        raise self.retry(exc=e)


# Worker deployments run the sweep from `celery beat`; single-process
# deployments use the APScheduler job in setup_background_tasks() instead.
celery_app.conf.beat_schedule = {
    'sweep-pending-reschedule-notifications': {
        'task': 'reschedule.sweep_pending_notifications',
        'schedule': float(config('NOTIFICATION_SWEEP_INTERVAL_SECONDS', default=60, cast=int)),
    },
}
