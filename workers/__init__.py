# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# the side effects of bookings: notifications, emails, outbound webhooks.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions
# - dispatch.py: Fire-and-forget enqueue helpers used by the services
# - config.py: Worker-specific settings
#
# Usage:
#   # Start worker
#   celery -A workers.celery_app worker --loglevel=info -Q default,notifications
#
#   # Or use the console script
#   start-worker
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
