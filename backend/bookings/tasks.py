"""Celery tasks for booking background processing."""

from celery import shared_task
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_bookings_task():
    """
    Periodic sweep that expires pending bookings past their expires_at.

    Scheduled by Celery beat every BOOKING_EXPIRY_SWEEP_SECONDS. Expiry is
    idempotent, so overlapping runs (or a lazy expiry from a request) are safe.
    """
    from services.negotiation import expire_overdue_bookings

    now = timezone.now()
    expired = expire_overdue_bookings(now=now)
    logger.info("Expiry sweep at %s expired %d booking(s)", now.isoformat(), expired)
    return expired
