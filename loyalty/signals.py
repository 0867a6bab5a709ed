from django.db.models.signals import post_save
from django.dispatch import receiver
import logging

from authentication.models import Cafe
from orders.signals import order_status_changed
from . import services

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Cafe)
def seed_loyalty_tiers(sender, instance, created, raw=False, **kwargs):
    if created and not raw:
        services.seed_default_tiers(instance)


@receiver(order_status_changed)
def award_points_on_completion(sender, order, new_status, **kwargs):
    """Loyalty failures must never block the status change itself"""
    if new_status != 'COMPLETED':
        return
    try:
        services.award_points_for_order(order)
    except Exception as e:
        logger.error(f"Failed to award loyalty points for order {order.order_number}: {e}", exc_info=True)
