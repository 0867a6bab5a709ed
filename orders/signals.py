# Order events other apps subscribe to (loyalty accrual, kitchen displays)
from django.dispatch import Signal, receiver
import logging

logger = logging.getLogger(__name__)

# kwargs: order, user
order_created = Signal()

# kwargs: order, old_status, new_status, user
order_status_changed = Signal()

# kwargs: payment, order
payment_processed = Signal()


@receiver(order_status_changed)
def log_status_change(sender, order, old_status, new_status, **kwargs):
    logger.debug(f"Order {order.order_number} event: {old_status} -> {new_status}")
