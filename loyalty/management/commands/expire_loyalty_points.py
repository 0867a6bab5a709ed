from django.core.management.base import BaseCommand
import logging

from loyalty.services import expire_points, expire_redemptions

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Expire earned loyalty points and unused reward redemptions that are past their expiry date'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-redemptions',
            action='store_true',
            help='Only expire points, leave redemptions alone',
        )

    def handle(self, *args, **options):
        self.stdout.write("Expiring loyalty points...")
        expired = expire_points()
        self.stdout.write(f"Expired {expired} points transaction(s)")

        if not options['skip_redemptions']:
            redemptions = expire_redemptions()
            self.stdout.write(f"Expired {redemptions} reward redemption(s)")

        self.stdout.write(self.style.SUCCESS("Loyalty expiry finished"))
        logger.info(f"Loyalty expiry run: {expired} transaction(s) expired")
