from django.core.management.base import BaseCommand, CommandError
import logging

from authentication.models import Cafe
from inventory.services import evaluate_cafe_alerts, alerts_summary

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Re-evaluate stock alerts (low, out, overstock, expiry) for every active inventory item'

    def add_arguments(self, parser):
        parser.add_argument(
            '--cafe',
            help='Only check the cafe with this slug',
        )

    def handle(self, *args, **options):
        slug = options.get('cafe')
        cafes = Cafe.objects.filter(status='ACTIVE')
        if slug:
            cafes = cafes.filter(slug=slug)
            if not cafes.exists():
                raise CommandError(f"No active cafe with slug '{slug}'")

        self.stdout.write("Checking inventory alerts...")
        total_raised = 0
        for cafe in cafes:
            raised = evaluate_cafe_alerts(cafe)
            total_raised += raised
            summary = alerts_summary(cafe)
            self.stdout.write(
                f"{cafe.slug}: {raised} new alert(s), {summary['open_alerts']} open "
                f"({summary['critical_alerts']} critical)"
            )

        if total_raised:
            self.stdout.write(self.style.WARNING(f"Raised {total_raised} new inventory alerts"))
        else:
            self.stdout.write(self.style.SUCCESS("No new inventory alerts"))
        logger.info(f"Inventory alert check finished: {total_raised} raised")
