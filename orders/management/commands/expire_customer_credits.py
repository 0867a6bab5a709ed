from django.core.management.base import BaseCommand, CommandError

from authentication.models import Cafe
from orders.payments import expire_credits


class Command(BaseCommand):
    help = 'Post expiry debits for store credit past its expiry date'

    def add_arguments(self, parser):
        parser.add_argument(
            '--cafe',
            help='Only expire credit at the cafe with this slug',
        )

    def handle(self, *args, **options):
        cafe = None
        if options.get('cafe'):
            cafe = Cafe.objects.filter(slug=options['cafe']).first()
            if cafe is None:
                raise CommandError(f"No cafe with slug '{options['cafe']}'")

        expired = expire_credits(cafe=cafe)
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} credit entr{'y' if expired == 1 else 'ies'}"))
