from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date
from loyalty.services import process_birthday_rewards


class Command(BaseCommand):
    help = "Grant birthday bonus points to members whose birthday is today"

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='Run for this date (YYYY-MM-DD) instead of today',
        )

    def handle(self, *args, **options):
        date = None
        if options.get('date'):
            date = parse_date(options['date'])
            if date is None:
                raise CommandError(f"Invalid date '{options['date']}', expected YYYY-MM-DD")

        rewarded = process_birthday_rewards(date)
        if rewarded:
            self.stdout.write(self.style.SUCCESS(f"Granted birthday rewards to {rewarded} member(s)"))
        else:
            self.stdout.write("No birthdays to celebrate")
