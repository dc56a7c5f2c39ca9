from django.core.management.base import BaseCommand
from django.utils import timezone

from bookings.models import Booking
from services.negotiation import expire_overdue_bookings


class Command(BaseCommand):
    help = "Expire pending bookings that no driver accepted before their expiry time."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the overdue bookings without expiring them.",
        )

    def handle(self, *args, **options):
        now = timezone.now()

        if options["dry_run"]:
            overdue = Booking.objects.overdue(now).order_by("expires_at")
            for booking in overdue:
                self.stdout.write(f"Booking #{booking.id} (passenger {booking.passenger_id}) expired at {booking.expires_at.isoformat()}")
            self.stdout.write(self.style.WARNING(f"{overdue.count()} overdue booking(s); nothing changed (dry run)."))
            return

        expired = expire_overdue_bookings(now=now)
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} booking(s)."))
