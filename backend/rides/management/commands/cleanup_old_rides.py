from django.core.management.base import BaseCommand
from django.utils import timezone
from datetime import timedelta
from rides.models import RideRequest
from services.ride_management import RideRequestStore
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Delete completed/cancelled rides together with their conversations."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=30,
            help="Delete finished rides not touched for this many days (default: 30).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be deleted without actually deleting.",
        )

    def handle(self, *args, **options):
        days = options["days"]
        dry_run = options["dry_run"]
        cutoff = timezone.now() - timedelta(days=days)

        old_ride_ids = list(
            RideRequest.objects.filter(
                updated_at__lt=cutoff,
                status__in=RideRequest.TERMINAL_STATUSES,
            ).values_list("id", flat=True)
        )
        rides_count = len(old_ride_ids)

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f"DRY RUN: Would delete {rides_count} finished rides older than {days} days."
                )
            )
            return

        store = RideRequestStore()
        for ride_id in old_ride_ids:
            store.delete(ride_id)

        logger.info("Cleaned up %s finished rides", rides_count)
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {rides_count} finished rides older than {days} days."
            )
        )
