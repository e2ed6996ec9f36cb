from django.core.management.base import BaseCommand

from agrolab.services.reconcile import reconcile_completed_orders


class Command(BaseCommand):
    help = "Generate reports for orders whose samples are all test-completed"

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None)

    def handle(self, *args, **options):
        outcome = reconcile_completed_orders(limit=options["limit"])

        self.stdout.write(
            f"checked={outcome['checked']} "
            f"completed={len(outcome['completed'])} "
            f"failed={len(outcome['failed'])}"
        )
        for failure in outcome["failed"]:
            self.stderr.write(f"order {failure['order_id']}: {failure['error']}")
