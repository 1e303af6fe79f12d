"""Run the target rollover and expiry sweeps synchronously."""

from __future__ import annotations

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from targets.services import expire_lapsed_targets, rollover_sweep
from targets.tasks import clear_sweep_cancellation, sweep_cancelled


class Command(BaseCommand):
    help = (
        "Roll recurring customer targets into their new period and settle "
        "lapsed non-recurring ones. Safe to re-run."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            default="",
            help="Reference day as YYYY-MM-DD (defaults to today).",
        )
        parser.add_argument(
            "--skip-expire",
            action="store_true",
            help="Only run the rollover sweep.",
        )

    def handle(self, *args, **options):
        raw_date = (options.get("date") or "").strip()
        today = None
        if raw_date:
            try:
                today = date.fromisoformat(raw_date)
            except ValueError:
                raise CommandError(f"Invalid --date: {raw_date!r} (expected YYYY-MM-DD).") from None

        try:
            rollover = rollover_sweep(today, should_stop=sweep_cancelled)
            self.stdout.write(
                f"Rollover: {rollover.processed} processed, {rollover.failed} failed"
                + (" (cancelled)" if rollover.cancelled else "")
            )
            if not options.get("skip_expire") and not rollover.cancelled:
                expiry = expire_lapsed_targets(today, should_stop=sweep_cancelled)
                self.stdout.write(
                    f"Expiry: {expiry.processed} processed, {expiry.failed} failed"
                    + (" (cancelled)" if expiry.cancelled else "")
                )
        finally:
            clear_sweep_cancellation()

        self.stdout.write(self.style.SUCCESS("Done."))
