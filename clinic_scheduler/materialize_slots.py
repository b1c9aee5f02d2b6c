"""Materialize bookable slots for every active doctor.

Usage:
    python -m clinic_scheduler.materialize_slots [HORIZON_DAYS]
"""
import logging
import sys

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.database import SessionLocal
from clinic_scheduler.models import appointment, availability, doctor, notification, patient, service, slot, user  # noqa: F401
from clinic_scheduler.scheduling.jobs import materialize_upcoming_slots


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = sys.argv[1:] if argv is None else argv
    horizon_days = int(args[0]) if args else None

    db = SessionLocal()
    try:
        summary = materialize_upcoming_slots(db, horizon_days=horizon_days)
    except SchedulingError as exc:
        print("Slot materialization failed:", exc.detail, file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"{summary['slots_created']} slots created for {summary['doctors']} doctors")
    return 0


if __name__ == "__main__":
    sys.exit(main())
