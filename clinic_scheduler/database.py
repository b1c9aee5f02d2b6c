from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(config.DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False

SCHEDULING_INDEXES = {
    'appointments': [
        'CREATE INDEX IF NOT EXISTS idx_appointments_doctor ON appointments(doctor_id)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_datetime ON appointments(appointment_datetime)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)',
    ],
    'doctor_availability': [
        'CREATE INDEX IF NOT EXISTS idx_doctor_availability_doctor_day ON doctor_availability(doctor_id, day_of_week)',
    ],
    'schedule_blocks': [
        'CREATE INDEX IF NOT EXISTS idx_schedule_blocks_doctor ON schedule_blocks(doctor_id, start_datetime)',
    ],
    'appointment_slots': [
        'CREATE INDEX IF NOT EXISTS idx_appointment_slots_doctor_date ON appointment_slots(doctor_id, date)',
    ],
    'notifications': [
        'CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id)',
        'CREATE INDEX IF NOT EXISTS idx_notifications_status ON notifications(status)',
    ],
}


def ensure_scheduling_schema(bind=None) -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        target = bind if bind is not None else engine
        existing_tables = set(inspect(target).get_table_names())

        with target.begin() as connection:
            for table_name, statements in SCHEDULING_INDEXES.items():
                if table_name not in existing_tables:
                    continue
                for statement in statements:
                    connection.execute(text(statement))

        _scheduling_schema_checked = True
