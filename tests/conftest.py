import os
from datetime import date, time
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models.appointment import Appointment  # noqa: E402,F401
from clinic_scheduler.models.availability import AvailabilityWindow  # noqa: E402
from clinic_scheduler.models.doctor import Doctor, MedicalCenter  # noqa: E402
from clinic_scheduler.models.notification import Notification  # noqa: E402,F401
from clinic_scheduler.models.patient import Patient  # noqa: E402
from clinic_scheduler.models.service import MedicalProcedure, MedicalService  # noqa: E402
from clinic_scheduler.models.slot import Slot  # noqa: E402,F401
from clinic_scheduler.models.user import User  # noqa: E402

# 2026-01-05 is a Monday; day_of_week 1 in the Sunday-first numbering.
MONDAY = date(2026, 1, 5)
MONDAY_INDEX = 1


def seed_clinic(db) -> SimpleNamespace:
    """Insert a center, a doctor with a Monday 09:00-10:00 window, two patients and a service."""
    center = MedicalCenter(name='Centro Norte', address='Av. Principal 100', type='clinic')
    doctor_user = User(email='doctor@clinic.test', hashed_password='', role='doctor')
    patient_user = User(email='ana@example.test', hashed_password='', role='patient')
    other_user = User(email='luis@example.test', hashed_password='', role='patient')
    admin_user = User(email='admin@clinic.test', hashed_password='', role='admin')
    db.add_all([center, doctor_user, patient_user, other_user, admin_user])
    db.flush()

    doctor = Doctor(
        user_id=doctor_user.id,
        medical_center_id=center.id,
        first_name='Marta',
        last_name='Rojas',
        phone='555-0100',
        is_active=True,
    )
    patient = Patient(user_id=patient_user.id, first_name='Ana', last_name='Perez', phone='555-0101')
    other_patient = Patient(user_id=other_user.id, first_name='Luis', last_name='Gomez', phone='555-0102')
    service = MedicalService(name='Cardiology', description='Heart checkups')
    procedure = MedicalProcedure(name='Electrocardiogram')
    db.add_all([doctor, patient, other_patient, service, procedure])
    db.flush()

    window = AvailabilityWindow(
        doctor_id=doctor.id,
        day_of_week=MONDAY_INDEX,
        start_time=time(9, 0),
        end_time=time(10, 0),
    )
    db.add(window)
    db.commit()

    return SimpleNamespace(
        center=center,
        doctor=doctor,
        doctor_user=doctor_user,
        patient=patient,
        patient_user=patient_user,
        other_patient=other_patient,
        other_user=other_user,
        admin_user=admin_user,
        service=service,
        procedure=procedure,
        window=window,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clinic(db):
    return seed_clinic(db)


@pytest.fixture
def clinic_factory():
    return seed_clinic
