"""Medical service and procedure catalog definitions."""

from sqlalchemy import Column, Integer, String
from clinic_scheduler.database import Base


class MedicalService(Base):
    __tablename__ = "medical_services"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String)


class MedicalProcedure(Base):
    __tablename__ = "medical_procedures"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String)
