from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models import Employee, EmployeeRole


def create_test_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def add_employee(
    db: Session,
    full_name: str = "Aiko Tanaka",
    *,
    role: EmployeeRole = EmployeeRole.EMPLOYEE,
    is_active: bool = True,
) -> Employee:
    employee = Employee(full_name=full_name, role=role, is_active=is_active)
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee
