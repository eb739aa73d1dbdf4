import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from formconsult.database import Base  # noqa: E402
from formconsult.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from formconsult.models.company import Company  # noqa: E402
from formconsult.models.notification import Notification  # noqa: E402
from formconsult.models.user import User, UserRole  # noqa: E402
from formconsult.services.actor import Actor  # noqa: E402

TABLES = [Company.__table__, User.__table__, Appointment.__table__, Notification.__table__]


class RecordingEmitter:
    def __init__(self) -> None:
        self.events = []

    def emit(self, event) -> None:
        self.events.append(event)


@pytest.fixture
def appointment_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


def actor_for(user: User) -> Actor:
    return Actor.build(user.id, user.role, user.company_id)


@pytest.fixture
def people(appointment_db):
    acme = Company(id='acme', name='Acme')
    globex = Company(id='globex', name='Globex')
    users = {
        'employee': User(id='employee-1', email='employee@acme.test', name='Eve', role='EMPLOYE', company_id='acme'),
        'colleague': User(id='employee-2', email='colleague@acme.test', name='Carl', role='EMPLOYE', company_id='acme'),
        'admin': User(id='admin-1', email='admin@acme.test', name='Ada', role='ADMIN_ENTREPRISE', company_id='acme'),
        'other_admin': User(
            id='admin-2', email='admin@globex.test', name='Otto', role='ADMIN_ENTREPRISE', company_id='globex'
        ),
        'super_admin': User(id='root-1', email='root@formconsult.test', name='Root', role='SUPER_ADMIN'),
        'consultant': User(
            id='consultant-7',
            email='c7@formconsult.test',
            name='Claire',
            role='CONSULTANT',
            specialties=['Management', 'RH'],
            is_available=True,
            rating=4.5,
            success_rate=0.9,
        ),
        'busy_consultant': User(
            id='consultant-3',
            email='c3@formconsult.test',
            name='Bruno',
            role='CONSULTANT',
            specialties=['Finance'],
            is_available=False,
            rating=4.9,
            success_rate=0.95,
        ),
        'trainer': User(id='trainer-1', email='trainer@formconsult.test', name='Tom', role='FORMATEUR'),
    }
    appointment_db.add_all([acme, globex, *users.values()])
    appointment_db.commit()
    return SimpleNamespace(
        users=users,
        **{name: actor_for(user) for name, user in users.items()},
    )


@pytest.fixture
def make_appointment(appointment_db, people):
    def _make(
        status: AppointmentStatus = AppointmentStatus.PENDING,
        consultant_id: str | None = None,
        scheduled_at: datetime = datetime(2026, 3, 2, 10, 0),
        **fields,
    ) -> Appointment:
        if consultant_id is None and status in (
            AppointmentStatus.ASSIGNED,
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.COMPLETED,
        ):
            consultant_id = 'consultant-7'
        appointment = Appointment(
            title=fields.pop('title', 'Coaching managérial'),
            description=fields.pop('description', 'Accompagnement équipe'),
            scheduled_at=scheduled_at,
            duration=fields.pop('duration', 60),
            status=status.value,
            requester_id=fields.pop('requester_id', 'employee-1'),
            company_id=fields.pop('company_id', 'acme'),
            consultant_id=consultant_id,
            completed_at=datetime(2026, 3, 2, 11, 0) if status is AppointmentStatus.COMPLETED else None,
            created_at=datetime(2026, 2, 1, 9, 0),
            updated_at=datetime(2026, 2, 1, 9, 0),
            **fields,
        )
        appointment_db.add(appointment)
        appointment_db.commit()
        appointment_db.refresh(appointment)
        return appointment

    return _make


def snapshot(db, appointment_id: str) -> dict:
    db.expire_all()
    row = db.query(Appointment).filter(Appointment.id == appointment_id).one()
    return {column.name: getattr(row, column.name) for column in Appointment.__table__.columns}


@pytest.fixture
def record_snapshot(appointment_db):
    return lambda appointment_id: snapshot(appointment_db, appointment_id)
