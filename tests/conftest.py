import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from clinic_finance import create_app
from clinic_finance.database import create_schema, drop_schema, get_session
from clinic_finance.models import Appointment, Doctor, Patient
from clinic_finance.services.payment_service import PaymentService

# Reference date every service sees during the tests
TODAY = date(2026, 3, 15)


def fixed_clock():
    return TODAY


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    app.config['FINANCE_CLOCK'] = fixed_clock
    return app


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema for every test, inside an application context."""
    with app.app_context():
        create_schema()
        yield
        get_session().remove()
        drop_schema()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session shared with the request handlers."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture(scope='function')
def patient(session):
    patient = Patient(name='Maria Souza', cpf='123.456.789-00', phone='+55 11 99999-0000')
    session.add(patient)
    session.commit()
    return patient


@pytest.fixture(scope='function')
def doctor(session):
    doctor = Doctor(name='Dr. Carlos Lima')
    session.add(doctor)
    session.commit()
    return doctor


@pytest.fixture(scope='function')
def appointment(session, patient, doctor):
    appointment = Appointment(
        scheduled_at=datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc),
        value=Decimal('250.00'),
        patient_id=patient.id,
        doctor_id=doctor.id
    )
    session.add(appointment)
    session.commit()
    return appointment


@pytest.fixture(scope='function')
def other_appointment(session, patient, doctor):
    appointment = Appointment(
        scheduled_at=datetime(2026, 3, 12, 9, 30, tzinfo=timezone.utc),
        value=Decimal('180.00'),
        patient_id=patient.id,
        doctor_id=doctor.id
    )
    session.add(appointment)
    session.commit()
    return appointment


@pytest.fixture
def payment_service(session):
    return PaymentService(session, clock=fixed_clock)


@pytest.fixture
def make_payment(payment_service, appointment):
    """Factory creating payments against the default appointment."""
    def _make(**overrides):
        data = {
            'appointment_id': appointment.id,
            'amount': '250.00',
            'payment_method': 'pix',
        }
        data.update(overrides)
        return payment_service.create(data)
    return _make
