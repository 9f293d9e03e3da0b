"""Shared test fixtures for the scheduling test suite."""

import pytest
from datetime import timedelta
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.config import SchedulingConfig
from core.event_bus import EventBus
from core.handlers import register_notification_handlers
from core.models import Role
from core.notifications import InMemoryNotificationSink
from core.repositories import InMemoryStore
from core.services import build_services
from utils.timezone import now_utc
from utils.user_context import acting_as, clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

CUSTOMER_ID = UUID("00000000-0000-0000-0000-000000000001")
CUSTOMER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
ADMIN_ID = UUID("00000000-0000-0000-0000-00000000000a")
TECHNICIAN_ID = UUID("00000000-0000-0000-0000-0000000000c1")
TECHNICIAN_B_ID = UUID("00000000-0000-0000-0000-0000000000c2")
PENDING_TECHNICIAN_ID = UUID("00000000-0000-0000-0000-0000000000c3")


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


# =============================================================================
# STORE AND SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def bus(sink):
    bus = EventBus()
    register_notification_handlers(bus, sink)
    return bus


@pytest.fixture
def config():
    """Auto-approve booking with the standard slot list."""
    return SchedulingConfig()


@pytest.fixture
def services(store, bus, config):
    return build_services(store, bus, config)


# =============================================================================
# PROFILE FIXTURES
# =============================================================================


@pytest.fixture
def customer(services):
    return services.profiles.provision(CUSTOMER_ID, "Casey Customer", phone="555-0101")


@pytest.fixture
def customer_b(services):
    return services.profiles.provision(CUSTOMER_B_ID, "Blake Customer")


@pytest.fixture
def admin(services):
    return services.profiles.provision(ADMIN_ID, "Alex Admin", role=Role.ADMIN)


@pytest.fixture
def technician(services, admin):
    """Approved technician."""
    services.profiles.provision(TECHNICIAN_ID, "Toni Technician", role=Role.TECHNICIAN)
    with acting_as(admin.user_id):
        return services.profiles.approve_technician(admin, TECHNICIAN_ID)


@pytest.fixture
def technician_b(services, admin):
    services.profiles.provision(TECHNICIAN_B_ID, "Bo Technician", role=Role.TECHNICIAN)
    with acting_as(admin.user_id):
        return services.profiles.approve_technician(admin, TECHNICIAN_B_ID)


@pytest.fixture
def pending_technician(services):
    """Technician still waiting for admin approval."""
    return services.profiles.provision(PENDING_TECHNICIAN_ID, "Pat Pending", role=Role.TECHNICIAN)


# =============================================================================
# BOOKING FIXTURES
# =============================================================================


@pytest.fixture
def future_date():
    return now_utc().date() + timedelta(days=7)


@pytest.fixture
def booking_form(future_date):
    """A valid customer booking form, as the front end posts it."""
    return {
        "date": future_date.isoformat(),
        "time": "9:00 AM",
        "vehicleMake": "Toyota",
        "vehicleModel": "Corolla",
        "vehicleYear": 2018,
        "fault": "Grinding noise when braking",
        "reason": "Brake inspection",
    }


@pytest.fixture
def booked(services, customer, booking_form):
    """An approved appointment at 9:00 AM, booked by the customer."""
    with acting_as(customer.user_id):
        return services.appointments.book(customer, booking_form).appointment


@pytest.fixture
def manual_services(store, bus):
    """Services in manual-review booking mode."""
    return build_services(store, bus, SchedulingConfig(booking_mode="manual_review"))


@pytest.fixture
def pending(manual_services, customer, booking_form):
    """A pending appointment awaiting admin review."""
    with acting_as(customer.user_id):
        return manual_services.appointments.book(customer, booking_form).appointment
