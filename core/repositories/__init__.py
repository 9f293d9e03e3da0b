"""Storage interfaces and their in-memory and PostgreSQL implementations."""

from core.repositories.base import AppointmentRepository, ProfileRepository, TaskRepository
from core.repositories.memory import InMemoryStore
from core.repositories.postgres import PostgresStore
