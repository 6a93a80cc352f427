import os
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("LOG_DIR", "./logs/test")

from rms.common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from rms.common.auth import create_user_token, get_password_hash  # noqa: E402
from rms.common.database import Base, SessionLocal, engine  # noqa: E402
from rms.common.models import Building, Resource, ResourceType, RoleEnum, User  # noqa: E402
from rms.services.bookings.app import app as bookings_app  # noqa: E402
from rms.services.inventory.app import app as inventory_app  # noqa: E402
from rms.services.inventory.app import resource_type_cache  # noqa: E402
from rms.services.maintenance.app import app as maintenance_app  # noqa: E402
from rms.services.users.app import app as users_app  # noqa: E402

PASSWORD = "Passw0rd!"


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    resource_type_cache.invalidate()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def inventory_client() -> Generator[TestClient, None, None]:
    with TestClient(inventory_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def maintenance_client() -> Generator[TestClient, None, None]:
    with TestClient(maintenance_app) as client:
        yield client


@pytest.fixture()
def make_user(db_session) -> Callable[..., User]:
    def factory(email: str, role: RoleEnum = RoleEnum.STUDENT, name: str = "Test User") -> User:
        user = User(name=name, email=email, role=role, hashed_password=get_password_hash(PASSWORD))
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture()
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_header


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("admin@rms.com", RoleEnum.ADMIN, name="Admin")


@pytest.fixture()
def employee(make_user) -> User:
    return make_user("employee@rms.com", RoleEnum.EMPLOYEE, name="Employee")


@pytest.fixture()
def student(make_user) -> User:
    return make_user("student@rms.com", RoleEnum.STUDENT, name="Student")


@pytest.fixture()
def admin_headers(admin) -> dict[str, str]:
    return auth_header(admin)


@pytest.fixture()
def employee_headers(employee) -> dict[str, str]:
    return auth_header(employee)


@pytest.fixture()
def student_headers(student) -> dict[str, str]:
    return auth_header(student)


@pytest.fixture()
def resource(db_session) -> Resource:
    building = Building(building_name="Main Building", building_number="A", total_floors=5)
    resource_type = ResourceType(type_name="Classroom")
    room = Resource(resource_name="Room 101", building=building, resource_type=resource_type, floor_number=1)
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room
