"""Pytest configuration and fixtures."""

import pytest

from services.change_propagation.app.router import Collaborators, build_router
from shared.schemas.models import License, Student
from tests.fixtures.mock_services import (
    MockAppStore,
    MockBlobStore,
    MockStudentStore,
    MockTemplateEngine,
    MockUserStore,
)
from tests.fixtures.sample_events import license_record, student_record


@pytest.fixture
def sample_license():
    """License l1 with a single admin."""
    return License.from_dict(license_record())


@pytest.fixture
def sample_students():
    """Two students on license l1 with distinct overrides."""
    return [
        Student.from_dict(student_record("s1", full_year=True, flexible=False)),
        Student.from_dict(student_record("s2", full_year=False, flexible=True, archived=True)),
    ]


@pytest.fixture
def student_store(sample_students):
    return MockStudentStore(sample_students)


@pytest.fixture
def user_store():
    return MockUserStore()


@pytest.fixture
def app_store():
    return MockAppStore()


@pytest.fixture
def template_engine():
    return MockTemplateEngine()


@pytest.fixture
def blob_store():
    return MockBlobStore()


@pytest.fixture
def collaborators(student_store, user_store, app_store, template_engine, blob_store):
    return Collaborators(
        students=student_store,
        users=user_store,
        apps=app_store,
        templates=template_engine,
        blobs=blob_store,
    )


@pytest.fixture
def router(collaborators):
    """Router wired to the in-memory collaborators."""
    return build_router(collaborators)
