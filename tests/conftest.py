from datetime import datetime, timedelta, timezone

import pytest

from campusdesk.config import Settings
from campusdesk.core.models import Session
from campusdesk.core.states import Role
from campusdesk.services.workflow import WorkflowService


@pytest.fixture
def settings():
    return Settings(max_laundry_items=5)


@pytest.fixture
def service(settings):
    return WorkflowService(settings=settings)


@pytest.fixture
def requester():
    return Session(actor_id="u1", role=Role.REQUESTER, display_name="Uma")


@pytest.fixture
def other_requester():
    return Session(actor_id="u2", role=Role.REQUESTER)


@pytest.fixture
def handler():
    return Session(actor_id="h1", role=Role.HANDLER)


@pytest.fixture
def auditor():
    return Session(actor_id="admin1", role=Role.AUDITOR)


@pytest.fixture
def s1():
    return Session(actor_id="s1", role=Role.REQUESTER)


@pytest.fixture
def s2():
    return Session(actor_id="s2", role=Role.REQUESTER)


@pytest.fixture
def pickup():
    return datetime.now(timezone.utc) + timedelta(days=1)
