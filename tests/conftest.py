from __future__ import annotations

import pytest

from skilltimeline.domain.timeline import ReferenceDirectories
from tests.support.timeline import sample_directory


@pytest.fixture
def directories() -> ReferenceDirectories:
    fake = sample_directory()
    return ReferenceDirectories.from_records(
        users=fake.users, organizations=fake.organizations, skills=fake.skills
    )
