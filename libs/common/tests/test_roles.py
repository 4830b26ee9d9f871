from __future__ import annotations

import logging

import pytest
from common.roles import ASSIGNABLE_ROLES, Role, landing_path_for, parse_role

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("candidate", Role.CANDIDATE),
        ("recruiter", Role.RECRUITER),
        ("admin", Role.ADMIN),
        (" Recruiter ", Role.RECRUITER),
        (None, Role.UNSET),
        ("", Role.UNSET),
    ],
)
def test_parse_role_reads_known_values(raw: object, expected: Role) -> None:
    assert parse_role(raw) is expected


def test_parse_role_logs_and_treats_unknown_values_as_unset(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.WARNING, logger="hired.common.roles"):
        assert parse_role("superuser") is Role.UNSET
        assert parse_role(42) is Role.UNSET

    events = [record.getMessage() for record in caplog.records]
    assert len(events) == 2
    assert all("role_unrecognized" in event for event in events)


def test_only_candidate_and_recruiter_can_be_self_assigned() -> None:
    assert ASSIGNABLE_ROLES == {Role.CANDIDATE, Role.RECRUITER}
    assert Role.ADMIN not in ASSIGNABLE_ROLES


def test_landing_path_depends_on_role() -> None:
    assert landing_path_for(Role.RECRUITER) == "/post-job"
    assert landing_path_for(Role.CANDIDATE) == "/jobs"
