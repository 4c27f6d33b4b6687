"""Shared fixtures: an in-memory directory and a fixed clock."""

from datetime import datetime, timezone

import pytest

from groupmigrate.errors import MemberDetailUnavailableError

FIXED_TIME = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)


class FakeDirectory:
    """In-memory stand-in for the Graph client.

    groups:   display name -> list of group ids (more than one = ambiguous)
    members:  group id -> list of member ids
    users:    member id -> detail dict; absent ids raise MemberDetailUnavailableError
    failures: method name -> exception raised on every call
    """

    def __init__(self, groups=None, members=None, users=None, failures=None):
        self.groups = groups or {}
        self.members = members or {}
        self.users = users or {}
        self.failures = failures or {}
        self.calls = []

    def _maybe_fail(self, method, arg):
        self.calls.append((method, arg))
        exc = self.failures.get((method, arg)) or self.failures.get(method)
        if exc is not None:
            raise exc

    def find_groups_by_name(self, name):
        self._maybe_fail("find_groups_by_name", name)
        return [{"id": gid, "displayName": name} for gid in self.groups.get(name, [])]

    def list_group_members(self, group_id):
        self._maybe_fail("list_group_members", group_id)
        for member_id in self.members.get(group_id, []):
            yield {"id": member_id}

    def get_member_detail(self, member_id):
        self._maybe_fail("get_member_detail", member_id)
        if member_id not in self.users:
            raise MemberDetailUnavailableError(
                f"No readable user object for member {member_id}", member_id=member_id
            )
        return self.users[member_id]


def make_user(member_id, name):
    return {
        "id": member_id,
        "displayName": name.title(),
        "principalName": f"{name}@contoso.com",
        "email": f"{name}@contoso.com",
        "jobTitle": "Engineer",
        "department": "Sales",
        "company": "Contoso",
    }


@pytest.fixture
def clock():
    return lambda: FIXED_TIME


@pytest.fixture
def sales_directory():
    """'Sales' has two members, one of which cannot be read; 'Dup' is ambiguous."""
    return FakeDirectory(
        groups={"Sales": ["g-sales"], "Dup": ["g-dup-1", "g-dup-2"], "Empty": ["g-empty"]},
        members={"g-sales": ["u-alice", "u-foreign"], "g-empty": []},
        users={"u-alice": make_user("u-alice", "alice")},
    )
