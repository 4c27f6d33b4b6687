"""Tests for groupmigrate.provisioning.provisioner."""

from conftest import FIXED_TIME
from groupmigrate.errors import ErrorKind
from groupmigrate.models import ExchangeGroup, MemberRecord, OutcomeStatus
from groupmigrate.provisioning import ExchangeError, GroupProvisioner, make_alias


class FakeMailClient:
    def __init__(self, existing=None, add_errors=None, fail_create=None):
        self.existing = existing or {}
        self.add_errors = add_errors or {}
        self.fail_create = fail_create
        self.created = []
        self.added = {}

    def get_group(self, identity):
        return self.existing.get(identity)

    def create_security_group(self, name, alias, primary_smtp_address=None):
        if self.fail_create:
            raise self.fail_create
        self.created.append((name, alias, primary_smtp_address))
        return ExchangeGroup(identity=name, display_name=name)

    def add_members(self, identity, members):
        self.added[identity] = list(members)
        return {m: self.add_errors.get(m) for m in members}


def _record(group, member_id, email="", upn=""):
    return MemberRecord(
        group_name=group,
        group_id=f"g-{group.lower()}",
        display_name=member_id,
        principal_name=upn,
        email=email,
        job_title="",
        department="",
        company="",
        member_id=member_id,
        export_timestamp=FIXED_TIME,
    )


def _clock():
    return FIXED_TIME


def test_make_alias():
    assert make_alias("MESG-Sales & Marketing (EU)") == "MESG-SalesMarketingEU"
    assert make_alias(".hidden.") == "hidden"
    assert len(make_alias("x" * 100)) == 64


def test_creates_group_and_adds_members():
    client = FakeMailClient()
    provisioner = GroupProvisioner(client, "MESG-", "@contoso.com", clock=_clock)
    result = provisioner.provision_all(
        [
            _record("Sales", "u-1", email="Alice@contoso.com"),
            _record("Sales", "u-2", upn="bob@contoso.com"),
            _record("Sales", "u-1", email="alice@contoso.com"),
        ]
    )

    assert client.created == [("MESG-Sales", "MESG-Sales", "MESG-Sales@contoso.com")]
    assert client.added["MESG-Sales"] == ["alice@contoso.com", "bob@contoso.com"]
    outcome = result.outcomes[0]
    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.created
    assert outcome.members_added == 2
    assert outcome.message == "Created group, added 2 of 2 member(s)"
    assert result.groups_created == 1
    assert result.started_at == FIXED_TIME


def test_reuses_existing_group():
    existing = ExchangeGroup("MESG-Sales-id", "MESG-Sales", "mesg-sales@contoso.com")
    client = FakeMailClient(existing={"MESG-Sales": existing})
    result = GroupProvisioner(client, "MESG-", clock=_clock).provision_all(
        [_record("Sales", "u-1", email="a@contoso.com")]
    )
    assert client.created == []
    assert client.added == {"MESG-Sales-id": ["a@contoso.com"]}
    assert result.outcomes[0].message == "Updated existing group, added 1 of 1 member(s)"
    assert not result.outcomes[0].created


def test_dry_run_makes_no_changes():
    client = FakeMailClient()
    result = GroupProvisioner(client, clock=_clock).provision_all(
        [_record("Sales", "u-1", email="a@contoso.com"), _record("HR", "u-2", email="b@x.com")],
        dry_run=True,
    )
    assert client.created == []
    assert client.added == {}
    assert result.dry_run
    assert [o.source_group for o in result.outcomes] == ["Sales", "HR"]
    assert result.outcomes[0].message == "Would create group and add 1 member(s)"


def test_member_without_address_is_skipped():
    client = FakeMailClient()
    result = GroupProvisioner(client, clock=_clock).provision_all(
        [_record("Sales", "u-1", email="a@contoso.com"), _record("Sales", "u-2")]
    )
    assert [s.member_id for s in result.skipped] == ["u-2"]
    assert result.skipped[0].reason == "No email or UPN"
    assert result.outcomes[0].members_added == 1


def test_failed_member_add_is_recorded():
    client = FakeMailClient(add_errors={"b@contoso.com": "Couldn't find object"})
    result = GroupProvisioner(client, clock=_clock).provision_all(
        [
            _record("Sales", "u-1", email="a@contoso.com"),
            _record("Sales", "u-2", email="b@contoso.com"),
        ]
    )
    outcome = result.outcomes[0]
    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.message == "Created group, added 1 of 2 member(s)"
    skipped = result.skipped[0]
    assert skipped.member_id == "u-2"
    assert skipped.error_kind is ErrorKind.TRANSIENT_SERVICE_ERROR


def test_group_error_is_contained():
    client = FakeMailClient(fail_create=ExchangeError("Access denied"))
    result = GroupProvisioner(client, clock=_clock).provision_all(
        [_record("Sales", "u-1", email="a@x.com"), _record("HR", "u-2", email="b@x.com")]
    )
    assert [o.status for o in result.outcomes] == [OutcomeStatus.ERROR, OutcomeStatus.ERROR]
    assert result.outcomes[0].message == "Access denied"
    assert result.outcomes[0].error_kind is ErrorKind.TRANSIENT_SERVICE_ERROR
    assert result.failed_groups == 2
