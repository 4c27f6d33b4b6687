"""Tests for groupmigrate.provisioning.exchange."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from groupmigrate.config import ExchangeConfig
from groupmigrate.provisioning.exchange import ExchangeError, ExchangeOnlineClient, ps_quote

RUN = "groupmigrate.provisioning.exchange.subprocess.run"


def _completed(stdout="", stderr="", returncode=0):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


@pytest.fixture
def exo_config():
    return ExchangeConfig(
        organization="contoso.onmicrosoft.com",
        app_id="app-1",
        certificate_path="/certs/exo.pfx",
        certificate_password="pfx-pass",
    )


@pytest.fixture
def client(exo_config):
    return ExchangeOnlineClient(exo_config)


def _script(run_mock):
    args = run_mock.call_args[0][0]
    assert args[:4] == ["pwsh", "-NoProfile", "-NonInteractive", "-Command"]
    return args[4]


def test_ps_quote_doubles_single_quotes():
    assert ps_quote("O'Brien") == "'O''Brien'"


def test_connect_command_with_certificate_file(client):
    cmd = client._build_connect_command()
    assert "-CertificateFilePath '/certs/exo.pfx'" in cmd
    assert "ConvertTo-SecureString -String 'pfx-pass'" in cmd
    assert "-Organization 'contoso.onmicrosoft.com'" in cmd


def test_connect_command_with_thumbprint():
    config = ExchangeConfig(organization="contoso.com", app_id="a", certificate_thumbprint="ABC")
    cmd = ExchangeOnlineClient(config)._build_connect_command()
    assert "-CertificateThumbprint 'ABC'" in cmd
    assert "CertificateFilePath" not in cmd


def test_connect_command_requires_certificate():
    client = ExchangeOnlineClient(ExchangeConfig(organization="contoso.com", app_id="a"))
    with pytest.raises(ExchangeError, match="certificate"):
        client._build_connect_command()


def test_get_group_returns_none_when_absent(client):
    with patch(RUN, return_value=_completed("")) as run:
        assert client.get_group("MESG-Sales") is None
    assert "Get-DistributionGroup -Identity 'MESG-Sales'" in _script(run)


def test_get_group_parses_json_after_noise(client):
    payload = {
        "Identity": "MESG-Sales",
        "DisplayName": "MESG-Sales",
        "PrimarySmtpAddress": "mesg-sales@contoso.com",
        "RecipientTypeDetails": "MailUniversalSecurityGroup",
    }
    with patch(RUN, return_value=_completed("WARNING: module loaded\n" + json.dumps(payload))):
        group = client.get_group("MESG-Sales")
    assert group.primary_smtp_address == "mesg-sales@contoso.com"
    assert group.group_type == "MailUniversalSecurityGroup"


def test_create_security_group_command(client):
    payload = {"Identity": "MESG-Sales", "DisplayName": "MESG-Sales"}
    with patch(RUN, return_value=_completed(json.dumps(payload))) as run:
        group = client.create_security_group("MESG-Sales", "MESG-Sales", "mesg-sales@contoso.com")
    script = _script(run)
    assert "New-DistributionGroup -Name 'MESG-Sales'" in script
    assert "-Type Security" in script
    assert "-PrimarySmtpAddress 'mesg-sales@contoso.com'" in script
    assert "Disconnect-ExchangeOnline" in script
    assert group.identity == "MESG-Sales"


def test_add_members_maps_errors(client):
    output = {"Added": "a@contoso.com", "Errors": {"b@contoso.com": "Couldn't find object"}}
    with patch(RUN, return_value=_completed(json.dumps(output))) as run:
        result = client.add_members("MESG-Sales", ["a@contoso.com", "b@contoso.com"])
    assert result == {"a@contoso.com": None, "b@contoso.com": "Couldn't find object"}
    assert "already a member" in _script(run)


def test_add_members_empty_list_skips_powershell(client):
    with patch(RUN) as run:
        assert client.add_members("MESG-Sales", []) == {}
    run.assert_not_called()


def test_nonzero_exit_raises(client):
    with patch(RUN, return_value=_completed(stderr="Access denied", returncode=1)):
        with pytest.raises(ExchangeError, match="Access denied"):
            client.get_group("MESG-Sales")


def test_timeout_raises(client):
    with patch(RUN, side_effect=subprocess.TimeoutExpired("pwsh", 120)):
        with pytest.raises(ExchangeError, match="timed out"):
            client.get_group("MESG-Sales")


def test_missing_pwsh_raises(client):
    with patch(RUN, side_effect=FileNotFoundError()):
        with pytest.raises(ExchangeError, match="not found"):
            client.get_group("MESG-Sales")
