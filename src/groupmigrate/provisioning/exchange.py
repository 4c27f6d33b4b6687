"""Exchange Online PowerShell client.

Runs ExchangeOnlineManagement cmdlets through ``pwsh`` to look up and create
mail-enabled security groups and to add members to them. Authentication is
app-only with a certificate:

- an app registration with the ``Exchange.ManageAsApp`` permission
- the "Exchange Recipient Administrator" role assigned to the app
- a .pfx certificate file (any platform) or an installed certificate
  thumbprint (Windows)
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from ..config import ExchangeConfig
from ..errors import DirectoryServiceError
from ..models import ExchangeGroup

logger = logging.getLogger(__name__)

GROUP_FIELDS = "Identity, DisplayName, PrimarySmtpAddress, RecipientTypeDetails"


class ExchangeError(DirectoryServiceError):
    """A PowerShell invocation against Exchange Online failed."""


def ps_quote(value: str) -> str:
    """Quote *value* as a PowerShell single-quoted literal."""
    return "'" + value.replace("'", "''") + "'"


def _as_list(value: Any) -> list[Any]:
    # ConvertTo-Json collapses one-element arrays to a scalar
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class ExchangeOnlineClient:
    """Client for Exchange Online PowerShell operations."""

    def __init__(self, config: ExchangeConfig, pwsh: str = "pwsh") -> None:
        self.config = config
        self.pwsh = pwsh

    def _build_connect_command(self) -> str:
        """Build the Connect-ExchangeOnline command (banner suppressed)."""
        cfg = self.config
        if cfg.certificate_path:
            password = ""
            if cfg.certificate_password:
                password = (
                    "-CertificatePassword (ConvertTo-SecureString "
                    f"-String {ps_quote(cfg.certificate_password)} -AsPlainText -Force) "
                )
            return (
                f"Connect-ExchangeOnline -AppId {ps_quote(cfg.app_id)} "
                f"-CertificateFilePath {ps_quote(cfg.certificate_path)} "
                f"{password}"
                f"-Organization {ps_quote(cfg.organization)} -ShowBanner:$false *>$null"
            )
        if cfg.certificate_thumbprint:
            return (
                f"Connect-ExchangeOnline -AppId {ps_quote(cfg.app_id)} "
                f"-CertificateThumbprint {ps_quote(cfg.certificate_thumbprint)} "
                f"-Organization {ps_quote(cfg.organization)} -ShowBanner:$false *>$null"
            )
        raise ExchangeError("Either a certificate path or a certificate thumbprint is required")

    def _run_powershell(self, commands: list[str]) -> Any:
        """Run *commands* in one connected session and return parsed JSON output.

        Returns None when the script printed nothing.
        """
        script = "; ".join(
            [
                "$ErrorActionPreference = 'Stop'",
                "Import-Module ExchangeOnlineManagement",
                self._build_connect_command(),
                "try { " + "; ".join(commands) + " } "
                "finally { Disconnect-ExchangeOnline -Confirm:$false *>$null }",
            ]
        )
        logger.debug("PowerShell: %s", "; ".join(commands))

        try:
            result = subprocess.run(  # noqa: S603
                [self.pwsh, "-NoProfile", "-NonInteractive", "-Command", script],
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExchangeError(f"PowerShell timed out after {self.config.timeout:.0f}s") from e
        except FileNotFoundError as e:
            raise ExchangeError(
                f"PowerShell ({self.pwsh}) not found. Install PowerShell 7+."
            ) from e

        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip()
            raise ExchangeError(
                f"PowerShell error: {message[:500] or f'exit code {result.returncode}'}"
            )

        output = (result.stdout or "").strip()
        if not output:
            return None
        # Anything printed before the JSON document is module noise
        start = min((i for i in (output.find("{"), output.find("[")) if i != -1), default=-1)
        if start == -1:
            raise ExchangeError(f"Unexpected PowerShell output: {output[:200]}")
        try:
            return json.loads(output[start:])
        except json.JSONDecodeError as e:
            raise ExchangeError(f"Could not parse PowerShell output: {output[:200]}") from e

    @staticmethod
    def _to_group(data: Any, fallback: str) -> ExchangeGroup:
        if not isinstance(data, dict):
            raise ExchangeError(f"Unexpected group payload for {fallback}: {data!r}")
        return ExchangeGroup(
            identity=str(data.get("Identity") or fallback),
            display_name=str(data.get("DisplayName") or fallback),
            primary_smtp_address=str(data.get("PrimarySmtpAddress") or ""),
            group_type=str(data.get("RecipientTypeDetails") or "MailUniversalSecurityGroup"),
        )

    def get_group(self, identity: str) -> ExchangeGroup | None:
        """Get a distribution or mail-enabled security group, or None if absent."""
        commands = [
            f"$group = Get-DistributionGroup -Identity {ps_quote(identity)} "
            "-ErrorAction SilentlyContinue",
            f"if ($group) {{ $group | Select-Object {GROUP_FIELDS} | ConvertTo-Json -Compress }}",
        ]
        result = self._run_powershell(commands)
        if result is None:
            return None
        return self._to_group(result, identity)

    def create_security_group(
        self,
        name: str,
        alias: str,
        primary_smtp_address: str | None = None,
    ) -> ExchangeGroup:
        """Create a mail-enabled security group."""
        cmd = (
            f"New-DistributionGroup -Name {ps_quote(name)} -DisplayName {ps_quote(name)} "
            f"-Alias {ps_quote(alias)} -Type Security"
        )
        if primary_smtp_address:
            cmd += f" -PrimarySmtpAddress {ps_quote(primary_smtp_address)}"

        result = self._run_powershell(
            [f"$group = {cmd}", f"$group | Select-Object {GROUP_FIELDS} | ConvertTo-Json -Compress"]
        )
        group = self._to_group(result, name)
        logger.info("  Created mail-enabled security group: %s", group.display_name)
        return group

    def add_members(self, identity: str, members: list[str]) -> dict[str, str | None]:
        """Add members in one session.

        Returns a mapping of member to error message, None meaning added (or
        already a member).
        """
        if not members:
            return {}

        commands = ["$added = @()", "$errors = @{}"]
        for member in members:
            quoted = ps_quote(member)
            commands.append(
                "try { "
                f"Add-DistributionGroupMember -Identity {ps_quote(identity)} -Member {quoted} "
                "-BypassSecurityGroupManagerCheck -ErrorAction Stop; "
                f"$added += {quoted} "
                "} catch { "
                f"if ($_.Exception.Message -like '*already a member*') {{ $added += {quoted} }} "
                f"else {{ $errors[{quoted}] = $_.Exception.Message }} "
                "}"
            )
        commands.append("@{ Added = $added; Errors = $errors } | ConvertTo-Json -Compress -Depth 3")

        result = self._run_powershell(commands)
        if not isinstance(result, dict):
            raise ExchangeError(f"Unexpected add-member output for {identity}: {result!r}")

        added = {str(m) for m in _as_list(result.get("Added"))}
        errors = result.get("Errors") or {}
        if not isinstance(errors, dict):
            errors = {}

        outcome: dict[str, str | None] = {}
        for member in members:
            if member in added:
                outcome[member] = None
            else:
                outcome[member] = str(errors.get(member) or "not added")
        return outcome
