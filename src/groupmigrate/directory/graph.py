"""Microsoft Graph client for Entra ID groups and users."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

import msal
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import ConfigError, DirectoryServiceError, MemberDetailUnavailableError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

USER_SELECT = "id,displayName,userPrincipalName,mail,jobTitle,department,companyName"

# Objects Graph refuses to describe as users: foreign principals, devices,
# nested groups, deleted or hidden accounts.
_UNAVAILABLE_STATUSES = {403, 404}

_REDACTED_HEADERS = {"Authorization", "authorization"}


def odata_escape(value: str) -> str:
    """Escape a literal for an OData ``$filter`` (single quotes are doubled)."""
    return value.replace("'", "''")


def msal_token_provider(tenant_id: str, client_id: str, client_secret: str) -> Callable[[], str]:
    """Build a callable returning an app-only Graph access token.

    MSAL keeps the token in its in-memory cache, so calling the provider
    before every request only reaches the token endpoint on expiry.

    Raises:
        ConfigError: the tenant's authority could not be validated.
        DirectoryServiceError: the authority endpoint was unreachable.
    """
    authority = f"https://login.microsoftonline.com/{tenant_id}"
    # The constructor performs authority discovery over the network
    try:
        app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )
    except ValueError as e:
        raise ConfigError(f"Invalid Graph tenant {tenant_id!r}: {e}") from e
    except requests.RequestException as e:
        raise DirectoryServiceError(f"Could not reach {authority}: {e}") from e

    def _acquire() -> str:
        result = app.acquire_token_for_client(scopes=GRAPH_SCOPE)
        if "access_token" not in result:
            raise DirectoryServiceError(
                "Token acquisition failed: "
                f"{result.get('error', 'unknown_error')}: {result.get('error_description', '')}"
            )
        token: str = result["access_token"]
        return token

    return _acquire


class GraphDirectoryClient:
    """Read groups and users from Microsoft Graph."""

    def __init__(
        self,
        token_provider: Callable[[], str],
        base_url: str = GRAPH_BASE_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        # Throttling only; the pipeline itself never retries a failed call
        retry = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 503, 504],
            allowed_methods=["GET"],
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        """Make an API request; transport failures become DirectoryServiceError."""
        url = self._url(path)
        headers = {"Authorization": f"Bearer {self._token_provider()}"}
        safe_headers = {
            k: ("***REDACTED***" if k in _REDACTED_HEADERS else v)
            for k, v in {**self.session.headers, **headers}.items()
        }
        logger.debug("API %s %s params=%s headers=%s", method, url, params, safe_headers)

        try:
            resp = self.session.request(
                method, url, params=params, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DirectoryServiceError(f"{method} {url} failed: {e}") from e

        if resp.status_code == 401:
            raise DirectoryServiceError(
                "Authentication failed (HTTP 401). Check the Graph app registration.",
                status_code=401,
            )
        if resp.status_code >= 400:
            logger.debug(
                "API error: %s %s -> %d: %s",
                method,
                url,
                resp.status_code,
                resp.text[:500],
            )
        return resp

    def _paginate(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Iterator[dict[str, Any]]:
        """Yield every item of a collection, following ``@odata.nextLink``."""
        url: str | None = path
        while url:
            resp = self._request("GET", url, params=params)
            self._raise_for_status(resp)
            payload = resp.json()
            yield from payload.get("value", [])
            url = payload.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code >= 400:
            raise DirectoryServiceError(
                f"Graph returned HTTP {resp.status_code}: {_graph_error_message(resp)}",
                status_code=resp.status_code,
            )

    # -- Groups ---------------------------------------------------------------

    def find_groups_by_name(self, name: str) -> list[dict[str, Any]]:
        """Fetch all groups whose displayName equals *name*."""
        params = {
            "$filter": f"displayName eq '{odata_escape(name)}'",
            "$select": "id,displayName",
            "$top": "999",
        }
        return [
            {"id": g["id"], "displayName": g.get("displayName", "")}
            for g in self._paginate("/groups", params)
        ]

    def list_group_members(self, group_id: str) -> Iterator[dict[str, Any]]:
        """Yield the direct members of a group (nested groups are not expanded)."""
        params = {"$select": "id", "$top": "999"}
        for member in self._paginate(f"/groups/{group_id}/members", params):
            yield {"id": member["id"], "type": member.get("@odata.type", "")}

    # -- Users ----------------------------------------------------------------

    def get_member_detail(self, member_id: str) -> dict[str, Any]:
        """Fetch user attributes for one member id."""
        resp = self._request("GET", f"/users/{member_id}", params={"$select": USER_SELECT})
        if resp.status_code in _UNAVAILABLE_STATUSES:
            raise MemberDetailUnavailableError(
                f"No readable user object for member {member_id}: {_graph_error_message(resp)}",
                member_id=member_id,
                status_code=resp.status_code,
            )
        self._raise_for_status(resp)
        user = resp.json()
        return {
            "id": user.get("id", member_id),
            "displayName": user.get("displayName") or "",
            "principalName": user.get("userPrincipalName") or "",
            "email": user.get("mail") or "",
            "jobTitle": user.get("jobTitle") or "",
            "department": user.get("department") or "",
            "company": user.get("companyName") or "",
        }


def _graph_error_message(resp: requests.Response) -> str:
    """Pull the error message out of a Graph error body, falling back to raw text."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return f"{error.get('code', '')}: {error.get('message', '')}".strip(": ")
    return resp.text[:500]
