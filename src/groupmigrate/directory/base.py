"""Interface the export pipeline needs from an identity directory."""

from collections.abc import Iterator
from typing import Any, Protocol


class DirectoryClient(Protocol):
    """Read-only view of groups and their members."""

    def find_groups_by_name(self, name: str) -> list[dict[str, Any]]:
        """Return every group whose display name equals *name* exactly."""
        ...

    def list_group_members(self, group_id: str) -> Iterator[dict[str, Any]]:
        """Yield the direct members of a group, each with at least an ``id``."""
        ...

    def get_member_detail(self, member_id: str) -> dict[str, Any]:
        """Return the attributes of one member.

        Raises:
            MemberDetailUnavailableError: the object is missing or unreadable.
        """
        ...
