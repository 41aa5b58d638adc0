"""Keycloak group management operations."""
from __future__ import annotations
import logging
from typing import Optional

from .client import KeycloakClient
from .exceptions import GroupNotFoundError

logger = logging.getLogger(__name__)


class GroupService:
    """Service for managing Keycloak groups."""

    def __init__(self, client: KeycloakClient, realm: str):
        """Initialize group service.

        Args:
            client: Authenticated Keycloak client
            realm: Realm name
        """
        self.client = client
        self.realm = realm

    def get_group_by_name(self, group_name: str) -> Optional[dict]:
        """Retrieve a top-level group whose name matches exactly.

        Keycloak's ``search`` parameter is a substring match, so the result
        is filtered again here.

        Returns:
            Group representation or None if not found
        """
        resp = self.client.get(f"/admin/realms/{self.realm}/groups", params={"search": group_name})
        for group in resp.json() or []:
            if group.get("name") == group_name:
                return group
        return None

    def create_group(self, group_name: str) -> str:
        """Create a group and return its ID.

        Raises:
            GroupNotFoundError: Creation succeeded but the group cannot be read back
        """
        self.client.post(f"/admin/realms/{self.realm}/groups", json={"name": group_name})
        created = self.get_group_by_name(group_name)
        if not created:
            raise GroupNotFoundError(f"Group '{group_name}' not found after creation")
        logger.info("[groups] Group '%s' created (id=%s)", group_name, created["id"])
        return created["id"]

    def ensure_group(self, group_name: str) -> str:
        """Return the id of group_name, creating the group when absent."""
        existing = self.get_group_by_name(group_name)
        if existing:
            return existing["id"]
        return self.create_group(group_name)

    def add_user_to_group(self, user_id: str, group_id: str) -> None:
        self.client.put(f"/admin/realms/{self.realm}/users/{user_id}/groups/{group_id}")

    def assign_groups_to_user(self, user_id: str, group_names: list[str]) -> list[str]:
        """Add the user to every named group, creating missing groups.

        Each group is handled on its own: a failure is logged and the
        remaining groups are still processed.

        Returns:
            Names of the groups the user joined
        """
        joined: list[str] = []
        for name in dict.fromkeys(n for n in group_names if n):
            try:
                group_id = self.ensure_group(name)
                self.add_user_to_group(user_id, group_id)
                joined.append(name)
            except Exception as exc:
                logger.warning("[groups] Adding user %s to group '%s' failed: %s", user_id, name, exc)
        if joined:
            logger.info("[groups] User %s joined %s", user_id, joined)
        return joined

    def get_user_groups(self, user_id: str) -> list[str]:
        """Group names of the user; empty on error."""
        try:
            resp = self.client.get(f"/admin/realms/{self.realm}/users/{user_id}/groups")
            return [group["name"] for group in resp.json() or [] if group.get("name")]
        except Exception as exc:
            logger.warning("[groups] Groups of %s unavailable: %s", user_id, exc)
            return []
