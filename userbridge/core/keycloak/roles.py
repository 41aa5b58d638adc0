"""Keycloak role management operations."""
from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from userbridge.core.models import UserRoleSnapshot

from .client import KeycloakClient
from .exceptions import KeycloakAPIError, KeycloakError, RoleAlreadyExistsError
from .groups import GroupService

logger = logging.getLogger(__name__)

DEFAULT_ROLES = (
    ("admin", "Administrator - full access to every feature"),
    ("user", "Regular user - access to the basic features"),
    ("manager", "Manager - intermediate management permissions"),
)

MAX_LOOKUP_WORKERS = 8


def _mapping(role: dict) -> dict:
    return {"id": role["id"], "name": role["name"]}


class RoleService:
    """Service for managing realm roles and the role mappings of users."""

    def __init__(self, client: KeycloakClient, realm: str, role_client_id: str = "account"):
        """Initialize role service.

        Args:
            client: Authenticated Keycloak client
            realm: Realm name
            role_client_id: clientId whose client roles are assignable and reported
                (``account`` owns manage-account / delete-account)
        """
        self.client = client
        self.realm = realm
        self.role_client_id = role_client_id

    # ─────────────────────────────────────────────────────────────────────
    # Role definitions
    # ─────────────────────────────────────────────────────────────────────
    def create_role(self, role_name: str, description: str = "") -> str:
        """Create a realm role and return its id.

        Raises:
            RoleAlreadyExistsError: Keycloak answered 409
            KeycloakAPIError: Any other HTTP failure
        """
        payload = {"name": role_name, "description": description}
        try:
            self.client.post(f"/admin/realms/{self.realm}/roles", json=payload)
        except KeycloakAPIError as exc:
            if exc.status_code == 409:
                logger.warning("[roles] Role '%s' already exists", role_name)
                raise RoleAlreadyExistsError(role_name) from exc
            raise

        role = self.client.get(f"/admin/realms/{self.realm}/roles/{role_name}").json()
        logger.info("[roles] Role '%s' created (id=%s)", role_name, role.get("id"))
        return role.get("id")

    def create_default_roles(self) -> dict[str, str]:
        """Create admin/user/manager; never raises.

        Each role is attempted independently. Re-running is safe: existing
        roles are reported as ``exists``.

        Returns:
            Mapping of role name to ``created`` / ``exists`` / ``failed``
        """
        outcome: dict[str, str] = {}
        for name, description in DEFAULT_ROLES:
            try:
                self.create_role(name, description)
                outcome[name] = "created"
            except RoleAlreadyExistsError:
                outcome[name] = "exists"
            except Exception as exc:
                logger.error("[roles] Default role '%s' could not be created: %s", name, exc)
                outcome[name] = "failed"
        logger.info("[roles] Default roles processed: %s", outcome)
        return outcome

    def get_realm_role(self, role_name: str) -> Optional[dict]:
        """Return the realm role representation, or None when it cannot be resolved."""
        try:
            return self.client.get(f"/admin/realms/{self.realm}/roles/{role_name}").json()
        except KeycloakError as exc:
            logger.warning("[roles] Realm role '%s' not resolvable: %s", role_name, exc)
            return None

    def get_role_client_uuid(self) -> Optional[str]:
        """Resolve the internal id of the role client (``account`` by default)."""
        resp = self.client.get(f"/admin/realms/{self.realm}/clients", params={"clientId": self.role_client_id})
        for client in resp.json() or []:
            if client.get("clientId") == self.role_client_id:
                return client.get("id")
        return None

    def _get_client_role_definitions(self) -> tuple[Optional[str], list[dict]]:
        try:
            client_uuid = self.get_role_client_uuid()
            if not client_uuid:
                logger.warning("[roles] Client '%s' not found in realm '%s'", self.role_client_id, self.realm)
                return None, []
            roles = self.client.get(f"/admin/realms/{self.realm}/clients/{client_uuid}/roles").json() or []
            return client_uuid, roles
        except KeycloakError as exc:
            logger.warning("[roles] Client roles of '%s' not resolvable: %s", self.role_client_id, exc)
            return None, []

    # ─────────────────────────────────────────────────────────────────────
    # Assignment
    # ─────────────────────────────────────────────────────────────────────
    def resolve_roles(self, role_names: list[str]) -> tuple[list[dict], Optional[str], list[dict]]:
        """Resolve role names to descriptors.

        Realm roles are looked up concurrently; names that are not realm roles
        are then matched against the role client's roles. Unresolvable names
        are skipped with a warning.

        Returns:
            (realm role descriptors, role client uuid, client role descriptors)
        """
        names = list(dict.fromkeys(n for n in role_names if n))
        if not names:
            return [], None, []

        with ThreadPoolExecutor(max_workers=min(MAX_LOOKUP_WORKERS, len(names))) as pool:
            found = list(pool.map(self.get_realm_role, names))

        realm_roles = [role for role in found if role and role.get("id")]
        resolved = {role["name"] for role in realm_roles}
        missing = [name for name in names if name not in resolved]

        client_uuid, client_roles = None, []
        if missing:
            client_uuid, definitions = self._get_client_role_definitions()
            by_name = {role.get("name"): role for role in definitions}
            for name in missing:
                if name in by_name:
                    client_roles.append(by_name[name])
                else:
                    logger.warning("[roles] Role '%s' does not exist, skipping", name)
        return realm_roles, client_uuid, client_roles

    def assign_roles_to_user(self, user_id: str, role_names: list[str]) -> list[str]:
        """Assign the resolvable subset of role_names to the user.

        Realm roles go out in one batch, client roles in another. The batches
        are independent: a failed batch is logged and the other one is still
        sent. An empty resolved set is a no-op.

        Returns:
            Names of the roles Keycloak accepted
        """
        realm_roles, client_uuid, client_roles = self.resolve_roles(role_names)
        if not realm_roles and not client_roles:
            logger.warning("[roles] No assignable roles among %s", role_names)
            return []

        assigned: list[str] = []
        if realm_roles:
            assigned.extend(self._post_mappings(
                f"/admin/realms/{self.realm}/users/{user_id}/role-mappings/realm", realm_roles, user_id,
            ))
        if client_roles:
            assigned.extend(self._post_mappings(
                f"/admin/realms/{self.realm}/users/{user_id}/role-mappings/clients/{client_uuid}",
                client_roles,
                user_id,
            ))

        logger.info("[roles] Assigned %s to user %s", assigned, user_id)
        return assigned

    def _post_mappings(self, path: str, roles: list[dict], user_id: str) -> list[str]:
        names = [role["name"] for role in roles]
        try:
            self.client.post(path, json=[_mapping(role) for role in roles])
        except KeycloakError as exc:
            logger.warning("[roles] Mapping %s to user %s failed: %s", names, user_id, exc)
            return []
        return names

    def remove_user_realm_roles(self, user_id: str) -> None:
        """Remove every realm role currently mapped to the user; never raises."""
        try:
            current = self.get_user_realm_roles(user_id)
            if not current:
                return
            with ThreadPoolExecutor(max_workers=min(MAX_LOOKUP_WORKERS, len(current))) as pool:
                roles = [role for role in pool.map(self.get_realm_role, current) if role and role.get("id")]
            if not roles:
                return
            self.client.delete(
                f"/admin/realms/{self.realm}/users/{user_id}/role-mappings/realm",
                json=[_mapping(role) for role in roles],
            )
            logger.info("[roles] Removed realm roles %s from user %s", [r["name"] for r in roles], user_id)
        except Exception as exc:
            logger.warning("[roles] Removing existing roles of %s failed (ignored): %s", user_id, exc)

    def replace_user_realm_roles(self, user_id: str, role_names: list[str]) -> list[str]:
        """Drop the user's current realm roles, then assign role_names."""
        self.remove_user_realm_roles(user_id)
        return self.assign_roles_to_user(user_id, role_names)

    # ─────────────────────────────────────────────────────────────────────
    # Read side
    # ─────────────────────────────────────────────────────────────────────
    def get_user_realm_roles(self, user_id: str) -> list[str]:
        """Realm role names of the user; empty on error."""
        try:
            resp = self.client.get(f"/admin/realms/{self.realm}/users/{user_id}/role-mappings/realm")
            return [role["name"] for role in resp.json() or [] if role.get("name")]
        except Exception as exc:
            logger.warning("[roles] Realm roles of %s unavailable: %s", user_id, exc)
            return []

    def get_user_client_roles(self, user_id: str) -> list[str]:
        """Role client role names of the user; empty on error."""
        try:
            client_uuid = self.get_role_client_uuid()
            if not client_uuid:
                return []
            resp = self.client.get(
                f"/admin/realms/{self.realm}/users/{user_id}/role-mappings/clients/{client_uuid}"
            )
            return [role["name"] for role in resp.json() or [] if role.get("name")]
        except Exception as exc:
            logger.warning("[roles] Client roles of %s unavailable: %s", user_id, exc)
            return []

    def get_user_role_snapshot(
        self, user_id: str, username: str, groups: Optional[GroupService] = None
    ) -> UserRoleSnapshot:
        """Collect realm roles, role client roles and groups of a user.

        The three reads run concurrently and each one degrades to an empty
        list, so a snapshot is always returned.
        """
        groups = groups or GroupService(self.client, self.realm)
        with ThreadPoolExecutor(max_workers=3) as pool:
            realm_future = pool.submit(self.get_user_realm_roles, user_id)
            client_future = pool.submit(self.get_user_client_roles, user_id)
            group_future = pool.submit(groups.get_user_groups, user_id)
            return UserRoleSnapshot(
                username=username,
                keycloak_user_id=user_id,
                realm_roles=realm_future.result(),
                client_roles=client_future.result(),
                groups=group_future.result(),
            )
