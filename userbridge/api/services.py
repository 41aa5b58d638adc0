"""Per-application service container shared by the blueprints."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from userbridge.config.settings import AppConfig
from userbridge.core.login_service import LoginService
from userbridge.core.provisioning_service import ClientFactory, ProvisioningService
from userbridge.core.role_service import RoleManagementService
from userbridge.store import Database, LocalUserService

EXTENSION_KEY = "userbridge"


@dataclass
class Services:
    database: Database
    local_users: LocalUserService
    provisioning: ProvisioningService
    roles: RoleManagementService
    login: LoginService


def build_services(
    cfg: AppConfig,
    database: Optional[Database] = None,
    admin_client_factory: Optional[ClientFactory] = None,
    login_client_factory=None,
) -> Services:
    database = database or Database(cfg.database_url)
    local_users = LocalUserService(database)
    return Services(
        database=database,
        local_users=local_users,
        provisioning=ProvisioningService(cfg, local_users, admin_client_factory),
        roles=RoleManagementService(cfg, admin_client_factory),
        login=LoginService(cfg, local_users, login_client_factory),
    )


def services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
