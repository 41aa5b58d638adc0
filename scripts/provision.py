"""Command-line wrapper around the provisioning and role workflows.

Examples:
    python scripts/provision.py create-user --username alice --email alice@example.com --password S3cret!
    python scripts/provision.py assign-roles --username alice --role manager --replace
    python scripts/provision.py verify-audit
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from userbridge.config import load_settings
from userbridge.core import audit
from userbridge.core.errors import ServiceError
from userbridge.core.models import ProvisioningRequest
from userbridge.core.provisioning_service import ProvisioningService
from userbridge.core.role_service import RoleManagementService
from userbridge.store import Database, LocalUserService


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="userbridge provisioning helper")
    parser.add_argument("--operator", default="cli",
                        help="Operator identifier for audit logs (default: cli)")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="cmd")

    cu = sub.add_parser("create-user", help="Provision a user in Keycloak and the local store")
    cu.add_argument("--username", required=True)
    cu.add_argument("--email", required=True)
    cu.add_argument("--password", required=True)
    cu.add_argument("--first")
    cu.add_argument("--last")
    cu.add_argument("--role", dest="roles", action="append", default=[])
    cu.add_argument("--group", dest="groups", action="append", default=[])
    cu.add_argument("--disabled", action="store_true")

    cs = sub.add_parser("create-system-user", help="Provision a system-integration account")
    cs.add_argument("--username", required=True)
    cs.add_argument("--email", required=True)
    cs.add_argument("--password", required=True)

    cr = sub.add_parser("create-role", help="Create one realm role")
    cr.add_argument("--name", required=True)
    cr.add_argument("--description", default="")

    sub.add_parser("create-default-roles", help="Create admin/user/manager")

    ar = sub.add_parser("assign-roles", help="Assign realm roles to an existing user")
    ar.add_argument("--username", required=True)
    ar.add_argument("--role", dest="roles", action="append", required=True)
    ar.add_argument("--replace", action="store_true", help="Remove current realm roles first")

    sr = sub.add_parser("show-roles", help="Print the role snapshot of a user")
    sr.add_argument("--username", required=True)

    sub.add_parser("verify-audit", help="Verify the audit log signatures")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s %(message)s",
    )

    if not args.cmd:
        parser.print_help()
        return 1

    if args.cmd == "verify-audit":
        total, valid = audit.verify_audit_log()
        print(f"Audit log: {valid}/{total} events with valid signatures")
        return 0 if total == valid else 1

    cfg = load_settings()

    if args.cmd in {"create-user", "create-system-user"}:
        store = LocalUserService(Database(cfg.database_url))
        store.database.create_all()
        service = ProvisioningService(cfg, store)
        if args.cmd == "create-user":
            request = ProvisioningRequest(
                username=args.username,
                email=args.email,
                password=args.password,
                first_name=args.first,
                last_name=args.last,
                enabled=not args.disabled,
                roles=args.roles,
                groups=args.groups,
            )
            result = service.provision_user(request, operator=args.operator)
        else:
            result = service.provision_system_account(
                args.username, args.email, args.password, operator=args.operator
            )
        _print(result.to_dict())
        return 0 if result.success else 1

    roles = RoleManagementService(cfg)
    try:
        if args.cmd == "create-role":
            _print(roles.create_role(args.name, args.description, operator=args.operator).to_dict())
        elif args.cmd == "create-default-roles":
            _print(roles.create_default_roles(operator=args.operator))
        elif args.cmd == "assign-roles":
            _print(roles.assign_roles(args.username, args.roles, args.replace, operator=args.operator).to_dict())
        elif args.cmd == "show-roles":
            _print(roles.get_user_roles(args.username).to_dict())
    except ServiceError as exc:
        _print(exc.to_dict())
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
