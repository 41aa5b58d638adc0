"""Core workflows, independent of Flask.

Module Structure:
    - keycloak/               : Keycloak token endpoint and Admin API client
    - provisioning_service.py : Remote-first user provisioning with local mirror
    - login_service.py        : DB-first login
    - role_service.py         : Role creation, assignment and snapshots
    - errors.py               : Error taxonomy and provider error classification
    - models.py               : Request/result dataclasses
    - audit.py                : Signed audit trail
    - rbac.py                 : Role helpers over token claims
    - validators.py           : Input validation

Modules are not auto-imported; import what you need explicitly:
    from userbridge.core.provisioning_service import ProvisioningService
    from userbridge.core.errors import ServiceError
"""
