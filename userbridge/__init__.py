"""userbridge: Keycloak-backed user provisioning with a local user mirror.

To build the Flask app:
    from userbridge.flask_app import create_app

To use Keycloak services:
    from userbridge.core.keycloak import UserService, KeycloakClient

To provision outside of HTTP:
    from userbridge.core.provisioning_service import ProvisioningService
"""
# flask_app is not imported here so the CLI and the Keycloak library load without Flask
