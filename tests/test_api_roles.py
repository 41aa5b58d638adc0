"""HTTP tests for /roles."""
import pytest


def test_create_role(client, fake_keycloak):
    response = client.post("/roles/create", json={"roleName": "auditor", "description": "Reads logs"})

    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["roleName"] == "auditor"
    assert body["roleId"] == "role-auditor"
    assert body["description"] == "Reads logs"


def test_create_existing_role(client, fake_keycloak):
    response = client.post("/roles/create", json={"roleName": "admin"})
    assert response.status_code == 409
    body = response.get_json()
    assert body["success"] is False
    assert body["errorCode"] == "ProviderConflict"


def test_create_role_requires_name(client, fake_keycloak):
    response = client.post("/roles/create", json={"description": "nameless"})
    assert response.status_code == 400
    assert fake_keycloak.calls == []


def test_create_defaults_twice(client, fake_keycloak):
    for name in ("admin", "user", "manager"):
        fake_keycloak.realm_roles.pop(name)

    first = client.post("/roles/create-defaults")
    second = client.post("/roles/create-defaults")

    assert first.status_code == 200
    assert set(first.get_json()["roles"].values()) == {"created"}
    assert set(second.get_json()["roles"].values()) == {"exists"}


def test_create_defaults_without_admin_token(client, fake_keycloak):
    fake_keycloak.unreachable = True
    response = client.post("/roles/create-defaults")
    assert response.status_code == 500
    assert response.get_json()["success"] is False


def test_assign_roles(client, fake_keycloak):
    user_id = fake_keycloak.add_user("alice")
    response = client.post("/roles/assign", json={"username": "alice", "roles": ["manager"]})

    assert response.status_code == 200
    assert response.get_json()["assignedRoles"] == ["manager"]
    assert fake_keycloak.realm_mappings[user_id] == ["manager"]


def test_assign_roles_replacing_existing(client, fake_keycloak):
    user_id = fake_keycloak.add_user("alice")
    fake_keycloak.realm_mappings[user_id] = ["user"]

    response = client.post("/roles/assign",
                           json={"username": "alice", "roles": "admin", "removeExistingRoles": "true"})

    assert response.status_code == 200
    assert fake_keycloak.realm_mappings[user_id] == ["admin"]


def test_assign_roles_unknown_user(client, fake_keycloak):
    response = client.post("/roles/assign", json={"username": "ghost", "roles": ["user"]})
    assert response.status_code == 404
    assert response.get_json()["errorCode"] == "NotFound"


def test_assign_roles_empty_list(client, fake_keycloak):
    response = client.post("/roles/assign", json={"username": "alice", "roles": []})
    assert response.status_code == 400


def test_user_roles_snapshot(client, fake_keycloak):
    user_id = fake_keycloak.add_user("alice")
    fake_keycloak.realm_mappings[user_id] = ["admin"]
    fake_keycloak.client_mappings[user_id] = ["manage-account"]

    response = client.get("/roles/user/alice")

    assert response.status_code == 200
    body = response.get_json()
    assert body["realmRoles"] == ["admin"]
    assert body["clientRoles"] == ["manage-account"]
    assert body["groups"] == []
    assert body["hasAdminRole"] is True


def test_user_roles_unknown_user(client, fake_keycloak):
    response = client.get("/roles/user/ghost")
    assert response.status_code == 404
    assert response.get_json()["error"] == "NotFound"


def test_roles_admin_health_down(client, fake_keycloak):
    fake_keycloak.admin_password = "rotated"
    response = client.get("/roles/admin/health")
    assert response.status_code == 503


@pytest.mark.parametrize("path, body", [
    ("/roles/create", ["auditor"]),
    ("/roles/create", {"roleName": 5}),
    ("/roles/assign", ["alice", "manager"]),
    ("/roles/assign", {"username": "alice", "roles": [1]}),
    ("/roles/assign", {"username": ["alice"], "roles": ["manager"]}),
])
def test_malformed_role_bodies_are_rejected(client, fake_keycloak, path, body):
    response = client.post(path, json=body)
    assert response.status_code == 400
    assert fake_keycloak.calls == []
