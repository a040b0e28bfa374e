def register(client, **overrides):
    body = {
        "name": "Nimal Fernando",
        "email": "nimal@woodart.lk",
        "password": "secret123",
        "phone": "0771234567",
        "address": "5 Lake Drive, Colombo",
    }
    body.update(overrides)
    return client.post("/api/register", json=body)


def test_register_returns_token_and_role(client):
    res = register(client, role="designer")
    assert res.status_code == 200
    data = res.json()
    assert data["token"]
    assert data["user"] == {"email": "nimal@woodart.lk", "role": "designer"}


def test_register_twice_conflicts(client):
    register(client)
    res = register(client)
    assert res.status_code == 409
    assert res.json() == {"success": False, "message": "User already exists"}


def test_register_validation_uses_envelope(client):
    res = client.post("/api/register", json={"email": "nimal@woodart.lk"})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["errors"]


def test_login_and_me(client):
    register(client)
    res = client.post("/api/login", json={"email": "nimal@woodart.lk", "password": "secret123"})
    assert res.status_code == 200
    token = res.json()["token"]

    me = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "nimal@woodart.lk"
    assert "password_hash" not in me.json()["user"]


def test_login_with_wrong_password(client):
    register(client)
    res = client.post("/api/login", json={"email": "nimal@woodart.lk", "password": "nope"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_me_requires_token(client):
    assert client.get("/api/me").status_code in (401, 403)
    res = client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_profile_read_and_update(client):
    register(client)
    res = client.get("/api/user/profile", params={"email": "nimal@woodart.lk"})
    assert res.json()["user"]["address"] == "5 Lake Drive, Colombo"

    res = client.put("/api/user/profile", json={"email": "nimal@woodart.lk", "address": "9 Hill St, Kandy"})
    assert res.status_code == 200
    assert res.json()["user"]["address"] == "9 Hill St, Kandy"
    assert "password_hash" not in res.json()["user"]


def test_profile_password_rules(client):
    register(client)
    res = client.put("/api/user/profile", json={"email": "nimal@woodart.lk", "password": "123"})
    assert res.status_code == 400
    client.put("/api/user/profile", json={"email": "nimal@woodart.lk", "password": "newpass1"})
    res = client.post("/api/login", json={"email": "nimal@woodart.lk", "password": "newpass1"})
    assert res.status_code == 200


def test_profile_errors(client):
    assert client.get("/api/user/profile").status_code == 400
    res = client.get("/api/user/profile", params={"email": "ghost@woodart.lk"})
    assert res.status_code == 404


def test_root_probe(client):
    assert client.get("/").json() == {"message": "Wood Art Gallery API running"}
