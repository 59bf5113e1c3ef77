from datetime import timedelta


def auth_header(t):
    return {"Authorization": f"Bearer {t}"}


def _login(client, email="new.user@example.org", google_id="g-1"):
    return client.post(
        "/api/auth/google",
        json={"email": email, "name": "New User", "picture": "http://pic", "googleId": google_id},
    )


def test_google_login_creates_user_and_token(client):
    r = _login(client)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["user"]["email"] == "new.user@example.org"
    assert body["user"]["role"] == "user"
    assert body["expiresAt"]

    p = client.get("/api/auth/profile", headers=auth_header(body["token"]))
    assert p.status_code == 200
    assert p.json()["user"]["name"] == "New User"
    assert p.json()["user"]["status"] == "active"


def test_google_login_updates_existing_user(client):
    first = _login(client).json()
    r = client.post(
        "/api/auth/google",
        json={"email": "new.user@example.org", "name": "Renamed", "googleId": "g-2"},
    )
    assert r.status_code == 200
    assert r.json()["user"]["user_id"] == first["user"]["user_id"]
    assert r.json()["user"]["name"] == "Renamed"


def test_configured_email_becomes_super_admin(client):
    r = _login(client, email="root.admin@example.org")
    assert r.json()["user"]["role"] == "super_admin"


def test_google_login_requires_email_and_google_id(client):
    assert client.post("/api/auth/google", json={"email": "a@example.org"}).status_code == 400
    assert client.post("/api/auth/google", json={"googleId": "g"}).status_code == 400


def test_inactive_user_cannot_login(client, make_token):
    make_token("gone@example.org", status="inactive")
    assert _login(client, email="gone@example.org").status_code == 403


def test_missing_or_bad_token_is_401(client):
    assert client.get("/api/auth/profile").status_code == 401
    assert client.get("/api/auth/profile", headers=auth_header("nope")).status_code == 401
    assert client.get("/api/filters").status_code == 401


def test_expired_token_is_401(client, make_token):
    token, _ = make_token("old@example.org", expires_in=timedelta(hours=-1))
    assert client.get("/api/auth/profile", headers=auth_header(token)).status_code == 401


def test_logout_invalidates_token(client):
    token = _login(client).json()["token"]
    r = client.post("/api/auth/logout", headers=auth_header(token))
    assert r.status_code == 200
    assert client.get("/api/auth/profile", headers=auth_header(token)).status_code == 401


def test_cleanup_tokens_removes_only_expired(client, make_token):
    live, _ = make_token("live@example.org")
    make_token("dead1@example.org", expires_in=timedelta(hours=-2))
    make_token("dead2@example.org", expires_in=timedelta(minutes=-1))

    r = client.get("/api/auth/cleanup-tokens")
    assert r.status_code == 200
    assert r.json()["deleted"] == 2
    assert client.get("/api/auth/profile", headers=auth_header(live)).status_code == 200


def test_purge_expired_tokens_helper(make_token):
    from services.token_cleanup import purge_expired_tokens

    make_token("dead@example.org", expires_in=timedelta(hours=-1))
    assert purge_expired_tokens() == 1
    assert purge_expired_tokens() == 0
