from sqlalchemy import false
from sqlmodel import select

from vidtube.users import routing as user_routing

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_update_account(client, make_user):
    user = make_user("alice")
    r = client.patch(
        "/api/v1/users/update-account",
        headers=user.headers,
        json={"fullName": "Alice Liddell", "email": "Alice@Wonder.land"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["fullName"] == "Alice Liddell"
    assert data["email"] == "alice@wonder.land"


def test_update_account_rejects_taken_email_and_empty_payload(client, make_user):
    alice = make_user("alice")
    make_user("bob")
    r = client.patch("/api/v1/users/update-account", headers=alice.headers, json={"email": "bob@example.com"})
    assert r.status_code == 409
    r = client.patch("/api/v1/users/update-account", headers=alice.headers, json={})
    assert r.status_code == 400


def test_update_avatar(client, make_user, media):
    user = make_user("alice")
    before = client.get("/api/v1/users/current", headers=user.headers).json()["data"]["avatar"]
    r = client.patch(
        "/api/v1/users/avatar",
        headers=user.headers,
        files={"avatar": ("new.png", PNG_BYTES, "image/png")},
    )
    assert r.status_code == 200
    assert r.json()["data"]["avatar"] != before

    r = client.patch("/api/v1/users/avatar", headers=user.headers)
    assert r.status_code == 400


def test_update_cover_writes_cover_not_avatar(client, make_user):
    user = make_user("alice")
    avatar = client.get("/api/v1/users/current", headers=user.headers).json()["data"]["avatar"]
    r = client.patch(
        "/api/v1/users/cover",
        headers=user.headers,
        files={"coverImage": ("cover.png", PNG_BYTES, "image/png")},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["avatar"] == avatar
    assert data["coverImage"].startswith("https://media.test/")
    assert data["coverImage"] != avatar


def test_channel_profile_counts(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    client.post(f"/api/v1/subscription/{alice.id}", headers=bob.headers)
    client.post(f"/api/v1/subscription/{alice.id}", headers=carol.headers)
    client.post(f"/api/v1/subscription/{carol.id}", headers=alice.headers)

    r = client.get("/api/v1/users/channel/Alice", headers=bob.headers)
    assert r.status_code == 200
    profile = r.json()["data"]
    assert profile["username"] == "alice"
    assert profile["subscribersCount"] == 2
    assert profile["channelsSubscribedToCount"] == 1
    assert profile["isSubscribed"] is True

    r = client.get("/api/v1/users/channel/alice", headers=alice.headers)
    assert r.json()["data"]["isSubscribed"] is False

    r = client.get("/api/v1/users/channel/nobody", headers=alice.headers)
    assert r.status_code == 404


def test_watch_history_is_a_set(client, make_user, publish):
    alice = make_user("alice")
    bob = make_user("bob")
    first = publish(bob, title="First")
    second = publish(bob, title="Second")

    for video in (first, second, first):
        r = client.post("/api/v1/users/watch-history", headers=alice.headers, json={"videoId": video["id"]})
        assert r.status_code == 200
    assert r.json()["data"]["added"] is False

    r = client.get("/api/v1/users/watch-history", headers=alice.headers)
    assert r.status_code == 200
    history = r.json()["data"]
    assert sorted(v["id"] for v in history) == sorted([first["id"], second["id"]])
    assert history[0]["owner"]["username"] == "bob"


def test_watch_history_unknown_video(client, make_user):
    alice = make_user("alice")
    r = client.post("/api/v1/users/watch-history", headers=alice.headers, json={"videoId": 999})
    assert r.status_code == 404


def test_update_account_email_race_is_conflict(client, make_user, monkeypatch):
    alice = make_user("alice")
    make_user("bob")
    # pre-check sees nothing, so the unique index has to catch it at commit
    monkeypatch.setattr(user_routing, "select", lambda *entities: select(*entities).where(false()))
    r = client.patch("/api/v1/users/update-account", headers=alice.headers, json={"email": "bob@example.com"})
    assert r.status_code == 409
    assert r.json()["success"] is False


def test_profile_changes_reach_subscription_listings(client, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    client.post(f"/api/v1/subscription/{alice.id}", headers=bob.headers)

    # warm both listings
    client.get(f"/api/v1/subscription/channel/{alice.id}", headers=alice.headers)
    client.get(f"/api/v1/subscription/user/{bob.id}", headers=bob.headers)

    r = client.patch(
        "/api/v1/users/avatar",
        headers=bob.headers,
        files={"avatar": ("new.png", PNG_BYTES, "image/png")},
    )
    new_avatar = r.json()["data"]["avatar"]
    r = client.get(f"/api/v1/subscription/channel/{alice.id}", headers=alice.headers)
    assert r.json()["data"][0]["subscriber"]["avatar"] == new_avatar

    client.patch("/api/v1/users/update-account", headers=alice.headers, json={"fullName": "Alice Liddell"})
    r = client.get(f"/api/v1/subscription/user/{bob.id}", headers=bob.headers)
    assert r.json()["data"][0]["channel"]["fullName"] == "Alice Liddell"
