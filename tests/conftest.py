import os
import tempfile
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["REDIS_URL"] = ""
os.environ["UPLOAD_TEMP_DIR"] = tempfile.mkdtemp(prefix="vidtube-uploads-")
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="vidtube-media-")

from sqlmodel import SQLModel  # noqa: E402

from main import app  # noqa: E402
from vidtube.cache import cache  # noqa: E402
from vidtube.db import models  # noqa: E402,F401
from vidtube.db.session import engine  # noqa: E402
from vidtube.media.service import get_media_service  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


class FakeMediaService:
    """Stands in for object storage and ffprobe."""

    def __init__(self):
        self.uploaded = []
        self.duration = 42.5
        self.fail_after = None

    def upload(self, local_path):
        assert os.path.exists(local_path), "upload must receive a staged local file"
        if self.fail_after is not None and len(self.uploaded) >= self.fail_after:
            return None
        self.uploaded.append(local_path)
        return f"https://media.test/{len(self.uploaded)}/{os.path.basename(local_path)}"

    def probe_duration(self, local_path):
        assert os.path.exists(local_path)
        return self.duration


@pytest.fixture(autouse=True)
def reset_state():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    cache.clear()
    yield


@pytest.fixture
def media():
    fake = FakeMediaService()
    app.dependency_overrides[get_media_service] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_media_service, None)


@pytest.fixture
def client(media):
    return TestClient(app)


def _register(client, username, email=None, password="pw", full_name=None, avatar=True, cover=False):
    data = {
        "username": username,
        "email": email or f"{username.lower()}@example.com",
        "password": password,
        "fullName": full_name or username.title(),
    }
    files = {}
    if avatar:
        files["avatar"] = ("avatar.png", PNG_BYTES, "image/png")
    if cover:
        files["coverImage"] = ("cover.png", PNG_BYTES, "image/png")
    return client.post("/api/v1/users/register", data=data, files=files or None)


@pytest.fixture
def make_user(client):
    """Register and log in a user, returning ids, tokens and auth headers."""

    def _make_user(username, password="pw"):
        r = _register(client, username, password=password)
        assert r.status_code == 201, r.text
        r = client.post("/api/v1/users/login", json={"username": username, "password": password})
        assert r.status_code == 200, r.text
        data = r.json()["data"]
        return SimpleNamespace(
            id=data["user"]["id"],
            username=data["user"]["username"],
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
            headers={"Authorization": f"Bearer {data['accessToken']}"},
        )

    return _make_user


@pytest.fixture
def publish(client):
    """Publish a video as ``user`` and return its JSON representation."""

    def _publish(user, title="My video", description="A description"):
        r = client.post(
            "/api/v1/video/",
            headers=user.headers,
            data={"title": title, "description": description},
            files={
                "videoFile": ("clip.mp4", MP4_BYTES, "video/mp4"),
                "thumbnail": ("thumb.png", PNG_BYTES, "image/png"),
            },
        )
        assert r.status_code == 201, r.text
        return r.json()["data"]["video"]

    return _publish


@pytest.fixture
def register_user(client):
    """Call the register endpoint; keyword arguments tweak the form."""

    def _register_user(username, **kwargs):
        return _register(client, username, **kwargs)

    return _register_user
