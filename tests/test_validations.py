PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


def _publish_form(user, **files):
    return {
        "headers": user.headers,
        "data": {"title": "t", "description": "d"},
        "files": files,
    }


def test_invalid_identifier_format(client, make_user):
    user = make_user("u2")
    r = client.get("/api/v1/video/not-an-id", headers=user.headers)
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "path.video_id"

    assert client.patch("/api/v1/comments/abc", headers=user.headers, json={"content": "x"}).status_code == 400
    assert client.post("/api/v1/subscription/abc", headers=user.headers).status_code == 400


def test_comment_content_required(client, make_user, publish):
    user = make_user("u2")
    video = publish(user)
    r = client.post(f"/api/v1/comments/{video['id']}", headers=user.headers, json={"content": "   "})
    assert r.status_code == 400
    r = client.post(f"/api/v1/comments/{video['id']}", headers=user.headers, json={})
    assert r.status_code == 400
    r = client.post("/api/v1/comments/999", headers=user.headers, json={"content": "hello"})
    assert r.status_code == 404


def test_listing_rejects_bad_parameters(client, make_user):
    user = make_user("u2")
    assert client.get("/api/v1/video/?sortBy=password", headers=user.headers).status_code == 400
    assert client.get("/api/v1/video/?sortType=sideways", headers=user.headers).status_code == 400
    assert client.get("/api/v1/video/?page=0", headers=user.headers).status_code == 400
    assert client.get("/api/v1/video/?limit=1000", headers=user.headers).status_code == 400


def test_publish_requires_both_files(client, make_user):
    user = make_user("u2")
    r = client.post("/api/v1/video/", **_publish_form(user, videoFile=("clip.mp4", MP4_BYTES, "video/mp4")))
    assert r.status_code == 400
    assert r.json()["message"] == "Video file and thumbnail are required"


def test_publish_requires_title(client, make_user):
    user = make_user("u2")
    r = client.post(
        "/api/v1/video/",
        headers=user.headers,
        data={"title": " ", "description": "d"},
        files={
            "videoFile": ("clip.mp4", MP4_BYTES, "video/mp4"),
            "thumbnail": ("thumb.png", PNG_BYTES, "image/png"),
        },
    )
    assert r.status_code == 400


def test_publish_fails_without_duration(client, make_user, media):
    user = make_user("u2")
    media.duration = None
    r = client.post(
        "/api/v1/video/",
        **_publish_form(
            user,
            videoFile=("clip.mp4", MP4_BYTES, "video/mp4"),
            thumbnail=("thumb.png", PNG_BYTES, "image/png"),
        ),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Unable to retrieve video duration"


def test_publish_fails_when_thumbnail_upload_fails(client, make_user, media):
    user = make_user("u2")
    # registration already used one upload (the avatar); allow the video file only
    media.fail_after = len(media.uploaded) + 1
    r = client.post(
        "/api/v1/video/",
        **_publish_form(
            user,
            videoFile=("clip.mp4", MP4_BYTES, "video/mp4"),
            thumbnail=("thumb.png", PNG_BYTES, "image/png"),
        ),
    )
    assert r.status_code == 500
    assert r.json()["success"] is False

    r = client.get("/api/v1/video/my-videos", headers=user.headers)
    assert r.json()["data"]["total"] == 0
