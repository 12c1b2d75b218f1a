import io
import os
import subprocess
from types import SimpleNamespace

from botocore.exceptions import ClientError
from fastapi import UploadFile

from vidtube.media import service
from vidtube.media.service import LocalMediaService, S3MediaService, probe_duration
from vidtube.media.uploads import has_file, staged_upload


def _completed(returncode=0, stdout="", stderr=""):
    return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)


def test_probe_duration_parses_ffprobe_output(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return _completed(stdout="12.480000\n")

    monkeypatch.setattr(service.subprocess, "run", fake_run)
    assert probe_duration("/tmp/clip.mp4") == 12.48
    assert calls[0][-1] == "/tmp/clip.mp4"
    assert "format=duration" in calls[0]


def test_probe_duration_unknown(monkeypatch):
    monkeypatch.setattr(service.subprocess, "run", lambda cmd, **kw: _completed(returncode=1, stderr="bad"))
    assert probe_duration("/tmp/clip.mp4") is None

    monkeypatch.setattr(service.subprocess, "run", lambda cmd, **kw: _completed(stdout="N/A"))
    assert probe_duration("/tmp/clip.mp4") is None

    def missing_binary(cmd, **kwargs):
        raise FileNotFoundError("ffprobe")

    monkeypatch.setattr(service.subprocess, "run", missing_binary)
    assert probe_duration("/tmp/clip.mp4") is None

    def too_slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, 30)

    monkeypatch.setattr(service.subprocess, "run", too_slow)
    assert probe_duration("/tmp/clip.mp4") is None


def test_local_media_service_copies_file(tmp_path):
    source = tmp_path / "thumb.PNG"
    source.write_bytes(b"image-bytes")
    media = LocalMediaService(str(tmp_path / "media"), "http://cdn.local/media/")

    url = media.upload(str(source))
    assert url.startswith("http://cdn.local/media/")
    assert url.endswith(".png")
    stored = tmp_path / "media" / url.rsplit("/", 1)[-1]
    assert stored.read_bytes() == b"image-bytes"

    assert media.upload(str(tmp_path / "missing.png")) is None


class _StubS3Client:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.error:
            raise self.error
        self.calls.append((filename, bucket, key, ExtraArgs))


def test_s3_media_service_upload(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"video")
    client = _StubS3Client()
    media = S3MediaService("videos", key_prefix="uploads", client=client)

    url = media.upload(str(source))
    filename, bucket, key, extra = client.calls[0]
    assert filename == str(source)
    assert bucket == "videos"
    assert key.startswith("uploads/") and key.endswith(".mp4")
    assert extra == {"ContentType": "video/mp4"}
    assert url == f"https://videos.s3.amazonaws.com/{key}"


def test_s3_media_service_urls_and_failure(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"video")

    media = S3MediaService("videos", endpoint_url="http://minio:9000", client=_StubS3Client())
    assert media.object_url("a/b.mp4") == "http://minio:9000/videos/a/b.mp4"
    media = S3MediaService("videos", public_base_url="https://cdn.example.com/", client=_StubS3Client())
    assert media.object_url("a/b.mp4") == "https://cdn.example.com/a/b.mp4"

    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    media = S3MediaService("videos", client=_StubS3Client(error=error))
    assert media.upload(str(source)) is None


def test_staged_upload_is_removed_afterwards():
    upload = UploadFile(file=io.BytesIO(b"payload"), filename="../../etc/my clip.mp4")
    assert has_file(upload)
    with staged_upload(upload) as path:
        assert os.path.exists(path)
        assert os.path.basename(path).endswith("my_clip.mp4")
        with open(path, "rb") as fh:
            assert fh.read() == b"payload"
    assert not os.path.exists(path)

    assert not has_file(None)
    assert not has_file(UploadFile(file=io.BytesIO(b""), filename=""))
