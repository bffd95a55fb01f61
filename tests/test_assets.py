import asyncio

import pytest

from conftest import RecordingBucket, onboard_planner, onboard_vendor, register
from planit.assets import PROFILE_PHOTO, VENDOR_LICENSE, mock_url, read_upload, storage_key

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.4\n%fake\n"


def photo(name="me.png", data=PNG, content_type="image/png"):
    return {"file": (name, data, content_type)}


def test_storage_key_uses_owner_time_and_extension():
    assert storage_key(PROFILE_PHOTO, "42", "Me.JPG", now=1700000000.123) == "planners/42-1700000000123.jpg"
    assert storage_key(VENDOR_LICENSE, "abc", "cert.pdf", now=1.0) == "vendors/licenses/abc-1000.pdf"
    assert storage_key(VENDOR_LICENSE, "abc", "noext", now=1.0) == "vendors/licenses/abc-1000"


def test_mock_url_is_store_name_free():
    assert mock_url(PROFILE_PHOTO, "me.png") == "https://mock-storage.com/planners/me.png"
    assert mock_url(VENDOR_LICENSE, "cert.pdf") == "https://mock-storage.com/vendors/cert.pdf"


def test_photo_upload_falls_back_to_mock_url(client):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    resp = client.post(f"/planners/{planner['id']}/upload-photo", files=photo(), headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Mock upload (storage inactive)"
    assert body["data"]["fileUrl"] == "https://mock-storage.com/planners/me.png"
    assert body["data"]["planner"]["profilePhoto"] == body["data"]["fileUrl"]


def test_photo_upload_writes_then_publishes_then_links(client, bucket):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    resp = client.post(f"/planners/{planner['id']}/upload-photo", files=photo(), headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]

    (op1, key), (op2, published) = bucket.calls
    assert (op1, op2) == ("put", "make_public")
    assert key == published
    assert key.startswith(f"planners/{planner['id']}-") and key.endswith(".png")
    assert bucket.objects[key] == (PNG, "image/png")
    assert data["fileUrl"] == f"https://storage.googleapis.com/planit-test-bucket/{key}"

    fetched = client.get(f"/planners/{planner['id']}", headers=headers).json()["data"]
    assert fetched["profilePhoto"] == data["fileUrl"]


def test_reupload_overwrites_link(client, bucket):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    client.post(f"/planners/{planner['id']}/upload-photo", files=photo("a.png"), headers=headers)
    second = client.post(
        f"/planners/{planner['id']}/upload-photo", files=photo("b.webp", content_type="image/webp"), headers=headers,
    ).json()["data"]
    assert second["fileUrl"].endswith(".webp")
    assert second["planner"]["profilePhoto"] == second["fileUrl"]


@pytest.mark.parametrize("name,content_type", [("doc.pdf", "application/pdf"), ("a.gif", "image/gif")])
def test_photo_with_disallowed_type_is_rejected_before_any_write(client, bucket, monkeypatch, name, content_type):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    async def no_write(*args, **kwargs):
        raise AssertionError("record must not be written")

    monkeypatch.setattr(client.app.state.store, "update_profile", no_write)
    resp = client.post(
        f"/planners/{planner['id']}/upload-photo", files=photo(name, b"data", content_type), headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid file type")
    assert bucket.calls == []


def test_upload_without_file_is_bad_request(client, bucket):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    resp = client.post(f"/planners/{planner['id']}/upload-photo", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"

    resp = client.post(f"/planners/{planner['id']}/upload-photo", files=photo(data=b""), headers=headers)
    assert resp.status_code == 400
    assert bucket.calls == []


def test_oversized_photo_is_rejected(client, bucket):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]

    big = b"\x00" * (PROFILE_PHOTO.max_bytes + 1)
    resp = client.post(f"/planners/{planner['id']}/upload-photo", files=photo(data=big), headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("File too large")
    assert bucket.calls == []


def test_upload_for_missing_planner_is_not_found(client, bucket):
    _, headers = register(client)
    resp = client.post("/planners/31337/upload-photo", files=photo(), headers=headers)
    assert resp.status_code == 404
    assert bucket.calls == []


def test_upload_for_someone_elses_planner_is_forbidden(client, bucket):
    owner, owner_headers = register(client, email="owner@x.com")
    _, other_headers = register(client, email="other@x.com")
    planner = onboard_planner(client, owner_headers, owner["id"]).json()["data"]

    resp = client.post(f"/planners/{planner['id']}/upload-photo", files=photo(), headers=other_headers)
    assert resp.status_code == 403
    assert bucket.calls == []


def test_upload_requires_authentication(client):
    resp = client.post("/planners/1/upload-photo", files=photo())
    assert resp.status_code == 401


def test_failed_bucket_write_leaves_record_untouched(client):
    user, headers = register(client)
    planner = onboard_planner(client, headers, user["id"]).json()["data"]
    client.app.state.assets = RecordingBucket(fail_on_put=True)

    from fastapi.testclient import TestClient

    lenient = TestClient(client.app, raise_server_exceptions=False)
    resp = lenient.post(f"/planners/{planner['id']}/upload-photo", files=photo(), headers=headers)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Internal Server Error", "details": None}

    fetched = client.get(f"/planners/{planner['id']}", headers=headers).json()["data"]
    assert fetched["profilePhoto"] is None


def test_license_upload_sets_url_and_timestamp(client, bucket):
    user, headers = register(client)
    vendor = onboard_vendor(client, headers, user["id"]).json()["data"]

    resp = client.post(
        f"/vendors/{vendor['id']}/upload-license",
        files={"file": ("license.pdf", PDF, "application/pdf")},
        headers=headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "License uploaded successfully"
    data = body["data"]
    assert "/vendors/licenses/" in data["fileUrl"]
    assert data["vendor"]["licenseUrl"] == data["fileUrl"]
    assert data["vendor"]["licenseUploadedAt"] is not None


def test_license_rejects_webp(client, bucket):
    user, headers = register(client)
    vendor = onboard_vendor(client, headers, user["id"]).json()["data"]
    resp = client.post(
        f"/vendors/{vendor['id']}/upload-license",
        files={"file": ("scan.webp", b"RIFF", "image/webp")},
        headers=headers,
    )
    assert resp.status_code == 400
    assert bucket.calls == []


def test_license_mock_upload(client):
    user, headers = register(client)
    vendor = onboard_vendor(client, headers, user["id"]).json()["data"]
    resp = client.post(
        f"/vendors/{vendor['id']}/upload-license",
        files={"file": ("license.pdf", PDF, "application/pdf")},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["fileUrl"] == "https://mock-storage.com/vendors/license.pdf"


@pytest.mark.parametrize("name,data,content_type", [
    ("a.gif", b"GIF89a", "image/gif"),
    ("big.png", b"\x00" * (PROFILE_PHOTO.max_bytes + 1), "image/png"),
])
def test_ownership_is_checked_before_file_validation(client, bucket, name, data, content_type):
    owner, owner_headers = register(client, email="owner@x.com")
    _, other_headers = register(client, email="other@x.com")
    planner = onboard_planner(client, owner_headers, owner["id"]).json()["data"]

    resp = client.post(
        f"/planners/{planner['id']}/upload-photo", files=photo(name, data, content_type), headers=other_headers,
    )
    assert resp.status_code == 403
    assert bucket.calls == []

    resp = client.post("/planners/31337/upload-photo", files=photo(name, data, content_type), headers=other_headers)
    assert resp.status_code == 404


class ChunkedUpload:
    def __init__(self, size):
        self.remaining = size
        self.requested = []

    async def read(self, size=-1):
        self.requested.append(size)
        n = self.remaining if size < 0 else min(size, self.remaining)
        self.remaining -= n
        return b"\x00" * n


def test_read_upload_stops_one_byte_past_the_limit():
    upload = ChunkedUpload(VENDOR_LICENSE.max_bytes * 3)
    data = asyncio.run(read_upload(VENDOR_LICENSE, upload))
    assert len(data) == VENDOR_LICENSE.max_bytes + 1
    assert upload.requested == [VENDOR_LICENSE.max_bytes + 1]
    assert asyncio.run(read_upload(VENDOR_LICENSE, None)) is None
