import base64

import pytest

from community_admin.errors import RemoteDataError, ValidationError
from community_admin.storage import LocalFileStorage, decode_data_url, sanitize_storage_key, upload_data_url


async def test_upload_list_remove_round(tmp_path):
    storage = LocalFileStorage(str(tmp_path), public_base_url="http://cdn.test/media/")
    path = await storage.upload("committee-pictures", "trust.png", b"abc", content_type="image/png")
    assert path == "trust.png"
    assert storage.get_public_url("committee-pictures", path) == "http://cdn.test/media/committee-pictures/trust.png"

    entries = await storage.list("committee-pictures")
    assert [(entry.name, entry.size, entry.content_type) for entry in entries] == [("trust.png", 3, "image/png")]

    await storage.remove("committee-pictures", ["trust.png", "missing.png"])
    assert await storage.list("committee-pictures") == []


async def test_upload_without_upsert_refuses_to_overwrite(tmp_path):
    storage = LocalFileStorage(str(tmp_path))
    await storage.upload("b", "a.txt", b"1")
    with pytest.raises(RemoteDataError):
        await storage.upload("b", "a.txt", b"2")
    await storage.upload("b", "a.txt", b"2", upsert=True)
    assert (tmp_path / "b" / "a.txt").read_bytes() == b"2"


async def test_list_by_prefix_skips_directories(tmp_path):
    storage = LocalFileStorage(str(tmp_path))
    await storage.upload("businesses", "u1/images/a.png", b"a")
    await storage.upload("businesses", "u1/logo/l.png", b"l")
    assert [entry.name for entry in await storage.list("businesses", "u1/images")] == ["a.png"]
    assert await storage.list("businesses", "u1") == []
    assert await storage.list("businesses", "u2/images") == []


async def test_path_traversal_is_rejected(tmp_path):
    storage = LocalFileStorage(str(tmp_path))
    with pytest.raises(ValidationError):
        await storage.upload("b", "../escape.txt", b"x")
    with pytest.raises(ValidationError):
        storage.get_public_url("b", "")


def test_decode_data_url():
    payload = base64.b64encode(b"hello").decode()
    assert decode_data_url(f"data:image/png;base64,{payload}") == (b"hello", "image/png")
    with pytest.raises(ValidationError):
        decode_data_url("https://example.com/a.png")
    with pytest.raises(ValidationError):
        decode_data_url("data:image/png;base64,!!!")


async def test_upload_data_url_returns_public_url(tmp_path):
    storage = LocalFileStorage(str(tmp_path))
    payload = base64.b64encode(b"img").decode()
    url = await upload_data_url(storage, "profile-pictures", f"data:image/jpeg;base64,{payload}", "profile-1.jpg")
    assert url == "/media/profile-pictures/profile-1.jpg"


def test_sanitize_storage_key():
    assert sanitize_storage_key("my file (1).png") == "myfile1.png"
    assert sanitize_storage_key("***") == "file"
