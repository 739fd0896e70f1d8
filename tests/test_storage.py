import pytest

from automl_studio.utils.errors import NotFoundError, StorageError


def test_put_then_get(storage):
    storage.put("exports", "user-1/model.json", b"{}")
    assert storage.get("exports", "user-1/model.json") == b"{}"


def test_missing_blob_is_not_found(storage):
    with pytest.raises(NotFoundError):
        storage.get("exports", "user-1/none.json")


def test_paths_cannot_escape_bucket(storage):
    with pytest.raises(StorageError):
        storage.put("exports", "../datasets/evil.csv", b"x")
    with pytest.raises(StorageError):
        storage.get("exports", "../../etc/passwd")


def test_signed_url_verifies_until_expiry(storage):
    url = storage.signed_url("exports", "user-1/a b.json", expires_in=60, now=1_000)

    assert url.startswith("http://testserver/files/exports/user-1/a%20b.json?expires=1060&signature=")
    signature = url.rsplit("signature=", 1)[1]
    assert storage.verify("exports", "user-1/a b.json", 1060, signature, now=1_030)
    assert not storage.verify("exports", "user-1/a b.json", 1060, signature, now=1_061)
    assert not storage.verify("exports", "user-1/other.json", 1060, signature, now=1_030)
    assert not storage.verify("datasets", "user-1/a b.json", 1060, signature, now=1_030)
