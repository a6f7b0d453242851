import pytest
from sqlalchemy.exc import OperationalError

from filechat.core.errors import AuthError, FileNotFoundInStoreError, FileTooLargeError, StoreError
from filechat.core.store import check_upload_size, normalize_object_path, upload_limit_for


def stored_objects(bucket):
    return [p for p in bucket.directory.rglob("*") if p.is_file()]


def db_failure(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("database is locked"))


def test_upload_limits_by_role():
    assert upload_limit_for("User") == 200 * 1024
    assert upload_limit_for("Viewer") == 200 * 1024
    assert upload_limit_for("Admin") is None
    check_upload_size(200 * 1024, "User")
    with pytest.raises(FileTooLargeError):
        check_upload_size(200 * 1024 + 1, "User")


def test_user_cannot_upload_250kb(store, bucket):
    with pytest.raises(FileTooLargeError) as exc:
        store.upload_file("u1", "User", "big.pdf", b"x" * 250 * 1024, "application/pdf")
    assert "200KB" in str(exc.value)
    assert stored_objects(bucket) == []
    assert store.list_files("u1") == []


def test_admin_can_upload_250kb(store, bucket):
    record = store.upload_file("u1", "Admin", "big.pdf", b"x" * 250 * 1024, "application/pdf")
    assert record.size == 250 * 1024
    assert record.file_path.startswith("Earnings/u1/")
    assert record.file_path.endswith("_big.pdf")
    assert record.storage_path == bucket.public_url(record.file_path)
    assert bucket.download(record.file_path) == b"x" * 250 * 1024


def test_list_files_newest_first_and_per_user(store):
    first = store.upload_file("u1", "User", "a.txt", b"a", "text/plain")
    second = store.upload_file("u1", "User", "b.txt", b"b", "text/plain")
    store.upload_file("u2", "User", "c.txt", b"c", "text/plain")

    assert [f.id for f in store.list_files("u1")] == [second.id, first.id]


def test_failed_insert_removes_uploaded_object(store, bucket, monkeypatch):
    monkeypatch.setattr(store.db, "commit", db_failure)
    with pytest.raises(StoreError):
        store.upload_file("u1", "User", "a.txt", b"a", "text/plain")
    assert stored_objects(bucket) == []


def test_delete_file_removes_object_and_row(store, bucket):
    record = store.upload_file("u1", "User", "a.txt", b"a", "text/plain")
    store.delete_file("u1", record.id)
    assert stored_objects(bucket) == []
    assert store.list_files("u1") == []


def test_failed_delete_restores_object(store, bucket, monkeypatch):
    record = store.upload_file("u1", "User", "a.txt", b"payload", "text/plain")
    monkeypatch.setattr(store.db, "commit", db_failure)
    with pytest.raises(StoreError):
        store.delete_file("u1", record.id)
    assert bucket.download(record.file_path) == b"payload"


def test_delete_other_users_file_is_not_found(store):
    record = store.upload_file("u1", "User", "a.txt", b"a", "text/plain")
    with pytest.raises(FileNotFoundInStoreError):
        store.delete_file("u2", record.id)


def test_normalize_object_path():
    url = "http://testserver/storage/v1/object/public/files/Earnings/u1/1_a.txt"
    assert normalize_object_path(url, "files") == "Earnings/u1/1_a.txt"
    assert normalize_object_path("Earnings/u1/1_a.txt", "files") == "Earnings/u1/1_a.txt"


def test_bucket_rejects_paths_outside_its_directory(bucket):
    with pytest.raises(StoreError):
        bucket.upload("../escape.txt", b"x")


def test_history_rows_roundtrip(store, workflow):
    row = workflow.append_history_row("1000_u1", chat_history=[{"content": "q", "isUser": True}])
    assert row.chat_history == '[{"content": "q", "isUser": true}]'
    assert store.get_history_row(row.id).session_id == "1000_u1"
    assert store.get_history_row("abc") is None
    assert store.delete_history_session("1000_u1") == 1
    assert store.fetch_history_rows() == []


def test_history_reads_end_their_transaction(store, workflow):
    workflow.append_history_row("1000_u1", message={"type": "human", "content": "first"})
    assert len(store.fetch_history_rows()) == 1
    assert not store.db.in_transaction()

    # committed by the workflow after the first read
    workflow.append_history_row("1000_u1", message={"type": "ai", "content": "second"})
    assert [r.message["content"] for r in store.fetch_history_rows("1000_u1")] == ["first", "second"]
    assert store.get_history_row("1") is not None
    assert not store.db.in_transaction()


def test_ensure_profile_is_idempotent(store):
    first = store.ensure_profile("a@example.com")
    second = store.ensure_profile("a@example.com")
    assert first.id == second.id
    assert first.role == "User"


def test_require_profile(store):
    profile = store.ensure_profile("b@example.com")
    assert store.require_profile(profile.id).email == "b@example.com"
    with pytest.raises(AuthError):
        store.require_profile(None)
    with pytest.raises(AuthError):
        store.require_profile("ghost")
