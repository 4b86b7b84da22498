import pytest

from fieldgates.core.exceptions import UploadFailedError
from fieldgates.services.photo_service import (
    NETWORK_MESSAGE,
    PERMISSION_MESSAGE,
    SIZE_MESSAGE,
    PhotoStorage,
    PhotoUpload,
    classify_upload_error,
    upload_with_retry,
)


class FlakyStorage(PhotoStorage):
    def __init__(self, root, failures):
        super().__init__(root)
        self.failures = list(failures)
        self.calls = 0

    def put(self, job_id, filename, content):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return super().put(job_id, filename, content)


def _upload(content=b"jpeg-bytes"):
    return PhotoUpload(filename="kitchen wide.jpg", content=content)


class TestPhotoStorage:
    def test_put_writes_read_only_blob(self, tmp_path):
        storage = PhotoStorage(tmp_path)
        stored = storage.put("job-1", "kitchen wide.jpg", b"abc")
        path = storage.full_path(stored.storage_path)
        assert stored.storage_path.startswith("jobs/job-1/photos/")
        assert stored.storage_path.endswith("_kitchen_wide.jpg")
        assert path.read_bytes() == b"abc"
        assert stored.file_size_bytes == 3
        assert len(stored.file_hash) == 64

    def test_delete(self, tmp_path):
        storage = PhotoStorage(tmp_path)
        stored = storage.put("job-1", "a.jpg", b"abc")
        storage.delete(stored.storage_path)
        assert not storage.full_path(stored.storage_path).exists()
        storage.delete(stored.storage_path)

    def test_digest_matches_recorded_hash(self, tmp_path):
        storage = PhotoStorage(tmp_path)
        stored = storage.put("job-1", "a.jpg", b"abc")
        assert storage.digest(stored.storage_path) == stored.file_hash

    def test_blob_name_replaces_unsafe_characters(self):
        name = PhotoStorage.blob_name("Küche (1).jpg")
        assert name[12:] == "_K_che__1_.jpg"


class TestUploadWithRetry:
    def test_retries_with_linear_backoff(self, tmp_path):
        storage = FlakyStorage(tmp_path, [ConnectionError("network down"), OSError("fetch failed")])
        sleeps = []
        stored = upload_with_retry(storage, "job-1", _upload(), max_attempts=3,
                                   backoff_seconds=1.0, sleep=sleeps.append)
        assert storage.calls == 3
        assert sleeps == [1.0, 2.0]
        assert storage.full_path(stored.storage_path).exists()

    def test_gives_up_after_max_attempts(self, tmp_path):
        storage = FlakyStorage(tmp_path, [ConnectionError("network down")] * 3)
        sleeps = []
        with pytest.raises(UploadFailedError) as info:
            upload_with_retry(storage, "job-1", _upload(), max_attempts=3,
                              backoff_seconds=0.5, sleep=sleeps.append)
        assert str(info.value) == NETWORK_MESSAGE
        assert info.value.attempts == 3
        assert sleeps == [0.5, 1.0]

    def test_oversized_file_is_not_attempted(self, tmp_path):
        storage = FlakyStorage(tmp_path, [])
        with pytest.raises(UploadFailedError) as info:
            upload_with_retry(storage, "job-1", _upload(b"x" * 11), max_bytes=10)
        assert "File too large" in str(info.value)
        assert storage.calls == 0

    def test_empty_file_is_rejected(self, tmp_path):
        with pytest.raises(UploadFailedError):
            upload_with_retry(PhotoStorage(tmp_path), "job-1", _upload(b""))


@pytest.mark.parametrize("exc, expected", [
    (PermissionError("denied"), PERMISSION_MESSAGE),
    (OSError("new row violates row-level security (RLS)"), PERMISSION_MESSAGE),
    (OSError("Payload too large"), SIZE_MESSAGE),
    (OSError("[Errno 28] No space left on device"), SIZE_MESSAGE),
    (ConnectionError("reset"), NETWORK_MESSAGE),
    (OSError("TypeError: Failed to fetch"), NETWORK_MESSAGE),
    (OSError("disk on fire"), "Upload failed: disk on fire"),
])
def test_classify_upload_error(exc, expected):
    assert classify_upload_error(exc) == expected
