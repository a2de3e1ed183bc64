import pytest

from app.core.exceptions import StorageError
from app.services.storage_service import LocalStorageBackend, S3StorageBackend, build_object_key, sanitize_filename

pytestmark = pytest.mark.asyncio


async def test_sanitize_filename_strips_paths_and_symbols():
    assert sanitize_filename("../../etc/Term 1 (final).pdf") == "Term_1__final_.pdf"
    assert sanitize_filename("") == "file"


async def test_object_key_is_folder_timestamp_name():
    key = build_object_key("paper one.pdf", "/question-papers/")

    folder, rest = key.split("/", 1)
    stamp, name = rest.split("-", 1)
    assert folder == "question-papers"
    assert stamp.isdigit()
    assert name == "paper_one.pdf"


async def test_local_backend_upload_read_delete(tmp_path):
    backend = LocalStorageBackend(base_path=str(tmp_path))

    url = await backend.upload(b"%PDF-1.7", "sheet.pdf", "answer-sheets")

    assert url.startswith("local://answer-sheets/")
    assert await backend.get_bytes(url) == b"%PDF-1.7"

    await backend.delete(url)
    with pytest.raises(StorageError):
        await backend.get_bytes(url)
    # Deleting twice is harmless
    await backend.delete(url)


async def test_local_backend_refuses_escaping_root(tmp_path):
    backend = LocalStorageBackend(base_path=str(tmp_path / "uploads"))

    with pytest.raises(StorageError):
        await backend.get_bytes("local://../secrets.txt")
    with pytest.raises(StorageError):
        await backend.get_bytes("https://example.com/file.pdf")


async def test_s3_urls_map_back_to_keys():
    backend = S3StorageBackend(
        bucket="grading",
        endpoint_url="https://account.r2.cloudflarestorage.com",
        region=None,
        access_key="key",
        secret_key="secret",
        public_base_url="https://files.example.com",
    )

    url = backend.public_url("answer-sheets/1-sheet.pdf")

    assert url == "https://files.example.com/answer-sheets/1-sheet.pdf"
    assert backend.key_from_url(url) == "answer-sheets/1-sheet.pdf"
    assert backend.key_from_url(
        "https://account.r2.cloudflarestorage.com/grading/question-papers/2-paper.pdf"
    ) == "question-papers/2-paper.pdf"
