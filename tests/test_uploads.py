import pytest

from conftest import user_error
from shopify_admin.errors import BlobCleanupError, ProcessingFailed, ProcessingTimeout, ReconciliationError, StagingError, TransferError
from shopify_admin.reconciler import ResourceReconciler
from shopify_admin.uploads import LocalFile, ResourceStatus, StagedUploadManager


@pytest.fixture
def manager(client, sleeps):
    return StagedUploadManager(client, poll_interval=0.5, max_polls=3, sleep=sleeps.append)


def test_upload_stage_transfer_commit_poll(manager, fake, image_file):
    ref = manager.upload(LocalFile.from_path(image_file, "logo"))

    assert ref.status is ResourceStatus.READY
    assert ref.url == "https://cdn.test/files/logo.png?v=1"
    assert fake.ops() == ["StagedUploadsCreate", "FileCreate", "FileStatus"]

    staged = fake.variables("StagedUploadsCreate")[0]["input"][0]
    assert staged["httpMethod"] == "POST"
    assert staged["mimeType"] == "image/png"
    assert staged["fileSize"] == str(image_file.stat().st_size)
    assert fake.variables("FileCreate")[0]["files"][0]["originalSource"].endswith("/tmp/logo.png")


def test_transfer_sends_form_fields_before_file(manager, fake, image_file):
    manager.upload(LocalFile.from_path(image_file, "logo"))
    body = fake.transfers[0].content
    assert body.index(b'name="key"') < body.index(b'name="policy"') < body.index(b'name="file"')


def test_transfer_keeps_repeated_fields_in_order(manager, fake, image_file):
    params = [
        {"name": "x-amz-meta-tag", "value": "first"},
        {"name": "key", "value": "tmp/logo.png"},
        {"name": "x-amz-meta-tag", "value": "second"},
    ]
    target = {
        "url": "https://uploads.test/bucket",
        "resourceUrl": "https://uploads.test/bucket/tmp/logo.png",
        "parameters": params,
    }
    fake.on("StagedUploadsCreate", {"data": {"stagedUploadsCreate": {"stagedTargets": [target], "userErrors": []}}})
    manager.upload(LocalFile.from_path(image_file, "logo"))

    body = fake.transfers[0].content
    first = body.index(b"first")
    assert first < body.index(b'name="key"') < body.index(b"second") < body.index(b'name="file"')
    assert body.count(b'name="x-amz-meta-tag"') == 2
    assert b'name="key"; filename' not in body


def test_transfer_rejection_carries_status_and_body(manager, fake, image_file):
    fake.transfer_status = 403
    with pytest.raises(TransferError) as exc:
        manager.upload(LocalFile.from_path(image_file, "logo"))
    assert exc.value.status_code == 403
    assert "denied" in exc.value.body
    assert "FileCreate" not in fake.ops()


def test_staging_business_error(manager, fake, image_file):
    fake.on("StagedUploadsCreate", user_error("stagedUploadsCreate", "Invalid mime type"))
    with pytest.raises(StagingError):
        manager.upload(LocalFile.from_path(image_file, "logo"))


def test_failed_processing(manager, fake, image_file):
    fake.file_status = "FAILED"
    with pytest.raises(ProcessingFailed):
        manager.upload(LocalFile.from_path(image_file, "logo"))


def test_timeout_is_bounded_and_keeps_reference(manager, fake, image_file, sleeps):
    fake.file_status = "PROCESSING"
    with pytest.raises(ProcessingTimeout) as exc:
        manager.upload(LocalFile.from_path(image_file, "logo"))

    assert fake.count("FileStatus") == 3
    assert sleeps == [0.5, 0.5, 0.5]
    ref = exc.value.reference
    assert ref.status is ResourceStatus.TIMEOUT
    assert ref.url == "https://uploads.test/bucket/tmp/logo.png"


def test_poll_survives_status_errors(manager, fake, image_file):
    fake.on("FileStatus", [{"errors": [{"message": "Internal error"}]}, fake._FileStatus])
    ref = manager.upload(LocalFile.from_path(image_file, "logo"))
    assert ref.status is ResourceStatus.READY
    assert fake.count("FileStatus") == 2


def test_install_theme_deletes_blob_when_ready(manager, fake, client, blob_store, theme_zip):
    theme = manager.install_theme(
        LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
    )
    assert theme.created
    assert fake.variables("ThemeCreate")[0]["role"] == "UNPUBLISHED"
    assert fake.variables("ThemeCreate")[0]["source"] == fake.blob_puts[0]
    assert fake.blob_deletes == fake.blob_puts


def test_install_theme_timeout_still_deletes_blob(manager, fake, client, blob_store, theme_zip):
    fake.theme_processing = True
    with pytest.raises(ProcessingTimeout) as exc:
        manager.install_theme(
            LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
        )
    assert exc.value.reference.id == fake.themes["VT-PRO - demo-store"]["id"]
    assert len(fake.blob_deletes) == 1


def test_install_theme_create_failure_deletes_blob(manager, fake, client, blob_store, theme_zip):
    fake.on("ThemeCreate", user_error("themeCreate", "Source is not a valid zip"))
    with pytest.raises(ReconciliationError):
        manager.install_theme(
            LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
        )
    assert len(fake.blob_deletes) == 1


def test_install_theme_cleanup_failure_does_not_mask_create_error(manager, fake, client, blob_store, theme_zip):
    fake.blob_delete_status = 503
    fake.on("ThemeCreate", user_error("themeCreate", "Source is not a valid zip"))
    with pytest.raises(ReconciliationError):
        manager.install_theme(
            LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
        )
    assert len(fake.blob_deletes) == 1


def test_install_theme_cleanup_failure_after_ready_keeps_theme(manager, fake, client, blob_store, theme_zip):
    fake.blob_delete_status = 503
    with pytest.raises(BlobCleanupError) as exc:
        manager.install_theme(
            LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
        )
    assert exc.value.entity.id == fake.themes["VT-PRO - demo-store"]["id"]
    assert fake.count("ThemeStatus") == 1


def test_install_theme_timeout_wins_over_cleanup_failure(manager, fake, client, blob_store, theme_zip):
    fake.blob_delete_status = 503
    fake.theme_processing = True
    with pytest.raises(ProcessingTimeout):
        manager.install_theme(
            LocalFile.from_path(theme_zip, "theme"), "VT-PRO - demo-store", ResourceReconciler(client), blob_store
        )
