from io import BytesIO

import pytest
from PIL import Image as PILImage

from mediameta.db.repositories import ImageRepo
from mediameta.db.services import (
    CategoryInUse, CategoryService, ImageNotFound, ImageService, MAX_UPLOAD_BYTES, PendingUpload, TemplateService,
    UnsupportedMediaType, UploadTooLarge,
)
from mediameta.schema import MetadataValidationError

NOW = 1_700_000_000.0


@pytest.fixture()
def widgets(dbm, product_fields):
    tid = TemplateService(dbm).create_template("Product", product_fields)
    return CategoryService(dbm).create_category("Widgets", tid)


@pytest.fixture()
def images(dbm, store):
    return ImageService(dbm, store, clock=lambda: NOW)


def test_product_widgets_end_to_end(dbm, store, images, widgets, png_bytes):
    image_id = images.upload(widgets, "a.png", png_bytes(), {"weight": "12", "specs.color": "red"})

    img = images.get_image(image_id)
    assert img.storage_key == "media-files/Widgets/1700000000000-a.png"
    assert (img.width_px, img.height_px) == (20, 12)
    assert img.metadata_values == {"weight": 12, "specs.color": "red"}

    attrs = store.head(img.storage_key)
    assert attrs["weight"] == "12"
    assert attrs["specs-color"] == "red"
    assert attrs["is-active"] == "true"
    assert attrs["sequence"] == "0"

    assert images.read_view(image_id) == ["weight: 12", "specs.color: red", "specs.notes: N/A"]

    categories = CategoryService(dbm)
    with pytest.raises(CategoryInUse) as exc:
        categories.delete_category(widgets)
    assert exc.value.count == 1


def test_upload_appends_sequence_and_unique_keys(images, widgets, png_bytes):
    a = images.upload(widgets, "a.png", png_bytes())
    b = images.upload(widgets, "a.png", png_bytes())
    rows = images.list_images(widgets)
    assert [r.id for r in rows] == [a, b]
    assert [r.sequence for r in rows] == [0, 1]
    assert rows[0].storage_key != rows[1].storage_key


def test_upload_limits(images, widgets, png_bytes, store):
    with pytest.raises(UploadTooLarge):
        images.upload(widgets, "big.png", b"\0" * (MAX_UPLOAD_BYTES + 1))
    with pytest.raises(UnsupportedMediaType):
        images.upload(widgets, "notes.txt", b"hello")
    with pytest.raises(MetadataValidationError):
        images.upload(widgets, "a.png", png_bytes(), {"weight": "heavy"})
    assert store.keys() == []
    assert images.list_images(widgets) == []


def test_video_upload_has_no_dimensions_or_thumbnail(images, widgets):
    image_id = images.upload(widgets, "clip.mp4", b"not really a video")
    img = images.get_image(image_id)
    assert img.mime_type == "video/mp4"
    assert (img.width_px, img.height_px) == (None, None)
    assert images.thumbnail_bytes(image_id) is None


def test_bytes_removed_when_row_insert_fails(images, widgets, png_bytes, store, monkeypatch):
    def boom(*a, **k):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(ImageRepo, "create", boom)
    with pytest.raises(RuntimeError):
        images.upload(widgets, "a.png", png_bytes())
    assert store.keys() == []


def test_upload_batch_keeps_successes(images, widgets, png_bytes):
    result = images.upload_batch(widgets, [
        PendingUpload("a.png", png_bytes(), {"weight": 1}),
        PendingUpload("b.txt", b"text"),
        PendingUpload("c.png", png_bytes(), {"specs.color": "blue"}),
    ])
    assert not result.ok
    assert len(result.succeeded) == 2
    assert [f.item.file_name for f in result.failed] == ["b.txt"]
    assert isinstance(result.failed[0].error, UnsupportedMediaType)
    assert [r.file_name for r in images.list_images(widgets)] == ["a.png", "c.png"]


def test_update_metadata_rewrites_row_and_attributes(images, widgets, png_bytes, store):
    image_id = images.upload(widgets, "a.png", png_bytes(), {"weight": 12, "specs.color": "red"})
    images.update_metadata(image_id, {"weight": "", "specs.color": "red", "specs.notes": "fragile"})

    img = images.get_image(image_id)
    assert img.metadata_values == {"weight": None, "specs.color": "red", "specs.notes": "fragile"}
    assert store.head(img.storage_key) == {
        "weight": "", "specs-color": "red", "specs-notes": "fragile", "is-active": "true", "sequence": "0",
    }


def test_invalid_metadata_update_changes_nothing(images, widgets, png_bytes, store):
    image_id = images.upload(widgets, "a.png", png_bytes(), {"weight": 12})
    before = store.head(images.get_image(image_id).storage_key)
    with pytest.raises(MetadataValidationError):
        images.update_metadata(image_id, {"specs.color": "green"})
    assert images.get_image(image_id).metadata_values == {"weight": 12}
    assert store.head(images.get_image(image_id).storage_key) == before


def test_set_active(images, widgets, png_bytes, store):
    image_id = images.upload(widgets, "a.png", png_bytes(), {"weight": 3})
    images.set_active(image_id, False)
    img = images.get_image(image_id)
    assert img.is_active is False
    assert store.head(img.storage_key)["is-active"] == "false"
    assert store.head(img.storage_key)["weight"] == "3"
    assert images.list_images(widgets, active_only=True) == []


def test_save_sequence(images, widgets, png_bytes, store):
    ids = [images.upload(widgets, f"{n}.png", png_bytes()) for n in "abc"]
    result = images.save_sequence(widgets, [ids[2], ids[0], ids[1], 999])

    assert result.succeeded == [ids[2], ids[0], ids[1]]
    assert isinstance(result.failed[0].error, ImageNotFound)
    rows = images.list_images(widgets)
    assert [r.file_name for r in rows] == ["c.png", "a.png", "b.png"]
    assert [store.head(r.storage_key)["sequence"] for r in rows] == ["0", "1", "2"]


def test_sequence_attribute_restored_when_row_update_fails(images, widgets, png_bytes, store, monkeypatch):
    a = images.upload(widgets, "a.png", png_bytes())
    b = images.upload(widgets, "b.png", png_bytes())

    def boom(*a, **k):
        raise RuntimeError("update failed")

    monkeypatch.setattr(ImageRepo, "set_sequence", boom)
    result = images.save_sequence(widgets, [b, a])

    assert result.succeeded == []
    assert [type(f.error) for f in result.failed] == [RuntimeError, RuntimeError]
    for image_id, seq in ((a, "0"), (b, "1")):
        img = images.get_image(image_id)
        assert img.sequence == int(seq)
        assert store.head(img.storage_key)["sequence"] == seq


def test_delete_image_removes_bytes_and_row(dbm, images, widgets, png_bytes, store):
    image_id = images.upload(widgets, "a.png", png_bytes())
    images.delete_image(image_id)
    assert store.keys() == []
    with pytest.raises(ImageNotFound):
        images.get_image(image_id)
    CategoryService(dbm).delete_category(widgets)


def test_download_url_and_thumbnail(images, widgets, png_bytes, store):
    data = png_bytes(600, 300)
    image_id = images.upload(widgets, "wide.png", data)

    url = images.download_url(image_id)
    assert store.open_signed_url(url) == data
    assert images.get_bytes(image_id) == data

    with PILImage.open(BytesIO(images.thumbnail_bytes(image_id))) as thumb:
        assert thumb.format == "PNG"
        assert thumb.size == (256, 128)
