"""Tests for core data models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from photo_ingest.core.models import (
    BatchItemResult,
    BatchResult,
    BrandingContext,
    EventStatsDelta,
    FetchedAsset,
    IngestRequest,
    ItemFailure,
    ItemSkipped,
    ItemSuccess,
    SourceItem,
    StoredAsset,
    TransformSpec,
    WatermarkPlacement,
)


def _success(source_id: str, original: int = 1000, processed: int = 400) -> ItemSuccess:
    return ItemSuccess(
        source_id=source_id,
        file_name=f"{source_id}.jpg",
        stored_asset=StoredAsset(
            key=f"events/shared/e1/images/{source_id}.jpg",
            public_url=f"https://bucket.s3.amazonaws.com/events/shared/e1/images/{source_id}.jpg",
            original_size=original,
            processed_size=processed,
        ),
    )


class TestSourceItem:
    """Tests for SourceItem."""

    def test_remote_item(self):
        item = SourceItem(id="abc", suggested_name="abc.jpg", fetch_hints=["https://x/1"])
        assert not item.is_local
        assert item.fetch_hints == ["https://x/1"]

    def test_local_item(self):
        item = SourceItem(id="/tmp/a.jpg", suggested_name="a.jpg", local_bytes=b"data")
        assert item.is_local

    def test_local_path_item(self):
        item = SourceItem(id="/tmp/a.jpg", suggested_name="a.jpg", local_path="/tmp/a.jpg")
        assert item.is_local
        assert item.local_bytes is None

    def test_local_bytes_hidden_from_repr(self):
        item = SourceItem(id="x", suggested_name="x.jpg", local_bytes=b"secret-bytes")
        assert "secret-bytes" not in repr(item)


def test_fetched_asset_size():
    asset = FetchedAsset(source_id="x", data=b"12345", declared_content_type="image/jpeg")
    assert asset.size == 5


class TestTransformSpec:
    """Tests for TransformSpec."""

    def test_defaults(self):
        spec = TransformSpec()
        assert spec.max_edge == 1024
        assert spec.quality == 90
        assert spec.watermark is None
        assert spec.content_type == "image/jpeg"
        assert spec.extension == ".jpg"

    def test_client_precompression(self):
        spec = TransformSpec.client_precompression()
        assert (spec.max_edge, spec.quality) == (2048, 80)

    def test_quality_bounds(self):
        with pytest.raises(ValidationError):
            TransformSpec(quality=0)

    def test_frozen(self):
        with pytest.raises(ValidationError):
            TransformSpec().max_edge = 10


class TestWatermarkPlacement:
    """Tests for WatermarkPlacement."""

    def test_scaled(self):
        placement = WatermarkPlacement(x=100, y=200, logo_width=400, logo_height=200, padding=50, logo_size=400)
        scaled = placement.scaled(0.5, 0.25)
        assert (scaled.x, scaled.y) == (50, 50)
        assert (scaled.logo_width, scaled.logo_height) == (200, 50)
        assert scaled.padding == 12

    def test_fits_within(self):
        placement = WatermarkPlacement(x=10, y=10, logo_width=20, logo_height=20, padding=10, logo_size=20)
        assert placement.fits_within(30, 30)
        assert not placement.fits_within(29, 30)


class TestBatchResult:
    """Tests for BatchResult aggregation."""

    def test_add_routes_by_status(self):
        result = BatchResult(total=3)
        result.add(_success("a"))
        result.add(ItemSkipped(source_id="b", file_name="b.jpg"))
        result.add(ItemFailure(source_id="c", reason="boom"))

        assert (result.success_count, result.skipped_count, result.failure_count) == (1, 1, 1)
        assert result.is_complete

    def test_byte_totals_count_successes_only(self):
        result = BatchResult(total=3)
        result.add(_success("a", 1000, 300))
        result.add(_success("b", 2000, 500))
        result.add(ItemSkipped(source_id="c", file_name="c.jpg"))

        assert result.total_original_bytes == 3000
        assert result.total_processed_bytes == 800

    def test_incomplete(self):
        result = BatchResult(total=2)
        result.add(_success("a"))
        assert not result.is_complete

    def test_summary(self):
        result = BatchResult(total=1)
        result.add(_success("a"))
        assert result.summary()["successful"] == 1
        assert result.summary()["total"] == 1

    def test_json_round_trip_keeps_variants(self):
        result = BatchResult(total=2)
        result.add(_success("a"))
        result.add(ItemFailure(source_id="b", reason="bad", error_type="DecodeError"))

        restored = BatchResult.model_validate_json(result.model_dump_json())
        assert restored.failures[0].error_type == "DecodeError"
        assert restored.successes[0].stored_asset.key.endswith("a.jpg")


def test_batch_item_result_discriminator():
    adapter = TypeAdapter(BatchItemResult)
    parsed = adapter.validate_python({"status": "skipped", "source_id": "x", "file_name": "x.jpg"})
    assert isinstance(parsed, ItemSkipped)


class TestBrandingContext:
    """Tests for BrandingContext."""

    def test_default_is_off(self):
        assert not BrandingContext().wants_watermark

    def test_enabled_without_logo_does_not_watermark(self):
        assert not BrandingContext(enabled=True).wants_watermark

    def test_enabled_with_logo(self):
        assert BrandingContext(enabled=True, logo_url="/logo.png").wants_watermark


def test_event_stats_delta_from_batch():
    result = BatchResult(total=2)
    result.add(_success("a", 1000, 300))
    result.add(ItemFailure(source_id="b", reason="x"))

    delta = EventStatsDelta.from_batch(result)

    assert delta.photo_count_delta == 1
    assert delta.original_bytes_delta == 1000
    assert delta.compressed_bytes_delta == 300


def test_ingest_request_defaults():
    request = IngestRequest(event_id="e1", link="https://drive.google.com/file/d/abc/view")
    assert request.files == []
    assert request.branding_override is None
