"""Tests for file record normalization.

Tests:
- GenericFile / MediaImage READY records yield a URL
- Processing records yield PROCESSING with the id kept for resolution
- Field renames across API versions (originalFileUrl, originalSrc)
- Unknown subtypes yield FAILED, never an exception
- Totality over arbitrary records (hypothesis)
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lpo_uploader.assets.models import AssetKind, AssetStatus
from lpo_uploader.assets.normalizer import normalize
from lpo_uploader.errors import MalformedResponseError

GENERIC_READY = {
    "__typename": "GenericFile",
    "id": "gid://shopify/GenericFile/1",
    "fileStatus": "READY",
    "url": "https://cdn.shopify.com/s/files/a.pdf",
}

MEDIA_READY = {
    "__typename": "MediaImage",
    "id": "gid://shopify/MediaImage/2",
    "fileStatus": "READY",
    "image": {"url": "https://cdn.shopify.com/s/files/a.png"},
}


class TestGenericFile:
    def test_ready_with_url(self):
        ref = normalize(GENERIC_READY)
        assert ref.kind is AssetKind.GENERIC_FILE
        assert ref.status is AssetStatus.READY
        assert ref.locator == "https://cdn.shopify.com/s/files/a.pdf"
        assert ref.identifier == "gid://shopify/GenericFile/1"
        assert ref.is_linkable

    def test_missing_url_is_processing(self):
        record = {**GENERIC_READY, "url": None, "fileStatus": "UPLOADED"}
        ref = normalize(record)
        assert ref.status is AssetStatus.PROCESSING
        assert ref.locator == ""
        assert ref.identifier == "gid://shopify/GenericFile/1"
        assert not ref.is_linkable

    def test_processing_status_wins_over_url(self):
        ref = normalize({**GENERIC_READY, "fileStatus": "PROCESSING"})
        assert ref.status is AssetStatus.PROCESSING

    def test_no_status_field_with_url_is_ready(self):
        """Older API versions returned only url/alt."""
        ref = normalize({"__typename": "GenericFile", "url": "https://x/y.pdf", "alt": "LPO"})
        assert ref.status is AssetStatus.READY
        assert ref.locator == "https://x/y.pdf"

    def test_original_file_url_rename(self):
        record = {"__typename": "GenericFile", "id": "gid://shopify/GenericFile/9",
                  "originalFileUrl": "https://x/old.pdf"}
        assert normalize(record).locator == "https://x/old.pdf"

    def test_failed_status_keeps_file_errors(self):
        record = {**GENERIC_READY, "url": None, "fileStatus": "FAILED",
                  "fileErrors": [{"code": "UNKNOWN", "message": "Could not process"}]}
        ref = normalize(record)
        assert ref.status is AssetStatus.FAILED
        assert ref.kind is AssetKind.GENERIC_FILE
        assert ref.errors == ("Could not process",)

    def test_no_url_and_no_id_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            normalize({"__typename": "GenericFile", "fileStatus": "UPLOADED"})


class TestMediaImage:
    def test_ready_nested_url(self):
        ref = normalize(MEDIA_READY)
        assert ref.kind is AssetKind.MEDIA_IMAGE
        assert ref.status is AssetStatus.READY
        assert ref.locator == "https://cdn.shopify.com/s/files/a.png"

    def test_original_src_rename(self):
        record = {**MEDIA_READY, "image": {"originalSrc": "https://x/legacy.png"}}
        assert normalize(record).locator == "https://x/legacy.png"

    def test_preview_fallback(self):
        record = {**MEDIA_READY, "image": None,
                  "preview": {"image": {"url": "https://x/preview.png"}}}
        assert normalize(record).locator == "https://x/preview.png"

    def test_image_not_ready(self):
        record = {**MEDIA_READY, "image": None, "fileStatus": "PROCESSING"}
        ref = normalize(record)
        assert ref.status is AssetStatus.PROCESSING
        assert ref.identifier == "gid://shopify/MediaImage/2"


class TestUnknownSubtype:
    def test_video_is_failed_not_crash(self):
        ref = normalize({"__typename": "Video", "id": "gid://shopify/Video/3"})
        assert ref.kind is AssetKind.UNKNOWN
        assert ref.status is AssetStatus.FAILED
        assert ref.discriminator == "Video"
        assert ref.identifier == "gid://shopify/Video/3"

    def test_missing_discriminator_is_failed(self):
        ref = normalize({"url": "https://x/y.pdf"})
        assert ref.status is AssetStatus.FAILED
        assert ref.discriminator is None

    def test_non_object_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            normalize(["not", "a", "record"])


_json_leaf = st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=20))
_json_value = st.recursive(
    _json_leaf,
    lambda children: st.one_of(
        st.lists(children, max_size=3),
        st.dictionaries(st.text(max_size=8), children, max_size=3),
    ),
    max_leaves=10,
)

_record = st.fixed_dictionaries(
    {},
    optional={
        "__typename": st.one_of(
            st.sampled_from(["GenericFile", "MediaImage", "Video", "Model3d", ""]), _json_leaf
        ),
        "id": st.one_of(st.just("gid://shopify/GenericFile/1"), _json_leaf),
        "fileStatus": st.one_of(
            st.sampled_from(["READY", "PROCESSING", "UPLOADED", "FAILED"]), _json_leaf
        ),
        "url": st.one_of(st.just("https://x/y.pdf"), _json_value),
        "image": _json_value,
        "preview": _json_value,
        "fileErrors": _json_value,
    },
)


class TestTotality:
    @given(record=_record)
    @settings(max_examples=300, deadline=None)
    def test_every_record_yields_a_status_or_malformed(self, record):
        try:
            ref = normalize(record)
        except MalformedResponseError:
            return
        assert ref.status in set(AssetStatus)
        if ref.status is AssetStatus.READY:
            assert ref.locator
        else:
            assert ref.locator == ""
        if ref.kind is AssetKind.UNKNOWN:
            assert ref.status is AssetStatus.FAILED

    @given(typename=st.text(min_size=1, max_size=30).filter(
        lambda t: t not in {"GenericFile", "MediaImage"}
    ))
    def test_unknown_typenames_never_raise(self, typename):
        ref = normalize({"__typename": typename, "id": "gid://shopify/File/1"})
        assert ref.status is AssetStatus.FAILED
        assert ref.discriminator == typename
