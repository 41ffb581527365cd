"""
Tests for evidence attachment with partial-failure tolerance.
"""
import base64
from unittest.mock import MagicMock

import pytest
import requests

from app.core.errors import ExternalFetchError
from app.models.picture import AuditPicture
from app.services.evidence_service import (
    EvidenceAttachmentResolver,
    EvidenceStore,
    HttpEvidenceStore,
    PictureRef,
    SqlEvidenceStore,
    normalize_tag,
)
from app.services.records import EvidenceTag


class FakeEvidenceStore(EvidenceStore):
    """Pictures keyed by response id; some picture ids fail, some responses cannot be listed."""

    def __init__(self, pictures, failing_pictures=(), failing_listings=(), flaky=None, broken=None):
        self.pictures = pictures
        self.failing_pictures = set(failing_pictures)
        self.failing_listings = set(failing_listings)
        self.flaky = dict(flaky or {})  # picture id -> failures before success
        self.broken = dict(broken or {})  # picture id -> unexpected exception
        self.fetch_calls = {}

    def list_pictures(self, response_id):
        if response_id in self.failing_listings:
            raise ExternalFetchError(f"listing {response_id} failed")
        return list(self.pictures.get(response_id, []))

    def fetch_content(self, ref):
        self.fetch_calls[ref.picture_id] = self.fetch_calls.get(ref.picture_id, 0) + 1
        if ref.picture_id in self.failing_pictures:
            raise ExternalFetchError(f"picture {ref.picture_id} unavailable")
        if ref.picture_id in self.broken:
            raise self.broken[ref.picture_id]
        if self.flaky.get(ref.picture_id, 0) > 0:
            self.flaky[ref.picture_id] -= 1
            raise ExternalFetchError("transient")
        return ref.inline_data or b""


def ref(picture_id, response_id, tag, data=b"img"):
    return PictureRef(
        picture_id=picture_id,
        response_id=response_id,
        picture_type=tag,
        content_type="image/png",
        inline_data=data,
    )


def resolver_for(store, retries=2):
    return EvidenceAttachmentResolver(store, max_workers=3, retries=retries, retry_delay=0)


@pytest.mark.parametrize("raw,expected", [
    ("issue", EvidenceTag.ISSUE),
    ("Finding", EvidenceTag.ISSUE),
    ("before", EvidenceTag.ISSUE),
    ("Corrective", EvidenceTag.CORRECTIVE),
    ("corrective_action", EvidenceTag.CORRECTIVE),
    ("AFTER", EvidenceTag.CORRECTIVE),
    ("good", EvidenceTag.GOOD),
    ("selfie", None),
    (None, None),
])
def test_normalize_tag(raw, expected):
    assert normalize_tag(raw) == expected


def test_two_of_five_failures_leave_three_attached():
    store = FakeEvidenceStore(
        pictures={
            10: [ref(1, 10, "issue"), ref(2, 10, "corrective"), ref(3, 10, "issue")],
            11: [ref(4, 11, "issue"), ref(5, 11, "good")],
        },
        failing_pictures={2, 4},
    )
    result = resolver_for(store).resolve([10, 11])

    assert result.attached == 3
    assert result.failed == 2
    assert [i.picture_id for i in result.for_response(10)] == [1, 3]
    assert [i.picture_id for i in result.for_response(11)] == [5]
    # each failing picture tried 1 + retries times
    assert store.fetch_calls[2] == 3


def test_unexpected_errors_are_isolated_per_picture():
    store = FakeEvidenceStore(
        pictures={
            10: [ref(1, 10, "issue"), ref(2, 10, "corrective"), ref(3, 10, "issue")],
            11: [ref(4, 11, "issue"), ref(5, 11, "good")],
        },
        broken={2: ConnectionResetError("socket reset"), 4: OSError("disk gone")},
    )
    result = resolver_for(store).resolve([10, 11])

    assert result.attached == 3
    assert result.failed == 2
    assert [i.picture_id for i in result.for_response(10)] == [1, 3]
    # not an ExternalFetchError, so no retry
    assert store.fetch_calls[2] == 1


def test_failed_listing_isolated_to_its_item():
    store = FakeEvidenceStore(
        pictures={10: [ref(1, 10, "issue")], 11: [ref(2, 11, "issue")]},
        failing_listings={11},
    )
    result = resolver_for(store).resolve([10, 11])

    assert result.for_response(10)[0].picture_id == 1
    assert result.for_response(11) == []
    assert result.failed == 1


def test_transient_failure_recovers_with_retry():
    store = FakeEvidenceStore(pictures={10: [ref(1, 10, "issue")]}, flaky={1: 2})
    result = resolver_for(store, retries=2).resolve([10])
    assert result.attached == 1
    assert result.failed == 0


def test_unknown_tag_and_empty_payload_skipped():
    store = FakeEvidenceStore(pictures={10: [
        ref(1, 10, "selfie"),
        ref(2, 10, "issue", data=b""),
        ref(3, 10, "issue"),
    ]})
    result = resolver_for(store).resolve([10])

    assert [i.picture_id for i in result.for_response(10)] == [3]
    assert result.skipped == 2
    assert result.failed == 0


def test_stable_order_by_tag_then_picture_id():
    store = FakeEvidenceStore(pictures={10: [
        ref(9, 10, "corrective"),
        ref(3, 10, "good"),
        ref(7, 10, "issue"),
        ref(2, 10, "issue"),
    ]})
    images = resolver_for(store).resolve([10]).for_response(10)
    assert [(i.tag, i.picture_id) for i in images] == [
        (EvidenceTag.ISSUE, 2),
        (EvidenceTag.ISSUE, 7),
        (EvidenceTag.GOOD, 3),
        (EvidenceTag.CORRECTIVE, 9),
    ]


def test_images_are_data_urls():
    store = FakeEvidenceStore(pictures={10: [ref(1, 10, "issue", data=b"\x89PNG")]})
    image = resolver_for(store).resolve([10]).for_response(10)[0]

    assert image.data_url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()


def test_no_responses_no_work():
    store = FakeEvidenceStore(pictures={})
    assert resolver_for(store).resolve([]).attached == 0


def test_sql_store_reads_inline_and_files(tmp_path, db_session):
    (tmp_path / "a.jpg").write_bytes(b"from-disk")
    store = SqlEvidenceStore(db_session, evidence_dir=str(tmp_path))

    assert store.fetch_content(PictureRef(1, 1, "issue", inline_data=b"blob")) == b"blob"
    assert store.fetch_content(PictureRef(2, 1, "issue", file_path="a.jpg")) == b"from-disk"
    with pytest.raises(ExternalFetchError):
        store.fetch_content(PictureRef(3, 1, "issue", file_path="missing.jpg"))
    with pytest.raises(ExternalFetchError):
        store.fetch_content(PictureRef(4, 1, "issue", file_path="../outside.jpg"))
    with pytest.raises(ExternalFetchError):
        store.fetch_content(PictureRef(5, 1, "issue", file_path="bad\x00name.jpg"))


def test_sql_store_lists_pictures(db_session, client, audit_payload):
    audit = client.post("/api/v1/audits", json=audit_payload()).json()
    response_id = audit["responses"][0]["id"]
    db_session.add(AuditPicture(
        response_id=response_id, audit_id=audit["id"], picture_type="Finding", file_data=b"x", file_name="p.jpg",
    ))
    db_session.commit()

    refs = SqlEvidenceStore(db_session).list_pictures(response_id)
    assert len(refs) == 1
    assert refs[0].inline_data == b"x"
    assert normalize_tag(refs[0].picture_type) == EvidenceTag.ISSUE


def test_http_store_downloads_and_wraps_errors(db_session):
    http = MagicMock()
    ok = MagicMock(content=b"remote")
    ok.raise_for_status.return_value = None
    http.get.side_effect = [ok, requests.ConnectionError("down")]
    store = HttpEvidenceStore(db_session, base_url="https://evidence.example.com/", timeout=3, http=http)

    assert store.fetch_content(PictureRef(1, 1, "issue", file_path="/a/b.jpg")) == b"remote"
    http.get.assert_called_with("https://evidence.example.com/a/b.jpg", timeout=3)
    with pytest.raises(ExternalFetchError):
        store.fetch_content(PictureRef(2, 1, "issue", file_path="c.jpg"))
