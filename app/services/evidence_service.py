"""
Evidence image lookup and attachment.

Listing pictures happens on the calling thread (it may use the request's
database session); content fetches fan out on a bounded thread pool and
never touch the session.
"""
import base64
import logging
import mimetypes
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ExternalFetchError
from app.models.picture import AuditPicture
from app.services.records import EvidenceTag
from app.utils.retry import retry_call

logger = logging.getLogger(__name__)

TAG_ALIASES = {
    "issue": EvidenceTag.ISSUE,
    "finding": EvidenceTag.ISSUE,
    "before": EvidenceTag.ISSUE,
    "corrective": EvidenceTag.CORRECTIVE,
    "corrective action": EvidenceTag.CORRECTIVE,
    "after": EvidenceTag.CORRECTIVE,
    "good": EvidenceTag.GOOD,
    "good observation": EvidenceTag.GOOD,
    "compliant": EvidenceTag.GOOD,
}

TAG_ORDER = {
    EvidenceTag.ISSUE: 0,
    EvidenceTag.GOOD: 1,
    EvidenceTag.CORRECTIVE: 2,
}

DEFAULT_CONTENT_TYPE = "image/jpeg"


def normalize_tag(raw: Optional[str]) -> Optional[EvidenceTag]:
    """Map a stored picture type to an EvidenceTag; None when unrecognized."""
    if not raw:
        return None
    return TAG_ALIASES.get(" ".join(raw.strip().lower().replace("_", " ").split()))


@dataclass(frozen=True)
class PictureRef:
    """Listing entry for one stored picture."""
    picture_id: int
    response_id: int
    picture_type: Optional[str]
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    file_path: Optional[str] = None
    inline_data: Optional[bytes] = field(default=None, repr=False)


@dataclass(frozen=True)
class EvidenceImage:
    picture_id: int
    response_id: int
    tag: EvidenceTag
    content_type: str
    file_name: Optional[str]
    data_url: str


@dataclass
class EvidenceResult:
    images: Dict[int, List[EvidenceImage]] = field(default_factory=dict)
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def for_response(self, response_id: int) -> List[EvidenceImage]:
        return self.images.get(response_id, [])

    @property
    def attached(self) -> int:
        return sum(len(images) for images in self.images.values())


class EvidenceStore(ABC):
    """Source of evidence pictures."""

    @abstractmethod
    def list_pictures(self, response_id: int) -> List[PictureRef]:
        """
        List pictures of a checklist response.

        Raises:
            ExternalFetchError: Listing failed
        """

    @abstractmethod
    def fetch_content(self, ref: PictureRef) -> bytes:
        """
        Return picture bytes. Must be safe to call from worker threads.

        Raises:
            ExternalFetchError: Content could not be retrieved
        """


class SqlEvidenceStore(EvidenceStore):
    """
    Pictures stored in the audit database.

    Content is either the inline blob or a file under evidence_dir.
    """

    def __init__(self, db: Session, evidence_dir: Optional[str] = None):
        self.db = db
        self.evidence_dir = Path(evidence_dir or settings.EVIDENCE_DIR)

    def list_pictures(self, response_id: int) -> List[PictureRef]:
        try:
            rows = (
                self.db.query(AuditPicture)
                .filter(AuditPicture.response_id == response_id)
                .order_by(AuditPicture.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalFetchError(f"Could not list pictures of response {response_id}: {e}", source="audit_pictures")
        return [
            PictureRef(
                picture_id=row.id,
                response_id=row.response_id,
                picture_type=row.picture_type,
                file_name=row.file_name,
                content_type=row.content_type,
                file_path=row.file_path,
                inline_data=row.file_data,
            )
            for row in rows
        ]

    def _resolve_path(self, file_path: str) -> Path:
        try:
            base = self.evidence_dir.resolve()
            path = (base / file_path).resolve()
        except (OSError, ValueError) as e:
            raise ExternalFetchError(f"Invalid evidence path {file_path!r}: {e}", source=file_path)
        if base != path and base not in path.parents:
            raise ExternalFetchError(f"Evidence path escapes evidence directory: {file_path}", source=file_path)
        return path

    def fetch_content(self, ref: PictureRef) -> bytes:
        if ref.inline_data:
            return ref.inline_data
        if not ref.file_path:
            return b""
        path = self._resolve_path(ref.file_path)
        try:
            return path.read_bytes()
        except OSError as e:
            raise ExternalFetchError(f"Could not read evidence file {path}: {e}", source=str(path))


class HttpEvidenceStore(SqlEvidenceStore):
    """
    Picture listing from the audit database, content downloaded over HTTP.

    file_path is resolved against base_url. Inline blobs are still served
    from the database.
    """

    def __init__(
        self,
        db: Session,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        super().__init__(db)
        base_url = base_url or settings.EVIDENCE_BASE_URL
        if not base_url:
            raise ValueError("EVIDENCE_BASE_URL must be set for the http evidence backend")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.EVIDENCE_HTTP_TIMEOUT
        self.http = http or requests.Session()

    def fetch_content(self, ref: PictureRef) -> bytes:
        if ref.inline_data:
            return ref.inline_data
        if not ref.file_path:
            return b""
        url = f"{self.base_url}/{ref.file_path.lstrip('/')}"
        try:
            response = self.http.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ExternalFetchError(f"Could not download {url}: {e}", source=url)
        return response.content


def build_evidence_store(db: Session) -> EvidenceStore:
    """Evidence store selected by EVIDENCE_BACKEND."""
    if settings.EVIDENCE_BACKEND == "http":
        return HttpEvidenceStore(db)
    if settings.EVIDENCE_BACKEND != "sql":
        logger.warning(f"Unknown EVIDENCE_BACKEND '{settings.EVIDENCE_BACKEND}', using sql")
    return SqlEvidenceStore(db)


def to_data_url(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


class EvidenceAttachmentResolver:
    """
    Fetches evidence images for checklist responses.

    A failed listing or fetch affects only the picture (or response) concerned;
    failures are logged and counted in the result.
    """

    def __init__(
        self,
        store: EvidenceStore,
        max_workers: Optional[int] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.store = store
        self.max_workers = max_workers or settings.EVIDENCE_MAX_CONCURRENCY
        self.retries = settings.EVIDENCE_FETCH_RETRIES if retries is None else retries
        self.retry_delay = settings.RETRY_BASE_DELAY if retry_delay is None else retry_delay

    def _list(self, response_ids: Iterable[int], result: EvidenceResult) -> List[PictureRef]:
        refs = []
        for response_id in response_ids:
            try:
                refs.extend(self.store.list_pictures(response_id))
            except ExternalFetchError as e:
                logger.warning(f"Evidence listing failed for response {response_id}: {e}")
                result.failed += 1
                result.errors.append(f"Listing failed for response {response_id}")
            except Exception as e:
                logger.error(
                    f"Unexpected error listing pictures of response {response_id}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                result.failed += 1
                result.errors.append(f"Listing failed for response {response_id}")
        return refs

    def _fetch(self, ref: PictureRef) -> bytes:
        return retry_call(
            self.store.fetch_content,
            ref,
            retries=self.retries,
            base_delay=self.retry_delay,
            exceptions=(ExternalFetchError,),
        )

    def resolve(self, response_ids: Iterable[int]) -> EvidenceResult:
        """
        Attach images to the given responses.

        Args:
            response_ids: Checklist response IDs

        Returns:
            EvidenceResult with images per response in (tag, picture id) order
        """
        result = EvidenceResult()
        response_ids = list(dict.fromkeys(response_ids))
        if not response_ids:
            return result

        pending = []
        for ref in self._list(response_ids, result):
            tag = normalize_tag(ref.picture_type)
            if tag is None:
                logger.warning(f"Skipping picture {ref.picture_id}: unknown picture type {ref.picture_type!r}")
                result.skipped += 1
                continue
            pending.append((ref, tag))

        if pending:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
                future_to_ref = {executor.submit(self._fetch, ref): (ref, tag) for ref, tag in pending}
                for future in as_completed(future_to_ref):
                    ref, tag = future_to_ref[future]
                    try:
                        content = future.result()
                    except ExternalFetchError as e:
                        logger.warning(f"Evidence fetch failed for picture {ref.picture_id}: {e}")
                        result.failed += 1
                        result.errors.append(f"Picture {ref.picture_id} could not be fetched")
                        continue
                    except Exception as e:
                        # isolated to this picture
                        logger.error(
                            f"Unexpected error fetching picture {ref.picture_id}: {type(e).__name__}: {e}",
                            exc_info=True,
                        )
                        result.failed += 1
                        result.errors.append(f"Picture {ref.picture_id} could not be fetched")
                        continue
                    if not content:
                        logger.warning(f"Skipping picture {ref.picture_id}: empty payload")
                        result.skipped += 1
                        continue
                    content_type = (
                        ref.content_type
                        or (mimetypes.guess_type(ref.file_name)[0] if ref.file_name else None)
                        or DEFAULT_CONTENT_TYPE
                    )
                    result.images.setdefault(ref.response_id, []).append(EvidenceImage(
                        picture_id=ref.picture_id,
                        response_id=ref.response_id,
                        tag=tag,
                        content_type=content_type,
                        file_name=ref.file_name,
                        data_url=to_data_url(content, content_type),
                    ))

        ordered = {}
        for response_id in response_ids:
            images = result.images.get(response_id)
            if images:
                ordered[response_id] = sorted(images, key=lambda i: (TAG_ORDER[i.tag], i.picture_id))
        result.images = ordered

        if result.failed:
            logger.warning(
                f"Evidence: {result.attached} image(s) attached, {result.failed} failure(s), {result.skipped} skipped"
            )
        return result
