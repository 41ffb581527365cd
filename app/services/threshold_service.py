"""
Pass/fail threshold lookup with TTL caching and degraded-mode fallback.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.cache import Cache
from app.core.config import settings
from app.core.errors import ExternalFetchError, NotFoundError, ValidationError
from app.models.audit_schema import AuditSchema
from app.models.system_setting import SettingType, SystemSetting
from app.utils.retry import retry_call

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 83.0


@dataclass(frozen=True)
class Thresholds:
    """Passing grades (percent) for one schema."""
    overall: float = DEFAULT_THRESHOLD
    section: float = DEFAULT_THRESHOLD
    category: float = DEFAULT_THRESHOLD
    section_overrides: Dict[int, float] = field(default_factory=dict)
    degraded: bool = False

    def section_threshold(self, section_number: int) -> float:
        return self.section_overrides.get(section_number, self.section)

    @classmethod
    def defaults(cls, degraded: bool = False) -> "Thresholds":
        return cls(
            overall=settings.DEFAULT_OVERALL_THRESHOLD,
            section=settings.DEFAULT_SECTION_THRESHOLD,
            category=settings.DEFAULT_CATEGORY_THRESHOLD,
            degraded=degraded,
        )


# (setting_type, entity_id, passing_grade)
SettingRow = Tuple[SettingType, Optional[int], float]


class ConfigurationStore(ABC):
    """Read/write access to per-schema threshold settings."""

    @abstractmethod
    def fetch_settings(self, schema_id: int) -> List[SettingRow]:
        """
        Return the stored settings of a schema.

        Raises:
            ExternalFetchError: The backing store could not be read
        """

    @abstractmethod
    def save_settings(self, schema_id: int, rows: List[SettingRow]) -> None:
        """Replace the stored settings of a schema."""


class SqlConfigurationStore(ConfigurationStore):
    """Configuration store backed by the system_settings table."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_settings(self, schema_id: int) -> List[SettingRow]:
        try:
            rows = self.db.query(SystemSetting).filter(SystemSetting.schema_id == schema_id).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalFetchError(f"Could not read settings for schema {schema_id}: {e}", source="system_settings")
        return [(row.setting_type, row.entity_id, row.passing_grade) for row in rows]

    def save_settings(self, schema_id: int, rows: List[SettingRow]) -> None:
        if not self.db.query(AuditSchema.id).filter(AuditSchema.id == schema_id).first():
            raise NotFoundError("Schema", schema_id)

        existing = {
            (row.setting_type, row.entity_id): row
            for row in self.db.query(SystemSetting).filter(SystemSetting.schema_id == schema_id).all()
        }
        wanted = set()
        for setting_type, entity_id, passing_grade in rows:
            wanted.add((setting_type, entity_id))
            row = existing.get((setting_type, entity_id))
            if row is None:
                self.db.add(SystemSetting(
                    schema_id=schema_id,
                    setting_type=setting_type,
                    entity_id=entity_id,
                    passing_grade=passing_grade,
                ))
            else:
                row.passing_grade = passing_grade
        for key, row in existing.items():
            if key not in wanted:
                self.db.delete(row)
        self.db.commit()


def _validate_grade(value: float, label: str) -> float:
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} threshold is not a number: {value!r}")
    if not 0 <= grade <= 100:
        raise ValidationError(f"{label} threshold must be between 0 and 100, got {value!r}")
    return grade


class ThresholdConfigProvider:
    """
    Resolves thresholds for a schema.

    Values are cached per schema for ttl_seconds. A store failure is retried
    `retries` times; when every attempt fails the provider returns the default
    thresholds flagged as degraded and does not cache them.
    """

    CACHE_PREFIX = "thresholds"

    def __init__(
        self,
        store: ConfigurationStore,
        cache: Cache,
        ttl_seconds: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """
        Initialize threshold provider.

        Args:
            store: Configuration store
            cache: Shared cache instance
            ttl_seconds: Cache TTL (THRESHOLD_CACHE_TTL_SECONDS by default)
            retries: Extra attempts on fetch failure (CONFIG_FETCH_RETRIES by default)
            retry_delay: Initial backoff delay (RETRY_BASE_DELAY by default)
        """
        self.store = store
        self.cache = cache
        self.ttl_seconds = settings.THRESHOLD_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.retries = settings.CONFIG_FETCH_RETRIES if retries is None else retries
        self.retry_delay = settings.RETRY_BASE_DELAY if retry_delay is None else retry_delay

    def _key(self, schema_id: int) -> Tuple[str, int]:
        return (self.CACHE_PREFIX, schema_id)

    def get_thresholds(self, schema_id: int) -> Thresholds:
        """
        Get thresholds for a schema.

        Args:
            schema_id: Schema ID

        Returns:
            Thresholds (degraded=True when the store was unreachable)
        """
        cached = self.cache.get(self._key(schema_id))
        if cached is not None:
            return cached

        try:
            rows = retry_call(
                self.store.fetch_settings,
                schema_id,
                retries=self.retries,
                base_delay=self.retry_delay,
                exceptions=(ExternalFetchError,),
            )
        except ExternalFetchError as e:
            logger.warning(
                f"Threshold lookup for schema {schema_id} failed after {self.retries + 1} attempt(s), "
                f"using default thresholds (degraded mode): {e}"
            )
            return Thresholds.defaults(degraded=True)

        thresholds = self._resolve(rows)
        self.cache.set(self._key(schema_id), thresholds, self.ttl_seconds)
        return thresholds

    def _resolve(self, rows: List[SettingRow]) -> Thresholds:
        resolved = Thresholds.defaults()
        overall, section, category = resolved.overall, resolved.section, resolved.category
        overrides: Dict[int, float] = {}

        for setting_type, entity_id, passing_grade in rows:
            setting_type = SettingType(setting_type)
            if setting_type == SettingType.OVERALL:
                overall = passing_grade
            elif setting_type == SettingType.CATEGORY:
                category = passing_grade
            elif entity_id is None:
                section = passing_grade
            else:
                overrides[entity_id] = passing_grade

        return Thresholds(overall=overall, section=section, category=category, section_overrides=overrides)

    def update_thresholds(
        self,
        schema_id: int,
        overall: float,
        section: float,
        category: float,
        section_overrides: Optional[Dict[int, float]] = None,
    ) -> Thresholds:
        """
        Persist new thresholds and drop the cached value.

        Raises:
            ValidationError: A grade is outside 0..100
            NotFoundError: Schema does not exist
        """
        rows: List[SettingRow] = [
            (SettingType.OVERALL, None, _validate_grade(overall, "Overall")),
            (SettingType.SECTION, None, _validate_grade(section, "Section")),
            (SettingType.CATEGORY, None, _validate_grade(category, "Category")),
        ]
        for section_number, grade in sorted((section_overrides or {}).items()):
            rows.append((SettingType.SECTION, int(section_number), _validate_grade(grade, f"Section {section_number}")))

        self.store.save_settings(schema_id, rows)
        self.invalidate(schema_id)
        logger.info(f"Thresholds updated for schema {schema_id}")
        return self._resolve(rows)

    def invalidate(self, schema_id: Optional[int] = None) -> None:
        """Drop the cached thresholds of one schema, or of every schema."""
        if schema_id is None:
            self.cache.clear()
        else:
            self.cache.delete(self._key(schema_id))
