"""
Historical trend resolution for a store's prior audit cycles.
"""
import enum
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Union

from app.core.config import settings
from app.core.errors import PartialDataError
from app.services.audit_store import AuditStore
from app.services.records import HistoricalRecord, SectionSnapshot

logger = logging.getLogger(__name__)


class Unavailable(str, enum.Enum):
    """Marker for a trend cell with no data (distinct from a score of 0)."""
    NOT_AVAILABLE = "not_available"


NOT_AVAILABLE = Unavailable.NOT_AVAILABLE

TrendValue = Union[float, Unavailable]

OVERALL_ROW = "overall"


def cycle_pattern(label: str) -> "re.Pattern":
    return re.compile(r"(?<![A-Za-z0-9])" + re.escape(label.strip()) + r"(?![A-Za-z0-9])", re.IGNORECASE)


def cycle_matches(requested: str, stored: Optional[str]) -> bool:
    """
    True when the requested label occurs in the stored cycle as a whole token.

    "C1" matches "C1", "c1 (Jan/Feb)" and "2024 C1" but not "C10".
    """
    if not requested or not stored:
        return False
    return cycle_pattern(requested).search(stored) is not None


@dataclass(frozen=True)
class TrendRow:
    key: str  # section number as text, or "overall"
    label: str
    section_number: Optional[int]
    values: "OrderedDict[str, TrendValue]"


class HistoricalTrendResolver:
    """
    Resolves prior-cycle scores for one audit.

    One instance serves one report; completed audits are loaded once, on
    first use, and never shared across instances.
    """

    def __init__(
        self,
        store: AuditStore,
        store_id: int,
        schema_id: int,
        current_audit_id: int,
        cycles: Optional[Sequence[str]] = None,
    ):
        self.store = store
        self.store_id = store_id
        self.schema_id = schema_id
        self.current_audit_id = current_audit_id
        self.cycles = list(cycles) if cycles else list(settings.TREND_CYCLES)
        self._history: Optional[List[HistoricalRecord]] = None
        self._matches: Dict[str, Optional[HistoricalRecord]] = {}

    def history(self) -> List[HistoricalRecord]:
        """Completed audits of the store and schema, current audit excluded."""
        if self._history is None:
            records = self.store.list_completed_audits(
                self.store_id, self.schema_id, exclude_audit_id=self.current_audit_id
            )
            self._history = [r for r in records if r.audit_id != self.current_audit_id]
            logger.debug(
                f"Loaded {len(self._history)} historical audit(s) for store {self.store_id}, schema {self.schema_id}"
            )
        return self._history

    def match_cycle(self, cycle: str) -> Optional[HistoricalRecord]:
        """
        The audit representing a cycle: among matches, the most recently
        created (creation time, then id) wins.
        """
        if cycle not in self._matches:
            candidates = [record for record in self.history() if cycle_matches(cycle, record.cycle)]
            self._matches[cycle] = max(candidates, key=lambda r: (r.created_at, r.audit_id), default=None)
        return self._matches[cycle]

    @staticmethod
    def _section(record: HistoricalRecord, section_number: int) -> Optional[SectionSnapshot]:
        for snapshot in record.sections:
            if snapshot.section_number == section_number:
                return snapshot
        return None

    def section_percentage_strict(self, cycle: str, section_number: int) -> float:
        """
        Raises:
            PartialDataError: No audit for the cycle, or no score for the section
        """
        record = self.match_cycle(cycle)
        if record is None:
            raise PartialDataError(f"No completed audit for cycle {cycle}")
        snapshot = self._section(record, section_number)
        if snapshot is None or snapshot.percentage is None:
            raise PartialDataError(
                f"No score for section {section_number} in cycle {cycle} ({record.document_number})"
            )
        return snapshot.percentage

    def overall_percentage_strict(self, cycle: str) -> float:
        record = self.match_cycle(cycle)
        if record is None:
            raise PartialDataError(f"No completed audit for cycle {cycle}")
        if record.total_score is None:
            raise PartialDataError(f"No overall score in cycle {cycle} ({record.document_number})")
        return record.total_score

    def section_percentage(self, cycle: str, section_number: int) -> TrendValue:
        try:
            return self.section_percentage_strict(cycle, section_number)
        except PartialDataError:
            return NOT_AVAILABLE

    def overall_percentage(self, cycle: str) -> TrendValue:
        try:
            return self.overall_percentage_strict(cycle)
        except PartialDataError:
            return NOT_AVAILABLE

    def missing_cycles(self) -> List[str]:
        return [cycle for cycle in self.cycles if self.match_cycle(cycle) is None]

    def trend_table(self, sections: Iterable) -> List[TrendRow]:
        """
        One row per current section plus an overall row, one cell per cycle.

        Args:
            sections: Current sections (objects with section_number and section_name)
        """
        rows = []
        for section in sorted(sections, key=lambda s: s.section_number):
            values = OrderedDict(
                (cycle, self.section_percentage(cycle, section.section_number)) for cycle in self.cycles
            )
            rows.append(TrendRow(str(section.section_number), section.section_name, section.section_number, values))
        overall = OrderedDict((cycle, self.overall_percentage(cycle)) for cycle in self.cycles)
        rows.append(TrendRow(OVERALL_ROW, "Overall", None, overall))
        return rows

    def repeat_findings(self) -> Dict[str, int]:
        """
        Number of historical audits in which each reference value was
        answered No or Partially.
        """
        audit_ids = [record.audit_id for record in self.history()]
        seen = {}
        for result in self.store.get_failing_items(audit_ids):
            if result.audit_id == self.current_audit_id or not result.reference_value:
                continue
            seen.setdefault(result.reference_value, set()).add(result.audit_id)
        return {reference: len(ids) for reference, ids in seen.items()}
