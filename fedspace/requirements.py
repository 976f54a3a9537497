"""
Requirement extraction from free-text opportunity descriptions.

Best-effort text mining, not a grammar. Every extractor is independent and
returns None (or False for plain keyword flags) when the text says nothing;
none of them raise on a non-match. ``RequirementsBuilder`` combines the
parsed fields with structured values from the solicitation record.
"""

import re
import logging
from dataclasses import dataclass, asdict, fields
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from fedspace.models import ClearanceLevel, DelineatedArea, OpportunityRequirements

log = logging.getLogger(__name__)

DEFAULT_MINIMUM_RSF = 10_000

_NUMBER = r"(\d{1,3}(?:,\d{3})*|\d+)"

SF_RANGE_RE = re.compile(
    _NUMBER + r"\s*(?:to|[-–])\s*" + _NUMBER + r"\s*(?:RSF|SF|square\s+feet|sq\.?\s*ft\.?)",
    re.IGNORECASE,
)
SF_MINIMUM_RE = re.compile(
    r"(?:minimum(?:\s+of)?|at\s+least)\s*" + _NUMBER + r"\s*(?:RSF|SF|square\s+feet)",
    re.IGNORECASE,
)
CLASS_A_PLUS_RE = re.compile(r"\bClass\s*A\+", re.IGNORECASE)
CLASS_A_RE = re.compile(r"\bClass\s*A\b", re.IGNORECASE)
ADA_RE = re.compile(r"\bADA\b|Americans\s+with\s+Disabilities\s+Act|\baccessible\b", re.IGNORECASE)
SCIF_RE = re.compile(r"\bSCIF\b|Sensitive\s+Compartmented\s+Information\s+Facility", re.IGNORECASE)
TOP_SECRET_RE = re.compile(r"Top\s+Secret|TS/SCI", re.IGNORECASE)
SECRET_RE = re.compile(r"Secret\s+clearance", re.IGNORECASE)
FIBER_RE = re.compile(r"\bfiber\b|high-speed\s+internet|broadband", re.IGNORECASE)
BACKUP_POWER_RE = re.compile(
    r"backup\s+power|\bgenerators?\b|\bUPS\b|uninterruptible\s+power", re.IGNORECASE
)
PARKING_RE = re.compile(r"(\d+(?:\.\d+)?)\s*spaces?\s*per\s*1,?000\s*(?:RSF|SF)", re.IGNORECASE)
LEASE_TERM_RE = re.compile(r"(\d+)[\s-]*years?\s*(?:lease|term)", re.IGNORECASE)
CONTIGUOUS_RE = re.compile(r"\bcontiguous\b|single\s+floor|entire\s+floor", re.IGNORECASE)
OCCUPANCY_DATE_RES = [
    re.compile(r"occupancy\s+(?:by|on|date)[:\s]+(\d{1,2})/(\d{1,2})/(\d{2,4})", re.IGNORECASE),
    re.compile(r"move-?in\s+date[:\s]+(\d{1,2})/(\d{1,2})/(\d{2,4})", re.IGNORECASE),
]


def _to_int(number: str) -> int:
    return int(number.replace(",", ""))


# ═══════════════════════════════════════════════════════════════════════════
# FIELD EXTRACTORS
# ═══════════════════════════════════════════════════════════════════════════
def extract_square_footage(text: str) -> Tuple[Optional[int], Optional[int]]:
    """
    (minimum, maximum) RSF. A range wins over a "minimum N SF" phrase.

    >>> extract_square_footage("Offering 10,000 to 12,500 RSF of office space")
    (10000, 12500)
    """
    match = SF_RANGE_RE.search(text or "")
    if match:
        low, high = _to_int(match.group(1)), _to_int(match.group(2))
        return min(low, high), max(low, high)

    match = SF_MINIMUM_RE.search(text or "")
    if match:
        return _to_int(match.group(1)), None
    return None, None


def extract_building_class(text: str) -> Optional[Tuple[str, ...]]:
    if CLASS_A_PLUS_RE.search(text or ""):
        return ("A+",)
    if CLASS_A_RE.search(text or ""):
        return ("A+", "A")
    return None


def extract_ada_required(text: str) -> Optional[bool]:
    """True when accessibility is mentioned; None (unknown) otherwise."""
    return True if ADA_RE.search(text or "") else None


def extract_scif_required(text: str) -> bool:
    return bool(SCIF_RE.search(text or ""))


def extract_clearance(text: str) -> Optional[ClearanceLevel]:
    if TOP_SECRET_RE.search(text or ""):
        return ClearanceLevel.TOP_SECRET
    if SECRET_RE.search(text or ""):
        return ClearanceLevel.SECRET
    return None


def extract_fiber(text: str) -> bool:
    return bool(FIBER_RE.search(text or ""))


def extract_backup_power(text: str) -> bool:
    return bool(BACKUP_POWER_RE.search(text or ""))


def extract_parking_ratio(text: str) -> Optional[float]:
    match = PARKING_RE.search(text or "")
    return float(match.group(1)) if match else None


def extract_lease_term(text: str) -> Optional[int]:
    match = LEASE_TERM_RE.search(text or "")
    return int(match.group(1)) if match else None


def extract_contiguous(text: str) -> bool:
    return bool(CONTIGUOUS_RE.search(text or ""))


def extract_occupancy_date(text: str) -> Optional[date]:
    """
    Required occupancy from "occupancy by MM/DD/YYYY" or "move-in date: MM/DD/YY".

    Two-digit years are read as 20YY. An impossible date counts as not mentioned.
    """
    for pattern in OCCUPANCY_DATE_RES:
        match = pattern.search(text or "")
        if match is None:
            continue
        month, day, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            log.debug(f"Ignoring impossible occupancy date: {match.group(0)!r}")
            return None
    return None


# ═══════════════════════════════════════════════════════════════════════════
# PARSED RECORD
# ═══════════════════════════════════════════════════════════════════════════
@dataclass
class ParsedRequirements:
    """Whatever the description text revealed. None means "not mentioned"."""
    minimum_rsf: Optional[int] = None
    maximum_rsf: Optional[int] = None
    building_class: Optional[Tuple[str, ...]] = None
    ada_required: Optional[bool] = None
    scif_required: bool = False
    clearance_required: Optional[ClearanceLevel] = None
    fiber: bool = False
    backup_power: bool = False
    parking_ratio: Optional[float] = None
    lease_term_years: Optional[int] = None
    contiguous_required: bool = False
    occupancy_date: Optional[date] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def parse_requirements(text: str) -> ParsedRequirements:
    """Run every extractor over a description."""
    minimum, maximum = extract_square_footage(text)
    return ParsedRequirements(
        minimum_rsf=minimum,
        maximum_rsf=maximum,
        building_class=extract_building_class(text),
        ada_required=extract_ada_required(text),
        scif_required=extract_scif_required(text),
        clearance_required=extract_clearance(text),
        fiber=extract_fiber(text),
        backup_power=extract_backup_power(text),
        parking_ratio=extract_parking_ratio(text),
        lease_term_years=extract_lease_term(text),
        contiguous_required=extract_contiguous(text),
        occupancy_date=extract_occupancy_date(text),
    )


# ═══════════════════════════════════════════════════════════════════════════
# BUILDER
# ═══════════════════════════════════════════════════════════════════════════
_REQUIREMENT_FIELDS = {f.name for f in fields(OpportunityRequirements)}


class RequirementsBuilder:
    """
    Assemble an OpportunityRequirements step by step.

    Usage:
        reqs = (RequirementsBuilder("DC")
                .with_text(description)
                .with_metadata(notice_id="47PA0025R0001", title="Office Space")
                .build())

    Later calls override earlier ones. Unmentioned RSF falls back to
    10,000 and ADA compliance defaults to required.
    """

    def __init__(self, state: str = ""):
        self._values: Dict[str, Any] = {"state": state}

    def with_text(self, text: str) -> "RequirementsBuilder":
        parsed = parse_requirements(text)
        for name, value in asdict(parsed).items():
            if value is not None:
                self._values[name] = value
        return self

    def with_location(self, state: Optional[str] = None, city: Optional[str] = None,
                      delineated_area: Optional[DelineatedArea] = None) -> "RequirementsBuilder":
        if state:
            self._values["state"] = state
        if city:
            self._values["city"] = city
        if delineated_area is not None:
            self._values["delineated_area"] = delineated_area
        return self

    def with_set_aside(self, code: Optional[str]) -> "RequirementsBuilder":
        if code:
            self._values["set_aside"] = code
        return self

    def with_dates(self, occupancy_date: Optional[date] = None,
                   response_deadline: Optional[date] = None) -> "RequirementsBuilder":
        if occupancy_date is not None:
            self._values["occupancy_date"] = occupancy_date
        if response_deadline is not None:
            self._values["response_deadline"] = response_deadline
        return self

    def with_metadata(self, notice_id: str = "", title: str = "", agency: str = "",
                      naics_code: Optional[str] = None) -> "RequirementsBuilder":
        self._values.update(notice_id=notice_id, title=title, agency=agency, naics_code=naics_code)
        return self

    def set(self, **values) -> "RequirementsBuilder":
        """Explicit field overrides, e.g. ``set(minimum_rsf=25000)``."""
        unknown = set(values) - _REQUIREMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown requirement fields: {sorted(unknown)}")
        self._values.update(values)
        return self

    def build(self) -> OpportunityRequirements:
        values = dict(self._values)
        if not values.get("minimum_rsf"):
            values["minimum_rsf"] = DEFAULT_MINIMUM_RSF
        if values.get("ada_required") is None:
            values["ada_required"] = True
        return OpportunityRequirements(**values)


# ═══════════════════════════════════════════════════════════════════════════
# SAM.GOV RECORDS
# ═══════════════════════════════════════════════════════════════════════════
def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        log.warning(f"Unparseable date in opportunity record: {value!r}")
        return None


def _nested(data: Mapping, *keys) -> Any:
    for key in keys:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


def extract_opportunity_requirements(record: Mapping[str, Any]) -> OpportunityRequirements:
    """
    Build requirements from a SAM.gov opportunity (raw API payload or a
    flattened database row with the raw payload under ``full_data``).
    """
    full = record.get("full_data") or record
    description = record.get("description") or full.get("description") or ""

    state = record.get("pop_state_code") or _nested(full, "placeOfPerformance", "state", "code") or ""
    city = record.get("pop_city_name") or _nested(full, "placeOfPerformance", "city", "name")
    set_aside = record.get("type_of_set_aside") or full.get("typeOfSetAside")
    deadline = _parse_date(record.get("response_deadline") or full.get("responseDeadLine"))
    occupancy = _parse_date(record.get("occupancy_date"))

    builder = (
        RequirementsBuilder(state)
        .with_text(description)
        .with_location(city=city)
        .with_set_aside(set_aside)
        .with_dates(occupancy_date=occupancy, response_deadline=deadline)
        .with_metadata(
            notice_id=record.get("notice_id") or record.get("noticeId") or full.get("noticeId") or "",
            title=record.get("title") or full.get("title") or "",
            agency=record.get("department") or full.get("department") or "",
            naics_code=record.get("naics_code") or full.get("naicsCode"),
        )
    )
    requirements = builder.build()
    log.debug(f"Extracted requirements for notice {requirements.notice_id or '?'} in {state or '?'}")
    return requirements
