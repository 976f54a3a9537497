import pytest
from datetime import date
from fedspace.models import ClearanceLevel, DelineatedArea
from fedspace.requirements import (
    RequirementsBuilder,
    extract_ada_required,
    extract_backup_power,
    extract_building_class,
    extract_clearance,
    extract_contiguous,
    extract_fiber,
    extract_lease_term,
    extract_occupancy_date,
    extract_opportunity_requirements,
    extract_parking_ratio,
    extract_scif_required,
    extract_square_footage,
    parse_requirements,
)

DESCRIPTION = (
    "The Government seeks 20,000 to 24,000 RSF of contiguous Class A office space. "
    "Offered space must be ADA accessible, with fiber connectivity and an emergency generator. "
    "Parking of 2.5 spaces per 1,000 RSF is required. Anticipated 10-year lease term. "
    "Portions must be SCIF-capable to support Top Secret work."
)


@pytest.mark.parametrize("text,expected", [
    ("20,000 to 24,000 RSF", (20_000, 24_000)),
    ("between 15000-18000 square feet", (15_000, 18_000)),
    ("24,000 to 20,000 SF", (20_000, 24_000)),
    ("a minimum of 12,500 RSF", (12_500, None)),
    ("at least 8,000 square feet", (8_000, None)),
    ("office space downtown", (None, None)),
    ("", (None, None)),
])
def test_extract_square_footage(text, expected):
    assert extract_square_footage(text) == expected


@pytest.mark.parametrize("text,expected", [
    ("Class A+ trophy space", ("A+",)),
    ("Class A office", ("A+", "A")),
    ("class a building", ("A+", "A")),
    ("Class B or better", None),
    ("Classic architecture", None),
])
def test_extract_building_class(text, expected):
    assert extract_building_class(text) == expected


def test_keyword_flags():
    """Verify keyword extractors match their phrases and stay quiet otherwise."""
    assert extract_ada_required("Must meet the Americans with Disabilities Act") is True
    assert extract_ada_required("fully accessible entrances") is True
    assert extract_ada_required("open floor plan") is None

    assert extract_scif_required("SCIF space required")
    assert not extract_scif_required("standard office")

    assert extract_fiber("high-speed internet access")
    assert not extract_fiber("fibrous insulation")

    assert extract_backup_power("UPS and generators on site")
    assert not extract_backup_power("Upstairs lobby")

    assert extract_contiguous("single floor preferred")
    assert not extract_contiguous("multiple buildings acceptable")


def test_extract_clearance():
    assert extract_clearance("TS/SCI facility") is ClearanceLevel.TOP_SECRET
    assert extract_clearance("Top Secret") is ClearanceLevel.TOP_SECRET
    assert extract_clearance("Secret clearance for guards") is ClearanceLevel.SECRET
    assert extract_clearance("no classified work") is None


def test_extract_numbers():
    assert extract_parking_ratio("3 spaces per 1000 SF") == 3.0
    assert extract_parking_ratio("ample parking") is None
    assert extract_lease_term("a 15 year lease") == 15
    assert extract_lease_term("5-year term") == 5
    assert extract_lease_term("in business for 20 years") is None


@pytest.mark.parametrize("text,expected", [
    ("Occupancy by 03/15/2027 is required.", date(2027, 3, 15)),
    ("occupancy date: 9/1/26", date(2026, 9, 1)),
    ("Target move-in date: 12/01/2026", date(2026, 12, 1)),
    ("Movein date 1/5/2027", date(2027, 1, 5)),
    ("Occupancy by 13/45/2027", None),
    ("Responses due 09/30/2025", None),
    ("", None),
])
def test_extract_occupancy_date(text, expected):
    assert extract_occupancy_date(text) == expected


def test_occupancy_date_from_description():
    """Verify description text supplies the occupancy date but an explicit column wins."""
    record = {
        "pop_state_code": "DC",
        "response_deadline": "2025-09-30",
        "description": "Minimum 8,000 RSF. Occupancy by 06/30/2026.",
    }
    reqs = extract_opportunity_requirements(record)
    assert reqs.occupancy_date == date(2026, 6, 30)
    assert reqs.response_deadline == date(2025, 9, 30)

    reqs = extract_opportunity_requirements(dict(record, occupancy_date="2026-11-01"))
    assert reqs.occupancy_date == date(2026, 11, 1)


def test_parse_requirements_full_description():
    parsed = parse_requirements(DESCRIPTION)
    assert parsed.minimum_rsf == 20_000
    assert parsed.maximum_rsf == 24_000
    assert parsed.building_class == ("A+", "A")
    assert parsed.ada_required is True
    assert parsed.scif_required
    assert parsed.clearance_required is ClearanceLevel.TOP_SECRET
    assert parsed.fiber
    assert parsed.backup_power
    assert parsed.parking_ratio == 2.5
    assert parsed.lease_term_years == 10
    assert parsed.contiguous_required


def test_builder_defaults():
    """Verify unmentioned RSF falls back to 10,000 and ADA defaults to required."""
    reqs = RequirementsBuilder("VA").with_text("Office space wanted").build()
    assert reqs.state == "VA"
    assert reqs.minimum_rsf == 10_000
    assert reqs.maximum_rsf is None
    assert reqs.ada_required is True
    assert not reqs.fiber


def test_builder_chaining_and_overrides():
    area = DelineatedArea(38.9, -77.0, 3)
    reqs = (
        RequirementsBuilder("dc")
        .with_text(DESCRIPTION)
        .with_location(state="DC", city="Washington", delineated_area=area)
        .with_set_aside("SBA")
        .with_dates(occupancy_date=date(2026, 1, 1), response_deadline=date(2025, 9, 30))
        .with_metadata(notice_id="N-1", title="Office", agency="GSA", naics_code="531120")
        .set(minimum_rsf=21_000, ada_required=False)
        .build()
    )
    assert reqs.state == "DC"
    assert reqs.city == "Washington"
    assert reqs.delineated_area == area
    assert reqs.set_aside == "SBA"
    assert reqs.minimum_rsf == 21_000
    assert reqs.maximum_rsf == 24_000
    assert reqs.ada_required is False
    assert reqs.occupancy_date == date(2026, 1, 1)
    assert reqs.response_deadline == date(2025, 9, 30)
    assert reqs.notice_id == "N-1"
    assert reqs.naics_code == "531120"


def test_builder_rejects_unknown_fields():
    with pytest.raises(ValueError):
        RequirementsBuilder("DC").set(squarefeet=100)


def test_extract_from_raw_api_payload():
    record = {
        "noticeId": "abc123",
        "title": "Lease - Office Space",
        "department": "GENERAL SERVICES ADMINISTRATION",
        "naicsCode": "531120",
        "typeOfSetAside": "SBA",
        "responseDeadLine": "2025-09-30T17:00:00-04:00",
        "description": "Seeking a minimum of 5,000 RSF. Fiber required.",
        "placeOfPerformance": {"state": {"code": "MD"}, "city": {"name": "Baltimore"}},
    }
    reqs = extract_opportunity_requirements(record)
    assert reqs.notice_id == "abc123"
    assert reqs.state == "MD"
    assert reqs.city == "Baltimore"
    assert reqs.set_aside == "SBA"
    assert reqs.response_deadline == date(2025, 9, 30)
    assert reqs.occupancy_date is None
    assert reqs.minimum_rsf == 5_000
    assert reqs.fiber
    assert reqs.agency == "GENERAL SERVICES ADMINISTRATION"


def test_extract_from_database_row():
    """Verify flattened columns win over the nested payload."""
    record = {
        "notice_id": "row-1",
        "pop_state_code": "VA",
        "pop_city_name": "Arlington",
        "response_deadline": "2025-10-15",
        "occupancy_date": "2026-03-01",
        "full_data": {
            "noticeId": "ignored",
            "title": "Nested title",
            "description": "15,000 to 18,000 SF",
            "placeOfPerformance": {"state": {"code": "DC"}},
        },
    }
    reqs = extract_opportunity_requirements(record)
    assert reqs.notice_id == "row-1"
    assert reqs.state == "VA"
    assert reqs.city == "Arlington"
    assert reqs.title == "Nested title"
    assert (reqs.minimum_rsf, reqs.maximum_rsf) == (15_000, 18_000)
    assert reqs.occupancy_date == date(2026, 3, 1)


def test_unparseable_deadline_is_ignored():
    reqs = extract_opportunity_requirements({"pop_state_code": "DC", "response_deadline": "soon"})
    assert reqs.response_deadline is None
