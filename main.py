import argparse
import logging
import math
from datetime import date, timedelta

from fedspace.index_manager import SpatialIndexManager
from fedspace.matcher import calculate_property_opportunity_match
from fedspace.models import BrokerExperience, FederalProperty, OwnershipType, PropertyData
from fedspace.neighborhood import calculate_federal_neighborhood_score
from fedspace.requirements import RequirementsBuilder
from loaders.iolp import IOLPFetchError, get_iolp_loader

# Washington, DC (downtown)
START_LAT = 38.9072
START_LON = -77.0369

DEMO_DESCRIPTION = (
    "The Government is seeking 20,000 to 24,000 RSF of contiguous Class A office space "
    "in Washington, DC. Space must be ADA accessible with fiber connectivity and backup "
    "power. A 10 year lease term is anticipated. Parking of 2 spaces per 1,000 RSF."
)


def build_demo_properties(center_lat: float, center_lon: float, today: date):
    """
    50 synthetic federal properties within 3 miles of a point:
    30 leased / 20 owned, 6M RSF, 8% vacant, 12 leases expiring in
    the next 24 months, 6 built in the last 5 years.
    """
    properties = []
    for i in range(50):
        distance = 0.2 + (i % 10) * 0.28          # 0.2 .. 2.72 miles
        bearing = math.radians(i * 37)
        lat = center_lat + distance * math.cos(bearing) / 69.0
        lon = center_lon + distance * math.sin(bearing) / (69.0 * math.cos(math.radians(center_lat)))

        leased = i < 30
        vacant = i < 8                              # 8 x 60K = 480K of 6M
        properties.append(FederalProperty(
            id=f"demo_{i}",
            latitude=lat,
            longitude=lon,
            rsf=120_000,
            ownership=OwnershipType.LEASED if leased else OwnershipType.OWNED,
            vacant=vacant,
            vacant_rsf=60_000 if vacant else 0,
            lease_expiration=today + timedelta(days=60 * (i + 1)) if leased else None,
            construction_year=today.year - 1 if i % 8 == 0 and i < 48 else 1975,
            state="DC",
            city="Washington",
        ))
    return properties


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    parser = argparse.ArgumentParser(description="FedSpace federal leasing score demo")
    parser.add_argument("--lat", type=float, default=START_LAT, help="Latitude to score")
    parser.add_argument("--lon", type=float, default=START_LON, help="Longitude to score")
    parser.add_argument("--radius", type=float, default=5.0, help="Search radius in miles")
    parser.add_argument("--live", action="store_true", help="Load the real IOLP inventory instead of demo data")
    args = parser.parse_args()

    print("Initializing FedSpace Scoring Engine...")

    # 1. Build the spatial index
    if args.live:
        print("1. Loading federal inventory (IOLP)...")
        manager = SpatialIndexManager(source=get_iolp_loader().fetch_all)
        try:
            manager.refresh()
        except IOLPFetchError as e:
            print(f"   -> IOLP unavailable ({e}); only {len(e.features)} features arrived. Aborting.")
            return
    else:
        print(f"1. Building demo inventory around {args.lat}, {args.lon}...")
        manager = SpatialIndexManager()
        manager.build(build_demo_properties(args.lat, args.lon, date.today()))
    print(f"   -> Indexed {manager.index.size} properties (tree height {manager.index.height})")

    # 2. Federal Neighborhood Score
    print(f"2. Scoring {args.radius:g}-mile neighborhood...")
    score = calculate_federal_neighborhood_score(args.lat, args.lon, args.radius, manager.index)
    print(f"\n=== FEDERAL NEIGHBORHOOD SCORE: {score.score} ({score.grade}) ===")
    print(f"Percentile: {score.percentile}\n")
    for name, factor in score.factors.items():
        print(f" {name:<16} {factor.score:>5.1f} x {factor.weight:>2.0f}% = {factor.weighted:>5.2f}  {factor.explanation}")

    # 3. Match a property against an opportunity
    print("\n3. Matching a candidate property against a sample solicitation...")
    opportunity = (
        RequirementsBuilder("DC")
        .with_text(DEMO_DESCRIPTION)
        .with_location(city="Washington")
        .with_metadata(notice_id="DEMO-0001", title="Office Space, Washington DC", agency="GSA")
        .build()
    )
    candidate = PropertyData(
        latitude=args.lat,
        longitude=args.lon,
        address="1800 F St NW",
        city="Washington",
        state="DC",
        zipcode="20405",
        total_sqft=40_000,
        available_sqft=22_000,
        contiguous=True,
        building_class="A",
        ada_compliant=True,
        fiber=True,
        backup_power=False,
        lease_term_years=10,
    )
    broker = BrokerExperience(
        government_lease_experience=True,
        government_leases_count=4,
        total_portfolio_sqft=750_000,
        references=("GSA Region 11",),
    )
    match = calculate_property_opportunity_match(candidate, opportunity, broker)

    print(f"\n=== MATCH: {match.score} ({match.grade}) ===")
    print(f"Qualified: {match.qualified}  Competitive: {match.competitive}")
    for name, factor in match.factors.items():
        print(f" {name:<12} {factor.score:>5.1f}  {factor.explanation}")
    for line in match.strengths:
        print(f" + {line}")
    for line in match.weaknesses:
        print(f" - {line}")
    for line in match.recommendations:
        print(f" > {line}")


if __name__ == "__main__":
    main()
