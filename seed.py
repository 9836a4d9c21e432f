"""
Seed script to populate the database with test data.

Run this script after setting up the database:
    python seed.py [count]
"""
import logging
import random
import sys
from datetime import timedelta

from geosearch.database import SessionLocal, engine, Base
from geosearch.logging_config import LoggingConfig
from geosearch.models import Property, get_current_time
from geosearch.services.listings import create_property, rebuild_bucket_aggregates


logger = logging.getLogger("seed")

# Neighbourhood centres around Mexico City: (name, lat, lng, spread_deg)
NEIGHBORHOODS = [
    ("Polanco", 19.4336, -99.1910, 0.010),
    ("Condesa", 19.4115, -99.1735, 0.008),
    ("Roma Norte", 19.4180, -99.1620, 0.008),
    ("Del Valle", 19.3850, -99.1680, 0.012),
    ("Coyoacán", 19.3500, -99.1620, 0.015),
    ("Santa Fe", 19.3600, -99.2600, 0.015),
    ("Centro Histórico", 19.4326, -99.1332, 0.008),
    ("Narvarte", 19.3960, -99.1530, 0.010),
]

PROPERTY_TYPES = ["apartment", "house", "office", "land", "commercial"]

DEFAULT_COUNT = 500


def random_listing(rng: random.Random, index: int) -> dict:
    name, lat, lng, spread = rng.choice(NEIGHBORHOODS)
    listing_type = "rent" if rng.random() < 0.35 else "sale"
    property_type = rng.choice(PROPERTY_TYPES)
    bedrooms = rng.randint(1, 5) if property_type in ("apartment", "house") else None
    if listing_type == "rent":
        price = round(rng.uniform(8_000, 90_000), -2)
    else:
        price = round(rng.uniform(1_500_000, 25_000_000), -3)
    return {
        "title": f"{property_type.title()} en {name} #{index}",
        "lat": lat + rng.uniform(-spread, spread),
        "lng": lng + rng.uniform(-spread, spread),
        "price": price,
        "listing_type": listing_type,
        "property_type": property_type,
        "bedrooms": bedrooms,
        "bathrooms": max(1, (bedrooms or 1) - rng.randint(0, 1)),
        "area_m2": round(rng.uniform(45, 450), 1),
        "neighborhood": name,
        "city": "Ciudad de México",
        "state": "CDMX",
        "created_at": get_current_time() - timedelta(minutes=index * 7),
    }


def seed_database(count: int = DEFAULT_COUNT, seed: int = 42):
    """Seed the database with test data and refresh the precomputed aggregates."""
    logger.info("Seeding database", extra={"count": count})

    # Create tables
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    try:
        # Check if data already exists
        existing_count = db.query(Property).count()

        if existing_count > 0:
            logger.warning(
                "Database already has %s properties, skipping seed. Clear it to re-seed.",
                existing_count,
            )
            return

        rng = random.Random(seed)
        for i in range(1, count + 1):
            create_property(db=db, commit=False, **random_listing(rng, i))
        db.commit()
        logger.info("Seeded %s properties", count)

        summary = rebuild_bucket_aggregates(db)
        logger.info("Aggregates refreshed", extra=summary)

    except Exception:
        logger.exception("Error seeding database")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    LoggingConfig.setup_logging(fmt="text")
    seed_database(int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_COUNT)
