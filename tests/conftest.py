"""
Shared pytest fixtures: hand-written raw listings and a seeded synthetic corpus.
"""

import json

import numpy as np
import pandas as pd
import pytest

from rental_pricing.config import MODEL_ROSTER
from rental_pricing.pipeline import PricingConfig, PricingPipeline


NEIGHBOURHOODS = ['Centrum', 'Noord', 'Zuid']
NEIGHBOURHOOD_PREMIUM = {'Centrum': 80.0, 'Noord': 20.0, 'Zuid': 0.0}

AMENITY_POOL = [
    'Wifi',
    'Kitchen',
    'Siemens refrigerator',
    'Refrigerator',
    'Free street parking',
    'Paid parking off premises',
    'HDTV with Netflix',
    'Dishwasher',
    'Washer',
    'Hair dryer',
    'Elevator',
    'Hot water',
    'Coffee maker',
]


def raw_listing(**overrides) -> dict:
    """One valid raw listing (all fields as strings); keyword args override fields."""
    row = {
        'id': '1',
        'name': 'Canal view apartment',
        'property_type': 'Entire apartment',
        'room_type': 'Entire home/apt',
        'accommodates': '4',
        'bathrooms_text': '1 bath',
        'bedrooms': '2',
        'beds': '2',
        'amenities': '["Wifi", "Kitchen"]',
        'price': '$100.00',
        'instant_bookable': 't',
        'number_of_reviews': '12',
        'neighbourhood': 'Centrum',
        'review_scores_rating': '4.80',
    }
    row.update(overrides)
    return row


def make_synthetic_listings(n: int = 150, seed: int = 42) -> pd.DataFrame:
    """Raw listings whose price depends on size, location and a few amenities."""
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n):
        neighbourhood = NEIGHBOURHOODS[i % len(NEIGHBOURHOODS)]
        entire = bool(rng.random() < 0.7)
        accommodates = int(rng.integers(2, 7))
        bathrooms = float(rng.choice([1.0, 1.5, 2.0]))
        shared = (not entire) and bool(rng.random() < 0.5)
        bedrooms = int(rng.integers(1, 4))
        beds = bedrooms + int(rng.integers(0, 2))
        amenities = [a for a in AMENITY_POOL if rng.random() < 0.5]

        price = (
            40.0
            + 25.0 * accommodates
            + 30.0 * bathrooms
            + (60.0 if entire else 0.0)
            + NEIGHBOURHOOD_PREMIUM[neighbourhood]
            + (15.0 if 'Dishwasher' in amenities else 0.0)
            + float(rng.normal(0, 15))
        )
        price = float(np.clip(price, 30.0, 590.0))

        bath_label = 'bath' if bathrooms == 1.0 else 'baths'
        rows.append(raw_listing(
            id=str(1000 + i),
            name=f"Listing {i}",
            property_type='Entire apartment' if entire else 'Private room in apartment',
            room_type='Entire home/apt' if entire else 'Private room',
            accommodates=str(accommodates),
            bathrooms_text=f"{bathrooms:g} {'shared ' if shared else ''}{bath_label}",
            bedrooms=str(bedrooms) if i % 10 else np.nan,
            beds=str(beds),
            amenities=json.dumps(amenities),
            price=f"${price:,.2f}",
            instant_bookable='t' if rng.random() < 0.4 else 'f',
            number_of_reviews=str(int(rng.integers(0, 200))),
            neighbourhood=neighbourhood,
            review_scores_rating=f"{rng.uniform(3.5, 5.0):.2f}",
        ))
    return pd.DataFrame(rows)


@pytest.fixture
def sample_raw_listings():
    """
    Twelve raw listings: three survive cleaning, nine are dropped, one per
    reason code.
    """
    return pd.DataFrame([
        raw_listing(
            id='1',
            accommodates='4',
            bathrooms_text='2.5 shared baths',
            amenities='["Wifi", "Siemens refrigerator", "Free street parking"]',
            price='$120.00',
        ),
        raw_listing(id='2', accommodates='3', bathrooms_text='Half-bath'),
        raw_listing(id='3', property_type='Private room in serviced apartment', room_type='Hotel room'),
        raw_listing(id='4', price='$650.00'),
        raw_listing(id='5', property_type='Entire house'),
        raw_listing(id='6', accommodates='8'),
        raw_listing(id='7', bathrooms_text=np.nan),
        raw_listing(id='8', price=np.nan),
        raw_listing(id='9', price='$0.00'),
        raw_listing(id='10', beds=np.nan),
        raw_listing(
            id='11',
            property_type='Private room in apartment',
            room_type='Private room',
            accommodates='2',
            bathrooms_text='1 private bath',
            bedrooms=np.nan,
            beds='1',
            amenities='["TV", "Hair dryer", "Paid parking off premises"]',
            price='$45.00',
            instant_bookable='f',
            number_of_reviews=np.nan,
            neighbourhood='Noord',
        ),
        raw_listing(
            id='12',
            accommodates='6',
            bathrooms_text='1.5 baths',
            bedrooms='3',
            beds='4',
            amenities='["HDTV with Netflix", "Dishwasher", "Washer"]',
            price='$300.00',
            neighbourhood=np.nan,
        ),
    ])


@pytest.fixture
def expected_drop_reasons():
    """Reason code per dropped id in sample_raw_listings."""
    return {
        '2': 'bathrooms_below_minimum',
        '3': 'hotel_room',
        '4': 'price_too_high',
        '5': 'not_apartment',
        '6': 'accommodates_out_of_range',
        '7': 'unparsed_bathrooms',
        '8': 'null_price',
        '9': 'non_positive_price',
        '10': 'missing_beds',
    }


@pytest.fixture(scope='session')
def synthetic_raw_listings():
    """150 seeded raw listings that all pass the filter."""
    return make_synthetic_listings()


@pytest.fixture(scope='session')
def synthetic_clean(synthetic_raw_listings):
    """Clean listings (with amenity flags) prepared from the synthetic corpus."""
    return PricingPipeline().prepare(synthetic_raw_listings)


@pytest.fixture
def quick_config():
    """Full roster with small forests."""
    return PricingConfig(n_estimators=10, roster=list(MODEL_ROSTER))
