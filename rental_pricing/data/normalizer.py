"""
Field normalization for raw listing records.

Turns the semi-structured text fields of a raw listings export into typed
columns:
- bathrooms_text -> bathrooms (float) + shared_bathroom (bool)
- price ("$1,200.00") -> float
- instant_bookable ("t"/"f") -> bool
- room_type / property_type -> canonical labels

Parse failures never raise out of normalize_listings(): the field becomes
null and the Record Filter drops the row with a reason code.
"""

import logging
import math
import re
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from rental_pricing.config import (
    DROPPED_COLUMN_PREFIXES,
    MISSING_BEDROOMS,
    OTHER_PROPERTY_TYPE,
    PROPERTY_TYPE_PATTERN,
    ROOM_TYPE_RELABELS,
    UNKNOWN_NEIGHBOURHOOD,
)
from rental_pricing.exceptions import ParseError

logger = logging.getLogger(__name__)


# =============================================================================
# PARSE RULE TABLES
# =============================================================================

# Evaluated in order; the first rule whose pattern matches decides the count.
BATHROOM_COUNT_RULES = [
    ('numeric', re.compile(r'\d+(?:\.\d+)?'), lambda m: float(m.group(0))),
    ('half_bath', re.compile(r'\bhalf[- ]?bath', re.IGNORECASE), lambda m: 0.5),
]

SHARED_BATHROOM_PATTERN = re.compile(r'shared', re.IGNORECASE)

# One optional leading currency symbol (any non-digit, non-sign character)
CURRENCY_PREFIX = re.compile(r'^\s*[^\d\s.,+-]')

TRUE_STRINGS = {'t', 'true', '1', 'yes', 'y'}
FALSE_STRINGS = {'f', 'false', '0', 'no', 'n'}


def _is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


# =============================================================================
# FIELD PARSERS
# =============================================================================

def parse_bathroom_count(value) -> float:
    """
    Parse the bathroom count out of a bathrooms_text value.

    "1 bath" -> 1.0, "2.5 shared baths" -> 2.5, "Half-bath" -> 0.5.

    Raises:
        ParseError: no rule in BATHROOM_COUNT_RULES matches
    """
    if _is_missing(value):
        raise ParseError('bathrooms_text', value)
    text = str(value)
    for _, pattern, convert in BATHROOM_COUNT_RULES:
        match = pattern.search(text)
        if match:
            return convert(match)
    raise ParseError('bathrooms_text', value)


def is_shared_bathroom(value) -> bool:
    """True iff the bathroom description mentions 'shared' (any case)."""
    if _is_missing(value):
        return False
    return bool(SHARED_BATHROOM_PATTERN.search(str(value)))


def parse_bathrooms_text(value) -> Tuple[float, bool]:
    """Returns (bathrooms, shared_bathroom) for a bathrooms_text value."""
    return parse_bathroom_count(value), is_shared_bathroom(value)


def parse_price(value) -> float:
    """
    Parse a price string such as "$120.00" or "$1,200.00".

    Strips a single leading currency symbol and thousands separators.

    Raises:
        ParseError: the remainder is not a finite decimal number
    """
    if _is_missing(value):
        raise ParseError('price', value)
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    else:
        text = CURRENCY_PREFIX.sub('', str(value), count=1).strip().replace(',', '')
        try:
            number = float(text)
        except ValueError:
            raise ParseError('price', value) from None
    if not math.isfinite(number):
        raise ParseError('price', value)
    return number


def parse_bool(value) -> bool:
    """Parse 't'/'f' style flags."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if _is_missing(value):
        raise ParseError('bool', value)
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ParseError('bool', value)


def canonicalize_room_type(value):
    """'Entire home/apt' -> 'Entire apartment'; other labels unchanged."""
    return ROOM_TYPE_RELABELS.get(value, value)


def relabel_property_type(series: pd.Series) -> pd.Series:
    """Property types not mentioning 'apartment' (any case) become 'Other'."""
    is_apartment = series.astype('string').str.contains(
        PROPERTY_TYPE_PATTERN, case=False, regex=False, na=False
    )
    return series.where(is_apartment.astype(bool), OTHER_PROPERTY_TYPE)


def _try_parse(parser, value, field: str) -> Optional[float]:
    try:
        return parser(value)
    except ParseError:
        logger.debug(f"Unparseable {field}: {value!r}")
        return None


# =============================================================================
# TABLE NORMALIZATION
# =============================================================================

def normalize_listings(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize every raw field of a listings table.

    Args:
        df: Raw listings (strings, as loaded)

    Returns:
        New DataFrame with typed columns; unparseable fields are null.
    """
    out = df.copy()
    dropped = [c for c in out.columns if str(c).startswith(DROPPED_COLUMN_PREFIXES)]
    out = out.drop(columns=dropped)

    out['property_type'] = relabel_property_type(out['property_type'])
    out['room_type'] = out['room_type'].map(canonicalize_room_type)

    bathrooms_text = out['bathrooms_text']
    out['bathrooms'] = pd.to_numeric(
        bathrooms_text.map(lambda v: _try_parse(parse_bathroom_count, v, 'bathrooms_text')),
        errors='coerce',
    ).astype(float)
    out['shared_bathroom'] = bathrooms_text.map(is_shared_bathroom).astype(bool)

    out['price'] = pd.to_numeric(
        out['price'].map(lambda v: _try_parse(parse_price, v, 'price')),
        errors='coerce',
    ).astype(float)

    # Unknown booking flags are treated as "not instantly bookable"
    instant = out['instant_bookable'].map(lambda v: _try_parse(parse_bool, v, 'instant_bookable'))
    out['instant_bookable'] = instant.map(lambda v: bool(v) if v is not None else False).astype(bool)

    for col in ['accommodates', 'bedrooms', 'beds']:
        out[col] = pd.to_numeric(out[col], errors='coerce').astype(float)

    out['number_of_reviews'] = (
        pd.to_numeric(out['number_of_reviews'], errors='coerce').fillna(0).astype(int)
    )

    n_bath = int(out['bathrooms'].isna().sum())
    n_price = int(out['price'].isna().sum())
    if n_bath or n_price:
        logger.info(
            f"Normalized {len(out):,} listings "
            f"({n_bath:,} unparsed bathrooms, {n_price:,} unparsed prices)"
        )
    return out


# =============================================================================
# CLEAN SCHEMA
# =============================================================================

CLEAN_BASE_COLUMNS = [
    'id',
    'name',
    'neighbourhood',
    'room_type',
    'accommodates',
    'bathrooms',
    'shared_bathroom',
    'bedrooms',
    'beds',
    'instant_bookable',
    'number_of_reviews',
    'price',
]


def encode_bedrooms(series: pd.Series) -> pd.Series:
    """Bedroom counts as categorical text levels; nulls become 'missing'."""
    return series.map(lambda v: MISSING_BEDROOMS if _is_missing(v) else f"{float(v):g}")


def to_clean_schema(df: pd.DataFrame) -> pd.DataFrame:
    """
    Cast filtered listings to the clean schema, in CLEAN_BASE_COLUMNS order.

    Expects rows that already passed the Record Filter (no null counts or prices).
    """
    return pd.DataFrame({
        'id': df['id'].astype(str),
        'name': df['name'],
        'neighbourhood': df['neighbourhood'].fillna(UNKNOWN_NEIGHBOURHOOD).astype(str),
        'room_type': df['room_type'].astype(str),
        'accommodates': df['accommodates'].astype(int),
        'bathrooms': df['bathrooms'].astype(float),
        'shared_bathroom': df['shared_bathroom'].astype(bool),
        'bedrooms': encode_bedrooms(df['bedrooms']),
        'beds': df['beds'].astype(int),
        'instant_bookable': df['instant_bookable'].astype(bool),
        'number_of_reviews': df['number_of_reviews'].astype(int),
        'price': df['price'].astype(float),
    }).reset_index(drop=True)
