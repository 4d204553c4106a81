"""Listing loading, normalization and filtering."""
from .loader import load_raw_listings, write_clean_listings, load_clean_listings
from .normalizer import normalize_listings, to_clean_schema, CLEAN_BASE_COLUMNS
from .validator import FilterConfig, ListingFilter, validate_raw_schema
