"""
Data loading utilities for the listing price model.

Reads raw listing exports (plain or gzip-compressed CSV) through DuckDB and
writes/reads the clean listings table.
"""

import logging
from pathlib import Path
from typing import Union

import duckdb
import numpy as np
import pandas as pd

from rental_pricing.config import MISSING_BEDROOMS

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


def load_raw_listings(
    path: PathLike,
    neighbourhood_column: str = 'neighbourhood'
) -> pd.DataFrame:
    """
    Load a raw listings export into a DataFrame of strings.

    Every column is read as VARCHAR; typing happens in the normalizer so that
    unparseable values can be dropped with a reason instead of failing the read.

    Args:
        path: CSV or .csv.gz file
        neighbourhood_column: Column to use as `neighbourhood`
            (e.g. 'neighbourhood_cleansed' for Inside Airbnb exports)

    Returns:
        Raw listings, one row per listing, in file order
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Listings file not found: {path}")

    escaped = str(path).replace("'", "''")
    con = duckdb.connect(':memory:')
    try:
        df = con.execute(f"""
            SELECT * FROM read_csv_auto('{escaped}', all_varchar=True, header=True)
        """).fetchdf()
    finally:
        con.close()

    # Empty strings are missing values, like NULLs
    df = df.replace({'': np.nan})

    if neighbourhood_column != 'neighbourhood':
        if neighbourhood_column not in df.columns:
            raise KeyError(f"Column '{neighbourhood_column}' not found in {path.name}")
        df['neighbourhood'] = df[neighbourhood_column]

    logger.info(f"Loaded {len(df):,} raw listings from {path.name}")
    return df


def write_clean_listings(df: pd.DataFrame, path: PathLike) -> Path:
    """Write the clean listings table as CSV (no index)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info(f"Saved {len(df):,} clean listings to {path}")
    return path


def load_clean_listings(path: PathLike) -> pd.DataFrame:
    """
    Read a clean listings table written by write_clean_listings().

    `bedrooms` is read back as a categorical string so the 'missing' level
    survives the round trip.
    """
    df = pd.read_csv(
        path,
        dtype={'id': str, 'name': str, 'neighbourhood': str, 'room_type': str, 'bedrooms': str},
        keep_default_na=False,
        na_values={'name': ['']},
    )
    df['bedrooms'] = df['bedrooms'].replace({'': MISSING_BEDROOMS})
    return df
