"""
Record filtering using a unified Rule-based architecture.

Every inclusion/exclusion predicate is a Rule with a SQL condition. Rules are
applied in order to an in-memory DuckDB table of normalized listings; each rule
records how many rows it removed and which listing ids, under a reason code.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import duckdb
import numpy as np
import pandas as pd

from rental_pricing.config import (
    ALLOWED_ACCOMMODATES,
    HOTEL_ROOM,
    MAX_PRICE,
    MIN_BATHROOMS,
    OTHER_PROPERTY_TYPE,
    REQUIRED_RAW_COLUMNS,
)
from rental_pricing.exceptions import SchemaError

logger = logging.getLogger(__name__)

# Columns the filter rules read, with the SQL type they are compared as
FILTER_COLUMNS = {
    'id': 'VARCHAR',
    'property_type': 'VARCHAR',
    'room_type': 'VARCHAR',
    'accommodates': 'DOUBLE',
    'bathrooms': 'DOUBLE',
    'price': 'DOUBLE',
    'beds': 'DOUBLE',
}

# ============================================================================
# 1. RULE DATACLASS
# ============================================================================

@dataclass
class Rule:
    """
    Single exclusion rule.

    The condition selects the rows to DROP. Both queries are derived from it:
    1. Check query: How many rows are affected?
    2. Action query: Remove them
    """
    name: str
    reason: str
    condition: str
    enabled: bool = True

    @property
    def check_query(self) -> str:
        return f"SELECT COUNT(*) FROM listings WHERE {self.condition}"

    @property
    def action_query(self) -> str:
        return f"DELETE FROM listings WHERE {self.condition}"

    @property
    def affected_query(self) -> str:
        return f"SELECT _row, id FROM listings WHERE {self.condition} ORDER BY _row"

# ============================================================================
# 2. FILTER CONFIG
# ============================================================================

@dataclass
class FilterConfig:
    """
    Configuration for the listing filter.

    Each boolean enables one rule; thresholds are shared with the config module.
    """
    remove_non_apartments: bool = True
    remove_hotel_rooms: bool = True
    remove_accommodates_out_of_range: bool = True
    remove_unparsed_bathrooms: bool = True
    remove_low_bathrooms: bool = True
    remove_null_prices: bool = True
    remove_non_positive_prices: bool = True
    remove_high_prices: bool = True
    remove_missing_beds: bool = True

    allowed_accommodates: Tuple[int, ...] = ALLOWED_ACCOMMODATES
    min_bathrooms: float = MIN_BATHROOMS
    max_price: float = MAX_PRICE

    # Logging
    verbose: bool = False

# ============================================================================
# 3. LISTING FILTER (Applies Rules)
# ============================================================================

class ListingFilter:
    """
    Applies the exclusion rules in a fixed order.

    Usage:
        listing_filter = ListingFilter(FilterConfig(verbose=True))
        kept = listing_filter.filter(normalize_listings(raw))
        listing_filter.stats    # {'Hotel Room': 12, ...}
        listing_filter.dropped  # DataFrame of id, reason
    """

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()
        self.rules = self._build_rules()
        self.stats: Dict[str, int] = {}
        self.dropped = pd.DataFrame(columns=['id', 'reason'])

    def _build_rules(self) -> List[Rule]:
        """Build list of rules based on config."""
        c = self.config
        allowed = ', '.join(str(int(v)) for v in c.allowed_accommodates)
        return [
            Rule(
                "Non-Apartment Property",
                "not_apartment",
                f"property_type IS NULL OR property_type = '{OTHER_PROPERTY_TYPE}'",
                c.remove_non_apartments,
            ),
            Rule(
                "Hotel Room",
                "hotel_room",
                f"room_type = '{HOTEL_ROOM}'",
                c.remove_hotel_rooms,
            ),
            Rule(
                "Accommodates Out Of Range",
                "accommodates_out_of_range",
                f"accommodates IS NULL OR isnan(accommodates) OR accommodates NOT IN ({allowed})",
                c.remove_accommodates_out_of_range,
            ),
            Rule(
                "Unparsed Bathrooms",
                "unparsed_bathrooms",
                "bathrooms IS NULL OR isnan(bathrooms)",
                c.remove_unparsed_bathrooms,
            ),
            Rule(
                "Bathrooms Below Minimum",
                "bathrooms_below_minimum",
                f"bathrooms < {float(c.min_bathrooms)}",
                c.remove_low_bathrooms,
            ),
            Rule(
                "NULL Price",
                "null_price",
                "price IS NULL OR isnan(price)",
                c.remove_null_prices,
            ),
            Rule(
                "Non-Positive Price",
                "non_positive_price",
                "price <= 0",
                c.remove_non_positive_prices,
            ),
            Rule(
                "Price Too High",
                "price_too_high",
                f"price > {float(c.max_price)}",
                c.remove_high_prices,
            ),
            Rule(
                "Missing Beds",
                "missing_beds",
                "beds IS NULL OR isnan(beds)",
                c.remove_missing_beds,
            ),
        ]

    def _load(self, con: duckdb.DuckDBPyConnection, df: pd.DataFrame) -> pd.DataFrame:
        frame = df.reset_index(drop=True).copy()
        frame['_row'] = np.arange(len(frame), dtype='int64')
        con.register('normalized_listings', frame[['_row'] + list(FILTER_COLUMNS)])
        casts = ',\n'.join(
            f"TRY_CAST({col} AS {sql_type}) AS {col}" for col, sql_type in FILTER_COLUMNS.items()
        )
        con.execute(f"""
            CREATE TABLE listings AS
            SELECT _row, {casts}
            FROM normalized_listings
        """)
        con.unregister('normalized_listings')
        return frame

    def filter(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply all enabled rules.

        Args:
            df: Normalized listings (see normalizer.normalize_listings)

        Returns:
            The surviving listings, in their original relative order.
        """
        missing = [col for col in FILTER_COLUMNS if col not in df.columns]
        if missing:
            raise SchemaError(missing)

        self.stats = {}
        dropped = []
        con = duckdb.connect(':memory:')
        try:
            frame = self._load(con, df)

            if self.config.verbose:
                logger.info(f"Applying {sum(r.enabled for r in self.rules)} listing filter rules...")

            for rule in self.rules:
                if not rule.enabled:
                    continue

                affected = con.execute(rule.check_query).fetchone()[0]

                if affected > 0:
                    rows = con.execute(rule.affected_query).fetchdf()
                    ids = frame['id'].iloc[rows['_row'].to_numpy()].tolist()
                    dropped.append(pd.DataFrame({'id': ids, 'reason': rule.reason}))
                    con.execute(rule.action_query)
                    self.stats[rule.name] = affected

                    if self.config.verbose:
                        logger.info(f"  ✓ {rule.name}: {affected:,} rows")
                elif self.config.verbose:
                    logger.info(f"  - {rule.name}: 0 rows")

            kept_rows = con.execute("SELECT _row FROM listings ORDER BY _row").fetchdf()['_row']
        finally:
            con.close()

        self.dropped = (
            pd.concat(dropped, ignore_index=True) if dropped
            else pd.DataFrame(columns=['id', 'reason'])
        )
        kept = frame[frame['_row'].isin(kept_rows)].drop(columns=['_row'])

        if self.config.verbose:
            logger.info(f"\nFinal: {len(kept):,} of {len(frame):,} listings kept")

        return kept.reset_index(drop=True)

# ============================================================================
# 4. SCHEMA CHECK AND QUALITY REPORT
# ============================================================================

def validate_raw_schema(df: pd.DataFrame, required: Optional[List[str]] = None) -> None:
    """
    Fail the batch when the raw table is missing a required column.

    Raises:
        SchemaError: naming every missing column
    """
    required = required or REQUIRED_RAW_COLUMNS
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise SchemaError(missing)


def check_listing_quality(df: pd.DataFrame, config: Optional[FilterConfig] = None) -> dict:
    """
    Check how many listings each rule would drop, without keeping the result.

    Rules are evaluated in order, so a row counts against the first rule
    that removes it.
    """
    listing_filter = ListingFilter(config)
    kept = listing_filter.filter(df)

    results = [
        {
            'name': rule.name,
            'reason': rule.reason,
            'failed': listing_filter.stats.get(rule.name, 0),
            'total': len(df),
            'pct': (listing_filter.stats.get(rule.name, 0) / len(df) * 100) if len(df) else 0,
        }
        for rule in listing_filter.rules
        if rule.enabled
    ]
    return {
        'rules': results,
        'total_failed': len(df) - len(kept),
        'checks_passed': sum(1 for r in results if r['failed'] == 0),
        'total_checks': len(results),
    }
