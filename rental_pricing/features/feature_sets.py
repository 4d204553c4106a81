"""
Feature sets and design matrix construction.

A FeatureSet names the predictors a model sees. DesignMatrixBuilder turns a
clean listings frame into the numeric matrix for one feature set:
- categorical terms are one-hot encoded (linear models) or mapped to integer
  codes (tree models) against the levels seen at fit
- booleans become 0/1 floats
- (attribute, neighbourhood) interactions expand into product columns
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sklearn.exceptions import NotFittedError

logger = logging.getLogger(__name__)


# =============================================================================
# TERM DEFINITIONS
# =============================================================================

BASIC_TERMS = (
    'neighbourhood',
    'room_type',
    'accommodates',
    'bathrooms',
    'bedrooms',
    'beds',
    'instant_bookable',
    'shared_bathroom',
    'number_of_reviews',
)

# Encoded terms; every other term is used as a number
CATEGORICAL_TERMS = ('neighbourhood', 'room_type', 'bedrooms')

INTERACTION_ANCHOR = 'neighbourhood'

# Amenity flags that also interact with neighbourhood
PARKING_TERMS = ('Free_parking', 'Paid_parking')

ONEHOT = 'onehot'
ORDINAL = 'ordinal'

# Code for a level not seen at fit under ordinal encoding
UNSEEN_CODE = -1.0


@dataclass(frozen=True)
class FeatureSet:
    """Named set of predictor terms."""
    name: str
    base_terms: Tuple[str, ...]
    amenity_terms: Tuple[str, ...] = ()
    interaction_terms: Tuple[Tuple[str, str], ...] = ()

    @property
    def terms(self) -> List[str]:
        return list(self.base_terms) + list(self.amenity_terms)

    def formula(self) -> str:
        """R-style description, e.g. 'price ~ accommodates + room_type:neighbourhood'."""
        parts = self.terms + [f"{a}:{b}" for a, b in self.interaction_terms]
        return 'price ~ ' + ' + '.join(parts)


def build_feature_sets(amenity_columns: Sequence[str]) -> Dict[str, FeatureSet]:
    """
    Build the three nested feature sets.

    Args:
        amenity_columns: Amenity flag columns available in the data

    Returns:
        {'basic': ..., 'amenities': ..., 'interactions': ...}
    """
    amenities = tuple(amenity_columns)
    interactions = tuple(
        (term, INTERACTION_ANCHOR) for term in BASIC_TERMS if term != INTERACTION_ANCHOR
    ) + tuple(
        (term, INTERACTION_ANCHOR) for term in PARKING_TERMS if term in amenities
    )
    return {
        'basic': FeatureSet('basic', BASIC_TERMS),
        'amenities': FeatureSet('amenities', BASIC_TERMS, amenities),
        'interactions': FeatureSet('interactions', BASIC_TERMS, amenities, interactions),
    }


# =============================================================================
# DESIGN MATRIX
# =============================================================================

class DesignMatrixBuilder:
    """
    Builds a fixed-width float matrix for one feature set.

    Usage:
        builder = DesignMatrixBuilder(feature_sets['interactions'])
        X_train = builder.fit_transform(train_df)
        X_test = builder.transform(test_df)   # same columns, same order
    """

    def __init__(
        self,
        feature_set: FeatureSet,
        expand_interactions: bool = True,
        drop_first: bool = True,
        categorical_terms: Sequence[str] = CATEGORICAL_TERMS,
        encode: str = ONEHOT
    ):
        """
        Args:
            feature_set: Terms (and interactions) to encode
            expand_interactions: Add (attribute, neighbourhood) product columns
            drop_first: Drop the reference (first sorted) level of one-hot terms
            categorical_terms: Terms treated as categorical
            encode: 'onehot' (one column per level) or 'ordinal' (one integer
                code column per term, so a forest's max_features counts attributes)
        """
        if encode not in (ONEHOT, ORDINAL):
            raise ValueError(f"Unknown encoding '{encode}'. Choose from: {ONEHOT}, {ORDINAL}")
        self.feature_set = feature_set
        self.encode = encode
        self.expand_interactions = expand_interactions
        self.drop_first = drop_first
        self.categorical_terms = tuple(categorical_terms)

        self.levels_: Optional[Dict[str, List[str]]] = None
        self.columns_: Optional[List[str]] = None
        self.numeric_columns_: Optional[List[str]] = None

    @property
    def is_fitted(self) -> bool:
        return self.columns_ is not None

    def _is_categorical(self, term: str) -> bool:
        return term in self.categorical_terms

    def _encoded_levels(self, term: str) -> List[str]:
        levels = self.levels_[term]
        return levels[1:] if self.drop_first else levels

    def _codes(self, df: pd.DataFrame, term: str) -> pd.Series:
        codes = {level: float(i) for i, level in enumerate(self.levels_[term])}
        return df[term].astype(str).map(codes).fillna(UNSEEN_CODE)

    def _indicators(self, df: pd.DataFrame, term: str) -> Dict[str, pd.Series]:
        values = df[term].astype(str)
        return {
            level: (values == level).astype(float)
            for level in self._encoded_levels(term)
        }

    def _build(self, df: pd.DataFrame) -> pd.DataFrame:
        columns: Dict[str, pd.Series] = {}
        indicators: Dict[str, Dict[str, pd.Series]] = {}

        for term in self.feature_set.terms:
            if self._is_categorical(term) and self.encode == ORDINAL:
                columns[term] = self._codes(df, term)
            elif self._is_categorical(term):
                indicators[term] = self._indicators(df, term)
                for level, values in indicators[term].items():
                    columns[f"{term}[{level}]"] = values
            else:
                columns[term] = df[term].astype(float)

        if self.expand_interactions:
            for term, anchor in self.feature_set.interaction_terms:
                if anchor not in indicators:
                    indicators[anchor] = self._indicators(df, anchor)
                for anchor_level, anchor_values in indicators[anchor].items():
                    suffix = f"{anchor}[{anchor_level}]"
                    if self._is_categorical(term):
                        if term not in indicators:
                            indicators[term] = self._indicators(df, term)
                        for level, values in indicators[term].items():
                            columns[f"{term}[{level}]:{suffix}"] = values * anchor_values
                    else:
                        columns[f"{term}:{suffix}"] = df[term].astype(float) * anchor_values

        return pd.DataFrame(columns, index=df.index)

    def fit(self, df: pd.DataFrame) -> 'DesignMatrixBuilder':
        """Fix categorical levels and the output columns from training data."""
        used = set(self.feature_set.terms)
        if self.expand_interactions:
            for term, anchor in self.feature_set.interaction_terms:
                used.update((term, anchor))

        self.levels_ = {
            term: sorted(df[term].astype(str).unique())
            for term in self.categorical_terms
            if term in used
        }

        X = self._build(df)
        interaction_cols = [c for c in X.columns if ':' in c]
        all_zero = [c for c in interaction_cols if not X[c].any()]
        self.columns_ = [c for c in X.columns if c not in set(all_zero)]

        self.numeric_columns_ = [
            term for term in self.feature_set.terms
            if not self._is_categorical(term)
            and not pd.api.types.is_bool_dtype(df[term])
        ]

        logger.debug(
            f"Design matrix '{self.feature_set.name}': {len(self.columns_)} columns "
            f"({len(all_zero)} empty interactions dropped)"
        )
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Encode listings against the fitted levels; unseen levels are all zeros."""
        if not self.is_fitted:
            raise NotFittedError("DesignMatrixBuilder not fitted. Call fit() first.")
        return self._build(df).reindex(columns=self.columns_, fill_value=0.0)

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)
