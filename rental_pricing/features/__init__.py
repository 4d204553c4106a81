"""Amenity vectorization and model feature sets."""
from .amenities import (
    AmenityRule,
    AmenityVectorizer,
    CONSOLIDATION_RULES,
    parse_amenities,
)
from .feature_sets import (
    BASIC_TERMS,
    CATEGORICAL_TERMS,
    DesignMatrixBuilder,
    FeatureSet,
    build_feature_sets,
)
