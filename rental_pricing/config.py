"""
Configuration for the listing price model.

Contains filter thresholds, cross-validation settings, hyperparameter grids
and the default model roster compared by the training pipeline.
"""

from dataclasses import dataclass, field
from typing import Dict, List


# =============================================================================
# RAW SCHEMA
# =============================================================================

# Columns every raw listings table must carry (SchemaError otherwise)
REQUIRED_RAW_COLUMNS = [
    'id',
    'name',
    'property_type',
    'room_type',
    'accommodates',
    'bathrooms_text',
    'bedrooms',
    'beds',
    'amenities',
    'price',
    'instant_bookable',
    'number_of_reviews',
    'neighbourhood',
]

# Review scores are present in the raw export but never modeled
DROPPED_COLUMN_PREFIXES = ('review_scores_',)


# =============================================================================
# RECORD FILTER THRESHOLDS
# =============================================================================

ALLOWED_ACCOMMODATES = (2, 3, 4, 5, 6)
MIN_BATHROOMS = 1.0
MAX_PRICE = 600.0

PROPERTY_TYPE_PATTERN = 'apartment'
OTHER_PROPERTY_TYPE = 'Other'
HOTEL_ROOM = 'Hotel room'

# Room type relabels applied by the normalizer
ROOM_TYPE_RELABELS = {
    'Entire home/apt': 'Entire apartment',
}

# Explicit categorical level for listings without a bedroom count
MISSING_BEDROOMS = 'missing'

# Neighbourhood label for listings without one
UNKNOWN_NEIGHBOURHOOD = 'Unknown'


# =============================================================================
# MODEL CONFIGURATION
# =============================================================================

# Cross-validation configuration
CV_FOLDS = 5
RANDOM_STATE = 42
TEST_SIZE = 0.2

# Random forest size (fixed, not searched)
RF_N_ESTIMATORS = 500
RF_N_JOBS = 1

# Lasso penalty grid: 0.05 to 1.00 in steps of 0.01
LASSO_ALPHAS = [round(0.05 + 0.01 * i, 2) for i in range(96)]
LASSO_MAX_ITER = 10000

RF_BASIC_GRID = {
    'max_features': [3, 4],
    'min_samples_leaf': [5, 10],
}

RF_FULL_GRID = {
    'max_features': [9, 11, 13],
    'min_samples_leaf': [5, 10],
}

# Number of coefficients / importances kept in the report
TOP_N_FEATURES = 15


@dataclass(frozen=True)
class ModelSpec:
    """One entry of the model roster: a family trained on a feature set."""
    name: str
    family: str  # 'ols', 'lasso', 'random_forest'
    feature_set: str  # 'basic', 'amenities', 'interactions'
    param_grid: Dict[str, List] = field(default_factory=dict)


MODEL_ROSTER = [
    ModelSpec('ols_basic', 'ols', 'basic'),
    ModelSpec('ols_amenities', 'ols', 'amenities'),
    ModelSpec('ols_interactions', 'ols', 'interactions'),
    ModelSpec('lasso_interactions', 'lasso', 'interactions', {'alpha': LASSO_ALPHAS}),
    ModelSpec('rf_basic', 'random_forest', 'basic', RF_BASIC_GRID),
    ModelSpec('rf_full', 'random_forest', 'amenities', RF_FULL_GRID),
]

MODEL_FAMILIES = ('ols', 'lasso', 'random_forest')
LINEAR_FAMILIES = ('ols', 'lasso')


# =============================================================================
# FILE PATHS
# =============================================================================

OUTPUT_DIR = 'outputs'
CLEAN_LISTINGS_FILENAME = 'clean_listings.csv'
COMPARISON_FILENAME = 'model_comparison.csv'
FEATURE_RANKING_FILENAME = 'feature_ranking.csv'
PIPELINE_FILENAME = 'pricing_pipeline.pkl'


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_model_spec(name: str) -> ModelSpec:
    """
    Returns a roster entry by name.

    Args:
        name: One of the names in MODEL_ROSTER (e.g. 'rf_basic')

    Returns:
        ModelSpec dataclass
    """
    specs = {spec.name: spec for spec in MODEL_ROSTER}
    if name not in specs:
        raise ValueError(f"Unknown model: {name}. Choose from: {list(specs.keys())}")
    return specs[name]
