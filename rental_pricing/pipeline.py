"""
End-to-end listing price pipeline.

Combines the steps into one object that can be fitted, saved and reused:
1. prepare(): raw listings -> clean listings with amenity flags
2. fit(): model comparison on clean listings
3. predict(): raw listings -> predicted nightly price (best model)
"""

import logging
import pickle
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from rental_pricing.config import (
    CV_FOLDS,
    MODEL_ROSTER,
    RANDOM_STATE,
    REQUIRED_RAW_COLUMNS,
    RF_N_ESTIMATORS,
    RF_N_JOBS,
    TEST_SIZE,
    ModelSpec,
)
from rental_pricing.data.normalizer import CLEAN_BASE_COLUMNS, normalize_listings, to_clean_schema
from rental_pricing.data.validator import FilterConfig, ListingFilter, validate_raw_schema
from rental_pricing.exceptions import ModelFitError
from rental_pricing.features.amenities import AmenityVectorizer
from rental_pricing.models.comparison import ComparisonReport, ModelComparison
from rental_pricing.models.trainer import ModelTrainer

logger = logging.getLogger(__name__)


@dataclass
class PricingConfig:
    """Run-time settings for PricingPipeline."""
    test_size: float = TEST_SIZE
    cv_folds: int = CV_FOLDS
    random_state: int = RANDOM_STATE
    n_estimators: int = RF_N_ESTIMATORS
    n_jobs: int = RF_N_JOBS
    roster: List[ModelSpec] = field(default_factory=lambda: list(MODEL_ROSTER))
    min_amenity_listings: int = 1
    neighbourhood_column: str = 'neighbourhood'
    filter_config: FilterConfig = field(default_factory=FilterConfig)
    verbose: bool = False


class PricingPipeline:
    """
    Cleans listings, trains the model roster and predicts prices.

    Usage:
        pipeline = PricingPipeline()
        clean = pipeline.prepare(load_raw_listings('listings.csv.gz'))
        report = pipeline.fit(clean)
        pipeline.save('outputs/pricing_pipeline.pkl')

        pipeline = PricingPipeline.load('outputs/pricing_pipeline.pkl')
        predictions = pipeline.predict(new_raw_listings)
    """

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()
        self.vectorizer: Optional[AmenityVectorizer] = None
        self.report: Optional[ComparisonReport] = None
        self.dropped = pd.DataFrame(columns=['id', 'reason'])

    @property
    def is_fitted(self) -> bool:
        return self.report is not None

    def _filter(
        self,
        raw_df: pd.DataFrame,
        filter_config: FilterConfig
    ) -> Tuple[pd.DataFrame, pd.Series]:
        if self.config.verbose:
            filter_config = replace(filter_config, verbose=True)
        normalized = normalize_listings(raw_df)
        listing_filter = ListingFilter(filter_config)
        kept = listing_filter.filter(normalized)
        self.dropped = listing_filter.dropped
        return to_clean_schema(kept), kept['amenities']

    def prepare(self, raw_df: pd.DataFrame) -> pd.DataFrame:
        """
        Clean raw listings and fit the amenity vocabulary on them.

        Args:
            raw_df: Raw listings (see load_raw_listings)

        Returns:
            Clean listings: CLEAN_BASE_COLUMNS followed by one boolean
            column per amenity
        """
        validate_raw_schema(raw_df)
        base, amenities = self._filter(raw_df, self.config.filter_config)

        self.vectorizer = AmenityVectorizer(
            min_listings=self.config.min_amenity_listings,
            reserved_names=CLEAN_BASE_COLUMNS,
        )
        flags = self.vectorizer.fit_transform(amenities)

        clean = pd.concat([base, flags], axis=1)
        logger.info(
            f"Prepared {len(clean):,} clean listings "
            f"({len(self.dropped):,} dropped, {len(self.vectorizer.columns_)} amenity columns)"
        )
        return clean

    def fit(self, clean_df: pd.DataFrame) -> ComparisonReport:
        """
        Run the model comparison on prepared listings.

        Raises:
            ModelFitError: no model could be trained
        """
        if self.vectorizer is None:
            raise ModelFitError("Call prepare() before fit()")

        trainer = ModelTrainer(
            n_splits=self.config.cv_folds,
            random_state=self.config.random_state,
            n_estimators=self.config.n_estimators,
            n_jobs=self.config.n_jobs,
        )
        comparison = ModelComparison(
            roster=self.config.roster,
            trainer=trainer,
            test_size=self.config.test_size,
            random_state=self.config.random_state,
        )
        self.report = comparison.run(clean_df, amenity_columns=self.vectorizer.columns_)
        return self.report

    def predict(self, raw_df: pd.DataFrame) -> pd.DataFrame:
        """
        Predict nightly prices for raw listings with the best model.

        Listings are cleaned with the training rules, except that the price
        rules are skipped (new listings need not have a price). Dropped
        listings end up in `self.dropped`.

        Returns:
            DataFrame with id, predicted_price
        """
        if not self.is_fitted:
            raise ModelFitError("Pipeline not fitted. Call fit() first.")

        raw_df = raw_df.copy()
        if 'price' not in raw_df.columns:
            raw_df['price'] = np.nan
        validate_raw_schema(raw_df, [c for c in REQUIRED_RAW_COLUMNS if c != 'price'])

        filter_config = replace(
            self.config.filter_config,
            remove_null_prices=False,
            remove_non_positive_prices=False,
            remove_high_prices=False,
        )
        base, amenities = self._filter(raw_df, filter_config)
        clean = pd.concat([base, self.vectorizer.transform(amenities)], axis=1)

        predictions = self.report.best_model.predict(clean) if len(clean) else np.array([])
        return pd.DataFrame({
            'id': clean['id'],
            'predicted_price': np.asarray(predictions, dtype=float),
        })

    def save(self, path: Union[str, Path]) -> Path:
        """Pickle the whole pipeline."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'wb') as f:
            pickle.dump(self, f)
        logger.info(f"Saved pipeline to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'PricingPipeline':
        """Load a pipeline written by save()."""
        with open(path, 'rb') as f:
            pipeline = pickle.load(f)
        if not isinstance(pipeline, cls):
            raise TypeError(f"{path} does not contain a {cls.__name__}")
        return pipeline
