"""
Model comparison for listing price prediction.

Trains every roster entry on the same seeded training partition, scores each
trained model once on the held-out test partition and picks the model with
the lowest test RMSE.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from rental_pricing.config import (
    MODEL_ROSTER,
    RANDOM_STATE,
    TEST_SIZE,
    TOP_N_FEATURES,
    ModelSpec,
)
from rental_pricing.exceptions import ModelFitError
from rental_pricing.data.normalizer import CLEAN_BASE_COLUMNS
from rental_pricing.features.feature_sets import build_feature_sets
from rental_pricing.models.trainer import FAILED, TARGET, ModelTrainer, TrainedModel, rmse

logger = logging.getLogger(__name__)


def find_amenity_columns(df: pd.DataFrame) -> List[str]:
    """Amenity flag columns of a clean listings frame, in table order."""
    return [c for c in df.columns if c not in CLEAN_BASE_COLUMNS]


@dataclass
class ComparisonReport:
    """All trained (and failed) models plus the selected best one."""
    models: List[TrainedModel]
    best_model: TrainedModel
    n_train: int
    n_test: int

    @property
    def trained_models(self) -> List[TrainedModel]:
        return [m for m in self.models if m.is_trained]

    @property
    def failed_models(self) -> List[TrainedModel]:
        return [m for m in self.models if not m.is_trained]

    def summary(self) -> pd.DataFrame:
        """One row per model, best test RMSE first, failed models last."""
        rows = [
            {
                'model': m.name,
                'family': m.family,
                'feature_set': m.spec.feature_set,
                'status': m.status,
                'best_params': m.best_params,
                'cv_rmse_mean': m.cv_rmse_mean,
                'cv_rmse_min': m.cv_rmse_min,
                'cv_rmse_max': m.cv_rmse_max,
                'test_rmse': m.test_rmse if m.test_rmse is not None else np.nan,
                'is_best': m.name == self.best_model.name,
                'error': m.error,
            }
            for m in self.models
        ]
        return (
            pd.DataFrame(rows)
            .sort_values('test_rmse', na_position='last', kind='stable')
            .reset_index(drop=True)
        )

    def feature_ranking(self, top_n: int = TOP_N_FEATURES) -> pd.DataFrame:
        """
        Top predictors of the best model.

        Coefficients are ranked by absolute value, forest importances as-is.
        """
        values = self.best_model.feature_importance()
        order = values.abs().sort_values(ascending=False, kind='stable').index
        ranked = values.loc[order].head(top_n)
        return pd.DataFrame({
            'rank': np.arange(1, len(ranked) + 1),
            'feature': ranked.index,
            'value': ranked.values,
            'model': self.best_model.name,
        })

    def print_summary(self) -> None:
        print("\n" + "=" * 70)
        print("MODEL COMPARISON")
        print("=" * 70)
        print(f"Train/Test: {self.n_train:,}/{self.n_test:,} listings\n")
        print(f"{'Model':<22} {'CV RMSE':>10} {'Test RMSE':>10}  Params")
        print("-" * 70)
        for _, row in self.summary().iterrows():
            if row['status'] != 'trained':
                print(f"{row['model']:<22} {'FAILED':>10} {'-':>10}  {row['error']}")
                continue
            marker = " ← BEST" if row['is_best'] else ""
            print(
                f"{row['model']:<22} {row['cv_rmse_mean']:>10.2f} {row['test_rmse']:>10.2f}  "
                f"{row['best_params']}{marker}"
            )
        print(f"\n✓ Best model: {self.best_model.name} (Test RMSE = {self.best_model.test_rmse:.2f})")


class ModelComparison:
    """
    Train and compare the model roster.

    Usage:
        comparison = ModelComparison()
        report = comparison.run(clean_listings)
        report.summary()
        report.best_model.predict(new_clean_listings)
    """

    def __init__(
        self,
        roster: Optional[Sequence[ModelSpec]] = None,
        trainer: Optional[ModelTrainer] = None,
        test_size: float = TEST_SIZE,
        random_state: int = RANDOM_STATE
    ):
        self.roster = list(MODEL_ROSTER if roster is None else roster)
        self.trainer = trainer or ModelTrainer(random_state=random_state)
        self.test_size = test_size
        self.random_state = random_state

    def split(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Seeded train/test split of clean listings."""
        train_df, test_df = train_test_split(
            df, test_size=self.test_size, random_state=self.random_state
        )
        return train_df.reset_index(drop=True), test_df.reset_index(drop=True)

    def run(
        self,
        clean_df: pd.DataFrame,
        amenity_columns: Optional[Sequence[str]] = None
    ) -> ComparisonReport:
        """
        Train every roster entry and select the best model.

        Args:
            clean_df: Clean listings with amenity flags and `price`
            amenity_columns: Amenity flag columns (inferred from the
                columns when not given)

        Returns:
            ComparisonReport

        Raises:
            ModelFitError: no model could be trained
        """
        if amenity_columns is None:
            amenity_columns = find_amenity_columns(clean_df)
        feature_sets = build_feature_sets(amenity_columns)

        train_df, test_df = self.split(clean_df)
        logger.info(f"Train/Test split: {len(train_df):,}/{len(test_df):,} listings")

        models = []
        for spec in self.roster:
            if spec.feature_set not in feature_sets:
                raise ValueError(
                    f"Unknown feature set '{spec.feature_set}' for {spec.name}. "
                    f"Choose from: {list(feature_sets.keys())}"
                )
            models.append(self.trainer.fit(spec, train_df, feature_sets[spec.feature_set]))

        y_test = test_df[TARGET].astype(float)
        evaluated = []
        for model in models:
            if model.is_trained:
                predictions = model.predict(test_df)
                if np.all(np.isfinite(predictions)):
                    model = replace(model, test_rmse=rmse(y_test, predictions))
                    logger.info(f"  {model.name}: test RMSE {model.test_rmse:.2f}")
                else:
                    logger.error(f"✗ {model.name}: non-finite test predictions")
                    model = replace(model, status=FAILED, error="non-finite test predictions")
            evaluated.append(model)

        trained = [m for m in evaluated if m.is_trained]
        if not trained:
            raise ModelFitError(f"None of the {len(evaluated)} models could be trained")

        best = min(trained, key=lambda m: m.test_rmse)
        logger.info(f"Best model: {best.name} (test RMSE {best.test_rmse:.2f})")

        return ComparisonReport(
            models=evaluated,
            best_model=best,
            n_train=len(train_df),
            n_test=len(test_df),
        )
