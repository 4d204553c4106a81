"""
Cross-validated training for one roster entry.

For each ModelSpec:
1. Fit the design matrix on the training partition
2. Score every hyperparameter combination with K-fold CV (RMSE)
3. Refit the best combination on the whole training partition

A combination whose fit raises, or whose predictions are not finite, is
logged and excluded. If nothing survives the model ends up FAILED and is
left out of the comparison; it is never retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import Lasso, LinearRegression
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import KFold, ParameterGrid
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from rental_pricing.config import (
    CV_FOLDS,
    LASSO_MAX_ITER,
    LINEAR_FAMILIES,
    RANDOM_STATE,
    RF_N_ESTIMATORS,
    RF_N_JOBS,
    ModelSpec,
)
from rental_pricing.exceptions import ModelFitError
from rental_pricing.features.feature_sets import ONEHOT, ORDINAL, DesignMatrixBuilder, FeatureSet

logger = logging.getLogger(__name__)

TARGET = 'price'

# Status of a TrainedModel
TRAINED = 'trained'
FAILED = 'failed'

# Errors that mark a single fit as degenerate
FIT_ERRORS = (ValueError, np.linalg.LinAlgError, FloatingPointError)


def rmse(y_true, y_pred) -> float:
    """Root mean squared error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


# =============================================================================
# ESTIMATORS
# =============================================================================

def build_estimator(
    family: str,
    params: Optional[Dict[str, Any]] = None,
    numeric_columns: Optional[List[str]] = None,
    random_state: int = RANDOM_STATE,
    n_estimators: int = RF_N_ESTIMATORS,
    n_jobs: int = RF_N_JOBS
):
    """
    Build an unfitted estimator for a model family.

    Linear families standardize `numeric_columns` and pass dummies through.

    Args:
        family: 'ols', 'lasso' or 'random_forest'
        params: One hyperparameter combination
        numeric_columns: Design columns to standardize (linear families)

    Returns:
        scikit-learn estimator
    """
    params = dict(params or {})

    if family in LINEAR_FAMILIES:
        if family == 'ols':
            model = LinearRegression(**params)
        else:
            model = Lasso(max_iter=LASSO_MAX_ITER, **params)
        scaler = ColumnTransformer(
            [('numeric', StandardScaler(), list(numeric_columns or []))],
            remainder='passthrough',
            verbose_feature_names_out=False,
        )
        return Pipeline([('scale', scaler), ('model', model)])

    if family == 'random_forest':
        return RandomForestRegressor(
            n_estimators=n_estimators,
            criterion='squared_error',
            random_state=random_state,
            n_jobs=n_jobs,
            **params
        )

    raise ValueError(f"Unknown model family: {family}")


# =============================================================================
# TRAINED MODEL
# =============================================================================

@dataclass(frozen=True)
class TrainedModel:
    """Outcome of training one ModelSpec (trained or failed)."""
    spec: ModelSpec
    status: str
    builder: DesignMatrixBuilder
    estimator: Any = None
    best_params: Dict[str, Any] = field(default_factory=dict)
    fold_rmse: Tuple[float, ...] = ()
    grid_results: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    test_rmse: Optional[float] = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def family(self) -> str:
        return self.spec.family

    @property
    def is_trained(self) -> bool:
        return self.status == TRAINED

    @property
    def cv_rmse_mean(self) -> float:
        return float(np.mean(self.fold_rmse)) if self.fold_rmse else float('nan')

    @property
    def cv_rmse_min(self) -> float:
        return float(np.min(self.fold_rmse)) if self.fold_rmse else float('nan')

    @property
    def cv_rmse_max(self) -> float:
        return float(np.max(self.fold_rmse)) if self.fold_rmse else float('nan')

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        """
        Predict nightly prices for clean listings.

        Raises:
            ModelFitError: the model failed to train
        """
        if not self.is_trained:
            raise ModelFitError(f"Model '{self.name}' is not trained: {self.error}")
        X = self.builder.transform(df)
        return self.estimator.predict(X)

    def feature_importance(self) -> pd.Series:
        """
        Coefficients (linear families) or impurity importances (forests),
        indexed by design column.
        """
        if not self.is_trained:
            raise ModelFitError(f"Model '{self.name}' is not trained: {self.error}")
        if self.family in LINEAR_FAMILIES:
            names = self.estimator.named_steps['scale'].get_feature_names_out()
            values = self.estimator.named_steps['model'].coef_
        else:
            names = self.builder.columns_
            values = self.estimator.feature_importances_
        return pd.Series(np.asarray(values, dtype=float), index=list(names), name=self.name)


# =============================================================================
# TRAINER
# =============================================================================

class ModelTrainer:
    """
    Grid search with K-fold cross-validation, one ModelSpec at a time.

    Usage:
        trainer = ModelTrainer()
        model = trainer.fit(get_model_spec('rf_basic'), train_df, feature_sets['basic'])
        model.best_params   # {'max_features': 4, 'min_samples_leaf': 5}
        model.fold_rmse     # one RMSE per fold
    """

    def __init__(
        self,
        n_splits: int = CV_FOLDS,
        random_state: int = RANDOM_STATE,
        n_estimators: int = RF_N_ESTIMATORS,
        n_jobs: int = RF_N_JOBS
    ):
        self.n_splits = n_splits
        self.random_state = random_state
        self.n_estimators = n_estimators
        self.n_jobs = n_jobs

    def _estimator(self, spec: ModelSpec, params: Dict, numeric_columns: List[str]):
        return build_estimator(
            spec.family,
            params,
            numeric_columns,
            random_state=self.random_state,
            n_estimators=self.n_estimators,
            n_jobs=self.n_jobs,
        )

    def _fit(self, spec: ModelSpec, params: Dict, numeric_columns: List[str], X, y):
        estimator = self._estimator(spec, params, numeric_columns)
        try:
            estimator.fit(X, y)
        except FIT_ERRORS as e:
            raise ModelFitError(f"{spec.name} {params}: {e}") from e
        return estimator

    def _score(self, spec: ModelSpec, params: Dict, estimator, X, y) -> float:
        try:
            predictions = estimator.predict(X)
        except FIT_ERRORS as e:
            raise ModelFitError(f"{spec.name} {params}: {e}") from e
        if not np.all(np.isfinite(predictions)):
            raise ModelFitError(f"{spec.name} {params}: non-finite predictions")
        return rmse(y, predictions)

    def cross_validate(
        self,
        spec: ModelSpec,
        X: pd.DataFrame,
        y: pd.Series,
        numeric_columns: List[str]
    ) -> List[Dict[str, Any]]:
        """
        Score every combination of spec.param_grid.

        Returns:
            One dict per combination, in grid order:
            params, fold_rmse (list or None), mean_rmse, error
        """
        folds = list(KFold(
            n_splits=self.n_splits, shuffle=True, random_state=self.random_state
        ).split(X))

        results = []
        for params in ParameterGrid(spec.param_grid):
            scores = []
            try:
                for fold, (train_idx, test_idx) in enumerate(folds, start=1):
                    estimator = self._fit(
                        spec, params, numeric_columns, X.iloc[train_idx], y.iloc[train_idx]
                    )
                    score = self._score(spec, params, estimator, X.iloc[test_idx], y.iloc[test_idx])
                    logger.debug(f"  {spec.name} {params} fold {fold}: RMSE {score:.2f}")
                    scores.append(score)
            except ModelFitError as e:
                logger.warning(f"Skipping combination: {e}")
                results.append({
                    'params': params, 'fold_rmse': None, 'mean_rmse': float('nan'), 'error': str(e)
                })
                continue

            results.append({
                'params': params, 'fold_rmse': scores, 'mean_rmse': float(np.mean(scores)), 'error': None
            })
        return results

    def fit(self, spec: ModelSpec, train_df: pd.DataFrame, feature_set: FeatureSet) -> TrainedModel:
        """
        Train one roster entry on the training partition.

        Args:
            spec: Roster entry (family, feature set, grid)
            train_df: Clean listings with amenity flags and `price`
            feature_set: The FeatureSet named by spec.feature_set

        Returns:
            TrainedModel with status 'trained' or 'failed'
        """
        linear = spec.family in LINEAR_FAMILIES
        builder = DesignMatrixBuilder(
            feature_set,
            expand_interactions=linear,
            drop_first=linear,
            encode=ONEHOT if linear else ORDINAL,
        )
        X = builder.fit_transform(train_df)
        y = train_df[TARGET].astype(float)

        logger.info(
            f"Training {spec.name}: {len(ParameterGrid(spec.param_grid))} combination(s), "
            f"{X.shape[1]} design columns, {self.n_splits}-fold CV"
        )

        grid_results = self.cross_validate(spec, X, y, builder.numeric_columns_)
        succeeded = [r for r in grid_results if r['error'] is None]

        if not succeeded:
            error = f"all {len(grid_results)} combination(s) failed"
            logger.error(f"✗ {spec.name}: {error}")
            return TrainedModel(spec, FAILED, builder, grid_results=grid_results, error=error)

        # min() keeps the first of equal scores, i.e. grid order
        best = min(succeeded, key=lambda r: r['mean_rmse'])

        try:
            estimator = self._fit(spec, best['params'], builder.numeric_columns_, X, y)
            self._score(spec, best['params'], estimator, X, y)
        except ModelFitError as e:
            logger.error(f"✗ {spec.name}: refit failed ({e})")
            return TrainedModel(spec, FAILED, builder, grid_results=grid_results, error=str(e))

        logger.info(f"  ✓ {spec.name}: CV RMSE {best['mean_rmse']:.2f} with {best['params']}")
        return TrainedModel(
            spec=spec,
            status=TRAINED,
            builder=builder,
            estimator=estimator,
            best_params=dict(best['params']),
            fold_rmse=tuple(best['fold_rmse']),
            grid_results=grid_results,
        )
