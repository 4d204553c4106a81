"""
Tests for rental_pricing/models/trainer.py and comparison.py - CV training and model selection.
"""

import logging
import math

import numpy as np
import pytest
from sklearn.ensemble import RandomForestRegressor
from sklearn.pipeline import Pipeline

from rental_pricing.config import ModelSpec, get_model_spec
from rental_pricing.exceptions import ModelFitError
from rental_pricing.features.feature_sets import BASIC_TERMS, build_feature_sets
from rental_pricing.models.comparison import ModelComparison, find_amenity_columns
from rental_pricing.models.trainer import ModelTrainer, build_estimator, rmse


@pytest.fixture
def feature_sets(synthetic_clean):
    return build_feature_sets(find_amenity_columns(synthetic_clean))


@pytest.fixture
def trainer():
    return ModelTrainer(n_estimators=10)


RF_SMALL = ModelSpec('rf_small', 'random_forest', 'basic', {'max_features': [2, 3], 'min_samples_leaf': [5]})


class TestBuildEstimator:
    """Test estimator construction per family."""

    def test_linear_families_standardize(self):
        estimator = build_estimator('ols', numeric_columns=['accommodates'])
        assert isinstance(estimator, Pipeline)
        assert list(estimator.named_steps) == ['scale', 'model']

    def test_lasso_params(self):
        estimator = build_estimator('lasso', {'alpha': 0.5}, ['accommodates'])
        assert estimator.named_steps['model'].alpha == 0.5
        assert estimator.named_steps['model'].max_iter == 10000

    def test_random_forest(self):
        estimator = build_estimator('random_forest', {'max_features': 3}, n_estimators=25)
        assert isinstance(estimator, RandomForestRegressor)
        assert estimator.n_estimators == 25
        assert estimator.max_features == 3
        assert estimator.criterion == 'squared_error'

    def test_unknown_family(self):
        with pytest.raises(ValueError):
            build_estimator('xgboost')

    def test_rmse(self):
        assert rmse([1.0, 2.0], [1.0, 4.0]) == pytest.approx(math.sqrt(2.0))


class TestModelTrainer:
    """Test cross-validated training of one roster entry."""

    def test_five_fold_scores(self, trainer, synthetic_clean, feature_sets):
        model = trainer.fit(get_model_spec('ols_basic'), synthetic_clean, feature_sets['basic'])
        assert model.is_trained
        assert len(model.fold_rmse) == 5
        assert all(np.isfinite(model.fold_rmse))
        assert model.cv_rmse_min <= model.cv_rmse_mean <= model.cv_rmse_max

    def test_grid_search_picks_lowest_mean(self, trainer, synthetic_clean, feature_sets):
        model = trainer.fit(RF_SMALL, synthetic_clean, feature_sets['basic'])
        assert len(model.grid_results) == 2
        best = min(model.grid_results, key=lambda r: r['mean_rmse'])
        assert model.best_params == best['params']
        assert model.cv_rmse_mean == pytest.approx(best['mean_rmse'])

    def test_failed_combination_is_skipped(self, trainer, synthetic_clean, feature_sets, caplog):
        """Test that a degenerate combination is logged and excluded."""
        caplog.set_level(logging.WARNING)
        spec = ModelSpec('rf_partial', 'random_forest', 'basic', {'max_features': [3, 1000]})
        model = trainer.fit(spec, synthetic_clean, feature_sets['basic'])

        assert model.is_trained
        assert model.best_params == {'max_features': 3}
        errors = [r['error'] for r in model.grid_results if r['error']]
        assert len(errors) == 1
        assert 'Skipping combination' in caplog.text

    def test_all_combinations_failing(self, trainer, synthetic_clean, feature_sets, caplog):
        """Test that a model with no surviving combination ends up failed."""
        caplog.set_level(logging.ERROR)
        spec = ModelSpec('rf_broken', 'random_forest', 'basic', {'max_features': [1000]})
        model = trainer.fit(spec, synthetic_clean, feature_sets['basic'])

        assert model.status == 'failed'
        assert model.fold_rmse == ()
        assert math.isnan(model.cv_rmse_mean)
        assert 'rf_broken' in caplog.text
        with pytest.raises(ModelFitError):
            model.predict(synthetic_clean)

    def test_deterministic_with_fixed_seed(self, synthetic_clean, feature_sets):
        first = ModelTrainer(n_estimators=10).fit(RF_SMALL, synthetic_clean, feature_sets['basic'])
        second = ModelTrainer(n_estimators=10).fit(RF_SMALL, synthetic_clean, feature_sets['basic'])
        assert first.best_params == second.best_params
        assert first.fold_rmse == second.fold_rmse

    def test_lasso_on_interactions(self, trainer, synthetic_clean, feature_sets):
        spec = ModelSpec('lasso_small', 'lasso', 'interactions', {'alpha': [0.05, 0.5, 1.0]})
        model = trainer.fit(spec, synthetic_clean, feature_sets['interactions'])
        assert model.is_trained
        assert model.best_params['alpha'] in (0.05, 0.5, 1.0)
        importance = model.feature_importance()
        assert sorted(importance.index) == sorted(model.builder.columns_)

    def test_trees_get_no_interactions(self, trainer, synthetic_clean, feature_sets):
        spec = ModelSpec('rf_interactions', 'random_forest', 'interactions', {'max_features': [3]})
        model = trainer.fit(spec, synthetic_clean, feature_sets['interactions'])
        assert not any(':' in c for c in model.builder.columns_)
        assert len(model.feature_importance()) == len(model.builder.columns_)

    def test_forest_design_has_one_column_per_attribute(self, trainer, synthetic_clean, feature_sets):
        """Test that max_features counts basic attributes, not dummy columns."""
        model = trainer.fit(RF_SMALL, synthetic_clean, feature_sets['basic'])
        assert model.builder.columns_ == list(BASIC_TERMS)
        assert len(model.feature_importance()) == 9

    def test_predict_shape(self, trainer, synthetic_clean, feature_sets):
        model = trainer.fit(get_model_spec('ols_amenities'), synthetic_clean, feature_sets['amenities'])
        predictions = model.predict(synthetic_clean.head(7))
        assert predictions.shape == (7,)


class TestModelComparison:
    """Test train/test comparison and best-model selection."""

    @pytest.fixture
    def comparison(self, trainer):
        roster = [get_model_spec('ols_basic'), get_model_spec('ols_amenities'), RF_SMALL]
        return ModelComparison(roster=roster, trainer=trainer)

    def test_split_sizes(self, comparison, synthetic_clean):
        train_df, test_df = comparison.split(synthetic_clean)
        assert len(test_df) == math.ceil(0.2 * len(synthetic_clean))
        assert len(train_df) + len(test_df) == len(synthetic_clean)

    def test_best_model_has_lowest_test_rmse(self, comparison, synthetic_clean):
        report = comparison.run(synthetic_clean)
        assert report.best_model.test_rmse == min(m.test_rmse for m in report.trained_models)
        assert all(m.test_rmse is not None for m in report.trained_models)

    def test_summary(self, comparison, synthetic_clean):
        summary = comparison.run(synthetic_clean).summary()
        assert len(summary) == 3
        assert summary['test_rmse'].is_monotonic_increasing
        assert summary['is_best'].sum() == 1
        assert bool(summary.loc[0, 'is_best']) is True

    def test_failed_model_reported_last(self, trainer, synthetic_clean):
        broken = ModelSpec('rf_broken', 'random_forest', 'basic', {'max_features': [1000]})
        comparison = ModelComparison(roster=[broken, get_model_spec('ols_basic')], trainer=trainer)
        report = comparison.run(synthetic_clean)
        summary = report.summary()

        assert report.best_model.name == 'ols_basic'
        assert [m.name for m in report.failed_models] == ['rf_broken']
        assert summary.iloc[-1]['model'] == 'rf_broken'
        assert summary.iloc[-1]['status'] == 'failed'

    def test_no_trained_model_raises(self, trainer, synthetic_clean):
        broken = ModelSpec('rf_broken', 'random_forest', 'basic', {'max_features': [1000]})
        with pytest.raises(ModelFitError):
            ModelComparison(roster=[broken], trainer=trainer).run(synthetic_clean)

    def test_unknown_feature_set(self, trainer, synthetic_clean):
        spec = ModelSpec('ols_unknown', 'ols', 'everything')
        with pytest.raises(ValueError):
            ModelComparison(roster=[spec], trainer=trainer).run(synthetic_clean)

    def test_feature_ranking(self, comparison, synthetic_clean):
        ranking = comparison.run(synthetic_clean).feature_ranking(top_n=5)
        assert ranking['rank'].tolist() == [1, 2, 3, 4, 5]
        assert ranking['value'].abs().is_monotonic_decreasing

    def test_find_amenity_columns(self, synthetic_clean):
        """Test that rule-consolidated and unclaimed amenity columns both reach the models."""
        columns = find_amenity_columns(synthetic_clean)
        assert 'Refrigerator' in columns
        assert 'Kitchen' in columns
        assert 'Elevator' in columns
        assert 'price' not in columns
        assert 'neighbourhood' not in columns

    def test_amenity_feature_sets_include_unclaimed_phrases(self, trainer, synthetic_clean, feature_sets):
        model = trainer.fit(get_model_spec('ols_amenities'), synthetic_clean, feature_sets['amenities'])
        assert 'Elevator' in model.builder.columns_
        assert 'Kitchen' in model.builder.columns_
