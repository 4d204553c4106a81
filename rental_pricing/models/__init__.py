"""Model training and comparison."""
from .trainer import ModelTrainer, TrainedModel, build_estimator
from .comparison import ComparisonReport, ModelComparison

__all__ = ['ModelTrainer', 'TrainedModel', 'build_estimator', 'ComparisonReport', 'ModelComparison']
