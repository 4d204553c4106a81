"""
Listing Price Model - Source Code.

Modules:
- data: Raw listing loading, normalization and record filtering
- features: Amenity vectorization and feature sets
- models: Cross-validated training and model comparison
- pipeline: End-to-end PricingPipeline

Main pipeline: pipeline.PricingPipeline
"""
from .pipeline import PricingPipeline, PricingConfig

__all__ = ['PricingPipeline', 'PricingConfig']
