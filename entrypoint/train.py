#!/usr/bin/env python
"""
Clean listings and train the price model roster.

Usage:
    python entrypoint/train.py --listings data/listings.csv.gz
    python entrypoint/train.py --listings data/listings.csv.gz --quick  # Smaller forests
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import logging

from rental_pricing.config import (
    CLEAN_LISTINGS_FILENAME,
    COMPARISON_FILENAME,
    FEATURE_RANKING_FILENAME,
    OUTPUT_DIR,
    PIPELINE_FILENAME,
)
from rental_pricing.data.loader import load_raw_listings, write_clean_listings
from rental_pricing.pipeline import PricingConfig, PricingPipeline

QUICK_N_ESTIMATORS = 100


def main():
    parser = argparse.ArgumentParser(description='Train listing price models')
    parser.add_argument('--listings', type=str, required=True,
                        help='Raw listings export (.csv or .csv.gz)')
    parser.add_argument('--output-dir', type=str, default=OUTPUT_DIR,
                        help='Directory for the clean table, reports and pipeline')
    parser.add_argument('--neighbourhood-column', type=str, default='neighbourhood',
                        help="Column to use as neighbourhood (e.g. 'neighbourhood_cleansed')")
    parser.add_argument('--quick', action='store_true',
                        help=f'Quick training with {QUICK_N_ESTIMATORS} trees per forest')
    parser.add_argument('--verbose', action='store_true', help='Log every filter rule')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(message)s')

    config = PricingConfig(neighbourhood_column=args.neighbourhood_column, verbose=args.verbose)
    if args.quick:
        config.n_estimators = QUICK_N_ESTIMATORS

    output_dir = Path(args.output_dir)

    print("=" * 70)
    print("TRAINING LISTING PRICE MODELS")
    print("=" * 70)

    # Load data
    print("\n1. Loading listings...")
    raw = load_raw_listings(args.listings, neighbourhood_column=config.neighbourhood_column)

    # Clean
    print("\n2. Cleaning listings...")
    pipeline = PricingPipeline(config)
    clean = pipeline.prepare(raw)
    write_clean_listings(clean, output_dir / CLEAN_LISTINGS_FILENAME)
    print(f"   Kept {len(clean):,} of {len(raw):,} listings")
    for reason, count in pipeline.dropped['reason'].value_counts().items():
        print(f"   - {reason}: {count:,}")

    # Train
    print("\n3. Training models...")
    report = pipeline.fit(clean)
    report.print_summary()

    # Save
    print("\n4. Saving outputs...")
    report.summary().to_csv(output_dir / COMPARISON_FILENAME, index=False)
    report.feature_ranking().to_csv(output_dir / FEATURE_RANKING_FILENAME, index=False)
    pipeline_path = pipeline.save(output_dir / PIPELINE_FILENAME)

    print("\n" + "=" * 70)
    print("TRAINING COMPLETE")
    print("=" * 70)
    print(f"\nPipeline saved to: {pipeline_path}")
    print(f"Reports saved to: {output_dir}")


if __name__ == "__main__":
    main()
