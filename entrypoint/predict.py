#!/usr/bin/env python
"""
Predict nightly prices for new listings.

Usage:
    python entrypoint/predict.py --model outputs/pricing_pipeline.pkl --listings new.csv
    python entrypoint/predict.py --model outputs/pricing_pipeline.pkl --listings new.csv --output predictions.csv
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import logging

from rental_pricing.config import OUTPUT_DIR, PIPELINE_FILENAME
from rental_pricing.data.loader import load_raw_listings
from rental_pricing.pipeline import PricingPipeline


def main():
    parser = argparse.ArgumentParser(description='Predict listing prices')
    parser.add_argument('--model', type=str, default=str(Path(OUTPUT_DIR) / PIPELINE_FILENAME),
                        help='Pipeline written by entrypoint/train.py')
    parser.add_argument('--listings', type=str, required=True,
                        help='Raw listings to price (.csv or .csv.gz)')
    parser.add_argument('--output', type=str, help='Optional CSV path for the predictions')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(message)s')

    pipeline = PricingPipeline.load(args.model)
    raw = load_raw_listings(args.listings, neighbourhood_column=pipeline.config.neighbourhood_column)
    predictions = pipeline.predict(raw)

    print("\n" + "=" * 70)
    print(f"PREDICTED PRICES ({pipeline.report.best_model.name})")
    print("=" * 70)
    for _, row in predictions.iterrows():
        print(f"  {row['id']:<20} ${row['predicted_price']:>8.2f}")

    if len(pipeline.dropped):
        print(f"\n⚠️ {len(pipeline.dropped):,} listing(s) could not be priced:")
        for _, row in pipeline.dropped.iterrows():
            print(f"  {row['id']:<20} {row['reason']}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        predictions.to_csv(output_path, index=False)
        print(f"\n✓ Predictions saved to: {output_path}")


if __name__ == "__main__":
    main()
