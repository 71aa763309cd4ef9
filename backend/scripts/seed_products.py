#!/usr/bin/env python3
"""
Seed the catalogue, either from a JSON file or from the built-in demo set
(one product per pricing mode and a few more).

Each entry looks like the admin API payload:

    {"name": "...", "category": "...", "pricing": {"pricing_type": "fixed", "price_cents": 1200}}

Products whose name already exists are skipped, so the script can be re-run.

Usage:
    python scripts/seed_products.py
    python scripts/seed_products.py --file catalogue.json --reset
"""
import argparse
import json
import os
import sys
from typing import List

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pydantic import TypeAdapter

from florist.db import SessionLocal, init_db
from florist.models.product import Product
from florist.repositories.product_repo import ProductRepository
from florist.schemas.product_schema import ProductCreateIn
from florist.utils.logging import get_logger

log = get_logger("seed")

DEMO_CATALOGUE = [
    {
        "name": "Rose rouge",
        "category": "fleurs",
        "description": "Rose rouge à longue tige, vendue à l'unité.",
        "pricing": {"pricing_type": "fixed", "price_cents": 450},
    },
    {
        "name": "Pivoine Sarah Bernhardt",
        "category": "fleurs",
        "pricing": {"pricing_type": "fixed", "price_cents": 690},
    },
    {
        "name": "Bouquet champêtre",
        "category": "bouquets",
        "description": "Fleurs de saison composées par l'atelier.",
        "pricing": {
            "pricing_type": "variants",
            "variants": [
                {"name": "Petit", "price_cents": 2500},
                {"name": "Moyen", "price_cents": 3500},
                {"name": "Grand", "price_cents": 4500},
            ],
        },
    },
    {
        "name": "Orchidée Phalaenopsis",
        "category": "plantes",
        "pricing": {
            "pricing_type": "variants",
            "variants": [
                {"name": "Une tige", "price_cents": 3900},
                {"name": "Deux tiges", "price_cents": 5900},
                {"name": "Trois tiges", "price_cents": 7900, "is_active": False},
            ],
        },
    },
    {
        "name": "Composition sur mesure",
        "category": "compositions",
        "description": "Vous choisissez le budget, nous composons.",
        "pricing": {"pricing_type": "custom_range", "min_price_cents": 3000, "max_price_cents": 15000},
    },
]


def load_entries(path):
    if not path:
        return DEMO_CATALOGUE
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        data = data["items"]
    return data


def seed(entries):
    products = TypeAdapter(List[ProductCreateIn]).validate_python(entries)
    db = SessionLocal()
    repo = ProductRepository(db)
    created = 0
    try:
        for p in products:
            if db.query(Product).filter(Product.name == p.name).first():
                log.info("skipping existing product %r", p.name)
                continue
            repo.create(
                name=p.name,
                pricing=p.pricing.to_pricing(),
                description=p.description,
                category=p.category,
                image=p.image,
                is_active=p.is_active,
            )
            created += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    print("Seeded products:", created)
    return created


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="JSON list of products (defaults to the demo catalogue)")
    parser.add_argument("--reset", action="store_true", help="drop and recreate tables first")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    init_db(reset=args.reset)
    seed(load_entries(args.file))
