#!/usr/bin/env python3
"""
Seed the product catalogue the cart reads from.

Products come from a JSON file (a list of entries, or an object with an
"items" list). Without --file a small built-in sample catalogue is used.
Existing SKUs are updated in place.

Usage:
    python scripts/seed_products.py
    python scripts/seed_products.py --file catalogue.json
"""
import argparse
import json
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.db import SessionLocal, init_db
from app.repositories.product_repo import ProductRepository
from app.utils.logging import setup_logging

log = logging.getLogger("seed_products")

SAMPLE_PRODUCTS = [
    {"sku": "TEA-100", "name": "Tea 100g", "price": "3.00", "stock": 25, "description": "Loose leaf black tea"},
    {"sku": "COF-200", "name": "Coffee 200g", "price": "6.50", "stock": 10, "description": "Ground coffee"},
    {"sku": "MUG-01", "name": "Ceramic Mug", "price": "9.99", "stock": 5},
    {"sku": "CHOC-12", "name": "Dark Chocolate", "price": "2.49", "stock": 0},
    {"sku": "OLD-01", "name": "Discontinued Kettle", "price": "19.00", "stock": 3, "is_active": False},
]


def _normalize_entry(entry):
    """Return a dict with keys: sku, name, price, stock, description, image, is_active"""
    sku = entry.get("sku") or entry.get("id")
    raw_price = entry.get("price", entry.get("amount"))
    if raw_price is None and entry.get("price_cents") is not None:
        raw_price = Decimal(int(entry["price_cents"])) / 100
    try:
        price = Decimal(str(raw_price or 0)).quantize(Decimal("0.01"))
    except InvalidOperation:
        log.warning("Bad price %r for sku %s, using 0.00", raw_price, sku)
        price = Decimal("0.00")

    try:
        stock = max(0, int(entry.get("stock", 0) or 0))
    except (TypeError, ValueError):
        stock = 0

    image = entry.get("image")
    if not image:
        imgs = entry.get("images") or []
        image = imgs[0] if isinstance(imgs, (list, tuple)) and imgs else None

    return {
        "sku": str(sku) if sku else None,
        "name": entry.get("name") or entry.get("title") or "",
        "price": price,
        "stock": stock,
        "description": entry.get("description"),
        "image": image,
        "is_active": bool(entry.get("is_active", entry.get("active", True))),
    }


def load_entries(path: str):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data.get("items", list(data.values()))
    if isinstance(data, list):
        return data
    return []


def seed(entries) -> int:
    init_db()
    db = SessionLocal()
    repo = ProductRepository(db)
    seeded = 0
    try:
        for raw in entries:
            entry = _normalize_entry(raw)
            if not entry["sku"]:
                log.warning("Skipping entry without sku: %r", raw)
                continue
            repo.create_or_update(**entry)
            seeded += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    log.info("Seeded products: %s", seeded)
    return seeded


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(description="Seed products for the cart API.")
    parser.add_argument("--file", "-f", default=None, help="Path to a product JSON file")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        log.error("File not found: %s", args.file)
        sys.exit(1)
    seed(load_entries(args.file) if args.file else SAMPLE_PRODUCTS)
