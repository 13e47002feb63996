#!/usr/bin/env python3
"""
Seed items from a JSON file: a list of {"name", "copies", "description",
"is_protected"} objects, or an object with an "items" list. Items whose name
already exists are skipped.

Usage:
    python scripts/seed_items.py --file items.json
"""
import argparse
import json
import os
import sys

from lending.db import SessionLocal, init_db
from lending.models.item import Item
from lending.repositories.item_repo import ItemRepository

# A few items to play with when no file is given.
DEFAULT_ITEMS = [
    {"name": "Catan", "copies": 1, "description": "Board game, 3-4 players"},
    {"name": "Carcassonne", "copies": 2, "description": "Board game, 2-5 players"},
    {"name": "Bike trailer", "copies": 2, "description": "Child trailer", "is_protected": True},
    {"name": "Party tent", "copies": 1, "description": "3x6m", "is_protected": True},
]


def _normalize_entry(entry):
    try:
        copies = max(1, int(entry.get("copies", entry.get("quantity", 1)) or 1))
    except (TypeError, ValueError):
        copies = 1
    return {
        "name": (entry.get("name") or entry.get("title") or "").strip(),
        "copies": copies,
        "description": entry.get("description") or None,
        "is_protected": bool(entry.get("is_protected", False)),
    }


def load_entries(path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items", [])
    return [_normalize_entry(e) for e in data]


def seed(entries):
    init_db()
    db = SessionLocal()
    repo = ItemRepository(db)
    created = 0
    try:
        existing = {name for (name,) in db.query(Item.name).all()}
        for entry in entries:
            if not entry["name"] or entry["name"] in existing:
                continue
            repo.create(**entry)
            existing.add(entry["name"])
            created += 1
        print("Seeded items:", created)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to an items json file")
    args = parser.parse_args()
    if args.file is None:
        seed([_normalize_entry(e) for e in DEFAULT_ITEMS])
    elif not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    else:
        seed(load_entries(args.file))
