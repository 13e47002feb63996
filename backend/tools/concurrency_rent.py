"""
Fire N rentals of the same item at a running server at once and report how
many got through. With one free copy exactly one request should succeed and
the rest should come back 400.

Usage:
    python tools/concurrency_rent.py --item 1 --workers 8
"""
import argparse
import concurrent.futures
import os
from datetime import date, timedelta

import requests

BASE = os.environ.get("LENDING_BASE", "http://127.0.0.1:8000")


def rent_task(i, item_id, due):
    payload = {"customer_name": f"load-test-{i}", "items": [item_id], "expected_on": due}
    try:
        r = requests.post(f"{BASE}/api/rentals", json=payload, timeout=20)
        return (i, r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def run_rent_concurrent(workers, item_id, days):
    due = (date.today() + timedelta(days=days)).isoformat()
    print(f"Running rent test: workers={workers}, item={item_id}, due={due}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(rent_task, i, item_id, due) for i in range(workers)]
        results = [f.result() for f in futures]
    for r in results:
        print(r)
    ok = [r for r in results if r[1] == 201]
    print(f"Created: {len(ok)}  Rejected: {sum(1 for r in results if r[1] == 400)}")
    item = requests.get(f"{BASE}/api/items/{item_id}/availability", timeout=10).json()
    print("Availability after run:", item)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent rental test tool.")
    parser.add_argument("--item", type=int, required=True)
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--days", type=int, default=7)
    args = parser.parse_args()
    run_rent_concurrent(args.workers, args.item, args.days)
