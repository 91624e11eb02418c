import os
import sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import argparse
import concurrent.futures
from decimal import Decimal

import requests

from app.security import create_access_token

BASE = os.environ.get("CART_API_BASE", "http://127.0.0.1:8000")


def add_task(i, headers, product_id, qty):
    payload = {"product_id": product_id, "quantity": qty}
    try:
        r = requests.post(f"{BASE}/api/cart/add", json=payload, headers=headers, timeout=20)
        return (i, r.status_code, r.json().get("message"))
    except Exception as e:
        return (i, "ERR", str(e))


def run_add_concurrent(workers, user_id, product_id, qty):
    """
    Fire `workers` simultaneous add-to-cart calls for one user and product,
    then check that the cart holds one row whose quantity matches the
    number of successful adds and that the stored total equals the items.
    """
    headers = {"Authorization": f"Bearer {create_access_token(user_id)}"}
    print(f"Running add test: workers={workers}, user={user_id}, product={product_id}, qty={qty}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(add_task, i, headers, product_id, qty) for i in range(workers)]
        results = [f.result() for f in futures]
    for r in results:
        print(r)

    ok = sum(1 for r in results if r[1] == 201)
    cart = requests.get(f"{BASE}/api/cart", headers=headers, timeout=20).json()["data"]
    rows = [it for it in cart["items"] if it["product_id"] == product_id]
    line_sum = sum((Decimal(it["line_total"]) for it in cart["items"]), Decimal("0.00"))
    print("Successful adds:", ok)
    print("Rows for product:", len(rows), "quantity:", rows[0]["quantity"] if rows else 0)
    print("Stored total:", cart["total_amount"], "sum of lines:", line_sum)
    if len(rows) > 1 or Decimal(cart["total_amount"]) != line_sum:
        print("INCONSISTENT CART")
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent add-to-cart check.")
    parser.add_argument("--user", type=int, default=1)
    parser.add_argument("--product", type=int, default=1)
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--workers", type=int, default=8)
    args = parser.parse_args()
    run_add_concurrent(args.workers, args.user, args.product, args.qty)
