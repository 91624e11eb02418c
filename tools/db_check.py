import sqlite3
import sys
from decimal import Decimal

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
USER = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Active Carts ===")
if USER:
    cur.execute(
        "SELECT id, user_id, status, total_amount, updated_at FROM carts WHERE user_id=? ORDER BY id",
        (int(USER),),
    )
else:
    cur.execute(
        "SELECT id, user_id, status, total_amount, updated_at FROM carts WHERE status='active' ORDER BY updated_at DESC LIMIT 20"
    )
carts = cur.fetchall()

bad = 0
for c in carts:
    print({"id": c[0], "user_id": c[1], "status": c[2], "total_amount": c[3], "updated_at": c[4]})
    cur.execute(
        "SELECT id, product_id, quantity, unit_price, line_total FROM cart_items WHERE cart_id=? ORDER BY id",
        (c[0],),
    )
    line_sum = Decimal("0.00")
    for r in cur.fetchall():
        print("   ", r)
        line_sum += Decimal(str(r[4]))
    if Decimal(str(c[3])).quantize(Decimal("0.01")) != line_sum.quantize(Decimal("0.01")):
        print(f"   !! total_amount {c[3]} != sum(line_total) {line_sum}")
        bad += 1

print("\n=== Users with more than one active cart ===")
cur.execute(
    "SELECT user_id, COUNT(*) FROM carts WHERE status='active' GROUP BY user_id HAVING COUNT(*) > 1"
)
for r in cur.fetchall():
    print(r)
    bad += 1

conn.close()
sys.exit(1 if bad else 0)
