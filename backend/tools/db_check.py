import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "lending.db"
ITEM = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Items ===")
if ITEM:
    cur.execute("SELECT id, name, copies, status FROM items WHERE id=?", (ITEM,))
else:
    cur.execute("SELECT id, name, copies, status FROM items ORDER BY id LIMIT 50")
for r in cur.fetchall():
    print({"id": r[0], "name": r[1], "copies": r[2], "status": r[3]})

print("\n=== Open rentals ===")
query = (
    "SELECT r.id, r.customer_name, r.expected_on, ri.item_id FROM rentals r "
    "JOIN rental_items ri ON ri.rental_id = r.id WHERE r.returned_on IS NULL"
)
params = ()
if ITEM:
    query += " AND ri.item_id=?"
    params = (ITEM,)
cur.execute(query + " ORDER BY r.id DESC LIMIT 50", params)
for r in cur.fetchall():
    print(r)

print("\n=== Open reservations ===")
query = (
    "SELECT s.id, s.customer_name, s.pickup, si.item_id FROM reservations s "
    "JOIN reservation_items si ON si.reservation_id = s.id WHERE s.done = 0"
)
params = ()
if ITEM:
    query += " AND si.item_id=?"
    params = (ITEM,)
cur.execute(query + " ORDER BY s.pickup LIMIT 50", params)
for r in cur.fetchall():
    print(r)

conn.close()
