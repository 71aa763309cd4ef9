import json
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
REF = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Recent Orders ===")
if REF:
    cur.execute(
        "SELECT id, order_number, status, payment_status, stripe_payment_intent_id, total_amount_cents, customer_info, created_at "
        "FROM orders WHERE stripe_payment_intent_id=?",
        (REF,),
    )
else:
    cur.execute(
        "SELECT id, order_number, status, payment_status, stripe_payment_intent_id, total_amount_cents, customer_info, created_at "
        "FROM orders ORDER BY created_at DESC LIMIT 20"
    )
orders = cur.fetchall()
for r in orders:
    customer = json.loads(r[6]) if r[6] else {}
    print(
        {
            "id": r[0],
            "order_number": r[1],
            "status": r[2],
            "payment_status": r[3],
            "payment_intent": r[4],
            "total_cents": r[5],
            "customer": customer.get("email"),
            "created_at": r[7],
        }
    )

print("\n=== Timelines ===")
for r in orders:
    cur.execute("SELECT status, date, note FROM order_timeline WHERE order_id=? ORDER BY id", (r[0],))
    print(r[1])
    for status, date, note in cur.fetchall():
        print(f"  {date}  {status:<13} {note or ''}")

if REF:
    cur.execute("SELECT COUNT(*) FROM orders WHERE stripe_payment_intent_id=?", (REF,))
    print(f"\nOrders for {REF}: {cur.fetchone()[0]}")

conn.close()
