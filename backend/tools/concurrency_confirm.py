"""
Fire concurrent confirmations for one payment reference against a running
server and report how many distinct orders came back (expected: one).

The server must run with the mock gateway accepting unknown intents:

    PAYMENT_ADAPTER=mock PAYMENT_MOCK_AUTO_SUCCEED=1 STRIPE_WEBHOOK_SECRET=whsec_local \
        uvicorn florist.main:app

    python tools/concurrency_confirm.py --product-id 1 --workers 8
"""
import argparse
import concurrent.futures
import hashlib
import hmac
import json
import os
from uuid import uuid4

import requests

BASE = os.environ.get("FLORIST_BASE", "http://127.0.0.1:8000")
WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "whsec_local")


def build_order_data(product_id, unit_price_cents, quantity):
    return {
        "customer_info": {"name": "Test Client", "email": "client@example.com", "phone": "0600000000"},
        "delivery_info": {"type": "pickup", "date": "2030-01-15"},
        "items": [
            {
                "product_id": product_id,
                "name": "Concurrency test item",
                "unit_price_cents": unit_price_cents,
                "quantity": quantity,
            }
        ],
        "total_amount_cents": unit_price_cents * quantity,
    }


def fallback_task(i, ref, order_data):
    try:
        r = requests.post(f"{BASE}/api/orders/by-payment-intent/{ref}", json={"order_data": order_data}, timeout=20)
        return (i, "fallback", r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "fallback", "ERR", str(e))


def webhook_task(i, ref):
    body = json.dumps(
        {
            "id": f"evt_{uuid4().hex[:12]}",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": ref, "status": "succeeded", "metadata": {"order_id": "guest"}}},
        }
    ).encode()
    sig = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    try:
        r = requests.post(
            f"{BASE}/api/webhooks/stripe",
            data=body,
            headers={"Content-Type": "application/json", "Stripe-Signature": sig},
            timeout=20,
        )
        return (i, "webhook", r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "webhook", "ERR", str(e))


def order_id_of(result):
    _, kind, status, text = result
    if status not in (200, 201):
        return None
    body = json.loads(text)
    if kind == "fallback":
        return body["order"]["id"]
    return body.get("order_id")


def run(workers, ref, order_data, with_webhooks):
    print(f"Running confirmation race: workers={workers}, ref={ref}, webhooks={with_webhooks}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers * 2) as ex:
        futures = [ex.submit(fallback_task, i, ref, order_data) for i in range(workers)]
        if with_webhooks:
            futures += [ex.submit(webhook_task, i, ref) for i in range(workers)]
        results = [f.result() for f in futures]
    print("Results:")
    for r in results:
        print(r[:3], r[3][:120])
    ids = {order_id_of(r) for r in results} - {None}
    print("Distinct order ids:", ids)
    created = sum(1 for r in results if r[1] == "fallback" and r[2] == 201)
    print("Fallback calls that created the order:", created)
    return ids


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent payment confirmation race.")
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--ref", default=None, help="payment reference (random by default)")
    parser.add_argument("--product-id", type=int, default=1)
    parser.add_argument("--price-cents", type=int, default=450, help="must equal the catalogue price (seeded rose: 450)")
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--no-webhooks", action="store_true")
    args = parser.parse_args()

    ref = args.ref or f"pi_race_{uuid4().hex[:16]}"
    ids = run(args.workers, ref, build_order_data(args.product_id, args.price_cents, args.qty), not args.no_webhooks)
    raise SystemExit(0 if len(ids) == 1 else 1)
