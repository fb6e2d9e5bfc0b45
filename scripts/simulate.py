"""
Double-Settlement Simulation Script

Fires many concurrent processPayment requests at the same order and checks
that exactly one of them settles it. Every losing request must come back
as 400 (already paid) or 409 (lost the race at the database).

Requires a running API and seeded demo data:
    python scripts/seed.py
    python -m order_engine.main
    python scripts/simulate.py --rounds 5 --payments 20
"""

import argparse
import asyncio
import os
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from seed import DEMO_MENU, DEMO_PAYMENT_METHOD_ID, DEMO_TENANT_ID

# Configuration
API_BASE_URL = "http://localhost:8001"

MEMBER_HEADERS = {"X-User-Id": "sim_member", "X-User-Role": "MEMBER", "X-Tenant-Id": DEMO_TENANT_ID}
MANAGER_HEADERS = {"X-User-Id": "sim_manager", "X-User-Role": "MANAGER", "X-Tenant-Id": DEMO_TENANT_ID}


def generate_random_cart() -> list[dict]:
    """Pick 1-4 random menu items."""
    return [
        {"menu_item_id": item["id"], "quantity": random.randint(1, 3)}
        for item in random.sample(DEMO_MENU, random.randint(1, 4))
    ]


async def create_order(client: httpx.AsyncClient) -> dict[str, Any]:
    response = await client.post(
        f"{API_BASE_URL}/api/orders",
        json={
            "tenant_id": DEMO_TENANT_ID,
            "items": generate_random_cart(),
            "phone": f"555-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
        },
        headers=MEMBER_HEADERS,
        timeout=30.0,
    )
    response.raise_for_status()
    return response.json()


async def send_payment(
    client: httpx.AsyncClient,
    order: dict[str, Any],
    attempt: int,
) -> dict[str, Any]:
    """Send one processPayment request and record the outcome."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/payments",
            json={
                "order_id": order["id"],
                "payment_method_id": DEMO_PAYMENT_METHOD_ID,
                "amount": order["total_amount"],
            },
            headers=MANAGER_HEADERS,
            timeout=30.0,
        )
        body = response.json()
        return {
            "attempt": attempt,
            "status_code": response.status_code,
            "detail": body.get("detail") if response.status_code >= 400 else body.get("transaction_ref"),
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {
            "attempt": attempt,
            "status_code": None,
            "detail": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def run_round(client: httpx.AsyncClient, round_num: int, payments: int) -> bool:
    order = await create_order(client)
    print(f"\nRound {round_num}: order {order['id']} total ${order['total_amount']}")

    results = await asyncio.gather(
        *[send_payment(client, order, i + 1) for i in range(payments)]
    )
    codes = Counter(r["status_code"] for r in results)
    succeeded = codes.get(201, 0)
    rejected = codes.get(400, 0) + codes.get(409, 0)

    response = await client.get(
        f"{API_BASE_URL}/api/orders/{order['id']}", headers=MANAGER_HEADERS
    )
    final_status = response.json().get("status")

    ok = succeeded == 1 and rejected == payments - 1 and final_status == "confirmed"
    print(f"   Status codes: {dict(codes)}")
    print(f"   Final order status: {final_status}")
    print(f"   {'PASS' if ok else 'FAIL'}: {succeeded} settlement(s) out of {payments} requests")
    if not ok:
        for r in results:
            if r["status_code"] not in (201, 400, 409):
                print(f"   Attempt #{r['attempt']}: {r['status_code']} {r['detail']}")
    return ok


async def run_simulation(rounds: int, payments: int) -> bool:
    print("=" * 70)
    print("DOUBLE-SETTLEMENT SIMULATION")
    print("=" * 70)
    print(f"Rounds: {rounds}")
    print(f"Concurrent payments per order: {payments}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"Health: {health.json().get('status')}")

        outcomes = [await run_round(client, i + 1, payments) for i in range(rounds)]

    passed = sum(outcomes)
    print("\n" + "=" * 70)
    print(f"Rounds passed: {passed}/{rounds} in {round(time.time() - start_time, 2)}s")
    print("=" * 70)
    return passed == rounds


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Double-Settlement Simulation")
    parser.add_argument("--rounds", type=int, default=5, help="Number of orders to race on")
    parser.add_argument("--payments", type=int, default=20, help="Concurrent payments per order")
    args = parser.parse_args()

    success = asyncio.run(run_simulation(args.rounds, args.payments))
    sys.exit(0 if success else 1)
