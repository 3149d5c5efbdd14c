"""
Kitchen Display Race Simulation

Creates orders, then lets several kitchen display clients race to move
each one along the workflow with the version they last read. Exactly one
client per step should win; the others must get 409 and reload.

Run from project root against a running gateway:
    python scripts/simulate.py --orders 20 --screens 4
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any, Optional

import httpx

API_BASE_URL = "http://localhost:8001"

MENU_ITEMS = [
    {"menu_item_id": "mi-burger", "dish_name": "Classic Burger", "unit_price": 32.0},
    {"menu_item_id": "mi-shawarma", "dish_name": "Chicken Shawarma", "unit_price": 18.0},
    {"menu_item_id": None, "dish_name": "Water", "unit_price": 3.0},
]

WORKFLOW = ["preparing", "ready", "completed"]


def generate_order_payload() -> dict[str, Any]:
    items = []
    for menu_item in random.sample(MENU_ITEMS, random.randint(1, 2)):
        quantity = random.randint(1, 2)
        items.append({
            **menu_item,
            "quantity": quantity,
            "total_price": menu_item["unit_price"] * quantity,
        })
    subtotal = sum(i["total_price"] for i in items)
    vat = round(subtotal * 0.15, 2)
    return {
        "order_type": "takeaway",
        "subtotal": subtotal,
        "vat": vat,
        "total": subtotal + vat,
        "payment_method": random.choice(["cash", "card"]),
        "items": items,
    }


async def create_order(client: httpx.AsyncClient) -> Optional[dict[str, Any]]:
    response = await client.post(f"{API_BASE_URL}/api/orders", json=generate_order_payload())
    if response.status_code != 200:
        print(f"   ⚠️ Order rejected: {response.text[:100]}")
        return None
    return response.json()["order"]


async def screen_update(
    client: httpx.AsyncClient,
    screen: int,
    order_id: str,
    status: str,
    version: int,
) -> dict[str, Any]:
    """One kitchen screen tries to apply ``status`` at ``version``."""
    await asyncio.sleep(random.uniform(0, 0.05))
    start_time = time.time()
    try:
        response = await client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status, "expected_version": version},
            timeout=30.0,
        )
        return {
            "screen": screen,
            "status_code": response.status_code,
            "body": response.json(),
            "time": round(time.time() - start_time, 3),
        }
    except Exception as e:
        return {"screen": screen, "status_code": None, "body": {"error": str(e)[:100]}, "time": 0}


async def race_order(client: httpx.AsyncClient, order: dict[str, Any], screens: int) -> dict[str, Any]:
    """Walk one order through the workflow with ``screens`` racing clients per step."""
    version = order["version"]
    winners = 0
    conflicts = 0
    errors = []

    for status in WORKFLOW:
        results = await asyncio.gather(*[
            screen_update(client, s + 1, order["id"], status, version) for s in range(screens)
        ])
        won = [r for r in results if r["status_code"] == 200]
        winners += len(won)
        conflicts += sum(1 for r in results if r["status_code"] == 409)
        errors.extend(r for r in results if r["status_code"] not in (200, 409))

        if len(won) != 1:
            errors.append({"order": order["order_number"], "step": status, "winners": len(won)})
            break
        version = won[0]["body"]["version"]

    return {
        "order_number": order["order_number"],
        "winners": winners,
        "conflicts": conflicts,
        "errors": errors,
    }


async def run_simulation(num_orders: int, screens: int) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 KITCHEN DISPLAY RACE SIMULATION")
    print("=" * 70)
    print(f"📋 Orders: {num_orders}   🖥️  Screens per order: {screens}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient(timeout=30.0) as client:
        health = await client.get(f"{API_BASE_URL}/health")
        if health.status_code != 200:
            print(f"❌ Gateway not healthy: {health.text[:100]}")
            return {"success": False}
        print(f"✅ Backend: {health.json().get('backend')}")

        orders = [o for o in await asyncio.gather(*[create_order(client) for _ in range(num_orders)]) if o]
        print(f"\n🧾 Created {len(orders)}/{num_orders} orders")

        results = await asyncio.gather(*[race_order(client, o, screens) for o in orders])

    total_time = round(time.time() - start_time, 2)
    expected_wins = len(orders) * len(WORKFLOW)
    winners = sum(r["winners"] for r in results)
    conflicts = sum(r["conflicts"] for r in results)
    failed = [r for r in results if r["errors"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"✅ Accepted updates: {winners}/{expected_wins}")
    print(f"🔁 Version conflicts (409): {conflicts}")
    print(f"⏱️  Total Time: {total_time}s")

    if failed:
        print("\n⚠️  Orders with unexpected results (first 5):")
        for r in failed[:5]:
            print(f"   {r['order_number']}: {r['errors'][:2]}")
    else:
        print("\n✅ Every step had exactly one winner")

    print("=" * 70)
    return {
        "success": not failed and winners == expected_wins,
        "orders": len(orders),
        "winners": winners,
        "conflicts": conflicts,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Kitchen display race simulation")
    parser.add_argument("--orders", type=int, default=20, help="Number of orders")
    parser.add_argument("--screens", type=int, default=3, help="Racing screens per order")
    parser.add_argument("--url", default=API_BASE_URL, help="Gateway base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.orders, args.screens))
    sys.exit(0 if summary.get("success") else 1)
