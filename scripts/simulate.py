"""
Lunch Rush Simulation Script

Fires concurrent orders at one canteen, pushes some through the kitchen,
and verifies that token numbers come out gap-free and unique.
Run from project root against a running server: python scripts/simulate.py

Author: Khalil_Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50


async def register_canteen(client: httpx.AsyncClient) -> dict[str, Any]:
    response = await client.post(
        f"{API_BASE_URL}/api/canteens",
        json={"name": f"Rush Test {random.randint(100, 999)}", "campus": "Simulation Campus"},
    )
    response.raise_for_status()
    return response.json()


async def place_order(
    client: httpx.AsyncClient,
    canteen_id: str,
    order_num: int,
    menu: list[str],
) -> dict[str, Any]:
    """Place one order and time the round trip."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/canteens/{canteen_id}/tokens",
            json={"food_item": random.choice(menu)},
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "token_id": data["id"],
                "token_number": data["token_number"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


def check_numbering(token_numbers: list[str]) -> list[str]:
    """Return problems found in a day's token numbers (empty if none)."""
    problems = []
    sequences = sorted(int(number.split("-")[-1]) for number in token_numbers)
    if len(set(sequences)) != len(sequences):
        problems.append("duplicate token numbers")
    if sequences and sequences != list(range(sequences[0], sequences[0] + len(sequences))):
        problems.append("gaps in token numbers")
    return problems


async def run_simulation(num_orders: int = TOTAL_ORDERS, kitchen_share: float = 0.5) -> dict[str, Any]:
    """
    Run the rush simulation.

    Args:
        num_orders: Number of concurrent orders
        kitchen_share: Fraction of orders pushed through READY and COMPLETED
    """
    print("=" * 70)
    print("🔥 LUNCH RUSH SIMULATION - CONCURRENT ORDERING")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        canteen = await register_canteen(client)
        canteen_id = canteen["id"]
        menu = [item["name"] for item in (await client.get(f"{API_BASE_URL}/api/menu")).json()]
        print(f"\n🏪 Canteen {canteen['name']} -> {canteen_id}")

        print("\n🚀 Firing orders...\n")
        results = await asyncio.gather(*[
            place_order(client, canteen_id, i + 1, menu) for i in range(num_orders)
        ])

        successful = [r for r in results if r["success"]]
        served = random.sample(successful, int(len(successful) * kitchen_share))
        for result in served:
            await client.post(f"{API_BASE_URL}/api/tokens/{result['token_id']}/ready")
            await client.post(f"{API_BASE_URL}/api/tokens/{result['token_id']}/complete", json={})

        stats = (await client.get(f"{API_BASE_URL}/api/canteens/{canteen_id}/stats")).json()

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    problems = check_numbering([r["token_number"] for r in successful])

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"🍽️  Served: {len(served)}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Average Response: {avg_time}s")

    print(f"\n📋 Dashboard: {stats}")

    if problems:
        print(f"\n❌ Numbering problems: {', '.join(problems)}")
    else:
        print("\n✅ Token numbers are unique and gap-free")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "numbering_problems": problems,
        "total_time": total_time,
    }


def main() -> None:
    global API_BASE_URL

    parser = argparse.ArgumentParser(description="SmartQueue lunch rush simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--kitchen-share", type=float, default=0.5, help="Fraction to serve")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()
    API_BASE_URL = args.url.rstrip("/")

    summary = asyncio.run(run_simulation(args.orders, args.kitchen_share))
    sys.exit(1 if summary["numbering_problems"] or summary["failed"] else 0)


if __name__ == "__main__":
    main()
