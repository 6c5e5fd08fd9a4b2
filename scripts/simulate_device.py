"""Emulate a wearable: post heart-rate / SpO2 readings with an IoT device key."""

import argparse
import asyncio
import random
import time

import httpx


async def run(base_url: str, key: str, count: int, interval: float, device_id: str) -> None:
    hr = 72.0
    async with httpx.AsyncClient(base_url=base_url, timeout=10) as client:
        for i in range(count):
            hr = min(max(hr + random.uniform(-4, 4), 45), 180)
            body = {
                "heartRate": round(hr),
                "spO2": round(random.uniform(94, 99.5), 1),
                "timestamp": int(time.time() * 1000),
                "deviceId": device_id,
                "source": "iot",
            }
            resp = await client.post("/api/iot/ingest", json=body, headers={"X-API-Key": key})
            print(f"[{i + 1}/{count}] {resp.status_code} {resp.json()}")
            await asyncio.sleep(interval)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("key", help="Plaintext IoT device key.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--interval", type=float, default=2.0)
    parser.add_argument("--device-id", default="sim-wearable-1")
    args = parser.parse_args()
    asyncio.run(run(args.base_url, args.key, args.count, args.interval, args.device_id))


if __name__ == "__main__":
    main()
