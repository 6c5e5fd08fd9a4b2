"""Watch the live channel — print reading envelopes as the server pushes them."""

import argparse
import asyncio
import json

import websockets


async def watch(uri: str, user_id: str | None, limit: int, timeout: int) -> None:
    print(f"Connecting to {uri}")
    async with websockets.connect(uri, close_timeout=5) as ws:
        print("  Connected.")
        count = 0
        try:
            while limit <= 0 or count < limit:
                msg = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))
                if user_id and msg.get("userId") != user_id:
                    continue
                count += 1
                row = msg.get("row", {})
                print(
                    f"  [{count}] {msg.get('userId', '?')} {row.get('timestamp', '?')} "
                    f"hr={row.get('heartRate')} spo2={row.get('spO2')} emotion={row.get('emotion')}"
                )
        except asyncio.TimeoutError:
            print(f"  No messages in {timeout}s after {count} received.")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--uri", default="ws://localhost:8000/api/emotion/ws")
    parser.add_argument("--user-id", default=None, help="Only print events for this user.")
    parser.add_argument("--limit", type=int, default=0, help="Stop after N events (0 = forever).")
    parser.add_argument("--timeout", type=int, default=60)
    args = parser.parse_args()
    asyncio.run(watch(args.uri, args.user_id, args.limit, args.timeout))


if __name__ == "__main__":
    main()
