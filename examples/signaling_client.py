"""Signaling client example.

Demonstrates:
- WebSocket connection to the matchmaker
- Receiving the assigned participant id
- Sending "ready" with a profile
- Waiting for "matched"
- Sending a dummy offer (initiator) and printing relayed messages

Run two instances to see them paired.

Usage:
    python examples/signaling_client.py
    python examples/signaling_client.py --url ws://localhost:8080 --nickname Alice
"""

import argparse
import asyncio
import json
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection


async def send_event(ws: ClientConnection, event: str, data: Any = None) -> None:
    """Send one named message."""
    await ws.send(json.dumps({"event": event, "data": data}))
    print(f"→ Sent {event}")


async def recv_event(ws: ClientConnection) -> tuple[str, Any]:
    """Receive one named message."""
    message: dict[str, Any] = json.loads(await ws.recv())
    return message["event"], message.get("data")


async def run_client(url: str, nickname: str, gender: str) -> None:
    """Connect, request a partner and print signaling traffic.

    Args:
        url: WebSocket URL of the matchmaker
        nickname: Display name to send with "ready"
        gender: Gender string to send with "ready"
    """
    print(f"Connecting to {url}...")

    async with websockets.connect(url) as ws:
        event, data = await recv_event(ws)
        if event != "connected":
            raise RuntimeError(f"Expected connected, got {event}")
        my_id = data["id"]
        print(f"✓ Connected as {my_id}\n")

        await send_event(ws, "ready", {"nickname": nickname, "gender": gender})

        while True:
            event, data = await recv_event(ws)

            if event == "waiting":
                print("← Waiting for a partner...")

            elif event == "matched":
                partner_id = data["partnerId"]
                print(
                    f"← Matched with {data['partnerNickname']} ({partner_id}), "
                    f"initiator={data['initiator']}"
                )
                await send_event(ws, "getPartnerInfo", {"partnerId": partner_id})
                if data["initiator"]:
                    await send_event(
                        ws,
                        "offer",
                        {"target": partner_id, "offer": {"type": "offer", "sdp": "v=0"}},
                    )

            elif event == "offer":
                print(f"← Offer from {data['from']}")
                await send_event(
                    ws,
                    "answer",
                    {"target": data["from"], "answer": {"type": "answer", "sdp": "v=0"}},
                )

            elif event in ("answer", "candidate", "reaction"):
                print(f"← {event} from {data['from']}")

            elif event == "partnerInfo":
                print(f"← Partner info: {data['nickname']} ({data['gender']})")

            elif event == "partnerDisconnected":
                print("← Partner disconnected, requeueing")
                await send_event(ws, "ready", {"nickname": nickname, "gender": gender})

            elif event == "error":
                print(f"✗ Error: {data.get('message')}")

            else:
                print(f"⚠  Unexpected event: {event}")


def main() -> None:
    """Parse arguments and run client."""
    parser = argparse.ArgumentParser(description="Matchmaker signaling client")
    parser.add_argument(
        "--url",
        default="ws://localhost:8080",
        help="WebSocket URL of the matchmaker (default: ws://localhost:8080)",
    )
    parser.add_argument("--nickname", default="Anonymous", help="Display name")
    parser.add_argument("--gender", default="unknown", help="Gender string")
    args = parser.parse_args()

    try:
        asyncio.run(run_client(url=args.url, nickname=args.nickname, gender=args.gender))
    except KeyboardInterrupt:
        print("\nInterrupted")


if __name__ == "__main__":
    main()
