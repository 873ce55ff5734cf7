#!/usr/bin/env python3
"""
Demo Observer - Console Dashboard

Connects to the hub's observer channel and prints every presence snapshot
and command result as it arrives.

Usage:
    python scripts/demo_observer.py [hub_url]

Defaults to ws://localhost:8000/ws/observer.
"""

import asyncio
import json
import sys

import websockets

HUB_URL = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8000/ws/observer"


def print_snapshot(agents: list[dict]) -> None:
    online = sum(1 for agent in agents if agent["connected"])
    print("\n" + "─" * 70)
    print(f"📋 {len(agents)} agent(s), {online} online")
    print("─" * 70)
    for agent in agents:
        status = "🟢" if agent["connected"] else "⚫"
        print(f"{status} {agent['hostname']:<24} {agent['address']:<16} {agent['id']}")
        print(f"   last seen {agent['lastSeen']}")


async def main():
    print(f"👀 Observing {HUB_URL} (Ctrl+C to quit)")

    async with websockets.connect(HUB_URL) as ws:
        async for raw in ws:
            event = json.loads(raw)
            event_type = event.get("event_type")
            data = event.get("data", {})

            if event_type == "presenceSnapshot":
                print_snapshot(data.get("agents", []))
            elif event_type == "commandResult":
                outcome = "✅" if data.get("success") else f"❌ {data.get('error')}"
                print(f"\n🔔 {data.get('agentId')}: {data.get('command')} {outcome}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Observer stopped")
