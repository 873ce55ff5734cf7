#!/usr/bin/env python3
"""
Demo Agent - Simulated Power-Managed Machine

This agent demonstrates the agent side of the hub:
1. Registers with its hostname and receives its agent id
2. Sends periodic heartbeats
3. Receives shutdown/reboot/cancel/broadcastMessage commands
4. Simulates the action (nothing is actually powered off) and reports
   a commandResult

Usage:
    python scripts/demo_agent.py [hub_url] [hostname]

Defaults to ws://localhost:8000/ws/agent and the local hostname.
"""

import asyncio
import json
import socket
import sys
from uuid import uuid4

import websockets

HUB_URL = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8000/ws/agent"
HOSTNAME = sys.argv[2] if len(sys.argv) > 2 else socket.gethostname()
HEARTBEAT_INTERVAL = 10


def create_envelope(message_type: str, payload: dict = None) -> str:
    """Create a message envelope."""
    return json.dumps({
        "message_id": str(uuid4()),
        "message_type": message_type,
        "payload": payload or {}
    })


def local_address() -> str:
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError:
        return ""


async def heartbeat_loop(ws):
    """Send periodic heartbeats."""
    while True:
        await asyncio.sleep(HEARTBEAT_INTERVAL)
        try:
            await ws.send(create_envelope("heartbeat"))
        except Exception:
            break


class PendingAction:
    """A scheduled shutdown or reboot that cancel can abort."""

    def __init__(self):
        self.task: asyncio.Task | None = None
        self.command: str | None = None

    def schedule(self, command: str, delay: int) -> None:
        self.cancel()
        self.command = command
        self.task = asyncio.create_task(self._run(command, delay))

    def cancel(self) -> bool:
        if self.task and not self.task.done():
            self.task.cancel()
            self.task = None
            return True
        return False

    async def _run(self, command: str, delay: int) -> None:
        print(f"⏲️  {command} scheduled in {delay}s")
        await asyncio.sleep(delay)
        print(f"💤 Simulated {command} now (no real action taken)")


async def main():
    print("=" * 70)
    print("🖥️  DEMO AGENT STARTING")
    print("=" * 70)
    print(f"Hostname: {HOSTNAME}")
    print(f"Hub URL: {HUB_URL}")
    print("=" * 70)

    pending = PendingAction()

    async with websockets.connect(HUB_URL) as ws:
        await ws.send(create_envelope("register", {
            "hostname": HOSTNAME,
            "address": local_address(),
        }))

        data = json.loads(await ws.recv())
        if data.get("message_type") != "registered":
            print(f"❌ Registration failed: {data.get('payload')}")
            return
        print(f"\n✅ Registered as {data['payload']['agentId']}")

        heartbeat_task = asyncio.create_task(heartbeat_loop(ws))

        print("\n⏳ Waiting for commands (Ctrl+C to quit)\n")
        try:
            async for raw in ws:
                data = json.loads(raw)
                msg_type = data.get("message_type", "unknown")
                payload = data.get("payload", {})

                if msg_type in ("shutdown", "reboot"):
                    delay = int(payload.get("delay", 0))
                    pending.schedule(msg_type, delay)
                    result = {"command": msg_type, "success": True}

                elif msg_type == "cancel":
                    cancelled = pending.cancel()
                    print("🛑 Pending action cancelled" if cancelled else "🛑 Nothing to cancel")
                    result = {"command": "cancel", "success": cancelled}
                    if not cancelled:
                        result["error"] = "No pending action"

                elif msg_type == "broadcastMessage":
                    print(f"📢 Message from operator: {payload.get('text')}")
                    result = {"command": "message", "success": True}

                elif msg_type == "error":
                    print(f"⚠️  Hub error: {payload.get('code')}: {payload.get('message')}")
                    continue

                else:
                    print(f"❓ Ignoring {msg_type}")
                    continue

                await ws.send(create_envelope("commandResult", result))
        finally:
            heartbeat_task.cancel()
            pending.cancel()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Agent stopped")
