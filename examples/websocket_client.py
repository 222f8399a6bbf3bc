#!/usr/bin/env python3
"""
Simple WebSocket client for trying the chat gateway by hand.

Mints an access token with the shared secret, joins a room, sends one
message and prints every event until interrupted.

Usage:
    JWT_SECRET=... python examples/websocket_client.py --user u1 --room batch:42 "hello"
"""

import argparse
import asyncio
import json
import os
import sys

import websockets

from common.models import Role
from gateway.auth import JWTAuthenticator


async def run_chat(uri: str, token: str, room_id: str, text: str) -> None:
    print(f"Connecting to {uri}...")

    async with websockets.connect(f"{uri}?token={token}") as websocket:
        print("✅ Connected")

        await websocket.send(json.dumps({"event": "join_room", "data": room_id}))
        joined = json.loads(await websocket.recv())
        if not joined["data"].get("success"):
            print(f"❌ Could not join {room_id}")
            return
        print(f"Joined {room_id}")

        if text:
            payload = {"roomId": room_id, "content": text}
            await websocket.send(json.dumps({"event": "send_message", "data": payload}))
            print(f"📤 Sent: {text}")

        async for raw in websocket:
            frame = json.loads(raw)
            event, data = frame["event"], frame["data"]

            if event == "new_message":
                print(f"📥 [{data['sequence']}] {data['senderEmail']}: {data['content']}")
            elif event == "user_typing":
                print(f"... {data['email']} is typing")
            elif event == "presence_update":
                print(f"👤 {data['userId']} is {data['status']}")
            elif event == "error":
                print(f"❌ {data.get('code')}: {data['message']}")
            else:
                print(f"{event}: {data}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat gateway demo client")
    parser.add_argument("text", nargs="?", default="")
    parser.add_argument("--uri", default="ws://127.0.0.1:8000/ws/chat")
    parser.add_argument("--user", default="u1")
    parser.add_argument("--email", default=None)
    parser.add_argument("--role", default=Role.CUSTOMER.value, choices=[r.value for r in Role])
    parser.add_argument("--room", default="batch:42")
    args = parser.parse_args()

    secret = os.environ.get("JWT_SECRET")
    if not secret:
        print("JWT_SECRET must be set to mint a token")
        sys.exit(1)

    email = args.email or f"{args.user}@example.com"
    token = JWTAuthenticator(secret).create_access_token(args.user, email, Role(args.role))

    try:
        asyncio.run(run_chat(args.uri, token, args.room, args.text))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
