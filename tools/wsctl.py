from __future__ import annotations

import argparse
import asyncio
import json

import websockets


def _coerce(value: str):
    try:
        return json.loads(value)
    except ValueError:
        return value


async def run(url: str, cmd: str, args: argparse.Namespace):
    async with websockets.connect(url) as ws:
        # Server greets with schema then params
        for _ in range(2):
            await ws.recv()
        if cmd == "set":
            await ws.send(json.dumps({"type": "setParam", "id": 1, "section": args.section, "key": args.key, "value": _coerce(args.value)}))
        elif cmd == "patch":
            await ws.send(json.dumps({"type": "applyPatch", "id": 1, "payload": {"ops": json.loads(args.ops)}}))
        elif cmd == "get":
            await ws.send(json.dumps({"type": "getParams", "id": 1}))
        # Print next few messages
        for _ in range(3):
            try:
                msg = await asyncio.wait_for(ws.recv(), timeout=2.0)
                print(msg)
            except asyncio.TimeoutError:
                break


def main():
    ap = argparse.ArgumentParser(description="Simple WS controller for the midifx control surface")
    ap.add_argument("--url", default="ws://127.0.0.1:8765")
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("get")
    p_set = sub.add_parser("set")
    p_set.add_argument("section", choices=["chordLogger", "tail"])
    p_set.add_argument("key")
    p_set.add_argument("value", help="JSON value or bare label, e.g. 0.3 or Flats")
    p_patch = sub.add_parser("patch")
    p_patch.add_argument("ops", help='JSON Patch ops, e.g. \'[{"op":"replace","path":"/tail/gate","value":0.25}]\'')
    args = ap.parse_args()
    asyncio.run(run(args.url, args.cmd, args))


if __name__ == "__main__":
    main()
