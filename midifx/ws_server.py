from __future__ import annotations

import asyncio
import json
import threading
import time
from typing import Any, Dict, Optional, Set

import jsonpatch
import websockets

from midifx.params import SECTIONS, ParameterStore, describe
from midifx.patch_utils import patch_preset
from midifx.validator import PRESET_VERSION, ValidationError


class ControlServer:
    """Live parameter surface over WebSocket.

    Messages in:  setParam {section, key, value} | applyPatch {payload: {ops}} | getParams
    Messages out: schema, params, ack, error, metrics (periodic)
    """

    def __init__(self, engine, stores: Dict[str, ParameterStore], clock=None, meta: Optional[Dict[str, Any]] = None, metrics_interval: float = 1.0):
        self.engine = engine
        self.stores = stores
        self.clock = clock
        self.meta = dict(meta or {})
        self.metrics_interval = metrics_interval
        self.doc_version = 0
        self.clients: Set[Any] = set()

    def get_doc(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"version": PRESET_VERSION, "docVersion": self.doc_version, "meta": dict(self.meta)}
        for section, store in self.stores.items():
            doc[section] = store.snapshot()
        return doc

    def set_param(self, section: str, key: str, value: Any) -> Any:
        store = self.stores.get(section)
        if store is None:
            raise KeyError(f"unknown section: {section}")
        with self.engine.lock:
            v = store.set(key, value)
            self.doc_version += 1
        return v

    def apply_ops(self, ops) -> Dict[str, Any]:
        with self.engine.lock:
            base = self.get_doc()
            new_doc = patch_preset(base, ops)
            for section in SECTIONS:
                self.stores[section].update(new_doc.get(section) or {})
            self.meta.update(new_doc.get("meta") or {})
            self.doc_version += 1
            return self.get_doc()

    async def broadcast(self, obj: Dict[str, Any]) -> None:
        if not self.clients:
            return
        msg = json.dumps(obj)
        await asyncio.gather(*[c.send(msg) for c in list(self.clients)], return_exceptions=True)

    async def _metrics_task(self) -> None:
        while True:
            await asyncio.sleep(self.metrics_interval)
            payload = {
                "engine": self.engine.get_metrics(),
                "clock": self.clock.get_metrics() if self.clock is not None else {},
                "ws": {"clients": len(self.clients)},
            }
            await self.broadcast({"type": "metrics", "ts": time.time(), "payload": payload})

    async def _handle(self, ws, raw) -> None:
        try:
            obj = json.loads(raw)
        except ValueError:
            await ws.send(json.dumps({"type": "error", "payload": {"errors": ["invalid JSON"]}}))
            return
        t = obj.get("type")
        mid = obj.get("id")
        if t == "getParams":
            await ws.send(json.dumps({"type": "params", "id": mid, "payload": self.get_doc()}))
        elif t == "setParam":
            try:
                v = self.set_param(str(obj.get("section")), str(obj.get("key")), obj.get("value"))
            except KeyError as e:
                await ws.send(json.dumps({"type": "error", "id": mid, "payload": {"errors": [str(e)]}}))
                return
            await ws.send(json.dumps({"type": "ack", "id": mid, "payload": {"section": obj.get("section"), "key": obj.get("key"), "value": v}}))
            await self.broadcast({"type": "params", "payload": self.get_doc()})
        elif t == "applyPatch":
            ops = (obj.get("payload") or {}).get("ops") or []
            try:
                doc = self.apply_ops(ops)
            except ValidationError as e:
                await ws.send(json.dumps({"type": "error", "id": mid, "payload": {"errors": e.errors}}))
                return
            except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as e:
                await ws.send(json.dumps({"type": "error", "id": mid, "payload": {"errors": [f"patch: {e}"]}}))
                return
            await ws.send(json.dumps({"type": "ack", "id": mid, "payload": {"docVersion": doc["docVersion"]}}))
            await self.broadcast({"type": "params", "payload": doc})
        else:
            await ws.send(json.dumps({"type": "error", "id": mid, "payload": {"errors": [f"unknown type: {t}"]}}))

    async def handler(self, ws, *_path) -> None:
        print(f"[ws] client connected: {getattr(ws, 'remote_address', None)}", flush=True)
        self.clients.add(ws)
        try:
            await ws.send(json.dumps({"type": "schema", "payload": {s: describe(specs) for s, specs in SECTIONS.items()}}))
            await ws.send(json.dumps({"type": "params", "payload": self.get_doc()}))
            async for raw in ws:
                await self._handle(ws, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)

    async def serve(self, host: str, port: int) -> None:
        async with websockets.serve(self.handler, host, port):
            print(f"[ws] control surface on ws://{host}:{port}", flush=True)
            task = asyncio.create_task(self._metrics_task())
            try:
                await asyncio.Future()
            finally:
                task.cancel()


def start_ws_server(server: ControlServer, host: str = "127.0.0.1", port: int = 8765) -> threading.Thread:
    """Run the control server on its own event loop in a daemon thread."""

    def _runner():
        asyncio.run(server.serve(host, port))

    th = threading.Thread(target=_runner, daemon=True)
    th.start()
    return th
