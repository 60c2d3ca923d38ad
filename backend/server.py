import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from config import RuntimeSettings, load_runtime_settings
from economy import GameStateStore
from persistence import SqliteSaveStore
from scheduler import TickScheduler

settings = load_runtime_settings()

# Setup logging
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ActionRequest(BaseModel):
    """Arguments for a named action; each action reads only the fields it needs."""
    target_id: Optional[str] = None
    shares: Optional[int] = None
    amount: Optional[float] = None
    months: Optional[int] = None
    track: Optional[str] = None
    value: Optional[str] = None  # Tenant tier, amenity or supply contract
    price_index: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


def _number(value: Optional[float]) -> float:
    return float("nan") if value is None else value


ACTIONS: Dict[str, Callable[[GameStateStore, ActionRequest], Any]] = {
    # Businesses
    "buy_business": lambda s, r: s.buy_business(r.target_id),
    "upgrade_business": lambda s, r: s.upgrade_business(r.target_id),
    "upgrade_business_track": lambda s, r: s.upgrade_business_track(r.target_id, r.track),
    "free_upgrade_business": lambda s, r: s.free_upgrade_business(r.target_id),
    "sell_business": lambda s, r: s.sell_business(r.target_id),
    "hire_employee": lambda s, r: s.hire_employee(r.target_id),
    "train_workforce": lambda s, r: s.train_workforce(r.target_id),
    "set_price_index": lambda s, r: s.set_price_index(r.target_id, _number(r.price_index)),
    "sign_supply_contract": lambda s, r: s.sign_supply_contract(r.target_id, r.value),
    # Properties
    "buy_property": lambda s, r: s.buy_property(r.target_id),
    "upgrade_property": lambda s, r: s.upgrade_property(r.target_id),
    "upgrade_property_track": lambda s, r: s.upgrade_property_track(r.target_id, r.track),
    "add_amenity": lambda s, r: s.add_amenity(r.target_id, r.value),
    "set_tenant_quality": lambda s, r: s.set_tenant_quality(r.target_id, r.value),
    "toggle_rent": lambda s, r: s.toggle_rent(r.target_id),
    "sell_property": lambda s, r: s.sell_property(r.target_id),
    # Luxury
    "buy_luxury_item": lambda s, r: s.buy_luxury_item(r.target_id),
    "upgrade_luxury_track": lambda s, r: s.upgrade_luxury_track(r.target_id, r.track),
    "buy_entourage": lambda s, r: s.buy_entourage(r.target_id),
    # Stocks
    "buy_stock": lambda s, r: s.buy_stock(r.target_id, r.shares),
    "sell_stock": lambda s, r: s.sell_stock(r.target_id, r.shares),
    "set_stock_orders": lambda s, r: s.set_stock_orders(r.target_id, r.stop_loss, r.take_profit),
    # Session
    "tap": lambda s, r: s.tap(),
    "upgrade_tap_power": lambda s, r: s.upgrade_tap_power(),
    "upgrade_multiplier": lambda s, r: s.upgrade_multiplier(r.target_id),
    "prestige": lambda s, r: s.prestige(),
    "reset": lambda s, r: s.reset(),
    "purchase_premium": lambda s, r: s.purchase_premium(),
    "grant_bonus_cash": lambda s, r: s.grant_bonus_cash(_number(r.amount)),
    "record_forced_ad": lambda s, r: s.record_forced_ad(),
    "offer_free_upgrade": lambda s, r: s.offer_free_upgrade(),
    "take_loan": lambda s, r: s.take_loan(_number(r.amount), r.months),
    "pay_loan": lambda s, r: s.pay_loan(r.target_id),
}


class SessionManager:
    """Owns one store and its scheduler for the lifetime of the process."""

    def __init__(self, runtime: Optional[RuntimeSettings] = None):
        self.settings = runtime or settings
        self.store: Optional[GameStateStore] = None
        self.scheduler: Optional[TickScheduler] = None
        self.is_streaming = False
        self.active_websocket: Optional[WebSocket] = None

    def initialize(self, store: Optional[GameStateStore] = None) -> GameStateStore:
        if store is None:
            rng = np.random.default_rng(self.settings.rng_seed)
            store = GameStateStore(rng=rng, save_store=SqliteSaveStore(self.settings.db_path))
            offline = store.load()
            logger.info(f"Session loaded from {self.settings.db_path} (offline earnings ${offline:,.0f})")
        self.store = store
        self.scheduler = TickScheduler(store)
        return store

    def ensure_store(self) -> GameStateStore:
        return self.store if self.store is not None else self.initialize()

    def apply_action(self, name: str, request: ActionRequest) -> Dict[str, Any]:
        handler = ACTIONS.get(name)
        if handler is None:
            raise KeyError(name)
        store = self.ensure_store()
        result = handler(store, request)
        accepted = bool(result)
        return {"action": name, "accepted": accepted, "result": result}

    def start(self) -> bool:
        self.ensure_store()
        return self.scheduler.start()

    async def stop(self) -> None:
        self.is_streaming = False
        if self.scheduler is not None:
            await self.scheduler.stop()

    async def stream_state(self):
        """Push a snapshot to the connected client on every cash tick."""
        interval = self.ensure_store().config.session.cash_tick_interval
        try:
            while self.is_streaming and self.active_websocket:
                await self.active_websocket.send_json({"type": "STATE", "state": self.store.snapshot()})
                await asyncio.sleep(interval)
        except Exception as e:
            logger.error(f"State stream error: {e}")
            self.is_streaming = False


manager = SessionManager()


@app.get("/state")
async def get_state():
    return manager.ensure_store().snapshot()


@app.get("/views/cooldowns")
async def get_cooldowns():
    return manager.ensure_store().cooldowns()


@app.get("/views/business/{business_id}")
async def get_business_view(business_id: str):
    view = manager.ensure_store().business_view(business_id)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Unknown business {business_id}")
    return view


@app.get("/views/property/{property_id}")
async def get_property_view(property_id: str):
    view = manager.ensure_store().property_view(property_id)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Unknown property {property_id}")
    return view


@app.post("/actions/{name}")
async def post_action(name: str, request: ActionRequest):
    try:
        return manager.apply_action(name, request)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown action {name}")


@app.post("/session/start")
async def start_session():
    return {"started": manager.start()}


@app.post("/session/stop")
async def stop_session():
    await manager.stop()
    return {"stopped": True}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    manager.active_websocket = websocket
    logger.info("WebSocket connected")

    try:
        while True:
            data = await websocket.receive_json()
            command = data.get("command")

            if command == "START":
                manager.start()
                if not manager.is_streaming:
                    manager.is_streaming = True
                    asyncio.create_task(manager.stream_state())
                await websocket.send_json({"type": "STARTED"})
            elif command == "STOP":
                await manager.stop()
                await websocket.send_json({"type": "STOPPED"})
            elif command == "STATE":
                await websocket.send_json({"type": "STATE", "state": manager.ensure_store().snapshot()})
            elif command == "ACTION":
                name = data.get("name", "")
                try:
                    request = ActionRequest(**data.get("params", {}))
                    result = manager.apply_action(name, request)
                except KeyError:
                    await websocket.send_json({"type": "ERROR", "error": f"Unknown action {name}"})
                    continue
                except (ValidationError, TypeError) as e:
                    await websocket.send_json({"type": "ERROR", "error": str(e)})
                    continue
                await websocket.send_json({"type": "ACTION_RESULT", **result})
            else:
                await websocket.send_json({"type": "ERROR", "error": f"Unknown command {command}"})

    except WebSocketDisconnect:
        manager.is_streaming = False
        manager.active_websocket = None
        logger.info("Client disconnected")
