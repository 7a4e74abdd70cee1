# main.py
import logging
from contextlib import asynccontextmanager
from typing import Dict, List

import uvicorn
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wizroom import __version__, config, control, store
from wizroom.client import BulbClient
from wizroom.errors import PersistenceError, RoomExists, RoomNotFound, ValidationError
from wizroom.models import ApplyReport, CommandReport, LightIn, LightRequest, RoomIn, RoomOut, TargetedLightRequest
from wizroom.wiz_protocol import BulbAddress

logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # tests may install their own registry / client before startup
    registry = getattr(app.state, "registry", None)
    if registry is None:
        registry = store.RoomRegistry.load(config.STORAGE_PATH)
    client = getattr(app.state, "client", None)
    if client is None:
        client = BulbClient()
    await client.start()

    app.state.registry = registry
    app.state.client = client
    app.state.controller = control.LightController(client, registry)
    logger.info("wizroom ready with %d room(s)", len(registry))
    try:
        yield
    finally:
        client.close()
        registry.flush()


app = FastAPI(title="wizroom", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CORS_ORIGIN],
    allow_methods=["*"],
    allow_headers=["Content-Type"],
    max_age=600,
)


@app.exception_handler(ValidationError)
async def validation_error(request, exc: ValidationError):
    return JSONResponse({"detail": str(exc)}, status_code=422)


@app.exception_handler(RoomNotFound)
async def room_not_found(request, exc: RoomNotFound):
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(RoomExists)
async def room_exists(request, exc: RoomExists):
    return JSONResponse({"detail": str(exc)}, status_code=409)


@app.exception_handler(PersistenceError)
async def persistence_error(request, exc: PersistenceError):
    return JSONResponse({"detail": "Failed to save rooms"}, status_code=500)


def _report(method: str, outcomes: Dict[BulbAddress, control.Outcome]) -> dict:
    return {
        "method": method,
        "summary": control.summarize(outcomes),
        "lights": {str(address): outcome.as_dict() for address, outcome in outcomes.items()},
    }


async def _apply(target, req: LightRequest) -> dict:
    commands = req.commands()
    controller: control.LightController = app.state.controller
    results = []
    for command in commands:
        outcomes = await controller.apply(target, command, deadline=config.APPLY_DEADLINE)
        results.append(_report(command.method, outcomes))
    return {"results": results}


@app.get("/v1/ping")
async def ping():
    return "ok"


@app.get("/v1/rooms", response_model=List[str])
async def api_list_rooms():
    return app.state.registry.names()


@app.post("/v1/rooms", response_model=RoomOut, status_code=201)
async def api_create_room(room: RoomIn):
    return app.state.registry.create(room.name).as_dict()


@app.get("/v1/room/{name}", response_model=RoomOut)
async def api_read_room(name: str):
    return app.state.registry.get(name).as_dict()


@app.patch("/v1/room/{name}", response_model=RoomOut)
async def api_rename_room(name: str, room: RoomIn):
    return app.state.registry.rename(name, room.name).as_dict()


@app.delete("/v1/room/{name}", status_code=204)
async def api_delete_room(name: str):
    app.state.registry.delete(name)
    return Response(status_code=204)


@app.post("/v1/room/{name}/lights", response_model=RoomOut, status_code=201)
async def api_add_light(name: str, light: LightIn):
    return app.state.registry.add_bulb(name, light.ip).as_dict()


@app.delete("/v1/room/{name}/light/{ip}", status_code=204)
async def api_remove_light(name: str, ip: str):
    app.state.registry.remove_bulb(name, ip)
    return Response(status_code=204)


@app.put("/v1/room/{name}/lights", response_model=ApplyReport)
async def api_update_room_lights(name: str, req: LightRequest):
    return await _apply(name, req)


@app.put("/v1/lights", response_model=ApplyReport)
async def api_update_lights(req: TargetedLightRequest):
    return await _apply(req.ips, req)


@app.get("/v1/room/{name}/status", response_model=CommandReport)
async def api_room_status(name: str):
    outcomes = await app.state.controller.status(name, deadline=config.APPLY_DEADLINE)
    return _report("getPilot", outcomes)


@app.get("/v1/light/{ip}/status")
async def api_light_status(ip: str):
    outcomes = await app.state.controller.status([ip], deadline=config.APPLY_DEADLINE)
    outcome = next(iter(outcomes.values()))
    if not outcome.ok:
        raise HTTPException(status_code=503, detail=f"Failed to fetch status: {outcome.error}")
    return outcome.value.as_dict()


def serve():
    uvicorn.run("wizroom.main:app", host=config.API_HOST, port=config.API_PORT, log_level="info")
