# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from telemetry_sim.config.load_config import load_settings
from telemetry_sim.controller.models import RouteConfigRequest
from telemetry_sim.controller.route_config import RouteConfigStore, RouteConfigurator
from telemetry_sim.controller.simulation_controller import SimulationController
from telemetry_sim.data_processing.external_data_manager import ExternalDataManager
from telemetry_sim.errors import (
    ConfigurationError,
    SimulationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)


def create_app(settings=None, edm=None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async def startup_event(app):
        logger.info("[STARTUP] Initializing simulation controller...")
        if app.state.edm is None:
            app.state.edm = ExternalDataManager(settings.services)
        store = RouteConfigStore()
        app.state.config_store = store
        app.state.configurator = RouteConfigurator(
            store, app.state.edm.routes, settings.simulation.max_route_distance_m
        )
        app.state.sim_controller = SimulationController(
            settings.simulation,
            app.state.edm,
            store,
            match_fields=settings.sync.match_fields,
        )
        logger.info("[STARTUP] Simulation controller ready.")

    async def shutdown_event(app):
        if app.state.sim_controller is not None:
            await app.state.sim_controller.shutdown()
        if app.state.edm is not None:
            await app.state.edm.aclose()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup_event(app)
        yield
        await shutdown_event(app)

    app = FastAPI(title="Telemetry Simulator", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.edm = edm
    app.state.sim_controller = None

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(SimulationError)
    async def simulation_error_handler(request: Request, exc: SimulationError):
        # SimulationActiveError, SyncUnavailableError and plain state conflicts
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    def get_controller() -> SimulationController:
        if app.state.sim_controller is None:
            raise HTTPException(status_code=503, detail="SimulationController not initialized.")
        return app.state.sim_controller

    @app.get("/readyz")
    async def readiness_check():
        get_controller()
        return {"status": "ready"}

    @app.post("/api/config")
    async def configure_route(request: RouteConfigRequest):
        get_controller()
        config = await app.state.configurator.configure(request)
        return {
            "status": "configured",
            "data_source": config.data_source.value,
            "waypoints": len(config.coordinates),
            "total_distance_m": config.total_distance_m,
        }

    @app.post("/api/start")
    async def start_simulation():
        controller = get_controller()
        await controller.start()
        return controller.get_status()

    @app.post("/api/stop")
    async def stop_simulation():
        controller = get_controller()
        controller.stop()
        return controller.get_status()

    @app.post("/api/reset")
    async def reset_simulation():
        controller = get_controller()
        controller.reset()
        return {"status": "reset"}

    @app.post("/api/sync")
    async def sync_readings():
        controller = get_controller()
        results = await controller.sync_now()
        payload = [result.model_dump(mode="json") for result in results]
        if not all(result.ok for result in results):
            raise HTTPException(status_code=502, detail=payload)
        return {"results": payload}

    @app.get("/api/status")
    async def simulation_status():
        return get_controller().get_status()

    @app.get("/api/readings")
    async def get_readings():
        return get_controller().get_readings()

    @app.get("/api/clock")
    async def get_clock():
        now = get_controller().clock.local_now()
        return {"virtual_time": now.isoformat() if now else None}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("telemetry_sim.main:app", host="0.0.0.0", port=8001)
