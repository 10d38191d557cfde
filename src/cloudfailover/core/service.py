"""
Main cloudfailover Service

Exposes the failover client over a REST API and runs the periodic failover
retry timer.
"""
from __future__ import annotations

import asyncio
import os
import signal
import sys

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import structlog
import uvicorn
import yaml

from fastapi import Body, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cloudfailover.config.declaration import Declaration
from cloudfailover.config.logging import configure_logging, set_log_level
from cloudfailover.constants import (
    DECLARATION_FILE,
    FAILOVER_TRIGGERED_MESSAGE,
    NAME,
    VERSION,
)
from cloudfailover.core.errors import ConfigurationError, StorageError, format_error
from cloudfailover.failover import FailoverClient, TaskState
from cloudfailover.telemetry import TelemetryClient
from cloudfailover.topology import BigIpDevice, TopologyProvider

logger = structlog.get_logger(__name__)

BASE_PATH = "/cloud-failover"

# Task state to HTTP status for GET /trigger
TASK_STATE_STATUS_CODES = {
    TaskState.PASS: 200,
    TaskState.NEVER_RUN: 200,
    TaskState.RUN: 202,
    TaskState.FAIL: 400,
}


class TriggerRequest(BaseModel):
    action: Literal["execute", "dry-run"] = Field(default="execute", description="Trigger action")


class ResetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_state_file: bool = Field(default=False, alias="resetStateFile")


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class CloudFailoverService:
    """REST front end and retry timer around a FailoverClient."""

    def __init__(
        self,
        config_path: Path | None = None,
        topology: TopologyProvider | None = None,
        telemetry: TelemetryClient | None = None,
    ):
        """
        Initialize cloudfailover service.

        Args:
            config_path: Path to configuration file
            topology: Topology provider, a BigIpDevice built from config when omitted
            telemetry: Telemetry client, built from config when omitted
        """
        # Load configuration
        self.config = self._load_config(config_path)

        # Initialize logging
        configure_logging(
            log_level=self.config["logging"]["level"],
            json_logs=self.config["logging"]["json_format"],
        )

        device = self.config["device"]
        self.topology = topology or BigIpDevice(
            host=device["host"],
            port=device["port"],
            username=device["username"],
            password=device["password"],
            verify_ssl=device["verify_ssl"],
        )
        self.telemetry = telemetry or TelemetryClient(
            endpoint=self.config["telemetry"]["endpoint"],
            enabled=self.config["telemetry"]["enabled"],
        )

        self.declaration: Declaration | None = None
        self.failover_client: FailoverClient | None = None

        # Service state
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._retry_task: asyncio.Task | None = None
        self._failover_tasks: set[asyncio.Task] = set()

        # FastAPI app for REST API
        self.app = self._create_fastapi_app()

        logger.info("cloudfailover service initialized")

    def _load_config(self, config_path: Path | None) -> dict[str, Any]:
        """Load configuration from file or use defaults."""
        default_config: dict[str, Any] = {
            "node": {"port": 8443, "bind": "0.0.0.0"},
            "device": {
                "host": "localhost",
                "port": 443,
                "username": "admin",
                "password": "admin",
                "verify_ssl": False,
            },
            "failover": {"max_retries": 50, "retry_interval": 5.0},
            "telemetry": {"enabled": False, "endpoint": None},
            "logging": {"level": "INFO", "json_format": False},
            "storage": {"declaration_file": DECLARATION_FILE},
            "declaration": None,
        }

        if config_path and config_path.exists():
            try:
                with open(config_path, "r") as f:
                    file_config = yaml.safe_load(f) or {}
                    # Merge with defaults
                    default_config = _merge(default_config, file_config)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(
                    "Failed to load config file, using defaults",
                    config_path=str(config_path),
                    error=format_error(e),
                )

        return default_config

    def _build_client(self, declaration: Declaration) -> FailoverClient:
        return FailoverClient(
            declaration=declaration,
            topology=self.topology,
            telemetry=self.telemetry,
            max_retries=self.config["failover"]["max_retries"],
            retry_interval=self.config["failover"]["retry_interval"],
        )

    async def apply_declaration(self, data: dict[str, Any]) -> Declaration:
        """Validate a declaration, apply its log level and re-initialize failover.

        Raises:
            ValidationError: the declaration does not match the schema
            ConfigurationError: the environment is missing or unsupported
            StorageError: the declaration file cannot be written
        """
        declaration = Declaration.model_validate(data)
        set_log_level(
            declaration.controls.log_level,
            json_logs=self.config["logging"]["json_format"],
        )

        client = self._build_client(declaration)
        await client.init()
        self._save_declaration(declaration)

        self.declaration = declaration
        self.failover_client = client
        logger.info("Declaration applied", environment=declaration.environment)
        return declaration

    def _declaration_file(self) -> Path | None:
        path = self.config["storage"].get("declaration_file")
        return Path(path) if path else None

    def _save_declaration(self, declaration: Declaration) -> None:
        """Write the declaration so a restarted service picks it up again."""
        declaration_file = self._declaration_file()
        if declaration_file is None:
            return
        try:
            declaration_file.parent.mkdir(parents=True, exist_ok=True)
            with declaration_file.open("w", encoding="utf-8") as f:
                yaml.safe_dump(declaration.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise StorageError(
                f"Unable to save declaration to {declaration_file}: {format_error(e)}"
            ) from e
        logger.debug("Declaration saved", declaration_file=str(declaration_file))

    def _load_saved_declaration(self) -> dict[str, Any] | None:
        declaration_file = self._declaration_file()
        if declaration_file is None or not declaration_file.exists():
            return None
        try:
            with declaration_file.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(
                "Failed to load saved declaration",
                declaration_file=str(declaration_file),
                error=format_error(e),
            )
            return None
        if not isinstance(data, dict):
            logger.warning(
                "Saved declaration is not a mapping", declaration_file=str(declaration_file)
            )
            return None
        return data

    def _require_client(self) -> FailoverClient:
        if self.failover_client is None:
            raise HTTPException(status_code=400, detail="Declaration not provided")
        return self.failover_client

    def _create_fastapi_app(self) -> FastAPI:
        """Create FastAPI application with API endpoints."""
        app = FastAPI(
            title="cloudfailover",
            description="Failover of cloud addresses and routes",
            version=VERSION,
        )

        @app.exception_handler(StarletteHTTPException)
        async def http_error_handler(request: Request, exc: StarletteHTTPException):
            return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

        @app.exception_handler(RequestValidationError)
        async def validation_error_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(
                status_code=400, content={"message": f"ValidationError: {exc.errors()}"}
            )

        @app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        @app.get(f"{BASE_PATH}/info")
        async def get_info():
            """Get service information."""
            return {
                "name": NAME,
                "version": VERSION,
                "running": self._running,
                "declared": self.declaration is not None,
            }

        @app.get(f"{BASE_PATH}/declare")
        async def get_declaration():
            """Get the current declaration."""
            if self.declaration is None:
                raise HTTPException(status_code=404, detail="Declaration not provided")
            return {"message": "success", "declaration": self.declaration.to_dict()}

        @app.post(f"{BASE_PATH}/declare")
        async def post_declaration(body: dict[str, Any] = Body(...)):
            """Replace the declaration."""
            try:
                declaration = await self.apply_declaration(body)
                return {"message": "success", "declaration": declaration.to_dict()}
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=format_error(e))
            except (ConfigurationError, ValueError) as e:
                raise HTTPException(status_code=400, detail=format_error(e))
            except Exception as e:
                logger.error("Failed to apply declaration", error=format_error(e))
                raise HTTPException(status_code=500, detail=format_error(e))

        @app.post(f"{BASE_PATH}/trigger")
        async def trigger_failover(
            response: Response, request: TriggerRequest | None = None
        ):
            """Trigger failover, or discover only with action dry-run."""
            client = self._require_client()
            request = request or TriggerRequest()
            try:
                if request.action == "dry-run":
                    operations = await client.dry_run()
                    return operations.to_dict()

                self._start_failover(
                    {"endpoint": f"{BASE_PATH}/trigger", "httpMethod": "POST"}
                )
                response.status_code = 202
                return {"message": FAILOVER_TRIGGERED_MESSAGE}
            except ConfigurationError as e:
                raise HTTPException(status_code=400, detail=format_error(e))
            except Exception as e:
                logger.error("Failed to trigger failover", error=format_error(e))
                raise HTTPException(status_code=500, detail=format_error(e))

        @app.get(f"{BASE_PATH}/trigger")
        async def get_trigger_state(response: Response):
            """Get the state of the latest failover task."""
            client = self._require_client()
            try:
                record = await client.get_task_state_file()
            except Exception as e:
                logger.error("Failed to get task state", error=format_error(e))
                raise HTTPException(status_code=500, detail=format_error(e))
            response.status_code = TASK_STATE_STATUS_CODES[record.task_state]
            return record.to_dict()

        @app.get(f"{BASE_PATH}/inspect")
        async def inspect():
            """Get HA status and the cloud objects mapped to this node."""
            client = self._require_client()
            try:
                return await client.get_failover_status_and_objects()
            except Exception as e:
                logger.error("Failed to inspect", error=format_error(e))
                raise HTTPException(status_code=500, detail=format_error(e))

        @app.post(f"{BASE_PATH}/reset")
        async def reset(request: ResetRequest):
            """Reset the failover task record."""
            client = self._require_client()
            try:
                return await client.reset_failover_state(
                    reset_state_file=request.reset_state_file
                )
            except Exception as e:
                logger.error("Failed to reset failover state", error=format_error(e))
                raise HTTPException(status_code=500, detail=format_error(e))

        return app

    def _start_failover(self, caller_attributes: dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._run_failover(caller_attributes))
        self._failover_tasks.add(task)
        task.add_done_callback(self._failover_tasks.discard)
        return task

    async def _run_failover(self, caller_attributes: dict[str, Any]) -> None:
        client = self.failover_client
        if client is None:
            logger.warning("Failover requested before a declaration was applied")
            return
        try:
            await client.execute(caller_attributes=caller_attributes)
        except Exception as e:
            logger.error("Failover execution failed", error=format_error(e))

    async def _retry_loop(self) -> None:
        """Re-run failover on the declared interval while retries are enabled."""
        while self._running:
            declaration = self.declaration
            interval = declaration.retry_failover.interval if declaration else 1
            await asyncio.sleep(interval * 60)

            declaration = self.declaration
            if declaration is None or not declaration.retry_failover.enabled:
                continue
            logger.info("Running scheduled failover retry")
            await self._run_failover({"endpoint": "retry-timer", "httpMethod": None})

    async def start(self) -> None:
        """Start the cloudfailover service."""
        if self._running:
            logger.warning("cloudfailover service already running")
            return

        logger.info("Starting cloudfailover service")

        try:
            declaration = self._load_saved_declaration() or self.config.get("declaration")
            if declaration:
                await self.apply_declaration(declaration)

            self._running = True
            self._retry_task = asyncio.create_task(self._retry_loop())
            logger.info("cloudfailover service started successfully")

        except Exception as e:
            logger.error("Failed to start cloudfailover service", error=format_error(e))
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the cloudfailover service."""
        logger.info("Stopping cloudfailover service")
        self._running = False

        if self._retry_task is not None:
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
            self._retry_task = None

        close = getattr(self.topology, "close", None)
        if close is not None:
            await close()

        logger.info("cloudfailover service stopped")
        self._shutdown_event.set()

    async def run_api_server(self) -> None:
        """Run the FastAPI server."""
        config = uvicorn.Config(
            app=self.app,
            host=self.config["node"]["bind"],
            port=self.config["node"]["port"],
            log_config=None,  # We handle logging ourselves
            access_log=False,
        )

        server = uvicorn.Server(config)

        # Set up signal handlers
        def signal_handler(signum, frame):
            logger.info("Received shutdown signal", signal=signum)
            server.should_exit = True

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        try:
            await server.serve()
        except Exception as e:
            logger.error("API server error", error=format_error(e))
            raise

    async def run(self) -> None:
        """Run the complete cloudfailover service."""
        try:
            await self.start()
            await self.run_api_server()
        finally:
            await self.stop()


async def main():
    """Main entry point for cloudfailover service."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Failover of cloud addresses and routes for an HA device pair"
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=os.environ.get("CLOUDFAILOVER_CONFIG"),
        help="Configuration file path",
    )

    args = parser.parse_args()

    # Create and run service
    service = CloudFailoverService(config_path=args.config)

    try:
        await service.run()
    except Exception as e:
        logger.error("Failed to run cloudfailover service", error=format_error(e))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
