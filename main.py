#!/usr/bin/env python3
"""
Main application - wires the auth state, socket transport and request gateway together
"""

import asyncio
import json
import os
import signal
import sys
from typing import Optional

from config import API_CONFIG, SOCKET_CONFIG, LOGGING_CONFIG, ERROR_CONFIG
from core.logging_config import setup_logging, get_logger, log_error_with_context
from core.config_validator import validate_startup_config, ConfigValidationError
from core.auth_state import AuthStore
from core.error_reporter import ErrorReporter
from auth import AuthService, AuthController
from transport import SocketClient
from events import event_bus, EventTypes


class OrkoClient:
    """Owns every long-lived component for one process"""

    def __init__(self, base_url: Optional[str] = None, root: Optional[str] = None):
        self.logger = get_logger(__name__)

        self.store = AuthStore()
        self.error_reporter = ErrorReporter(max_errors=ERROR_CONFIG["max_background_errors"])
        self.service = AuthService(base_url=base_url)
        self.socket = SocketClient(self.store, root=root)
        self.controller = AuthController(
            store=self.store,
            service=self.service,
            socket=self.socket,
            error_reporter=self.error_reporter
        )
        self.socket.on_message(self._log_message)
        event_bus.on("auth.*", self._log_auth_event)
        event_bus.on("error.*", self._log_auth_event)

    def _log_message(self, payload):
        self.logger.info(f"Received: {json.dumps(payload)[:200]}")

    def _log_auth_event(self, event):
        self.logger.debug(f"{event.type}", extra={"extra_data": event.data})

    async def start(self, token: Optional[str] = None, user_name: Optional[str] = None):
        self.socket.bind_loop(asyncio.get_running_loop())
        self.socket.start()
        event_bus.emit(EventTypes.SYSTEM_START, {}, source="main")

        await self.controller.check_whitelist_status()
        if token:
            self.controller.login(token, user_name)

    async def stop(self):
        self.logger.info("Stopping client...")
        try:
            self.socket.shutdown()
        except Exception as e:
            self.logger.error(f"Error shutting down socket: {e}", exc_info=True)

        try:
            await self.controller.gateway.drain()
        except Exception as e:
            self.logger.error(f"Error draining requests: {e}", exc_info=True)

        await self.service.close()
        event_bus.emit(EventTypes.SYSTEM_STOP, {}, source="main")
        event_bus.wait_until_idle()
        self.logger.info("Session summary", extra={"extra_data": {
            "events": event_bus.get_stats()["namespace_counts"],
            "socket": self.socket.get_stats(),
            "background_errors": len(self.error_reporter.all()),
        }})
        event_bus.shutdown()
        self.logger.info("Client stopped")


async def run():
    logger = get_logger(__name__)
    client = OrkoClient()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    try:
        await client.start(token=os.getenv("ORKO_TOKEN"), user_name=os.getenv("ORKO_USER"))
        await stop_event.wait()
    except Exception as e:
        log_error_with_context(logger, e, "client run")
    finally:
        await client.stop()


def run_cli():
    # Validate configuration first (before logging setup)
    try:
        validate_startup_config(API_CONFIG, SOCKET_CONFIG, LOGGING_CONFIG)
    except ConfigValidationError as e:
        print(f"Configuration validation failed: {e}")
        print("Please fix the configuration errors and try again.")
        sys.exit(1)

    setup_logging(LOGGING_CONFIG)
    get_logger(__name__).info("Starting client")

    asyncio.run(run())


if __name__ == "__main__":
    run_cli()
