"""Embedded server bootstrap: command line -> configuration -> app -> uvicorn."""

from __future__ import annotations

import argparse
import logging
from typing import Callable, Dict, Sequence, Tuple

import uvicorn
from fastapi import FastAPI

from cia.configuration import Configuration
from cia.constants import LOG_LEVEL, SERVER_HOST, SERVER_PORT

logger = logging.getLogger(__name__)


def parse_args(args: Sequence[str]) -> Tuple[argparse.Namespace, Configuration]:
    """
    ``--host``, ``--port`` and ``--log-level`` map onto their configuration keys;
    any other ``--some.key=value`` argument becomes a configuration override.
    """
    configuration, remaining = Configuration.from_args(args)
    parser = argparse.ArgumentParser(
        description="REST API for discovering and analyzing artifacts of package repositories."
    )
    parser.add_argument("--host", help="Interface to bind (server.host).")
    parser.add_argument("--port", type=int, help="Port to listen on (server.port).")
    parser.add_argument("--log-level", help="Root log level (log.level).")
    namespace, unknown = parser.parse_known_args(list(remaining))
    if unknown:
        logger.warning("Ignoring unrecognized arguments: %s", " ".join(unknown))

    overrides: Dict[str, str] = {}
    if namespace.host:
        overrides[SERVER_HOST] = namespace.host
    if namespace.port is not None:
        overrides[SERVER_PORT] = str(namespace.port)
    if namespace.log_level:
        overrides[LOG_LEVEL] = namespace.log_level
    if overrides:
        configuration = configuration.with_overrides(overrides)
    return namespace, configuration


def run(app_factory: Callable[[Configuration], FastAPI], args: Sequence[str]) -> None:
    """Build the app from ``args`` and serve it until the server exits."""
    _, configuration = parse_args(args)
    app = app_factory(configuration)
    host = configuration.get_string(SERVER_HOST)
    port = configuration.get_int(SERVER_PORT)
    logger.info("Starting %s %s on %s:%s", app.title, app.version, host, port)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=(configuration.get_string(LOG_LEVEL) or "info").lower(),
        log_config=None,
    )
