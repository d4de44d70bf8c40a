"""
Composition root of the REST service.

Builds the object mapper, the OpenAPI descriptor and the Swagger UI security
settings, and wires them into a FastAPI application together with the
component routers. ``main`` starts an embedded server; ``configure`` returns
the same application for an external ASGI host (gunicorn, uvicorn CLI).
"""
import logging
import sys
import time
from collections.abc import Awaitable
from datetime import date
from typing import List, Optional, Sequence

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from cia import runtime
from cia.codecs import (
    ASTConstructBodySignatureDeserializer,
    ASTConstructBodySignatureSerializer,
    ASTSignatureChangeSerializer,
    PythonConstructDigestSerializer,
)
from cia.configuration import Configuration
from cia.constants import HTTP_TENANT_HEADER, LOG_LEVEL, SHARED_VERSION
from cia.docs import (
    ApiInfo,
    ApiKey,
    AuthorizationScope,
    Docket,
    Error,
    PathSelectors,
    RequestHandlerSelectors,
    ResponseMessage,
    SecurityConfiguration,
    SecurityContext,
    SecurityReference,
    WildcardType,
    new_rule,
)
from cia.health import router as health_router
from cia.logging_setup import setup_logging
from cia.mapper import MapperBuilder, MapperRoute, ResponseEntity
from cia.signatures import ASTConstructBodySignature, ASTSignatureChange, PythonConstructDigest

logger = logging.getLogger(__name__)

# Routers mounted on every application instance.
COMPONENTS: Sequence[APIRouter] = (health_router,)


def backend_api(configuration: Configuration) -> Docket:
    """OpenAPI descriptor covering every route; the version is read from ``shared.version``."""
    return (
        Docket()
        .select()
        .apis(RequestHandlerSelectors.any())
        .paths(PathSelectors.any())
        .build()
        .path_mapping("/")
        .api_info(
            ApiInfo(
                title="Eclipse Steady",
                description="RESTful API for discovering and analyzing artifacts of package repositories",
                version=configuration.get_string(SHARED_VERSION),
                contact="SAP",
                license="commercial",
            )
        )
        .direct_model_substitute(date, str)
        .generic_model_substitutes(ResponseEntity)
        .alternate_type_rules(new_rule(Awaitable[ResponseEntity[WildcardType]], WildcardType))
        .use_default_response_messages(False)
        .global_response_message("GET", [ResponseMessage(500, "500 message", "Error")])
        .additional_models(Error)
        # .security_schemes([api_key()]).security_contexts([security_context()])
    )


def api_key() -> ApiKey:
    return ApiKey("mykey", "api_key", "header")


def security_context() -> SecurityContext:
    return (
        SecurityContext.builder()
        .security_references(default_auth())
        .for_paths(PathSelectors.regex("/anyPath.*"))
        .build()
    )


def default_auth() -> List[SecurityReference]:
    authorization_scope = AuthorizationScope("global", "accessEverything")
    return [SecurityReference("mykey", (authorization_scope,))]


def security() -> SecurityConfiguration:
    return SecurityConfiguration(
        client_id="abc",
        client_secret="123",
        realm="pets",
        app_name="petstore",
        api_key_name=HTTP_TENANT_HEADER,
        api_key_vehicle="header",
        scope_separator=",",
    )


def jackson_builder() -> MapperBuilder:
    """Mapper used for every request and response body of the application."""
    return (
        MapperBuilder()
        .default_view_inclusion(True)
        .serializers_by_type(
            {
                ASTSignatureChange: ASTSignatureChangeSerializer(),
                ASTConstructBodySignature: ASTConstructBodySignatureSerializer(),
                PythonConstructDigest: PythonConstructDigestSerializer(),
            }
        )
        .deserializers_by_type({ASTConstructBodySignature: ASTConstructBodySignatureDeserializer()})
    )


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled error",
        exc_info=exc,
        extra={"request_path": request.url.path, "method": request.method},
    )
    return JSONResponse({"detail": "Internal Server Error"}, status_code=500)


def include_component(app: FastAPI, router: APIRouter) -> None:
    """Re-create the router's routes on the app so they use the app's route class."""
    for route in router.routes:
        if not isinstance(route, APIRoute):
            raise TypeError(f"Unsupported component route: {route!r}")
        app.add_api_route(
            route.path,
            route.endpoint,
            response_model=route.response_model,
            status_code=route.status_code,
            tags=route.tags,
            dependencies=route.dependencies,
            summary=route.summary,
            description=route.description,
            response_description=route.response_description,
            responses=route.responses,
            deprecated=route.deprecated,
            methods=route.methods,
            operation_id=route.operation_id,
            include_in_schema=route.include_in_schema,
            response_class=route.response_class,
            name=route.name,
            openapi_extra=route.openapi_extra,
        )


def create_app(configuration: Optional[Configuration] = None) -> FastAPI:
    configuration = configuration or Configuration()
    setup_logging(configuration.get_string(LOG_LEVEL) or logging.INFO)

    docket = backend_api(configuration)
    ui_security = security()
    app = FastAPI(
        title=docket.info.title,
        description=docket.info.description,
        version=docket.info.version or "",
        swagger_ui_init_oauth=ui_security.swagger_ui_init_oauth(),
    )
    app.state.configuration = configuration
    app.state.object_mapper = jackson_builder().build()
    app.state.security_configuration = ui_security
    app.router.route_class = MapperRoute
    docket.install(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Latency-ms"] = f"{latency_ms:.2f}"

        logger.info(
            "request",
            extra={
                "request_path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2),
                "client": request.client.host if request.client else "unknown",
                "tenant": request.headers.get(HTTP_TENANT_HEADER),
            },
        )
        return response

    app.add_exception_handler(Exception, unhandled_error)
    for router in COMPONENTS:
        include_component(app, router)
    return app


def configure(configuration: Optional[Configuration] = None) -> FastAPI:
    """Entry point for external ASGI hosts; same wiring as ``main``."""
    return create_app(configuration)


def main(args: Optional[Sequence[str]] = None) -> None:
    runtime.run(create_app, sys.argv[1:] if args is None else list(args))
