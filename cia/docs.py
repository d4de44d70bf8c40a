"""
OpenAPI descriptor ("docket") for the service's HTTP surface.

A ``Docket`` decides which routes are documented, what the info block says,
how handler return types are rendered as schemas and which extra responses
every operation advertises. It only shapes the generated document: the
served routes are never modified.

Usage::

    docket = (
        Docket()
        .select()
        .apis(RequestHandlerSelectors.any())
        .paths(PathSelectors.any())
        .build()
        .path_mapping("/")
        .global_response_message("GET", [ResponseMessage(500, "500 message", "Error")])
    )
    docket.install(app)
"""
from __future__ import annotations

import inspect
import json
import re
import typing
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Type
from uuid import UUID

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from fastapi.routing import APIRoute
from pydantic import BaseModel

RouteSelector = Callable[[APIRoute], bool]
PathSelector = Callable[[str], bool]

# JSON-schema formats FastAPI emits for types that are plain strings on the wire.
_STRING_FORMATS: Dict[type, str] = {
    date: "date",
    datetime: "date-time",
    time: "time",
    UUID: "uuid",
}

_FRAMEWORK_DEFAULT_RESPONSES = {"422": ("HTTPValidationError", "ValidationError")}


class Error(BaseModel):
    """Body of an error response."""

    detail: str


class RequestHandlerSelectors:
    @staticmethod
    def any() -> RouteSelector:
        return lambda route: True

    @staticmethod
    def none() -> RouteSelector:
        return lambda route: False

    @staticmethod
    def base_package(package: str) -> RouteSelector:
        def selector(route: APIRoute) -> bool:
            module = getattr(route.endpoint, "__module__", "") or ""
            return module == package or module.startswith(package + ".")

        return selector


class PathSelectors:
    @staticmethod
    def any() -> PathSelector:
        return lambda path: True

    @staticmethod
    def regex(pattern: str) -> PathSelector:
        compiled = re.compile(pattern)
        return lambda path: compiled.fullmatch(path) is not None


@dataclass(frozen=True)
class ApiInfo:
    title: str
    description: str
    version: Optional[str]
    terms_of_service_url: Optional[str] = None
    contact: Optional[str] = None
    license: Optional[str] = None
    license_url: Optional[str] = None

    def contact_info(self) -> Optional[Dict[str, str]]:
        return {"name": self.contact} if self.contact else None

    def license_info(self) -> Optional[Dict[str, str]]:
        if not self.license:
            return None
        info = {"name": self.license}
        if self.license_url:
            info["url"] = self.license_url
        return info


@dataclass(frozen=True)
class ResponseMessage:
    code: int
    message: str
    response_model: Optional[str] = None

    def to_openapi(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"description": self.message}
        if self.response_model:
            entry["content"] = {
                "application/json": {"schema": {"$ref": f"#/components/schemas/{self.response_model}"}}
            }
        return entry


class WildcardType:
    """Matches any type argument of an alternate type rule and binds it."""


class AlternateTypeRule(NamedTuple):
    original: Any
    alternate: Any


def new_rule(original: Any, alternate: Any) -> AlternateTypeRule:
    return AlternateTypeRule(original, alternate)


def _match(pattern: Any, candidate: Any, bindings: List[Any]) -> bool:
    if pattern is WildcardType:
        bindings.append(candidate)
        return True
    origin = typing.get_origin(pattern)
    if origin is None:
        return pattern == candidate
    if typing.get_origin(candidate) != origin:
        return False
    pattern_args = typing.get_args(pattern)
    candidate_args = typing.get_args(candidate)
    if len(pattern_args) != len(candidate_args):
        return False
    return all(_match(p, c, bindings) for p, c in zip(pattern_args, candidate_args))


class TypeRules:
    """Rewrites handler return types into the types rendered in the document."""

    def __init__(self) -> None:
        self.direct: Dict[Any, Any] = {}
        self.generic: List[Any] = []
        self.alternate: List[AlternateTypeRule] = []

    def resolve(self, annotation: Any) -> Any:
        for original, substitute in self.direct.items():
            if annotation == original:
                return substitute
        for rule in self.alternate:
            bindings: List[Any] = []
            if _match(rule.original, annotation, bindings):
                if rule.alternate is WildcardType:
                    return self.resolve(bindings[0]) if bindings else Any
                return self.resolve(rule.alternate)
        origin = typing.get_origin(annotation)
        if origin is not None and origin in self.generic:
            args = typing.get_args(annotation)
            return self.resolve(args[0]) if args else Any
        return annotation

    def dropped_formats(self) -> List[str]:
        return [
            _STRING_FORMATS[original]
            for original, substitute in self.direct.items()
            if substitute is str and original in _STRING_FORMATS
        ]


@dataclass(frozen=True)
class ApiKey:
    name: str
    key_name: str
    pass_as: str

    def to_openapi(self) -> Dict[str, str]:
        return {"type": "apiKey", "name": self.key_name, "in": self.pass_as}


@dataclass(frozen=True)
class AuthorizationScope:
    scope: str
    description: str


@dataclass(frozen=True)
class SecurityReference:
    reference: str
    scopes: Sequence[AuthorizationScope] = ()

    def to_openapi(self) -> Dict[str, List[str]]:
        return {self.reference: [scope.scope for scope in self.scopes]}


@dataclass
class SecurityContext:
    security_references: List[SecurityReference]
    path_selector: PathSelector = field(default_factory=PathSelectors.any)

    @classmethod
    def builder(cls) -> "SecurityContextBuilder":
        return SecurityContextBuilder()

    def applies_to(self, path: str) -> bool:
        return self.path_selector(path)


class SecurityContextBuilder:
    def __init__(self) -> None:
        self._references: List[SecurityReference] = []
        self._selector: PathSelector = PathSelectors.any()

    def security_references(self, references: Iterable[SecurityReference]) -> "SecurityContextBuilder":
        self._references = list(references)
        return self

    def for_paths(self, selector: PathSelector) -> "SecurityContextBuilder":
        self._selector = selector
        return self

    def build(self) -> SecurityContext:
        return SecurityContext(self._references, self._selector)


@dataclass(frozen=True)
class SecurityConfiguration:
    """Settings of the Swagger UI's authorization dialog."""

    client_id: str
    client_secret: str
    realm: str
    app_name: str
    api_key_name: str
    api_key_vehicle: str = "header"
    scope_separator: str = ","

    def swagger_ui_init_oauth(self) -> Dict[str, Any]:
        return {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "realm": self.realm,
            "appName": self.app_name,
            "scopeSeparator": self.scope_separator,
        }


class ApiSelectorBuilder:
    def __init__(self, docket: "Docket"):
        self._docket = docket
        self._apis: RouteSelector = RequestHandlerSelectors.any()
        self._paths: PathSelector = PathSelectors.any()

    def apis(self, selector: RouteSelector) -> "ApiSelectorBuilder":
        self._apis = selector
        return self

    def paths(self, selector: PathSelector) -> "ApiSelectorBuilder":
        self._paths = selector
        return self

    def build(self) -> "Docket":
        self._docket._api_selector = self._apis
        self._docket._path_selector = self._paths
        return self._docket


def _return_annotation(endpoint: Callable[..., Any]) -> Any:
    try:
        return typing.get_type_hints(inspect.unwrap(endpoint)).get("return")
    except (NameError, TypeError):
        return None


def _drop_formats(node: Any, formats: Sequence[str]) -> None:
    if isinstance(node, dict):
        if node.get("type") == "string" and node.get("format") in formats:
            del node["format"]
        for value in node.values():
            _drop_formats(value, formats)
    elif isinstance(node, list):
        for value in node:
            _drop_formats(value, formats)


class Docket:
    def __init__(self) -> None:
        self._api_selector: RouteSelector = RequestHandlerSelectors.any()
        self._path_selector: PathSelector = PathSelectors.any()
        self._path_mapping: Optional[str] = None
        self._api_info = ApiInfo(title="API Documentation", description="", version="1.0")
        self.type_rules = TypeRules()
        self._use_default_response_messages = True
        self._global_responses: Dict[str, List[ResponseMessage]] = {}
        self._additional_models: Dict[str, Type[BaseModel]] = {}
        self._security_schemes: List[ApiKey] = []
        self._security_contexts: List[SecurityContext] = []

    # -- fluent configuration -------------------------------------------------

    def select(self) -> ApiSelectorBuilder:
        return ApiSelectorBuilder(self)

    def path_mapping(self, path: str) -> "Docket":
        self._path_mapping = path
        return self

    def api_info(self, info: ApiInfo) -> "Docket":
        self._api_info = info
        return self

    def direct_model_substitute(self, original: Any, substitute: Any) -> "Docket":
        self.type_rules.direct[original] = substitute
        return self

    def generic_model_substitutes(self, *generics: Any) -> "Docket":
        self.type_rules.generic.extend(generics)
        return self

    def alternate_type_rules(self, *rules: AlternateTypeRule) -> "Docket":
        self.type_rules.alternate.extend(rules)
        return self

    def use_default_response_messages(self, enabled: bool) -> "Docket":
        self._use_default_response_messages = enabled
        return self

    def global_response_message(self, method: str, messages: Iterable[ResponseMessage]) -> "Docket":
        self._global_responses[method.upper()] = list(messages)
        return self

    def additional_models(self, *models: Type[BaseModel]) -> "Docket":
        for model in models:
            self._additional_models[model.__name__] = model
        return self

    def security_schemes(self, schemes: Iterable[ApiKey]) -> "Docket":
        self._security_schemes = list(schemes)
        return self

    def security_contexts(self, contexts: Iterable[SecurityContext]) -> "Docket":
        self._security_contexts = list(contexts)
        return self

    # -- read access ----------------------------------------------------------

    @property
    def info(self) -> ApiInfo:
        return self._api_info

    @property
    def base_path(self) -> Optional[str]:
        return self._path_mapping

    @property
    def global_responses(self) -> Dict[str, List[ResponseMessage]]:
        return {method: list(messages) for method, messages in self._global_responses.items()}

    @property
    def schemes(self) -> List[ApiKey]:
        return list(self._security_schemes)

    @property
    def contexts(self) -> List[SecurityContext]:
        return list(self._security_contexts)

    # -- generation -----------------------------------------------------------

    def is_selected(self, route: Any) -> bool:
        if not isinstance(route, APIRoute) or not route.include_in_schema:
            return False
        return self._api_selector(route) and self._path_selector(route.path)

    def _documented(self, route: APIRoute) -> APIRoute:
        annotation = route.response_model
        if annotation is None:
            annotation = _return_annotation(route.endpoint)
        if annotation is None:
            return route
        resolved = self.type_rules.resolve(annotation)
        if resolved is annotation:
            return route
        return APIRoute(
            route.path,
            route.endpoint,
            response_model=resolved,
            status_code=route.status_code,
            tags=route.tags,
            dependencies=route.dependencies,
            summary=route.summary,
            description=route.description,
            response_description=route.response_description,
            responses=route.responses,
            deprecated=route.deprecated,
            name=route.name,
            methods=route.methods,
            operation_id=route.operation_id,
            include_in_schema=route.include_in_schema,
            response_class=route.response_class,
            callbacks=route.callbacks,
            openapi_extra=route.openapi_extra,
        )

    def generate(self, app: FastAPI) -> Dict[str, Any]:
        routes = [self._documented(route) for route in app.routes if self.is_selected(route)]
        info = self._api_info
        schema = get_openapi(
            title=info.title,
            version=info.version,
            description=info.description,
            routes=routes,
            servers=[{"url": self._path_mapping}] if self._path_mapping else None,
            terms_of_service=info.terms_of_service_url,
            contact=info.contact_info(),
            license_info=info.license_info(),
        )
        paths: Dict[str, Dict[str, Any]] = schema.setdefault("paths", {})
        components: Dict[str, Any] = schema.setdefault("components", {})
        schemas: Dict[str, Any] = components.setdefault("schemas", {})

        if not self._use_default_response_messages:
            self._strip_default_responses(paths, schemas)

        for path, operations in paths.items():
            for method, operation in operations.items():
                responses = operation.setdefault("responses", {})
                for message in self._global_responses.get(method.upper(), []):
                    responses.setdefault(str(message.code), message.to_openapi())
                    self._ensure_model(message.response_model, schemas)
                for context in self._security_contexts:
                    if context.applies_to(path):
                        security = operation.setdefault("security", [])
                        security.extend(ref.to_openapi() for ref in context.security_references)

        if self._security_schemes:
            components["securitySchemes"] = {
                scheme.name: scheme.to_openapi() for scheme in self._security_schemes
            }

        dropped = self.type_rules.dropped_formats()
        if dropped:
            _drop_formats(schema, dropped)

        if not schemas:
            del components["schemas"]
        if not components:
            del schema["components"]
        return schema

    def _ensure_model(self, name: Optional[str], schemas: Dict[str, Any]) -> None:
        if not name or name in schemas or name not in self._additional_models:
            return
        model_schema = self._additional_models[name].model_json_schema(
            ref_template="#/components/schemas/{model}"
        )
        for nested_name, nested in model_schema.pop("$defs", {}).items():
            schemas.setdefault(nested_name, nested)
        schemas[name] = model_schema

    @staticmethod
    def _strip_default_responses(paths: Dict[str, Any], schemas: Dict[str, Any]) -> None:
        for operations in paths.values():
            for operation in operations.values():
                for code in _FRAMEWORK_DEFAULT_RESPONSES:
                    operation.get("responses", {}).pop(code, None)
        for names in _FRAMEWORK_DEFAULT_RESPONSES.values():
            for name in names:
                if name not in schemas:
                    continue
                rest = {key: value for key, value in schemas.items() if key not in names}
                if f"#/components/schemas/{name}" not in json.dumps([paths, rest]):
                    schemas.pop(name)

    def install(self, app: FastAPI) -> None:
        """Make ``app`` serve this descriptor from its OpenAPI endpoint."""

        def openapi() -> Dict[str, Any]:
            app.openapi_schema = self.generate(app)
            return app.openapi_schema

        app.openapi = openapi
        app.state.docket = self
