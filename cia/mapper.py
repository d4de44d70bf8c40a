"""
JSON object mapping with per-type strategies.

``MapperBuilder`` collects type -> serializer and type -> deserializer
registrations and builds an immutable ``ObjectMapper``. Types without a
registration fall back to the framework encoder, so only the listed types
change shape on the wire.

The HTTP helpers at the bottom of the module make the mapper stored on
``app.state.object_mapper`` the JSON mapper of the application: routes built
with ``MapperRoute`` render whatever their endpoint returns through it,
``ResponseEntity`` picks it up when sent, and ``json_body`` decodes request
bodies with it.
"""
from __future__ import annotations

import abc
import dataclasses
import enum
import functools
import inspect
import json
from types import MappingProxyType
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Type, TypeVar

from fastapi import Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from pydantic import BaseModel, ValidationError
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

T = TypeVar("T")

_PRIMITIVES = (str, int, float, bool, type(None))


class MappingError(ValueError):
    """Raised when a payload cannot be mapped onto the requested type."""


class JsonSerializer(abc.ABC):
    """Strategy turning one type into JSON-compatible data."""

    @abc.abstractmethod
    def serialize(self, value: Any, mapper: "ObjectMapper") -> Any:
        ...


class JsonDeserializer(abc.ABC):
    """Strategy building one type from decoded JSON data (or the raw text)."""

    @abc.abstractmethod
    def deserialize(self, data: Any, mapper: "ObjectMapper") -> Any:
        ...


def _lookup(registry: Mapping[type, Any], cls: type) -> Any:
    if cls in registry:
        return registry[cls]
    for base in cls.__mro__[1:]:
        if base in registry:
            return registry[base]
    return None


class ObjectMapper:
    def __init__(
        self,
        serializers: Optional[Mapping[type, JsonSerializer]] = None,
        deserializers: Optional[Mapping[type, JsonDeserializer]] = None,
        default_view_inclusion: bool = False,
        indent: Optional[int] = None,
    ):
        self._serializers = dict(serializers or {})
        self._deserializers = dict(deserializers or {})
        self.default_view_inclusion = default_view_inclusion
        self.indent = indent

    @property
    def serializers(self) -> Mapping[type, JsonSerializer]:
        return MappingProxyType(self._serializers)

    @property
    def deserializers(self) -> Mapping[type, JsonDeserializer]:
        return MappingProxyType(self._deserializers)

    def find_serializer(self, cls: type) -> Optional[JsonSerializer]:
        return _lookup(self._serializers, cls)

    def find_deserializer(self, cls: type) -> Optional[JsonDeserializer]:
        return _lookup(self._deserializers, cls)

    def _in_view(self, views: Any, view: Any) -> bool:
        if view is None:
            return True
        if not views:
            return self.default_view_inclusion
        for candidate in views:
            if isinstance(view, type) and isinstance(candidate, type):
                if issubclass(view, candidate):
                    return True
            elif candidate == view:
                return True
        return False

    def to_jsonable(self, value: Any, view: Any = None) -> Any:
        serializer = self.find_serializer(type(value))
        if serializer is not None:
            return self.to_jsonable(serializer.serialize(value, self), view)
        if isinstance(value, enum.Enum):
            return self.to_jsonable(value.value, view)
        if isinstance(value, _PRIMITIVES):
            return value
        if isinstance(value, BaseModel):
            result: Dict[str, Any] = {}
            for name, info in type(value).model_fields.items():
                extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
                if self._in_view(extra.get("views"), view):
                    result[info.alias or name] = self.to_jsonable(getattr(value, name), view)
            return result
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {
                f.name: self.to_jsonable(getattr(value, f.name), view)
                for f in dataclasses.fields(value)
                if self._in_view(f.metadata.get("views"), view)
            }
        if isinstance(value, Mapping):
            return {str(key): self.to_jsonable(item, view) for key, item in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.to_jsonable(item, view) for item in value]
        return jsonable_encoder(value)

    def dumps(self, value: Any, view: Any = None) -> str:
        return json.dumps(self.to_jsonable(value, view), indent=self.indent, ensure_ascii=False)

    def read_value(self, raw: Any, target: Type[T]) -> T:
        deserializer = self.find_deserializer(target)
        if deserializer is not None:
            return deserializer.deserialize(raw, self)

        if isinstance(raw, (str, bytes, bytearray)):
            try:
                data = json.loads(raw)
            except ValueError as exc:
                raise MappingError(f"Invalid JSON: {exc}") from exc
        else:
            data = raw

        if isinstance(target, type) and issubclass(target, BaseModel):
            try:
                return target.model_validate(data)
            except ValidationError as exc:
                raise MappingError(str(exc)) from exc
        if dataclasses.is_dataclass(target):
            if not isinstance(data, dict):
                raise MappingError(f"Expected a JSON object for {target.__name__}")
            try:
                return target(**data)
            except TypeError as exc:
                raise MappingError(str(exc)) from exc
        return data


class MapperBuilder:
    """Fluent collector of mapper settings; ``build()`` returns an ``ObjectMapper``."""

    def __init__(self) -> None:
        self._serializers: Dict[type, JsonSerializer] = {}
        self._deserializers: Dict[type, JsonDeserializer] = {}
        self._default_view_inclusion = False
        self._indent: Optional[int] = None

    def default_view_inclusion(self, enabled: bool) -> "MapperBuilder":
        self._default_view_inclusion = enabled
        return self

    def indent_output(self, enabled: bool) -> "MapperBuilder":
        self._indent = 2 if enabled else None
        return self

    def serializers_by_type(self, serializers: Mapping[type, JsonSerializer]) -> "MapperBuilder":
        self._serializers.update(serializers)
        return self

    def deserializers_by_type(self, deserializers: Mapping[type, JsonDeserializer]) -> "MapperBuilder":
        self._deserializers.update(deserializers)
        return self

    @property
    def serializers(self) -> Mapping[type, JsonSerializer]:
        return MappingProxyType(self._serializers)

    @property
    def deserializers(self) -> Mapping[type, JsonDeserializer]:
        return MappingProxyType(self._deserializers)

    @property
    def is_default_view_inclusion(self) -> bool:
        return self._default_view_inclusion

    def build(self) -> ObjectMapper:
        return ObjectMapper(
            serializers=self._serializers,
            deserializers=self._deserializers,
            default_view_inclusion=self._default_view_inclusion,
            indent=self._indent,
        )


_PLAIN_MAPPER = ObjectMapper()


def _app_mapper(scope: Scope) -> ObjectMapper:
    state = getattr(scope.get("app"), "state", None)
    return getattr(state, "object_mapper", None) or _PLAIN_MAPPER


class ResponseEntity(JSONResponse, Generic[T]):
    """
    JSON response rendered with an ``ObjectMapper``.

    Without an explicit ``mapper`` the body is rendered when the response is
    sent, with the mapper of the application serving the request.

    FastAPI cannot validate this type as a response model, so routes returning
    it are declared with ``response_model=None``; the docs generator unwraps
    ``ResponseEntity[T]`` to ``T`` instead.
    """

    def __init__(
        self,
        content: Any,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
        background: Any = None,
        mapper: Optional[ObjectMapper] = None,
        view: Any = None,
    ):
        self.mapper = mapper
        self.view = view
        self._content = content
        super().__init__(content, status_code, headers, media_type, background)

    def render(self, content: Any) -> bytes:
        if self.mapper is None:
            return b""
        return self.mapper.dumps(content, view=self.view).encode("utf-8")

    def bind(self, mapper: ObjectMapper) -> "ResponseEntity[T]":
        """Render with ``mapper`` unless a mapper was already given."""
        if self.mapper is None:
            self.mapper = mapper
            self.body = self.render(self._content)
            if "content-length" in self.headers:
                self.headers["content-length"] = str(len(self.body))
        return self

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self.bind(_app_mapper(scope))
        await super().__call__(scope, receive, send)


def _render_with_mapper(endpoint: Callable[..., Any], status_code: Optional[int]) -> Callable[..., Any]:
    if getattr(endpoint, "renders_with_mapper", False):
        return endpoint
    # Streaming endpoints keep the framework's own handling.
    if inspect.isgeneratorfunction(endpoint) or inspect.isasyncgenfunction(endpoint):
        return endpoint
    is_coroutine = inspect.iscoroutinefunction(endpoint)

    @functools.wraps(endpoint)
    async def wrapper(*args: Any, **kwargs: Any) -> Response:
        if is_coroutine:
            result = await endpoint(*args, **kwargs)
        else:
            result = await run_in_threadpool(endpoint, *args, **kwargs)
        if isinstance(result, Response):
            return result
        return ResponseEntity(result, status_code=status_code or 200)

    wrapper.renders_with_mapper = True
    return wrapper


class MapperRoute(APIRoute):
    """
    Route whose endpoint results are rendered with the app's ``ObjectMapper``.

    Plain return values bypass FastAPI's encoder and response-model filtering;
    the response model still drives the generated documentation.
    """

    def __init__(self, path: str, endpoint: Callable[..., Any], **kwargs: Any):
        super().__init__(path, _render_with_mapper(endpoint, kwargs.get("status_code")), **kwargs)


def get_object_mapper(request: Request) -> ObjectMapper:
    return request.app.state.object_mapper


def json_body(target: Type[T]) -> Callable[..., Any]:
    """Dependency factory decoding the request body into ``target`` with the app's mapper."""

    async def read_body(request: Request, mapper: ObjectMapper = Depends(get_object_mapper)) -> Any:
        raw = await request.body()
        try:
            return mapper.read_value(raw, target)
        except MappingError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return read_body
