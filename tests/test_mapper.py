import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from cia.mapper import (
    JsonDeserializer,
    JsonSerializer,
    MapperBuilder,
    MapperRoute,
    MappingError,
    ObjectMapper,
    ResponseEntity,
    get_object_mapper,
    json_body,
)


class Public:
    pass


class Internal(Public):
    pass


@dataclass
class Artifact:
    group: str
    artifact: str
    repository_path: str = field(default="", metadata={"views": (Internal,)})


class Release(BaseModel):
    version: str
    published: date
    checksum: str = Field("", json_schema_extra={"views": [Internal]})


class UpperSerializer(JsonSerializer):
    def serialize(self, value, mapper):
        return {"coordinates": f"{value.group}:{value.artifact}".upper()}


@dataclass
class PatchedArtifact(Artifact):
    patch: str = ""


def test_builder_defaults():
    builder = MapperBuilder()

    assert builder.is_default_view_inclusion is False
    assert dict(builder.serializers) == {}
    assert builder.build().indent is None


def test_registering_a_type_twice_replaces_the_strategy():
    first, second = UpperSerializer(), UpperSerializer()

    builder = MapperBuilder().serializers_by_type({Artifact: first}).serializers_by_type({Artifact: second})

    assert dict(builder.serializers) == {Artifact: second}


def test_serializer_lookup_follows_the_mro():
    mapper = MapperBuilder().serializers_by_type({Artifact: UpperSerializer()}).build()

    payload = mapper.to_jsonable(PatchedArtifact("org.acme", "core", patch="p1"))

    assert payload == {"coordinates": "ORG.ACME:CORE"}


def test_unregistered_types_fall_back_to_framework_encoding():
    mapper = ObjectMapper()

    payload = json.loads(mapper.dumps({"release": Release(version="1.0", published=date(2020, 1, 31))}))

    assert payload == {"release": {"version": "1.0", "published": "2020-01-31", "checksum": ""}}


@pytest.mark.parametrize(
    "default_inclusion, view, expected",
    [
        (True, None, {"group", "artifact", "repository_path"}),
        (True, Public, {"group", "artifact"}),
        (True, Internal, {"group", "artifact", "repository_path"}),
        (False, Public, set()),
        (False, Internal, {"repository_path"}),
    ],
)
def test_view_inclusion_for_dataclass_fields(default_inclusion, view, expected):
    mapper = MapperBuilder().default_view_inclusion(default_inclusion).build()

    payload = mapper.to_jsonable(Artifact("org.acme", "core", "/repo/core"), view=view)

    assert set(payload) == expected


def test_view_inclusion_for_model_fields():
    mapper = MapperBuilder().default_view_inclusion(True).build()
    release = Release(version="1.0", published=date(2020, 1, 31), checksum="abc")

    assert "checksum" not in mapper.to_jsonable(release, view=Public)
    assert mapper.to_jsonable(release, view=Internal)["checksum"] == "abc"


def test_indent_output():
    mapper = MapperBuilder().indent_output(True).build()

    assert mapper.dumps({"a": 1}) == '{\n  "a": 1\n}'


def test_read_value_validates_models_and_dataclasses():
    mapper = ObjectMapper()

    release = mapper.read_value('{"version": "2.0", "published": "2021-05-01"}', Release)
    artifact = mapper.read_value(b'{"group": "g", "artifact": "a"}', Artifact)

    assert release.published == date(2021, 5, 1)
    assert artifact == Artifact("g", "a")
    with pytest.raises(MappingError):
        mapper.read_value('{"version": "2.0"}', Release)
    with pytest.raises(MappingError):
        mapper.read_value('{"group": "g", "unknown": 1}', Artifact)
    with pytest.raises(MappingError):
        mapper.read_value("{", dict)
    with pytest.raises(MappingError):
        mapper.read_value(b'{"group": "\xff\xfe"}', Artifact)


def test_strategy_base_classes_cannot_be_instantiated():
    class Incomplete(JsonSerializer):
        pass

    with pytest.raises(TypeError):
        JsonSerializer()
    with pytest.raises(TypeError):
        JsonDeserializer()
    with pytest.raises(TypeError):
        Incomplete()


def _client_with(mapper: ObjectMapper) -> TestClient:
    app = FastAPI()
    app.state.object_mapper = mapper

    @app.post("/artifacts", response_model=None)
    def echo(
        artifact: Artifact = Depends(json_body(Artifact)),
        mapper: ObjectMapper = Depends(get_object_mapper),
    ) -> ResponseEntity[Dict[str, Any]]:
        return ResponseEntity(artifact, status_code=201, mapper=mapper)

    return TestClient(app)


def test_response_entity_renders_with_the_app_mapper():
    mapper = MapperBuilder().serializers_by_type({Artifact: UpperSerializer()}).build()
    client = _client_with(mapper)

    response = client.post("/artifacts", content=json.dumps({"group": "org.acme", "artifact": "core"}))

    assert response.status_code == 201
    assert response.json() == {"coordinates": "ORG.ACME:CORE"}


def test_json_body_turns_mapping_errors_into_bad_request():
    client = _client_with(ObjectMapper())

    response = client.post("/artifacts", content="{not json")

    assert response.status_code == 400
    assert "Invalid JSON" in response.json()["detail"]


def test_json_body_rejects_undecodable_bytes():
    client = _client_with(ObjectMapper())

    response = client.post("/artifacts", content=b'{"group": "\xff\xfe", "artifact": "a"}')

    assert response.status_code == 400


def test_unbound_response_entity_uses_the_mapper_of_the_serving_app():
    app = FastAPI()
    app.state.object_mapper = MapperBuilder().serializers_by_type({Artifact: UpperSerializer()}).build()

    @app.get("/artifact", response_model=None)
    def artifact() -> ResponseEntity[Dict[str, Any]]:
        return ResponseEntity(Artifact("org.acme", "core"))

    response = TestClient(app).get("/artifact")

    assert response.json() == {"coordinates": "ORG.ACME:CORE"}
    assert response.headers["content-length"] == str(len(response.content))


def test_unbound_response_entity_falls_back_to_plain_mapping():
    app = FastAPI()

    @app.get("/artifact", response_model=None)
    def artifact() -> ResponseEntity[Dict[str, Any]]:
        return ResponseEntity(Artifact("org.acme", "core"), status_code=202)

    response = TestClient(app).get("/artifact")

    assert response.status_code == 202
    assert response.json() == {"group": "org.acme", "artifact": "core", "repository_path": ""}


def test_explicit_mapper_wins_over_the_app_mapper():
    entity = ResponseEntity(Artifact("org.acme", "core"), mapper=ObjectMapper())

    entity.bind(MapperBuilder().serializers_by_type({Artifact: UpperSerializer()}).build())

    assert json.loads(entity.body) == {"group": "org.acme", "artifact": "core", "repository_path": ""}


def test_mapper_route_renders_plain_results_with_the_app_mapper():
    app = FastAPI()
    app.router.route_class = MapperRoute
    app.state.object_mapper = MapperBuilder().serializers_by_type({Artifact: UpperSerializer()}).build()

    @app.get("/artifacts/{group}", status_code=201)
    async def artifact(group: str) -> Artifact:
        return Artifact(group, "core")

    @app.get("/listing")
    def listing() -> Dict[str, Any]:
        return {"items": [Artifact("org.acme", "core")]}

    client = TestClient(app)

    created = client.get("/artifacts/org.acme")
    listed = client.get("/listing")

    assert created.status_code == 201
    assert created.json() == {"coordinates": "ORG.ACME:CORE"}
    assert listed.json() == {"items": [{"coordinates": "ORG.ACME:CORE"}]}
    assert app.openapi()["paths"]["/artifacts/{group}"]["get"]["parameters"][0]["name"] == "group"
