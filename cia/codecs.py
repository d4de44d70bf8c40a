"""JSON strategies for the signature types; registered on the mapper by type."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from cia.mapper import JsonDeserializer, JsonSerializer, MappingError, ObjectMapper
from cia.signatures import (
    ASTConstructBodySignature,
    ASTNode,
    ASTSignatureChange,
    PythonConstructDigest,
    SourceCodeEntity,
    SourceRange,
)


def _range_to_json(source_range: SourceRange) -> Dict[str, int]:
    return {"Start": source_range.start, "End": source_range.end}


def _entity_to_json(entity: SourceCodeEntity) -> Dict[str, Any]:
    return {
        "UniqueName": entity.unique_name,
        "EntityType": entity.entity_type,
        "Modifiers": entity.modifiers,
        "SourceRange": _range_to_json(entity.source_range),
    }


class ASTSignatureChangeSerializer(JsonSerializer):
    def serialize(self, value: ASTSignatureChange, mapper: ObjectMapper) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"constructType": value.construct_type}
        if value.structure_entity is not None:
            payload["StructureEntity"] = _entity_to_json(value.structure_entity)
        changes: List[Dict[str, Any]] = []
        for change in value.changes:
            item = {
                "OperationType": change.operation_type,
                "changeType": change.change_type,
                **_entity_to_json(change.entity),
            }
            if change.parent_entity is not None:
                item["ParentEntity"] = _entity_to_json(change.parent_entity)
            changes.append(item)
        payload["SourceCodeChanges"] = changes
        return payload


class ASTConstructBodySignatureSerializer(JsonSerializer):
    def serialize(self, value: ASTConstructBodySignature, mapper: ObjectMapper) -> Dict[str, Any]:
        return {"constructType": value.construct_type, "ast": [self._node(value.root)]}

    def _node(self, node: ASTNode) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "Value": node.value,
            "SourceCodeEntity": {
                "Modifiers": node.modifiers,
                "SourceRange": _range_to_json(node.source_range),
            },
            "EntityType": node.entity_type,
        }
        if node.children:
            payload["C"] = [self._node(child) for child in node.children]
        return payload


class ASTConstructBodySignatureDeserializer(JsonDeserializer):
    def deserialize(self, data: Any, mapper: ObjectMapper) -> ASTConstructBodySignature:
        if isinstance(data, (str, bytes, bytearray)):
            try:
                data = json.loads(data)
            except ValueError as exc:
                raise MappingError(f"Invalid JSON for AST signature: {exc}") from exc
        if not isinstance(data, dict):
            raise MappingError("AST signature must be a JSON object")
        nodes = data.get("ast")
        if not isinstance(nodes, list) or len(nodes) != 1:
            raise MappingError("AST signature requires an 'ast' array with exactly one root node")
        return ASTConstructBodySignature(
            construct_type=str(data.get("constructType", "")),
            root=self._node(nodes[0]),
        )

    def _node(self, raw: Any) -> ASTNode:
        if not isinstance(raw, dict) or "Value" not in raw or "EntityType" not in raw:
            raise MappingError(f"Malformed AST node: {raw!r}")
        entity = raw.get("SourceCodeEntity") or {}
        if not isinstance(entity, dict):
            raise MappingError(f"SourceCodeEntity must be a JSON object: {entity!r}")
        source_range = entity.get("SourceRange") or {}
        if not isinstance(source_range, dict):
            raise MappingError(f"SourceRange must be a JSON object: {source_range!r}")
        try:
            return ASTNode(
                value=raw["Value"],
                entity_type=raw["EntityType"],
                modifiers=int(entity.get("Modifiers", 0)),
                source_range=SourceRange(
                    int(source_range.get("Start", 0)), int(source_range.get("End", 0))
                ),
                children=[self._node(child) for child in raw.get("C", [])],
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise MappingError(f"Malformed AST node: {raw!r}") from exc


class PythonConstructDigestSerializer(JsonSerializer):
    def serialize(self, value: PythonConstructDigest, mapper: ObjectMapper) -> Dict[str, Optional[str]]:
        return {
            "computedFrom": value.computed_from,
            "computedFromType": value.computed_from_type,
            "digest": value.digest,
            "digestAlgorithm": value.digest_algorithm.value,
        }
