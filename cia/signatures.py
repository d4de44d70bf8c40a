"""
Signature and digest types exchanged with the analysis backends.

These are plain data holders. Their JSON shape is not derived from the field
names: the strategies in :mod:`cia.codecs` define it and the object mapper
built by :func:`cia.application.jackson_builder` applies them.
"""
from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class SourceRange:
    start: int
    end: int


@dataclass(frozen=True)
class SourceCodeEntity:
    unique_name: str
    entity_type: str
    modifiers: int = 0
    source_range: SourceRange = field(default_factory=lambda: SourceRange(0, 0))


@dataclass
class ASTNode:
    """One node of a construct body's abstract syntax tree."""

    value: str
    entity_type: str
    modifiers: int = 0
    source_range: SourceRange = field(default_factory=lambda: SourceRange(0, 0))
    children: List["ASTNode"] = field(default_factory=list)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ASTConstructBodySignature:
    """AST of a construct body (method, constructor, ...), rooted at ``root``."""

    construct_type: str
    root: ASTNode

    def node_count(self) -> int:
        return sum(1 for _ in self.root.walk())


@dataclass(frozen=True)
class SourceCodeChange:
    operation_type: str
    change_type: str
    entity: SourceCodeEntity
    parent_entity: Optional[SourceCodeEntity] = None


@dataclass
class ASTSignatureChange:
    """Edit script turning one construct body signature into another."""

    construct_type: str
    changes: List[SourceCodeChange] = field(default_factory=list)
    structure_entity: Optional[SourceCodeEntity] = None

    def is_empty(self) -> bool:
        return not self.changes


class DigestAlgorithm(str, enum.Enum):
    MD5 = "MD5"
    SHA1 = "SHA1"
    SHA256 = "SHA256"

    @property
    def hashlib_name(self) -> str:
        return self.value.lower()


@dataclass(frozen=True)
class PythonConstructDigest:
    """Digest of a Python construct, e.g. a function body or a whole module."""

    computed_from: str
    computed_from_type: str
    digest: str
    digest_algorithm: DigestAlgorithm = DigestAlgorithm.SHA1

    @classmethod
    def of(
        cls,
        source: str,
        computed_from_type: str,
        algorithm: DigestAlgorithm = DigestAlgorithm.SHA1,
    ) -> "PythonConstructDigest":
        hasher = hashlib.new(algorithm.hashlib_name)
        hasher.update(source.encode("utf-8"))
        return cls(
            computed_from=source,
            computed_from_type=computed_from_type,
            digest=hasher.hexdigest().upper(),
            digest_algorithm=algorithm,
        )
