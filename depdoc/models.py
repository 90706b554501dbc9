"""Core data models shared by the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class PackageRef:
    """Identifies a registry artifact.

    Attributes:
        name: Package name, possibly scoped (`@scope/pkg`).
        version: Exact version or dist-tag.
    """

    name: str
    version: str

    @property
    def key(self) -> str:
        """Stable `name@version` key."""
        return f"{self.name}@{self.version}"

    @staticmethod
    def parse(spec: str) -> "PackageRef":
        """Parse `name@version` (scoped names keep their leading `@`).

        A spec without a version resolves to the `latest` dist-tag.
        """
        spec = spec.strip()
        at = spec.rfind("@")
        if at <= 0:
            return PackageRef(name=spec, version="latest")
        return PackageRef(name=spec[:at], version=spec[at + 1:] or "latest")


class SymbolKind(str, Enum):
    CLASS = "class"
    INTERFACE = "interface"
    FUNCTION = "function"
    CONSTANT = "constant"
    OBJECT = "object"


class ExportKind(str, Enum):
    DEFAULT = "default"
    NAMED = "named"


@dataclass
class SymbolMetadata:
    """Metadata attached to a symbol document."""

    name: str
    version: str
    kind: SymbolKind
    filepath: str
    export_kind: ExportKind
    description: Optional[str] = None
    parameters: Optional[List[str]] = None
    return_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "kind": self.kind.value,
            "filepath": self.filepath,
            "export_kind": self.export_kind.value,
        }
        if self.description:
            data["description"] = self.description
        if self.parameters is not None:
            data["parameters"] = list(self.parameters)
        if self.return_type:
            data["return_type"] = self.return_type
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SymbolMetadata":
        return SymbolMetadata(
            name=data["name"],
            version=data["version"],
            kind=SymbolKind(data["kind"]),
            filepath=data["filepath"],
            export_kind=ExportKind(data["export_kind"]),
            description=data.get("description"),
            parameters=data.get("parameters"),
            return_type=data.get("return_type"),
        )


@dataclass(frozen=True)
class SymbolDocument:
    """One extracted, independently addressable API element.

    Attributes:
        id: `{name}@{version}/{filepath}#{kind}_{identifier}_{offset}`.
        metadata: Symbol metadata.
        content: Source text of the declaration.
    """

    id: str
    metadata: SymbolMetadata
    content: str

    def embedding_text(self) -> str:
        """Text sent to the embedding backend for this symbol."""
        meta = self.metadata
        parts = [f"{meta.name} {meta.kind.value}"]
        if meta.description:
            parts.append(meta.description)
        parts.append(self.content)
        return "\n".join(parts)


@dataclass
class DeclarationSource:
    """Where a package's declarations came from (itself or `@types/...`)."""

    name: str
    version: str
    content: List[str] = field(default_factory=list)


@dataclass
class PackageInfo:
    """Result of a successful `add_package`.

    Attributes:
        name: Package name.
        version: Package version.
        declaration_source: Declaration origin and file contents, if any.
        embedding: Pooled vector (package strategy only).
        documents: Number of symbol documents indexed for the package.
    """

    name: str
    version: str
    declaration_source: Optional[DeclarationSource] = None
    embedding: Optional[List[float]] = None
    documents: int = 0

    @property
    def ref(self) -> PackageRef:
        return PackageRef(self.name, self.version)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "version": self.version, "documents": self.documents}
        if self.declaration_source is not None:
            src = self.declaration_source
            data["declaration_source"] = {"name": src.name, "version": src.version, "content": list(src.content)}
        if self.embedding is not None:
            data["embedding"] = [float(x) for x in self.embedding]
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PackageInfo":
        src = data.get("declaration_source")
        return PackageInfo(
            name=data["name"],
            version=data["version"],
            declaration_source=DeclarationSource(**src) if isinstance(src, dict) else None,
            embedding=data.get("embedding"),
            documents=int(data.get("documents", 0)),
        )


@dataclass
class IndexedVector:
    """A vector owned by the index.

    Attributes:
        id: Symbol document id, or the package key in the package strategy.
        vector: Embedding.
        metadata: JSON-serializable metadata.
        document: Stored text returned with hits.
    """

    id: str
    vector: Sequence[float]
    metadata: Dict[str, Any]
    document: str = ""
