"""
rust_kg: build a queryable knowledge graph from Rust source trees.

Syntactic extraction → content-hash cache → whole-program assembly →
SQLite (authoritative) → structural queries.

Public API
----------
Primary entry point::

    from rust_kg import RustKG

    kg = RustKG("/path/to/crate")
    stats = kg.build()                 # cache mode "use"
    res = kg.resolve("parse", kind="fn")

Queries::

    from rust_kg import query
    query.find_cycles(kg.graph)
    query.hubs(kg.graph, metric="in", top=5)

Individual layers::

    from rust_kg import CacheStore, GraphAssembler, GraphStore, Resolver
"""

__version__ = "0.1.0"

# Primitives
from rust_kg.extract import FileExtraction, Item, PendingRef, Relationship, extract_source

# Layered classes
from rust_kg.cache import CacheEntry, CacheMode, CacheStore, fingerprint
from rust_kg.graph import FileNode, KnowledgeGraph, Projection
from rust_kg.assemble import GraphAssembler, assemble
from rust_kg.resolver import Ambiguous, NotFound, Resolver, Unique
from rust_kg.store import GraphStore
from rust_kg.config import Settings, load_settings
from rust_kg.errors import (
    AmbiguousNameError,
    BuildError,
    ConfigError,
    ExtractionError,
    FileNotInGraphError,
    ItemNotFoundError,
    KnowledgeGraphError,
    NotFoundError,
    PersistError,
    TraitNotFoundError,
)

# Orchestrator + result types
from rust_kg.kg import BuildStats, RustKG

__all__ = [
    # primitives
    "Item",
    "Relationship",
    "PendingRef",
    "FileExtraction",
    "extract_source",
    # layers
    "CacheStore",
    "CacheEntry",
    "CacheMode",
    "fingerprint",
    "FileNode",
    "KnowledgeGraph",
    "Projection",
    "GraphAssembler",
    "assemble",
    "Resolver",
    "Unique",
    "Ambiguous",
    "NotFound",
    "GraphStore",
    "Settings",
    "load_settings",
    # errors
    "KnowledgeGraphError",
    "AmbiguousNameError",
    "ExtractionError",
    "ConfigError",
    "BuildError",
    "PersistError",
    "NotFoundError",
    "FileNotInGraphError",
    "ItemNotFoundError",
    "TraitNotFoundError",
    # orchestrator
    "RustKG",
    "BuildStats",
]
