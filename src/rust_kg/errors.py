#!/usr/bin/env python3
"""
errors.py

Exception hierarchy for rust-kg.

Per-file problems (``ExtractionError``) are caught by the builder and
recorded as warnings; ``NotFoundError`` subclasses are the typed
"target absent" outcome of queries; ``BuildError`` and ``PersistError``
are fatal for the operation that raised them.
"""

from __future__ import annotations


class KnowledgeGraphError(Exception):
    """Base class for every error raised by rust-kg."""


class ExtractionError(KnowledgeGraphError):
    """A single file could not be decoded or scanned."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ConfigError(KnowledgeGraphError):
    """The configuration file exists but cannot be used."""


class BuildError(KnowledgeGraphError):
    """The project root cannot be read at all."""


class PersistError(KnowledgeGraphError):
    """A required output artifact could not be written or read back."""


class NotFoundError(KnowledgeGraphError):
    """A query target does not exist in the graph."""


class FileNotInGraphError(NotFoundError):
    def __init__(self, path: str) -> None:
        super().__init__(f"file not in graph: {path}")
        self.path = path


class ItemNotFoundError(NotFoundError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item not found: {item_id}")
        self.item_id = item_id


class TraitNotFoundError(NotFoundError):
    def __init__(self, trait_name: str) -> None:
        super().__init__(f"trait not found: {trait_name}")
        self.trait_name = trait_name


class AmbiguousNameError(KnowledgeGraphError):
    """A name given where one item is needed matches several equally ranked items."""

    def __init__(self, name: str, candidates: tuple) -> None:
        super().__init__(f"ambiguous name: {name} ({len(candidates)} candidates)")
        self.name = name
        self.candidates = candidates
