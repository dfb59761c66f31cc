"""Stores: metadata, catalog and session persistence."""

from gamedock.stores.catalog import Catalog, InMemoryCatalog, YamlCatalog
from gamedock.stores.metadata import InMemoryMetadataStore, JsonFileMetadataStore, MetadataStore
from gamedock.stores.sessions import SessionStore, SqlSessionStore

__all__ = [
    "Catalog",
    "InMemoryCatalog",
    "InMemoryMetadataStore",
    "JsonFileMetadataStore",
    "MetadataStore",
    "SessionStore",
    "SqlSessionStore",
    "YamlCatalog",
]
