"""Manifest builders: KOS (TID 2010) and MADO (TID 1600)."""

from .base import ManifestBuilder, instance_sort_key, sort_instances
from .kos import KosManifestBuilder, build_kos
from .mado import MadoManifestBuilder, MadoOptions, build_mado
from .query import ManifestCreator, QueryService

__all__ = [
    "KosManifestBuilder",
    "MadoManifestBuilder",
    "MadoOptions",
    "ManifestBuilder",
    "ManifestCreator",
    "QueryService",
    "build_kos",
    "build_mado",
    "instance_sort_key",
    "sort_instances",
]
