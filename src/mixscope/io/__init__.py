"""Manifest input/output."""

from mixscope.io.exporter import ManifestExporter, ManifestMetadata

__all__ = ["ManifestExporter", "ManifestMetadata"]
