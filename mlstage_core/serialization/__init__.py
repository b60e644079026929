"""Serialization module - Portable model bundles."""

from mlstage_core.serialization.bundle import (
    BUNDLE_FORMAT,
    FORMAT_VERSION,
    BundleManifest,
    BundleReader,
    load_bundle,
    read_manifest,
    save_bundle,
)

__all__ = [
    "BUNDLE_FORMAT",
    "FORMAT_VERSION",
    "BundleManifest",
    "BundleReader",
    "save_bundle",
    "load_bundle",
    "read_manifest",
]
