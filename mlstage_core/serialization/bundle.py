"""MLStage Bundles - Portable Model Persistence.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A bundle is a directory (or a zip archive with the same entries):

    bundle.json                       manifest, stage order, checksums
    root/model.json                   kind, uid, params (+ child stages)
    root/data.json                    learned artifacts, when any
    root/stages/0_<uid>/model.json    nested stages of a pipeline model
    ...

Every file is plain JSON, so a reader in any language can rebuild the
model from the manifest and the per-stage records alone.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import mlstage_core.stages  # noqa: F401  registers the built-in stage kinds
from mlstage_core.errors import (
    CorruptBundle,
    DimensionMismatch,
    InvalidParameter,
    MissingRequiredParameter,
    TypeMismatch,
)
from mlstage_core.params.param import ParamType
from mlstage_core.params.registry import StageRegistry, default_registry
from mlstage_core.pipeline.pipeline import PipelineModel
from mlstage_core.serialization import codec
from mlstage_core.stages.base import Transformer
from mlstage_core.utils.hashing import HashAlgorithm, compute_hash, verify_hash

logger = logging.getLogger(__name__)

BUNDLE_FORMAT = "mlstage-bundle"
FORMAT_VERSION = "1.0"
MANIFEST = "bundle.json"
ROOT = "root"


@dataclass
class BundleManifest:
    """Top-level bundle metadata.

    Attributes:
        root_kind: Kind of the root stage
        root_uid: UID of the root stage
        stage_order: Top-level stage UIDs in order
        checksums: Relative path -> hex digest
    """

    root_kind: str
    root_uid: str
    stage_order: List[str]
    checksums: Dict[str, str] = field(default_factory=dict)
    format: str = BUNDLE_FORMAT
    format_version: str = FORMAT_VERSION
    producer: str = "mlstage-core"
    created_at: str = ""
    root: str = ROOT
    checksum_algorithm: str = HashAlgorithm.SHA256.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "format_version": self.format_version,
            "producer": self.producer,
            "created_at": self.created_at,
            "root": self.root,
            "root_kind": self.root_kind,
            "root_uid": self.root_uid,
            "stage_order": list(self.stage_order),
            "checksum_algorithm": self.checksum_algorithm,
            "checksums": dict(self.checksums),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BundleManifest":
        if data.get("format") != BUNDLE_FORMAT:
            raise CorruptBundle(f"Not an {BUNDLE_FORMAT} manifest", path=MANIFEST)

        version = str(data.get("format_version", ""))
        if version.split(".")[0] != FORMAT_VERSION.split(".")[0]:
            raise CorruptBundle(f"Unsupported format version {version!r}", path=MANIFEST)

        try:
            manifest = cls(
                root_kind=data["root_kind"],
                root_uid=data["root_uid"],
                stage_order=list(data["stage_order"]),
                checksums=dict(data["checksums"]),
                format_version=version,
                producer=data.get("producer", ""),
                created_at=data.get("created_at", ""),
                root=data.get("root", ROOT),
                checksum_algorithm=data.get("checksum_algorithm", HashAlgorithm.SHA256.value),
            )
        except (KeyError, TypeError, ValueError) as err:
            raise CorruptBundle(f"Manifest is incomplete: {err}", path=MANIFEST) from None

        try:
            HashAlgorithm(manifest.checksum_algorithm)
        except ValueError:
            raise CorruptBundle(
                f"Unknown checksum algorithm {manifest.checksum_algorithm!r}", path=MANIFEST
            ) from None
        return manifest


def _encode_stage(stage: Transformer, prefix: str, entries: Dict[str, bytes]) -> None:
    document: Dict[str, Any] = {
        "kind": stage.kind,
        "uid": stage.uid,
        "params": codec.encode_params(stage.params),
    }

    if isinstance(stage, PipelineModel):
        children = []
        for index, child in enumerate(stage.stages):
            child_prefix = f"{prefix}/stages/{index}_{child.uid}"
            _encode_stage(child, child_prefix, entries)
            children.append(
                {"index": index, "uid": child.uid, "kind": child.kind, "path": child_prefix}
            )
        document["stages"] = children
    else:
        artifacts = stage.artifacts()
        if artifacts:
            entries[f"{prefix}/data.json"] = codec.dumps({
                "artifacts": {
                    name: codec.encode_artifact(value) for name, value in artifacts.items()
                },
            })
            document["data"] = "data.json"

    entries[f"{prefix}/model.json"] = codec.dumps(document)


def save_bundle(
    model: Transformer,
    path: Union[str, Path],
    overwrite: bool = False,
    archive: Optional[bool] = None,
    checksum_algorithm: HashAlgorithm = HashAlgorithm.SHA256,
) -> Path:
    """Write a fitted transformer (usually a PipelineModel) as a bundle.

    Args:
        model: Fitted transformer
        path: Destination directory, or a .zip file
        overwrite: Replace an existing destination
        archive: Force (True) or suppress (False) zip output; by default
            a .zip suffix selects the archive layout
        checksum_algorithm: Digest recorded for every entry

    Returns:
        The destination path

    Raises:
        TypeMismatch: If the model is not a Transformer
        FileExistsError: If the destination exists and overwrite is off
    """
    from mlstage_core import __version__

    if not isinstance(model, Transformer):
        raise TypeMismatch(f"Only fitted transformers can be saved, got {type(model).__name__}")

    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Bundle destination already exists: {path}")
    if archive is None:
        archive = path.suffix == ".zip"

    entries: Dict[str, bytes] = {}
    _encode_stage(model, ROOT, entries)

    stage_order = (
        [s.uid for s in model.stages] if isinstance(model, PipelineModel) else [model.uid]
    )
    manifest = BundleManifest(
        root_kind=model.kind,
        root_uid=model.uid,
        stage_order=stage_order,
        checksums={
            name: compute_hash(data, checksum_algorithm)
            for name, data in sorted(entries.items())
        },
        checksum_algorithm=checksum_algorithm.value,
        producer=f"mlstage-core {__version__}",
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    entries = {MANIFEST: codec.dumps(manifest.to_dict()), **entries}

    path.parent.mkdir(parents=True, exist_ok=True)

    # write beside the destination, then swap into place
    staging = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        if archive:
            with zipfile.ZipFile(staging, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for name, data in entries.items():
                    zf.writestr(name, data)
        else:
            for name, data in entries.items():
                target = staging / name
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)

        if path.exists():
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        os.replace(staging, path)
    finally:
        if staging.is_dir():
            shutil.rmtree(staging, ignore_errors=True)
        elif staging.exists():
            staging.unlink()

    logger.info(f"Saved {model.kind} {model.uid} to {path} ({len(entries)} files)")
    return path


class _BundleSource(ABC):
    """Read access to bundle entries."""

    @abstractmethod
    def read(self, name: str) -> bytes:
        """Entry contents, or CorruptBundle if absent."""

    def close(self) -> None:
        pass


class _DirectorySource(_BundleSource):
    def __init__(self, root: Path):
        self.root = root

    def read(self, name: str) -> bytes:
        target = self.root / name
        if not target.is_file():
            raise CorruptBundle("Bundle entry is missing", path=name)
        return target.read_bytes()


class _ZipSource(_BundleSource):
    def __init__(self, path: Path):
        try:
            self._zip = zipfile.ZipFile(path)
        except zipfile.BadZipFile as err:
            raise CorruptBundle(f"Not a valid archive: {err}", path=str(path)) from None

    def read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except KeyError:
            raise CorruptBundle("Bundle entry is missing", path=name) from None

    def close(self) -> None:
        self._zip.close()


class BundleReader:
    """Reads and verifies a bundle, then rebuilds its stages."""

    def __init__(self, path: Union[str, Path], registry: Optional[StageRegistry] = None):
        self.path = Path(path)
        self.registry = registry or default_registry

        if self.path.is_dir():
            self._source: _BundleSource = _DirectorySource(self.path)
        elif self.path.is_file():
            self._source = _ZipSource(self.path)
        else:
            raise FileNotFoundError(f"No bundle at {self.path}")

        try:
            self.manifest = BundleManifest.from_dict(
                codec.loads(self._source.read(MANIFEST), MANIFEST)
            )
        except Exception:
            self._source.close()
            raise
        self._algorithm = HashAlgorithm(self.manifest.checksum_algorithm)

    def __enter__(self) -> "BundleReader":
        return self

    def __exit__(self, *exc: Any) -> None:
        self._source.close()

    def read_document(self, name: str) -> Dict[str, Any]:
        """Read an entry, verifying it against the manifest checksum."""
        expected = self.manifest.checksums.get(name)
        if expected is None:
            raise CorruptBundle("Entry is not listed in the manifest", path=name)

        data = self._source.read(name)
        if not verify_hash(data, expected, self._algorithm):
            raise CorruptBundle("Checksum mismatch", path=name)
        return codec.loads(data, name)

    def load(self) -> Transformer:
        """Rebuild the root transformer.

        Raises:
            UnknownStageKind: A stage kind is not registered
            CorruptBundle: The bundle is structurally invalid
        """
        model = self._decode_stage(self.manifest.root)

        if model.uid != self.manifest.root_uid or model.kind != self.manifest.root_kind:
            raise CorruptBundle("Root stage does not match the manifest", path=self.manifest.root)

        order = (
            [s.uid for s in model.stages] if isinstance(model, PipelineModel) else [model.uid]
        )
        if order != self.manifest.stage_order:
            raise CorruptBundle("Stage order does not match the manifest", path=MANIFEST)

        logger.info(f"Loaded {model.kind} {model.uid} from {self.path}")
        return model

    def _decode_stage(self, prefix: str) -> Transformer:
        model_path = f"{prefix}/model.json"
        document = self.read_document(model_path)

        try:
            kind, uid, params = document["kind"], document["uid"], document["params"]
        except KeyError as err:
            raise CorruptBundle(f"Stage record lacks {err}", path=model_path) from None
        if not isinstance(params, dict):
            raise CorruptBundle("Stage params must be an object", path=model_path)

        cls = self.registry.get(kind)
        if not issubclass(cls, Transformer):
            raise CorruptBundle(
                f"Stage kind '{kind}' is not a transformer", path=model_path, kind=kind
            )

        if issubclass(cls, PipelineModel):
            return self._decode_pipeline(cls, uid, document, model_path)

        artifacts: Dict[str, Any] = {}
        if document.get("data"):
            data = self.read_document(f"{prefix}/{document['data']}")
            records = data.get("artifacts")
            if not isinstance(records, dict):
                raise CorruptBundle("Artifact table missing", path=f"{prefix}/{document['data']}")
            artifacts = {
                name: codec.decode_artifact(record, name) for name, record in records.items()
            }

        float_params = {
            p.name for p in cls.declared_params().values() if p.ptype == ParamType.FLOAT
        }
        try:
            return cls.from_artifacts(uid, codec.decode_params(params, float_params), artifacts)
        except (
            InvalidParameter,
            MissingRequiredParameter,
            TypeMismatch,
            DimensionMismatch,
            TypeError,
            ValueError,
        ) as err:
            raise CorruptBundle(
                f"Cannot rebuild stage: {err}", path=model_path, stage_uid=uid, stage_kind=kind
            ) from err

    def _decode_pipeline(
        self, cls: type, uid: str, document: Dict[str, Any], model_path: str
    ) -> PipelineModel:
        entries = document.get("stages")
        if not isinstance(entries, list):
            raise CorruptBundle("Pipeline record lacks a stage list", path=model_path)
        if not all(isinstance(e, dict) for e in entries):
            raise CorruptBundle("Pipeline stage entries must be objects", path=model_path)

        stages_dir = f"{model_path.rsplit('/', 1)[0]}/stages/"
        children = []
        for position, entry in enumerate(sorted(entries, key=lambda e: e.get("index", -1))):
            if entry.get("index") != position or "path" not in entry:
                raise CorruptBundle("Pipeline stage entries are out of sequence", path=model_path)
            child_path = entry["path"]
            if not _is_child_path(child_path, stages_dir):
                raise CorruptBundle(
                    f"Stage path {child_path!r} is not inside its pipeline", path=model_path
                )
            child = self._decode_stage(child_path)
            if child.uid != entry.get("uid") or child.kind != entry.get("kind"):
                raise CorruptBundle(
                    "Stage record does not match its pipeline entry", path=child_path
                )
            children.append(child)

        try:
            return cls(children, uid=uid)
        except (InvalidParameter, TypeMismatch) as err:
            raise CorruptBundle(f"Cannot rebuild pipeline: {err}", path=model_path) from err


def _is_child_path(path: Any, stages_dir: str) -> bool:
    """A child stage sits in exactly one directory under its pipeline's stages/."""
    if not isinstance(path, str) or not path.startswith(stages_dir):
        return False
    name = path[len(stages_dir):]
    return bool(name) and "/" not in name and name not in (".", "..")


def load_bundle(
    path: Union[str, Path],
    registry: Optional[StageRegistry] = None,
) -> Transformer:
    """Load a bundle written by `save_bundle`.

    Args:
        path: Bundle directory or .zip file
        registry: Registry resolving stage kinds (default registry if omitted)

    Returns:
        The fitted transformer, with original UIDs and stage order

    Raises:
        FileNotFoundError: Nothing exists at the path
        UnknownStageKind: A stage kind is not registered
        CorruptBundle: The bundle is structurally invalid
    """
    with BundleReader(path, registry) as reader:
        return reader.load()


def read_manifest(path: Union[str, Path]) -> BundleManifest:
    """Read and validate only the manifest."""
    with BundleReader(path) as reader:
        return reader.manifest


__all__ = [
    "BUNDLE_FORMAT",
    "FORMAT_VERSION",
    "BundleManifest",
    "BundleReader",
    "save_bundle",
    "load_bundle",
    "read_manifest",
]
