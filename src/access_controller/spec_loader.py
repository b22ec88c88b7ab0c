"""Declaration file loading with validation.

Files are size-checked before they are read and every document is
validated into its pydantic model before anything else sees it.

Each YAML file holds one or more documents. A document is either
Kubernetes-style::

    apiVersion: access-controller/v1
    kind: Grant
    metadata:
      name: analysts-read
    spec:
      name: analysts-read
      dataSource: ds-warehouse
      ...

or flat, with ``kind`` next to the fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import get_spec_class

logger = logging.getLogger(__name__)

SPEC_FILE_SUFFIXES = (".yaml", ".yml")


class SpecLoadError(Exception):
    """Raised when a declaration file cannot be read, parsed or validated."""


@dataclass(frozen=True)
class Declaration:
    """One validated declaration and where it came from."""

    kind: str
    name: str
    spec: BaseModel
    source: Path


def _format_validation_error(e: ValidationError) -> str:
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return "\n".join(errors)


def _read_file(path: Path) -> str:
    # Size check happens before the file is read into memory
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {path}: {e}") from e


def parse_document(raw_data: Any, source: Path) -> Declaration:
    """Validate one YAML document into a Declaration.

    Raises:
        SpecLoadError: If the document is malformed or fails validation.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec document must be a YAML mapping: {source}")

    kind = raw_data.get("kind")
    if not isinstance(kind, str) or not kind:
        raise SpecLoadError(f"Spec document has no kind: {source}")

    metadata = raw_data.get("metadata") or {}
    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = {k: v for k, v in raw_data.items() if k not in ("kind", "metadata")}

    try:
        spec_class = get_spec_class(kind)
    except ValueError as e:
        raise SpecLoadError(f"{source}: {e}") from e

    try:
        spec = spec_class.model_validate(spec_data)
    except ValidationError as e:
        raise SpecLoadError(
            f"Validation failed for {kind} in {source}:\n{_format_validation_error(e)}"
        ) from e

    name = metadata.get("name") if isinstance(metadata, dict) else None
    if not name:
        name = getattr(spec, "name", None) or getattr(spec, "id", None) or source.stem
    return Declaration(kind=kind, name=str(name), spec=spec, source=source)


def load_file(path: Path) -> list[Declaration]:
    """Load every declaration in one YAML file."""
    content = _read_file(path)
    try:
        documents = [d for d in yaml.safe_load_all(content) if d is not None]
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    return [parse_document(document, path) for document in documents]


def load_declarations(specs_dir: Path) -> list[Declaration]:
    """Load and validate every declaration file in a directory.

    Files are read in sorted order. All files are attempted; every failure
    is reported together in one SpecLoadError.

    Raises:
        SpecLoadError: If the directory is missing or any file is invalid.
    """
    if not specs_dir.is_dir():
        raise SpecLoadError(f"Specs directory does not exist: {specs_dir}")

    declarations: list[Declaration] = []
    failures: list[str] = []
    for path in sorted(specs_dir.iterdir()):
        if path.suffix not in SPEC_FILE_SUFFIXES or not path.is_file():
            continue
        try:
            declarations.extend(load_file(path))
        except SpecLoadError as e:
            failures.append(str(e))

    if failures:
        raise SpecLoadError("\n".join(failures))

    logger.info(
        "Loaded declarations",
        extra={"specs_dir": str(specs_dir), "count": len(declarations)},
    )
    return declarations
