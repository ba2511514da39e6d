"""Metadata generator — runs controller extraction over a whole program.

One run walks every top-level class of the analyzed files, keeps the ones
decorated with ``Route`` and aggregates them, together with the registry of
reference types resolved along the way, into a single ``Metadata``.
"""

from __future__ import annotations

import glob
import logging
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import Controller, Metadata, ReferenceType
from routemeta.ir.program import Program
from routemeta.metadata.controller_generator import ControllerGenerator
from routemeta.routes.paths import normalise_path

logger = logging.getLogger(__name__)


class MetadataGenerator:
    """Owns the program and the run-scoped reference-type registry."""

    def __init__(
        self,
        entry_file: str | Path | None = None,
        controller_path_globs: Iterable[str] = (),
        root: str | Path | None = None,
        program: Program | None = None,
    ):
        if program is None:
            files = resolve_source_files(entry_file, controller_path_globs)
            program = Program.from_paths(files, root=root)
        self.program = program
        self.reference_type_map: dict[str, ReferenceType] = {}

    def generate(self) -> Metadata:
        self.reference_type_map = {}

        controllers = []
        for declaration in self.program.iter_classes():
            generator = ControllerGenerator(declaration, self)
            if not generator.is_valid():
                continue
            controllers.append(generator.generate())

        check_for_method_signature_duplicates(controllers)
        logger.info(
            "Generated metadata for %d controller(s) and %d reference type(s)",
            len(controllers),
            len(self.reference_type_map),
        )
        return Metadata(controllers=controllers, reference_type_map=dict(self.reference_type_map))

    def get_reference_type(self, ref_name: str) -> ReferenceType | None:
        return self.reference_type_map.get(ref_name)

    def add_reference_type(self, reference: ReferenceType) -> None:
        if not reference.ref_name:
            raise GenerateMetadataError("No reference type name found")
        if reference.ref_name in self.reference_type_map:
            return
        logger.debug("Registered reference type %s (%s)", reference.ref_name, reference.data_type)
        self.reference_type_map[reference.ref_name] = reference


def resolve_source_files(
    entry_file: str | Path | None, controller_path_globs: Iterable[str] = ()
) -> list[Path]:
    files: list[Path] = []
    if entry_file is not None:
        files.append(Path(entry_file))
    for pattern in controller_path_globs:
        matches = sorted(glob.glob(pattern, recursive=True))
        files.extend(Path(match) for match in matches if match.endswith(".py"))
    if not files:
        raise GenerateMetadataError("No source files to analyze; set an entry file or controller globs.")
    return files


def check_for_method_signature_duplicates(controllers: list[Controller]) -> None:
    """Two handlers may not serve the same verb on the same full path."""
    signatures: dict[tuple[str, str], list[str]] = defaultdict(list)
    for controller in controllers:
        for method in controller.methods:
            full_path = normalise_path(f"{controller.path}/{method.path}", "/", "", False)
            signatures[(method.method, full_path)].append(f"{controller.name}#{method.name}")

    for (verb, full_path), handlers in signatures.items():
        if len(handlers) > 1:
            raise GenerateMetadataError(
                f"Duplicate method signature @{verb}({full_path}) found in controllers: "
                f"{', '.join(handlers)}"
            )
