"""Extractor for the SWEET earth science ontologies (https://github.com/ESIPFed/sweet).

The repository archive is downloaded once, unpacked into the work directory,
and every Turtle file under ``src/`` is treated as one ontology.
"""

from __future__ import annotations

import shutil
import zipfile
from datetime import datetime
from pathlib import Path
from typing import List

from ..errors import ExtractionError
from ..records import is_empty
from .base import Extractor

RAW_FILE_URL = "https://raw.githubusercontent.com/ESIPFed/sweet/master/src/{name}"
UNZIPPED_FOLDER = "sweet-master"


class SweetOntologiesExtractor(Extractor):
    NAME = "sweet"
    SOURCE_TITLE = "Sweet Ontologies"
    SOURCE_URL = "https://github.com/ESIPFed/sweet/archive/refs/heads/master.zip"
    NAMESPACE = "extractor_sweet_ontologies"

    def unpack(self) -> Path:
        """Download the archive (cached) and extract a fresh copy; returns the ``src`` folder."""

        archive = self.cache.local_file_path_for(self.SOURCE_URL)
        work_dir = self.config.sources.resolved_work_dir()
        target = work_dir / UNZIPPED_FOLDER
        if target.exists():
            shutil.rmtree(target)
        work_dir.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(archive) as bundle:
                bundle.extractall(work_dir)
        except zipfile.BadZipFile as exc:
            raise ExtractionError(f"Unzip of {archive} failed: {exc}") from exc
        return target / "src"

    def list_turtle_files(self, folder: Path) -> List[Path]:
        return sorted(path for path in folder.rglob("*.ttl") if path.is_file())

    def run(self) -> None:
        self.narrate("Sweet Ontologies - Extraction started ...")
        for path in self.list_turtle_files(self.unpack()):
            self.process(path)

    def process(self, path: Path) -> None:
        self.narrate(f"process: {path.name}")
        graph = self.load_local_graph(path, "turtle")

        ontologies = graph.get_instances_of_type("owl:Ontology")
        if len(ontologies) != 1:
            self.skip(f"none or more than 1 ontologies found in {path.name}")
            return
        iri = ontologies[0]
        if self.already_known(iri):
            return

        record = self.get_prepared_index_entry()
        record.ontology_iri = iri
        self.add_further_metadata(record, graph)

        title = graph.get_label(iri)
        if is_empty(title):
            self.skip(f"no title found in {path.name}", iri=iri)
            return
        record.ontology_title = title
        record.latest_turtle_file = RAW_FILE_URL.format(name=path.name)

        mtime = path.stat().st_mtime
        if mtime > 0:
            record.modified = datetime.fromtimestamp(mtime).strftime("%Y-%m-%d")
        self.store_record(record)
