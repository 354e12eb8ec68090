"""Document store collaborator.

Extraction only needs a narrow slice of the store: read a cached copy of
the file, write OCR output, load and save the document record, and list
known entity names for prompt context. ``DocumentStore`` is that slice;
``InMemoryStore`` implements it for the CLI and tests.

``apply_hints`` is the one piece of hint policy that touches the store:
accepted hints only fill in fields the user has not already edited.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from docextract.core.errors import StoreError
from docextract.pydantic_models.hints import EntityContext, ExtractionHints

logger = logging.getLogger(__name__)


@dataclass
class Document:
    """A stored document record."""

    id: int
    file_name: str
    mime_type: str
    title: str = ""
    notes: str = ""
    size: int = 0
    extracted_text: str = ""
    ocr_text: str = ""
    ocr_tsv: str = ""


class DocumentStore(Protocol):
    """Store operations consumed by extraction."""

    def extract_cached_copy(self, doc_id: int) -> Path:
        """Write the document's bytes to a local cache file and return its path."""
        ...

    def update_ocr(self, doc_id: int, text: str, tsv: str) -> None:
        """Persist OCR text and token table. Raises StoreError."""
        ...

    def get_document(self, doc_id: int) -> Document:
        """Load a document record. Raises StoreError."""
        ...

    def update_document(self, doc: Document) -> None:
        """Save a document record. Raises StoreError."""
        ...

    def list_known_entity_names(self) -> tuple[list[str], list[str], list[str]]:
        """Return (vendors, projects, appliances)."""
        ...


def title_from_filename(file_name: str) -> str:
    """Derive the default document title: file stem with _ and - as spaces."""
    stem = Path(file_name).stem
    return " ".join(stem.replace("_", " ").replace("-", " ").split())


def entity_context(store: DocumentStore | None) -> EntityContext:
    """Known entity names for the prompt. A failing store yields none."""
    if store is None:
        return EntityContext()
    try:
        vendors, projects, appliances = store.list_known_entity_names()
    except Exception as e:  # prompt context is optional
        logger.warning(f"Entity lookup failed, prompting without names: {e}")
        return EntityContext()
    return EntityContext(vendors=list(vendors), projects=list(projects), appliances=list(appliances))


def apply_hints(store: DocumentStore, doc_id: int, hints: ExtractionHints) -> Document:
    """Write accepted hints into the document record.

    The title is replaced only while it still equals the filename-derived
    default. The summary fills the notes only when notes are empty.

    Raises:
        StoreError: Loading or saving the record failed.
    """
    doc = store.get_document(doc_id)
    if hints.title_suggestion and doc.title == title_from_filename(doc.file_name):
        doc.title = hints.title_suggestion
    if hints.summary and not doc.notes:
        doc.notes = hints.summary
    store.update_document(doc)
    return doc


@dataclass
class InMemoryStore:
    """Dict-backed DocumentStore.

    Cached copies are written under ``cache_dir`` (a fresh temporary
    directory when not given).
    """

    documents: dict[int, Document] = field(default_factory=dict)
    blobs: dict[int, bytes] = field(default_factory=dict)
    vendors: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    appliances: list[str] = field(default_factory=list)
    cache_dir: Path | None = None

    def add_document(self, file_name: str, data: bytes, mime_type: str, title: str | None = None) -> Document:
        """Store a new document; its title defaults to the filename-derived one."""
        doc_id = max(self.documents, default=0) + 1
        doc = Document(
            id=doc_id,
            file_name=file_name,
            mime_type=mime_type,
            title=title if title is not None else title_from_filename(file_name),
            size=len(data),
        )
        self.documents[doc_id] = doc
        self.blobs[doc_id] = data
        return doc

    def _require(self, doc_id: int) -> Document:
        try:
            return self.documents[doc_id]
        except KeyError:
            raise StoreError(f"document {doc_id} not found") from None

    def extract_cached_copy(self, doc_id: int) -> Path:
        doc = self._require(doc_id)
        if self.cache_dir is None:
            self.cache_dir = Path(tempfile.mkdtemp(prefix="docextract-cache-"))
        path = self.cache_dir / f"{doc_id}-{Path(doc.file_name).name}"
        path.write_bytes(self.blobs.get(doc_id, b""))
        return path

    def update_ocr(self, doc_id: int, text: str, tsv: str) -> None:
        doc = self._require(doc_id)
        doc.ocr_text = text
        doc.ocr_tsv = tsv

    def get_document(self, doc_id: int) -> Document:
        doc = self._require(doc_id)
        # Callers edit the copy and save it back through update_document
        return Document(**vars(doc))

    def update_document(self, doc: Document) -> None:
        self._require(doc.id)
        self.documents[doc.id] = doc

    def list_known_entity_names(self) -> tuple[list[str], list[str], list[str]]:
        return list(self.vendors), list(self.projects), list(self.appliances)
