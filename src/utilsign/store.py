"""Filesystem-backed record store and object storage for UtilSign.

Records live as JSON, one directory per document, so a document and
everything it owns can be read, replaced or removed together. Audit logs
are append-only JSONL. PDF bytes live in a separate object area keyed by
the document's ``file_path``.

Directory layout::

    ~/.utilsign/
    ├── documents/
    │   └── <doc-id>/
    │       ├── document.json
    │       ├── placeholders.json
    │       ├── signers.json
    │       └── signatures.json
    ├── audit/              # <doc-id>.jsonl
    ├── locks/              # advisory lock files
    └── objects/            # <sender-id>/<file-id>.pdf

Every read-modify-write of a document's records happens under that
document's record lock, so the conditional updates here are safe across
threads and processes. Callers that need a whole pipeline serialized take
:meth:`RecordStore.document_lock` as well.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, TypeVar

from filelock import FileLock
from pydantic import BaseModel

from .models import (
    AuditLogEntry,
    Document,
    DocumentStatus,
    Placeholder,
    Signature,
    Signer,
    SignerStatus,
)

logger = logging.getLogger("utilsign.store")

DEFAULT_UTILSIGN_DIR = Path.home() / ".utilsign"

M = TypeVar("M", bound=BaseModel)


class StorageError(RuntimeError):
    """An object could not be read or written."""


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class RecordStore:
    """CRUD for documents, placeholders, signers, signatures and audit rows.

    Args:
        base_dir: Root directory for all utilsign data.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.base = base_dir or DEFAULT_UTILSIGN_DIR
        self._documents_dir = self.base / "documents"
        self._audit_dir = self.base / "audit"
        self._locks_dir = self.base / "locks"

        for d in (self._documents_dir, self._audit_dir, self._locks_dir):
            d.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def document_lock(self, document_id: str, timeout: float = -1) -> FileLock:
        """Advisory lock serializing whole pipelines on one document.

        Use as a context manager. ``timeout`` follows filelock semantics
        (negative waits forever) and raises ``filelock.Timeout``.
        """
        return FileLock(self._locks_dir / f"{document_id}.pipeline.lock", timeout=timeout)

    def _record_lock(self, document_id: str) -> FileLock:
        return FileLock(self._locks_dir / f"{document_id}.record.lock")

    # ------------------------------------------------------------------
    # Internal JSON helpers
    # ------------------------------------------------------------------

    def _doc_dir(self, document_id: str) -> Path:
        return self._documents_dir / document_id

    @staticmethod
    def _read_list(path: Path, model: type[M]) -> list[M]:
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        return [model.model_validate(item) for item in data]

    @staticmethod
    def _write_list(path: Path, items: Iterable[BaseModel]) -> None:
        payload = [item.model_dump(mode="json") for item in items]
        _atomic_write(path, json.dumps(payload, indent=2).encode("utf-8"))

    @staticmethod
    def _write_model(path: Path, item: BaseModel) -> None:
        _atomic_write(path, item.model_dump_json(indent=2).encode("utf-8"))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def insert_document(self, document: Document) -> Document:
        """Persist a new document row.

        Raises:
            FileExistsError: If a document with that id already exists.
        """
        doc_dir = self._doc_dir(document.id)
        with self._record_lock(document.id):
            if (doc_dir / "document.json").exists():
                raise FileExistsError(f"Document already exists: {document.id}")
            self._write_model(doc_dir / "document.json", document)
        logger.info("Saved document %s (%s)", document.file_name, document.id[:8])
        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        """Load a document by id, or None if there is no such document."""
        path = self._doc_dir(document_id) / "document.json"
        if not path.exists():
            return None
        return Document.model_validate_json(path.read_text(encoding="utf-8"))

    def list_documents(
        self,
        sender_id: Optional[str] = None,
        status: Optional[DocumentStatus] = None,
    ) -> list[Document]:
        """List documents, optionally filtered, newest first."""
        documents = []
        for doc_dir in self._documents_dir.iterdir():
            json_path = doc_dir / "document.json"
            if not json_path.exists():
                continue
            try:
                doc = Document.model_validate_json(json_path.read_text(encoding="utf-8"))
            except Exception as exc:
                logger.warning("Skipping invalid document %s: %s", doc_dir.name, exc)
                continue
            if sender_id is not None and doc.sender_id != sender_id:
                continue
            if status is not None and doc.status != status:
                continue
            documents.append(doc)
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        expected: Optional[Iterable[DocumentStatus]] = None,
    ) -> bool:
        """Set a document's status, optionally only from given statuses.

        This is the compare-and-set used for every status transition: the
        check and the write happen under the record lock.

        Args:
            document_id: Document to update.
            status: New status.
            expected: Statuses the document must currently be in. None
                means any status except the terminal ones.

        Returns:
            True if the status was written, False if the current status
            did not match.

        Raises:
            FileNotFoundError: If the document does not exist.
        """
        allowed = set(expected) if expected is not None else None
        path = self._doc_dir(document_id) / "document.json"
        with self._record_lock(document_id):
            if not path.exists():
                raise FileNotFoundError(f"Document not found: {document_id}")
            doc = Document.model_validate_json(path.read_text(encoding="utf-8"))
            if allowed is None:
                if doc.status.is_terminal:
                    return False
            elif doc.status not in allowed:
                return False
            doc.status = status
            doc.updated_at = datetime.now(timezone.utc)
            self._write_model(path, doc)
        logger.info("Document %s -> %s", document_id[:8], status.value)
        return True

    def delete_document(self, document_id: str) -> bool:
        """Delete a document and every record it owns.

        Audit rows are kept; they only reference the document.
        """
        doc_dir = self._doc_dir(document_id)
        with self._record_lock(document_id):
            if not doc_dir.exists():
                return False
            shutil.rmtree(doc_dir)
        logger.info("Deleted document %s", document_id[:8])
        return True

    # ------------------------------------------------------------------
    # Placeholders
    # ------------------------------------------------------------------

    def replace_placeholders(
        self, document_id: str, placeholders: list[Placeholder]
    ) -> None:
        """Swap a document's whole placeholder set."""
        with self._record_lock(document_id):
            self._write_list(self._doc_dir(document_id) / "placeholders.json", placeholders)

    def get_placeholders(
        self, document_id: str, assigned_to: Optional[str] = None
    ) -> list[Placeholder]:
        """Placeholders of a document, optionally only one signer's."""
        items = self._read_list(
            self._doc_dir(document_id) / "placeholders.json", Placeholder
        )
        if assigned_to is not None:
            items = [p for p in items if p.assigned_signer_email == assigned_to]
        return items

    # ------------------------------------------------------------------
    # Signers
    # ------------------------------------------------------------------

    def replace_signers(self, document_id: str, signers: list[Signer]) -> None:
        """Swap a document's signer set, dropping the old signers' signatures."""
        doc_dir = self._doc_dir(document_id)
        with self._record_lock(document_id):
            self._write_list(doc_dir / "signers.json", signers)
            self._write_list(doc_dir / "signatures.json", [])

    def list_signers(self, document_id: str) -> list[Signer]:
        """Signers of a document in signing order."""
        signers = self._read_list(self._doc_dir(document_id) / "signers.json", Signer)
        return sorted(signers, key=lambda s: s.priority)

    def find_signer(self, document_id: str, email: str) -> Optional[Signer]:
        for signer in self.list_signers(document_id):
            if signer.email == email:
                return signer
        return None

    def get_signer(self, signer_id: str) -> Optional[Signer]:
        """Look a signer up by id across all documents."""
        for doc_dir in self._documents_dir.iterdir():
            for signer in self._read_list(doc_dir / "signers.json", Signer):
                if signer.id == signer_id:
                    return signer
        return None

    def upsert_signer(
        self,
        document_id: str,
        email: str,
        *,
        status: SignerStatus,
        signed_at: Optional[datetime] = None,
        priority: int = 1,
    ) -> Signer:
        """Create or update the single signer row for (document, email).

        An existing row keeps its id and priority; status and signed_at
        are refreshed. Safe to repeat.
        """
        path = self._doc_dir(document_id) / "signers.json"
        with self._record_lock(document_id):
            signers = self._read_list(path, Signer)
            for signer in signers:
                if signer.email == email:
                    signer.status = status
                    signer.signed_at = signed_at
                    break
            else:
                signer = Signer(
                    document_id=document_id,
                    email=email,
                    priority=priority,
                    status=status,
                    signed_at=signed_at,
                )
                signers.append(signer)
            self._write_list(path, signers)
        return signer

    def update_signer_status(
        self,
        signer: Signer,
        status: SignerStatus,
        *,
        signed_at: Optional[datetime] = None,
        expected: Optional[Iterable[SignerStatus]] = None,
    ) -> bool:
        """Compare-and-set a signer's status.

        Returns:
            False if the signer is gone or not in one of ``expected``.
        """
        allowed = set(expected) if expected is not None else None
        path = self._doc_dir(signer.document_id) / "signers.json"
        with self._record_lock(signer.document_id):
            signers = self._read_list(path, Signer)
            for current in signers:
                if current.id == signer.id:
                    break
            else:
                return False
            if allowed is not None and current.status not in allowed:
                return False
            current.status = status
            if signed_at is not None:
                current.signed_at = signed_at
            self._write_list(path, signers)
        signer.status = status
        if signed_at is not None:
            signer.signed_at = signed_at
        return True

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def replace_signatures(
        self, document_id: str, signer_id: str, signatures: list[Signature]
    ) -> None:
        """Delete a signer's signatures and insert ``signatures`` in one write."""
        path = self._doc_dir(document_id) / "signatures.json"
        with self._record_lock(document_id):
            kept = [s for s in self._read_list(path, Signature) if s.signer_id != signer_id]
            self._write_list(path, kept + list(signatures))

    def list_signatures(
        self, document_id: str, signer_id: Optional[str] = None
    ) -> list[Signature]:
        items = self._read_list(self._doc_dir(document_id) / "signatures.json", Signature)
        if signer_id is not None:
            items = [s for s in items if s.signer_id == signer_id]
        return items

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditLogEntry) -> None:
        """Append an audit entry to the document's JSONL log."""
        log_path = self._audit_dir / f"{entry.document_id}.jsonl"
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(entry.model_dump_json() + "\n")

    def get_audit_trail(self, document_id: str) -> list[AuditLogEntry]:
        """Audit entries of a document in the order they were written."""
        log_path = self._audit_dir / f"{document_id}.jsonl"
        if not log_path.exists():
            return []

        entries = []
        for line in log_path.read_text(encoding="utf-8").strip().splitlines():
            try:
                entries.append(AuditLogEntry.model_validate_json(line))
            except Exception:
                continue
        return entries


class ObjectStorage:
    """Blob storage for PDF bytes, keyed by relative path.

    Args:
        base_dir: Root directory; objects go under ``<base_dir>/objects``.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.root = (base_dir or DEFAULT_UTILSIGN_DIR) / "objects"
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Invalid object key: {key}")
        return path

    def upload(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/pdf",
        upsert: bool = True,
    ) -> None:
        """Store ``data`` under ``key``.

        Raises:
            StorageError: If the key exists and ``upsert`` is False, or the
                write fails.
        """
        path = self._resolve(key)
        if not upsert and path.exists():
            raise StorageError(f"Object already exists: {key}")
        try:
            _atomic_write(path, data)
        except OSError as exc:
            raise StorageError(f"Upload failed for {key}: {exc}") from exc
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)

    def download(self, key: str) -> bytes:
        """Read the bytes stored under ``key``.

        Raises:
            StorageError: If the object is missing or unreadable.
        """
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Download failed for {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()
