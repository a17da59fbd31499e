"""UtilSign completion engine — the document signing workflow.

Owns every state transition of documents and signers. A completion runs
strictly in order::

    validating -> persisting signatures -> burning -> uploading -> finalizing

Validation rejects before anything is written. Once signatures are
persisted, a storage or PDF failure aborts with a :class:`DependencyError`
and leaves the document status untouched; the caller retries the whole
submission, which is safe because signatures are fully replaced, the signer
row is upserted, and burning is a pure function of the current bytes and
the submitted images.

Pipelines that can complete a document hold a per-document lock for their
whole run, and the final status write is a compare-and-set, so two racing
submissions cannot both finalize.
"""

import hashlib
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Sequence, Union
from uuid import uuid4

from filelock import Timeout
from pydantic import ValidationError

from .audit import AuditLog
from .burn import BurnResult, PdfBurnError, burn_signatures
from .config import ServiceConfig
from .errors import (
    BadRequestError,
    ConflictError,
    DependencyError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    AuditEvent,
    AuditLogEntry,
    BurnInput,
    BurnReport,
    Caller,
    Document,
    DocumentStatus,
    DocumentStatusView,
    DocumentType,
    Placeholder,
    PlaceholderSpec,
    Signature,
    SignatureItem,
    SignatureSubmission,
    Signer,
    SignerSpec,
    SignerStatus,
    SignerView,
    SubmitAction,
    SubmitResult,
)
from .notify import LogMailer, Notifier, build_mailer
from .store import ObjectStorage, RecordStore, StorageError

logger = logging.getLogger("utilsign.engine")

PDF_CONTENT_TYPE = "application/pdf"

Burner = Callable[[bytes, Sequence[BurnInput]], BurnResult]
SubmissionLike = Union[SignatureSubmission, dict[str, Any], None]


class CompletionEngine:
    """Signing workflow over a record store and an object storage.

    Holds no per-request state: construct one per request (see
    :meth:`from_config`) or share one whose collaborators are safe to share.

    Args:
        store: Record store for documents, signers, signatures, audit rows.
        storage: Object storage holding the PDF bytes.
        audit: Audit sink. Defaults to one writing through ``store``.
        notifier: Email composer. Defaults to logging only.
        burner: PDF burn function, substitutable in tests.
        max_upload_bytes: Largest accepted upload.
        lock_timeout: Seconds to wait for a concurrent completion.
    """

    def __init__(
        self,
        store: RecordStore,
        storage: ObjectStorage,
        audit: Optional[AuditLog] = None,
        notifier: Optional[Notifier] = None,
        *,
        burner: Burner = burn_signatures,
        max_upload_bytes: int = 10 * 1024 * 1024,
        lock_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.storage = storage
        self.audit = audit or AuditLog(store)
        self.notifier = notifier or Notifier(LogMailer(), "")
        self.burner = burner
        self.max_upload_bytes = max_upload_bytes
        self.lock_timeout = lock_timeout

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "CompletionEngine":
        """Wire a fresh engine and its collaborators from configuration."""
        store = RecordStore(config.data_dir)
        return cls(
            store,
            ObjectStorage(config.data_dir),
            AuditLog(store),
            Notifier(build_mailer(config), config.app_url),
            max_upload_bytes=config.max_upload_bytes,
            lock_timeout=config.lock_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    @staticmethod
    def hash_bytes(data: bytes) -> str:
        """Hex-encoded SHA-256 of ``data``."""
        return hashlib.sha256(data).hexdigest()

    # ------------------------------------------------------------------
    # Upload & preparation
    # ------------------------------------------------------------------

    def create_document(
        self,
        caller: Optional[Caller],
        file_name: str,
        data: bytes,
        *,
        content_type: str = PDF_CONTENT_TYPE,
        doc_type: DocumentType = DocumentType.REQUEST_SIGN,
        category: Optional[str] = None,
    ) -> Document:
        """Store an uploaded PDF and create its draft document row.

        Raises:
            UnauthorizedError: No caller.
            BadRequestError: Not a PDF, empty, or too large.
            DependencyError: The bytes could not be stored.
        """
        caller = self._require_caller(caller)
        if content_type != PDF_CONTENT_TYPE:
            raise BadRequestError("Only PDF files are accepted")
        if not data:
            raise BadRequestError("No file provided")
        if len(data) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise BadRequestError(f"File must be {limit_mb} MB or smaller")

        file_path = f"{caller.user_id}/{uuid4()}.pdf"
        try:
            self.storage.upload(file_path, data, content_type=PDF_CONTENT_TYPE, upsert=False)
        except StorageError as exc:
            logger.error("Upload of %s failed: %s", file_name, exc)
            raise DependencyError("Storage upload failed") from exc

        doc = self.store.insert_document(
            Document(
                file_path=file_path,
                file_name=file_name,
                sender_id=caller.user_id,
                sender_email=caller.email,
                type=doc_type,
                category=category,
            )
        )
        self.audit.log_event(
            doc.id,
            caller.email,
            AuditEvent.DOCUMENT_CREATED,
            metadata={"fileName": file_name, "fileSizeBytes": len(data)},
        )
        return doc

    def save_placeholders(
        self,
        caller: Optional[Caller],
        document_id: str,
        specs: Sequence[Union[PlaceholderSpec, dict[str, Any]]],
    ) -> list[Placeholder]:
        """Replace a draft document's placeholder set.

        Raises:
            BadRequestError: Empty or invalid placeholder list.
            ConflictError: The document is no longer a draft.
        """
        doc = self._owned_document(caller, document_id)
        if doc.status != DocumentStatus.DRAFT:
            raise ConflictError("Placeholders cannot change once a document is sent")
        if not specs:
            raise BadRequestError("placeholders array is required")
        try:
            parsed = [PlaceholderSpec.model_validate(s) for s in specs]
        except ValidationError as exc:
            raise BadRequestError(f"Invalid placeholder: {exc.errors()[0]['msg']}") from exc

        placeholders = [
            Placeholder(
                document_id=doc.id,
                page_number=s.page_number,
                x_percent=s.x_percent,
                y_percent=s.y_percent,
                width_percent=s.width_percent,
                height_percent=s.height_percent,
                label=s.label,
                assigned_signer_email=s.assigned_signer_email,
                **({"id": s.id} if s.id else {}),
            )
            for s in parsed
        ]
        if len({p.id for p in placeholders}) != len(placeholders):
            raise BadRequestError("Placeholder ids must be unique")

        self.store.replace_placeholders(doc.id, placeholders)
        logger.info("Saved %d placeholder(s) on %s", len(placeholders), doc.id[:8])
        return placeholders

    # ------------------------------------------------------------------
    # Self-sign completion
    # ------------------------------------------------------------------

    def complete_self_sign(
        self,
        caller: Optional[Caller],
        document_id: str,
        submission: SubmissionLike,
    ) -> BurnReport:
        """Sign every field of a self-sign document and complete it.

        Args:
            caller: The document owner.
            document_id: Document to complete.
            submission: ``{"signatures": [{"placeholderId", "imageBase64"}]}``.

        Returns:
            Per-signature burn report (skipped entries are not an error).

        Raises:
            UnauthorizedError: No caller.
            NotFoundError: No such document owned by the caller.
            BadRequestError: Wrong document type or malformed, partial or
                duplicated submission.
            ConflictError: Already completed, or another completion holds
                the document.
            ForbiddenError: A placeholder is not assigned to the caller.
            DependencyError: Storage or PDF failure after persisting.
        """
        caller = self._require_caller(caller)
        # Unknown ids never reach the lock directory.
        self._owned_document(caller, document_id)
        with self._exclusive(document_id):
            # validating
            doc = self._owned_document(caller, document_id)
            if doc.type != DocumentType.SELF_SIGN:
                raise BadRequestError("This document is not a self-sign document")
            if doc.status == DocumentStatus.COMPLETED:
                raise ConflictError("Document is already completed")
            if doc.status == DocumentStatus.CANCELLED:
                raise ConflictError("Document has been cancelled")

            items = self._parse_submission(submission)
            placeholders = self.store.get_placeholders(doc.id, assigned_to=caller.email)
            if not placeholders:
                raise BadRequestError("No placeholders found for self-sign")
            pairs = self._match_placeholders(items, placeholders)

            # persisting signatures
            signer = self.store.upsert_signer(
                doc.id,
                caller.email,
                status=SignerStatus.SIGNED,
                signed_at=datetime.now(timezone.utc),
            )
            self._replace_signatures(doc, signer, pairs)
            self.audit.log_event(
                doc.id,
                caller.email,
                AuditEvent.SIGNATURE_SUBMITTED,
                signer_id=signer.id,
                metadata={"count": len(pairs), "mode": DocumentType.SELF_SIGN.value},
            )

            # burning + uploading
            report = self._burn_and_upload(doc, pairs, caller.email, signer.id)

            # finalizing
            if self.store.update_document_status(doc.id, DocumentStatus.COMPLETED):
                self.audit.log_event(
                    doc.id,
                    caller.email,
                    AuditEvent.DOCUMENT_COMPLETED,
                    signer_id=signer.id,
                    metadata={"mode": DocumentType.SELF_SIGN.value},
                )
                logger.info("Self-signed document %s completed", doc.id[:8])
            else:
                logger.warning("Document %s was finalized concurrently", doc.id[:8])
            return report

    # ------------------------------------------------------------------
    # Request-sign workflow
    # ------------------------------------------------------------------

    def send_document(
        self,
        caller: Optional[Caller],
        document_id: str,
        signers: Sequence[Union[SignerSpec, dict[str, Any]]],
        message: Optional[str] = None,
    ) -> list[Signer]:
        """Route a draft document to its signers in priority order.

        The lowest priority signer is invited right away; everyone else is
        told where they are in the queue. Email failures are recorded in the
        audit trail and do not fail the send.

        Raises:
            BadRequestError: Self-sign document, bad signer list, or a
                signer without placeholders.
            ConflictError: The document has already been sent.
        """
        caller = self._require_caller(caller)
        self._owned_document(caller, document_id)
        with self._exclusive(document_id):
            doc = self._owned_document(caller, document_id)
            if doc.type != DocumentType.REQUEST_SIGN:
                raise BadRequestError("Self-sign documents cannot be sent")
            if doc.status != DocumentStatus.DRAFT:
                raise ConflictError("Document has already been sent")
            if not signers:
                raise BadRequestError("signers array is required")
            try:
                specs = [SignerSpec.model_validate(s) for s in signers]
            except ValidationError as exc:
                raise BadRequestError(f"Invalid signer: {exc.errors()[0]['msg']}") from exc

            if len({s.priority for s in specs}) != len(specs):
                raise BadRequestError("Each signer must have a unique priority")
            if len({s.email for s in specs}) != len(specs):
                raise BadRequestError("Each signer may only appear once")
            assigned = {p.assigned_signer_email for p in self.store.get_placeholders(doc.id)}
            missing = [s.email for s in specs if s.email not in assigned]
            if missing:
                raise BadRequestError(f"No placeholders assigned to {', '.join(missing)}")

            rows = sorted(
                (Signer(document_id=doc.id, email=s.email, priority=s.priority) for s in specs),
                key=lambda s: s.priority,
            )
            # The draft is claimed before any signer row is written.
            if not self.store.update_document_status(
                doc.id, DocumentStatus.SENT, expected=[DocumentStatus.DRAFT]
            ):
                raise ConflictError("Document has already been sent")
            self.store.replace_signers(doc.id, rows)

            first, others = rows[0], rows[1:]
            self.store.update_signer_status(
                first, SignerStatus.AWAITING_TURN, expected=[SignerStatus.PENDING]
            )
            self.audit.log_event(
                doc.id, caller.email, AuditEvent.DOCUMENT_SENT, metadata={"signerCount": len(rows)}
            )

        try:
            self.notifier.signing_request(first.email, caller.email, doc.file_name, first.id, message)
            self.audit.log_event(
                doc.id, caller.email, AuditEvent.EMAIL_DELIVERED,
                signer_id=first.id, metadata={"to": first.email},
            )
        except Exception as exc:
            logger.warning("Signing request to %s failed: %s", first.email, exc)
            self.audit.log_event(
                doc.id, caller.email, AuditEvent.EMAIL_FAILED,
                signer_id=first.id, metadata={"to": first.email, "error": str(exc)},
            )

        for signer in others:
            try:
                self.notifier.broadcast(
                    signer.email, caller.email, doc.file_name, first.email,
                    signer.priority, len(rows),
                )
                self.audit.log_event(
                    doc.id, caller.email, AuditEvent.BROADCAST_SENT,
                    signer_id=signer.id,
                    metadata={"to": signer.email, "position": signer.priority},
                )
            except Exception as exc:
                logger.warning("Broadcast to %s failed: %s", signer.email, exc)
                self.audit.log_event(
                    doc.id, caller.email, AuditEvent.EMAIL_FAILED,
                    signer_id=signer.id,
                    metadata={"to": signer.email, "reason": "broadcast_failed"},
                )

        logger.info("Sent document %s to %d signer(s)", doc.id[:8], len(rows))
        return self.store.list_signers(doc.id)

    def signer_view(self, signer_id: str) -> SignerView:
        """The document name and placeholders a signer is asked to fill.

        Raises:
            NotFoundError: Unknown signer or document.
        """
        signer = self.store.get_signer(signer_id)
        if signer is None:
            raise NotFoundError("Signer not found")
        doc = self.store.get_document(signer.document_id)
        if doc is None:
            raise NotFoundError("Document not found")

        self.audit.log_event(
            doc.id, signer.email, AuditEvent.PLACEHOLDER_VIEWED, signer_id=signer.id
        )
        return SignerView(
            document_id=doc.id,
            document_name=doc.file_name,
            signer_email=signer.email,
            placeholders=self.store.get_placeholders(doc.id, assigned_to=signer.email),
        )

    def submit_signer(
        self,
        signer_id: str,
        action: Union[SubmitAction, str],
        submission: SubmissionLike = None,
    ) -> SubmitResult:
        """Sign or decline on behalf of the signer whose turn it is.

        Signing burns the signer's images, then either hands the document
        to the next pending signer or, if none is left, completes it.
        Declining cancels the document.

        Raises:
            BadRequestError: Unknown action or bad submission.
            ForbiddenError: Not this signer's turn, or a foreign placeholder.
            NotFoundError: The signer's document is gone.
            ConflictError: The document is already completed or cancelled.
            DependencyError: Storage or PDF failure after persisting.
        """
        try:
            action = SubmitAction(action)
        except ValueError:
            raise BadRequestError('action must be "sign" or "decline"') from None

        signer = self.store.get_signer(signer_id)
        if signer is None:
            raise ForbiddenError("Invalid or already-processed signer")

        with self._exclusive(signer.document_id):
            signer = self.store.get_signer(signer_id)
            if signer is None or signer.status != SignerStatus.AWAITING_TURN:
                raise ForbiddenError("Invalid or already-processed signer")
            doc = self.store.get_document(signer.document_id)
            if doc is None:
                raise NotFoundError("Document not found")
            if doc.status.is_terminal:
                raise ConflictError(f"Document is already {doc.status.value}")

            if action == SubmitAction.DECLINE:
                self._decline(doc, signer)
                return SubmitResult(action=action)
            return SubmitResult(action=action, final=self._sign_turn(doc, signer, submission))

    def _decline(self, doc: Document, signer: Signer) -> None:
        now = datetime.now(timezone.utc)
        self.store.update_signer_status(
            signer, SignerStatus.DECLINED, expected=[SignerStatus.AWAITING_TURN]
        )
        self.store.update_document_status(doc.id, DocumentStatus.CANCELLED)
        self.audit.log_event(
            doc.id, signer.email, AuditEvent.SIGNER_DECLINED, signer_id=signer.id
        )
        try:
            self.notifier.declined(
                self._sender_email(doc), doc.file_name, signer.email, now.isoformat()
            )
        except Exception as exc:
            logger.warning("Decline notice for %s failed: %s", doc.id[:8], exc)
        logger.info("Signer %s declined document %s", signer.email, doc.id[:8])

    def _sign_turn(self, doc: Document, signer: Signer, submission: SubmissionLike) -> bool:
        items = self._parse_submission(submission)
        placeholders = self.store.get_placeholders(doc.id, assigned_to=signer.email)
        pairs = self._match_placeholders(items, placeholders, owner="you")

        self._replace_signatures(doc, signer, pairs)
        self.audit.log_event(
            doc.id, signer.email, AuditEvent.SIGNATURE_SUBMITTED,
            signer_id=signer.id, metadata={"count": len(pairs)},
        )

        self._burn_and_upload(doc, pairs, signer.email, signer.id)

        self.store.update_signer_status(
            signer,
            SignerStatus.SIGNED,
            signed_at=datetime.now(timezone.utc),
            expected=[SignerStatus.AWAITING_TURN],
        )
        self.store.update_document_status(
            doc.id, DocumentStatus.IN_PROGRESS, expected=[DocumentStatus.SENT]
        )

        sender_email = self._sender_email(doc)
        all_signers = self.store.list_signers(doc.id)
        pending = [s for s in all_signers if s.status == SignerStatus.PENDING]
        if pending:
            self._advance(doc, signer, pending[0], all_signers, sender_email)
            return False

        if self.store.update_document_status(
            doc.id,
            DocumentStatus.COMPLETED,
            expected=[DocumentStatus.SENT, DocumentStatus.IN_PROGRESS],
        ):
            self.audit.log_event(
                doc.id, sender_email, AuditEvent.DOCUMENT_COMPLETED, signer_id=signer.id
            )
            self._notify_completed(doc, sender_email)
            logger.info("Document %s completed by its last signer", doc.id[:8])
        return True

    def _advance(
        self,
        doc: Document,
        signer: Signer,
        next_signer: Signer,
        all_signers: list[Signer],
        sender_email: str,
    ) -> None:
        self.store.update_signer_status(
            next_signer, SignerStatus.AWAITING_TURN, expected=[SignerStatus.PENDING]
        )
        self.audit.log_event(
            doc.id, sender_email, AuditEvent.NEXT_SIGNER_NOTIFIED,
            signer_id=next_signer.id, metadata={"to": next_signer.email},
        )

        remaining = sum(
            1 for s in all_signers
            if s.status != SignerStatus.SIGNED and s.id != signer.id
        )
        try:
            self.notifier.your_turn(
                next_signer.email, doc.file_name, signer.email, next_signer.id,
                next_signer.priority, len(all_signers),
            )
            self.audit.log_event(
                doc.id, sender_email, AuditEvent.EMAIL_DELIVERED,
                signer_id=next_signer.id, metadata={"to": next_signer.email},
            )
        except Exception as exc:
            logger.warning("Turn notice to %s failed: %s", next_signer.email, exc)
            self.audit.log_event(
                doc.id, sender_email, AuditEvent.EMAIL_FAILED,
                signer_id=next_signer.id,
                metadata={"to": next_signer.email, "error": str(exc)},
            )

        for observer in all_signers:
            if observer.email in (signer.email, next_signer.email):
                continue
            try:
                self.notifier.progress(
                    observer.email, doc.file_name, signer.email, next_signer.email, remaining
                )
                self.audit.log_event(
                    doc.id, sender_email, AuditEvent.PROGRESS_NOTIFICATION_SENT,
                    signer_id=observer.id, metadata={"to": observer.email},
                )
            except Exception as exc:
                logger.warning("Progress update to %s failed: %s", observer.email, exc)

    def _notify_completed(self, doc: Document, sender_email: str) -> None:
        signers = self.store.list_signers(doc.id)
        signed = [
            (s.email, s.signed_at.isoformat() if s.signed_at else "") for s in signers
        ]
        recipients = [sender_email] + [s.email for s in signers if s.email != sender_email]
        for to in recipients:
            try:
                self.notifier.completed(to, doc.file_name, signed)
            except Exception as exc:
                logger.warning("Completion email to %s failed: %s", to, exc)

    # ------------------------------------------------------------------
    # Dashboard reads
    # ------------------------------------------------------------------

    def list_documents(
        self, caller: Optional[Caller], status: Optional[DocumentStatus] = None
    ) -> list[Document]:
        caller = self._require_caller(caller)
        return self.store.list_documents(sender_id=caller.user_id, status=status)

    def document_status(self, caller: Optional[Caller], document_id: str) -> DocumentStatusView:
        doc = self._owned_document(caller, document_id)
        return DocumentStatusView(document=doc, signers=self.store.list_signers(doc.id))

    def audit_trail(self, caller: Optional[Caller], document_id: str) -> list[AuditLogEntry]:
        """The document's audit entries, newest first."""
        doc = self._owned_document(caller, document_id)
        return list(reversed(self.store.get_audit_trail(doc.id)))

    def download(self, caller: Optional[Caller], document_id: str) -> tuple[str, bytes]:
        """Current PDF bytes and a safe ``signed_<name>`` download filename.

        Raises:
            DependencyError: The bytes could not be read.
        """
        caller = self._require_caller(caller)
        doc = self._owned_document(caller, document_id)
        try:
            data = self.storage.download(doc.file_path)
        except StorageError as exc:
            logger.error("Download of %s failed: %s", doc.id[:8], exc)
            raise DependencyError("Failed to download file") from exc
        self.audit.log_event(doc.id, caller.email, AuditEvent.DOCUMENT_DOWNLOADED)
        safe = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in doc.file_name)
        return f"signed_{safe}", data

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_caller(caller: Optional[Caller]) -> Caller:
        if caller is None:
            raise UnauthorizedError("Unauthorized")
        return caller

    def _owned_document(self, caller: Optional[Caller], document_id: str) -> Document:
        """Load a document, hiding other users' documents behind not-found."""
        caller = self._require_caller(caller)
        doc = self.store.get_document(document_id)
        if doc is None or doc.sender_id != caller.user_id:
            raise NotFoundError("Document not found")
        return doc

    @staticmethod
    def _sender_email(doc: Document) -> str:
        return doc.sender_email or "sender"

    @contextmanager
    def _exclusive(self, document_id: str) -> Iterator[None]:
        lock = self.store.document_lock(document_id, timeout=self.lock_timeout)
        try:
            lock.acquire()
        except Timeout:
            raise ConflictError(
                "Another submission for this document is in progress"
            ) from None
        try:
            yield
        finally:
            lock.release()

    @staticmethod
    def _parse_submission(submission: SubmissionLike) -> list[SignatureItem]:
        if isinstance(submission, SignatureSubmission):
            items = submission.signatures
        else:
            raw = submission.get("signatures") if isinstance(submission, dict) else None
            if not isinstance(raw, list):
                raise BadRequestError("signatures array is required")
            try:
                items = SignatureSubmission.model_validate({"signatures": raw}).signatures
            except ValidationError as exc:
                raise BadRequestError(
                    f"Invalid signature entry: {exc.errors()[0]['msg']}"
                ) from exc
        if not items:
            raise BadRequestError("signatures array is required")
        return items

    @staticmethod
    def _match_placeholders(
        items: list[SignatureItem],
        placeholders: list[Placeholder],
        owner: str = "this document",
    ) -> list[tuple[SignatureItem, Placeholder]]:
        """Pair each submitted image with its placeholder, all-or-nothing."""
        by_id = {p.id: p for p in placeholders}
        for item in items:
            if item.placeholder_id not in by_id:
                raise ForbiddenError(
                    f"Placeholder {item.placeholder_id} does not belong to {owner}"
                )
        seen: set[str] = set()
        for item in items:
            if item.placeholder_id in seen:
                raise BadRequestError(
                    f"Placeholder {item.placeholder_id} was submitted more than once"
                )
            seen.add(item.placeholder_id)
        if len(items) != len(placeholders):
            raise BadRequestError(
                f"You must sign all {len(placeholders)} field(s). You signed {len(items)}."
            )
        return [(item, by_id[item.placeholder_id]) for item in items]

    def _replace_signatures(
        self,
        doc: Document,
        signer: Signer,
        pairs: list[tuple[SignatureItem, Placeholder]],
    ) -> None:
        self.store.replace_signatures(
            doc.id,
            signer.id,
            [
                Signature(
                    signer_id=signer.id,
                    placeholder_id=ph.id,
                    image_base64=item.image_base64,
                )
                for item, ph in pairs
            ],
        )

    def _burn_and_upload(
        self,
        doc: Document,
        pairs: list[tuple[SignatureItem, Placeholder]],
        actor_email: str,
        signer_id: str,
    ) -> BurnReport:
        try:
            pdf_bytes = self.storage.download(doc.file_path)
        except StorageError as exc:
            logger.error("Download of %s for burning failed: %s", doc.id[:8], exc)
            raise DependencyError("Failed to download PDF for burning") from exc

        inputs = [
            BurnInput(placeholder=ph.geometry(), image_base64=item.image_base64)
            for item, ph in pairs
        ]
        try:
            burned, report = self.burner(pdf_bytes, inputs)
        except PdfBurnError as exc:
            logger.error("Burning %s failed: %s", doc.id[:8], exc)
            raise DependencyError("Failed to burn signatures into PDF") from exc

        try:
            self.storage.upload(doc.file_path, burned, content_type=PDF_CONTENT_TYPE, upsert=True)
        except StorageError as exc:
            logger.error("Upload of burned %s failed: %s", doc.id[:8], exc)
            raise DependencyError("Failed to upload signed PDF") from exc

        self.audit.log_event(
            doc.id,
            actor_email,
            AuditEvent.PDF_BURNED,
            signer_id=signer_id,
            metadata={
                "burned": report.burned_count,
                "skipped": len(report.skipped),
                "sha256": self.hash_bytes(burned),
            },
        )
        return report
