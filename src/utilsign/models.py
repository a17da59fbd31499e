"""Core data models for UtilSign.

One model per stored record (documents, placeholders, signers, signatures,
audit log rows) plus the inbound request shapes and the per-burn report.

Placeholder geometry is stored as percentages (0-100) of the page size
measured from the top-left corner, exactly as the browser editor lays the
fields out. Conversion to PDF points happens only at burn time, see
:mod:`utilsign.coordinates`.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    """Lifecycle states for a document. Only ever moves forward."""

    DRAFT = "draft"
    SENT = "sent"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.CANCELLED)


class DocumentType(str, Enum):
    """Whether the owner signs alone or routes the document to others."""

    SELF_SIGN = "self_sign"
    REQUEST_SIGN = "request_sign"


class SignerStatus(str, Enum):
    """Lifecycle states for an individual signer."""

    PENDING = "pending"
    AWAITING_TURN = "awaiting_turn"
    SIGNED = "signed"
    DECLINED = "declined"


class SubmitAction(str, Enum):
    """What an external signer does with their turn."""

    SIGN = "sign"
    DECLINE = "decline"


class AuditEvent(str, Enum):
    """Closed set of events recorded in the audit log."""

    DOCUMENT_CREATED = "document_created"
    DOCUMENT_SENT = "document_sent"
    EMAIL_DELIVERED = "email_delivered"
    EMAIL_FAILED = "email_failed"
    BROADCAST_SENT = "broadcast_sent"
    PROGRESS_NOTIFICATION_SENT = "progress_notification_sent"
    LINK_OPENED = "link_opened"
    OTP_SENT = "otp_sent"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    OTP_LOCKED = "otp_locked"
    PLACEHOLDER_VIEWED = "placeholder_viewed"
    SIGNATURE_SUBMITTED = "signature_submitted"
    PDF_BURNED = "pdf_burned"
    SIGNER_DECLINED = "signer_declined"
    NEXT_SIGNER_NOTIFIED = "next_signer_notified"
    DOCUMENT_COMPLETED = "document_completed"
    DOCUMENT_DOWNLOADED = "document_downloaded"


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """An uploaded PDF and its signing lifecycle.

    Attributes:
        id: Unique identifier.
        file_path: Object storage key of the (current) PDF bytes.
        file_name: Original upload name, used for display and downloads.
        sender_id: Identifier of the owning user.
        sender_email: Owner's address, for notifications.
        status: Current lifecycle status.
        type: Self-sign or request-sign.
        category: Free-form dashboard category.
        created_at: Creation timestamp.
        updated_at: Last status change.
    """

    id: str = Field(default_factory=_new_id)
    file_path: str
    file_name: str
    sender_id: str
    sender_email: Optional[str] = None
    status: DocumentStatus = DocumentStatus.DRAFT
    type: DocumentType = DocumentType.REQUEST_SIGN
    category: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class PlaceholderGeometry(BaseModel):
    """Where a signature goes: a page and a percentage box from top-left.

    Unconstrained on purpose so the burn engine can be handed (and skip)
    references to pages that do not exist.
    """

    page_number: int = 1
    x_percent: float
    y_percent: float
    width_percent: float
    height_percent: float


class Placeholder(PlaceholderGeometry):
    """A signature field placed on a document and assigned to one signer.

    Immutable once created; a document's placeholder set is only ever
    replaced as a whole while the document is still a draft.
    """

    id: str = Field(default_factory=_new_id)
    document_id: str
    page_number: int = Field(1, ge=1)
    x_percent: float = Field(ge=0, le=100)
    y_percent: float = Field(ge=0, le=100)
    width_percent: float = Field(ge=0, le=100)
    height_percent: float = Field(ge=0, le=100)
    label: Optional[str] = None
    assigned_signer_email: str

    def geometry(self) -> PlaceholderGeometry:
        return PlaceholderGeometry(
            page_number=self.page_number,
            x_percent=self.x_percent,
            y_percent=self.y_percent,
            width_percent=self.width_percent,
            height_percent=self.height_percent,
        )


class Signer(BaseModel):
    """A party expected to sign. One row per (document, email)."""

    id: str = Field(default_factory=_new_id)
    document_id: str
    email: str
    priority: int = 1
    status: SignerStatus = SignerStatus.PENDING
    signed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)


class Signature(BaseModel):
    """A drawn signature image for one placeholder, owned by a signer."""

    id: str = Field(default_factory=_new_id)
    signer_id: str
    placeholder_id: str
    image_base64: str


class AuditLogEntry(BaseModel):
    """Append-only audit row. Never updated or deleted.

    Attributes:
        id: Unique identifier.
        document_id: Related document (weak reference).
        signer_id: Related signer, when the event concerns one.
        actor_email: Who caused the event.
        event_type: What happened.
        metadata: Event-specific structured payload.
        created_at: When it happened.
    """

    id: str = Field(default_factory=_new_id)
    document_id: str
    signer_id: Optional[str] = None
    actor_email: str
    event_type: AuditEvent
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)


# ---------------------------------------------------------------------------
# Inbound shapes
# ---------------------------------------------------------------------------

class Caller(BaseModel):
    """An identity already authenticated by the upstream gateway."""

    user_id: str
    email: str


class _CamelModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class SignatureItem(_CamelModel):
    """One ``{placeholderId, imageBase64}`` pair of a submission."""

    placeholder_id: str
    image_base64: str


class SignatureSubmission(_CamelModel):
    """Body of a self-sign or signer submission."""

    signatures: list[SignatureItem] = Field(default_factory=list)


class PlaceholderSpec(_CamelModel):
    """A placeholder as drawn in the editor, before it is stored."""

    id: Optional[str] = None
    page_number: int = Field(ge=1)
    x_percent: float = Field(ge=0, le=100)
    y_percent: float = Field(ge=0, le=100)
    width_percent: float = Field(ge=0, le=100)
    height_percent: float = Field(ge=0, le=100)
    label: Optional[str] = None
    assigned_signer_email: str


class SignerSpec(_CamelModel):
    """A recipient and their position in the signing order."""

    email: str
    priority: int


# ---------------------------------------------------------------------------
# Burn report
# ---------------------------------------------------------------------------

class BurnInput(BaseModel):
    """One signature image and the geometry it should be stamped into."""

    placeholder: PlaceholderGeometry
    image_base64: str


class BurnStatus(str, Enum):
    BURNED = "burned"
    SKIPPED = "skipped"


class BurnOutcome(BaseModel):
    """What happened to a single burn input."""

    index: int
    page_number: int
    status: BurnStatus
    reason: Optional[str] = None


class BurnReport(BaseModel):
    """Per-entry outcomes of a burn, in input order."""

    outcomes: list[BurnOutcome] = Field(default_factory=list)

    @property
    def burned_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == BurnStatus.BURNED)

    @property
    def skipped(self) -> list[BurnOutcome]:
        return [o for o in self.outcomes if o.status == BurnStatus.SKIPPED]


# ---------------------------------------------------------------------------
# Workflow results
# ---------------------------------------------------------------------------

class SubmitResult(BaseModel):
    """Outcome of an external signer's turn.

    ``final`` is True once the submission completed the document.
    """

    action: SubmitAction
    final: bool = False


class SignerView(BaseModel):
    """What a signer sees when opening their signing link."""

    document_id: str
    document_name: str
    signer_email: str
    placeholders: list[Placeholder] = Field(default_factory=list)


class DocumentStatusView(BaseModel):
    """A document with its signers in signing order."""

    document: Document
    signers: list[Signer] = Field(default_factory=list)
