"""UtilSign REST API — FastAPI server for the signing workflow.

Authentication happens upstream: the gateway in front of this service
forwards the signed-in user as ``X-User-Id`` / ``X-User-Email`` headers.
Signer routes are addressed by signer id, which is the capability handed
out in the signing link.

Every workflow failure is a :class:`~utilsign.errors.SigningError` and is
rendered as ``{"error": message}`` with the matching status code.
"""

import logging
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__
from .config import ServiceConfig
from .engine import CompletionEngine
from .errors import BadRequestError, SigningError
from .models import (
    AuditLogEntry,
    Caller,
    Document,
    DocumentStatus,
    DocumentStatusView,
    DocumentType,
    SignerView,
)

logger = logging.getLogger("utilsign.api")


def create_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """Build the API application.

    Args:
        config: Service settings. Read from the environment when omitted.
    """
    app = FastAPI(
        title="UtilSign",
        description="Document e-signature workflow with burned-in signatures.",
        version=__version__,
    )
    app.state.config = config or ServiceConfig()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SigningError)
    async def signing_error_handler(request: Request, exc: SigningError) -> JSONResponse:
        if exc.status.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status.http_status, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_engine(request: Request) -> CompletionEngine:
    """A fresh engine per request, wired from the app's config."""
    return CompletionEngine.from_config(request.app.state.config)


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Optional[Caller]:
    """The gateway-authenticated user, or None for anonymous requests."""
    if not x_user_id or not x_user_email:
        return None
    return Caller(user_id=x_user_id, email=x_user_email)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:

    # -- Documents ----------------------------------------------------------

    @app.post("/api/documents/upload", response_model=Document, status_code=201)
    async def upload_document(
        file: UploadFile = File(...),
        doc_type: DocumentType = Form(DocumentType.REQUEST_SIGN, alias="type"),
        category: Optional[str] = Form(None),
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> Document:
        """Upload a PDF and create a draft document."""
        data = await file.read()
        return engine.create_document(
            caller,
            file.filename or "document.pdf",
            data,
            content_type=file.content_type or "",
            doc_type=doc_type,
            category=category,
        )

    @app.get("/api/documents", response_model=list[Document])
    def list_documents(
        status: Optional[str] = Query(None, description="Filter by status"),
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> list[Document]:
        """List the caller's documents, newest first."""
        try:
            status_filter = DocumentStatus(status) if status else None
        except ValueError:
            raise BadRequestError(f"Unknown status: {status}") from None
        return engine.list_documents(caller, status_filter)

    @app.post("/api/documents/{document_id}/placeholders")
    def save_placeholders(
        document_id: str,
        payload: dict[str, Any] = Body(...),
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> dict:
        """Replace the placeholders of a draft document."""
        specs = payload.get("placeholders")
        if not isinstance(specs, list):
            raise BadRequestError("placeholders array is required")
        placeholders = engine.save_placeholders(caller, document_id, specs)
        return {"success": True, "placeholders": [p.model_dump(mode="json") for p in placeholders]}

    @app.post("/api/documents/{document_id}/send")
    def send_document(
        document_id: str,
        payload: dict[str, Any] = Body(...),
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> dict:
        """Send a draft document to its signers."""
        signers = payload.get("signers")
        if not isinstance(signers, list):
            raise BadRequestError("signers array is required")
        rows = engine.send_document(caller, document_id, signers, payload.get("message"))
        return {"success": True, "signers": [s.model_dump(mode="json") for s in rows]}

    @app.post("/api/documents/{document_id}/self-sign")
    def self_sign(
        document_id: str,
        payload: dict[str, Any] = Body(...),
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> dict:
        """Sign every field of a self-sign document and complete it."""
        report = engine.complete_self_sign(caller, document_id, payload)
        return {
            "success": True,
            "burned": report.burned_count,
            "skipped": [o.model_dump(mode="json") for o in report.skipped],
        }

    @app.get("/api/documents/{document_id}/status", response_model=DocumentStatusView)
    def document_status(
        document_id: str,
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> DocumentStatusView:
        """A document with its signers in signing order."""
        return engine.document_status(caller, document_id)

    @app.get("/api/documents/{document_id}/logs", response_model=list[AuditLogEntry])
    def document_logs(
        document_id: str,
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> list[AuditLogEntry]:
        """The document's audit trail, newest first."""
        return engine.audit_trail(caller, document_id)

    @app.get("/api/documents/{document_id}/download")
    def download_document(
        document_id: str,
        caller: Optional[Caller] = Depends(get_caller),
        engine: CompletionEngine = Depends(get_engine),
    ) -> Response:
        """Download the current PDF, signatures included once burned."""
        filename, data = engine.download(caller, document_id)
        return Response(
            content=data,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # -- Signers ------------------------------------------------------------

    @app.get("/api/sign/{signer_id}/info", response_model=SignerView)
    def signer_info(
        signer_id: str,
        engine: CompletionEngine = Depends(get_engine),
    ) -> SignerView:
        """What the signer behind a signing link is asked to sign."""
        return engine.signer_view(signer_id)

    @app.post("/api/sign/{signer_id}/submit")
    def signer_submit(
        signer_id: str,
        payload: dict[str, Any] = Body(...),
        engine: CompletionEngine = Depends(get_engine),
    ) -> dict:
        """Sign or decline on the signer's turn."""
        result = engine.submit_signer(signer_id, payload.get("action", ""), payload)
        return {"success": True, "action": result.action.value, "final": result.final}

    # -- Health -------------------------------------------------------------

    @app.get("/api/health")
    async def health() -> dict:
        """Health check."""
        return {
            "status": "ok",
            "service": "utilsign",
            "version": __version__,
        }
