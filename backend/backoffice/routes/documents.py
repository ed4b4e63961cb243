# Overview: Flask API routes for documents of every kind; parses input and returns JSON responses.

"""
Document Routes

- GET    /api/documents/<kind>                          - Paged list (cached)
- POST   /api/documents/<kind>                          - Create
- GET    /api/documents/<kind>/<id>                     - Fetch with children
- PUT    /api/documents/<kind>/<id>                     - Update (lock-checked)
- PATCH  /api/documents/<kind>/<id>/status              - Status-only update
- DELETE /api/documents/<kind>/<id>                     - Soft delete
- POST   /api/documents/<kind>/<id>/restore             - Restore
- POST   /api/documents/<kind>/<id>/copy                - Copy as new draft
- POST   /api/documents/quotation/<id>/generate-invoice - Invoice an accepted quotation
- POST   /api/documents/planning/<id>/generate-quotation - Quote a final planning
- POST   /api/documents/invoice/<id>/create-expense     - Open the expense of a paid invoice
- POST   /api/documents/<kind>/<id>/finalize            - Finalize a ticket (paragon, erha)
- POST   /api/documents/<kind>/name-conflicts           - Batch name check

WHY THIN: every rule lives in DocumentService. Routes only parse the body
into input dataclasses and map domain errors to HTTP statuses.
"""

from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db, get_cache
from ..kinds import INVOICE, PLANNING, QUOTATION, UnknownKindError, get_kind
from ..schemas import parse_document_input
from ..services.cache_service import CacheKeys
from ..services.document_service import SORT_NEWEST, DocumentService
from ..services.errors import DocumentError
from ..validation import ValidationError, to_bool, to_datetime


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


ERROR_STATUS = {
    "NOT_FOUND": 404,
    "STALE_WRITE": 409,
    "INVALID_TRANSITION": 409,
    "NAME_RESOLUTION_EXHAUSTED": 409,
    "RECONCILIATION_INTEGRITY": 422,
    "SEQUENCE_GENERATION_FAILED": 503,
    "UPDATE_FAILED": 500,
}


def document_service() -> DocumentService:
    config = current_app.config
    return DocumentService(
        db.session,
        get_cache(),
        sequence_strategy=config["SEQUENCE_STRATEGY"],
        max_attempts=config["SEQUENCE_MAX_ATTEMPTS"],
        name_suffix_limit=config["NAME_SUFFIX_LIMIT"],
    )


def error_response(error: DocumentError):
    body = {"error": error.message, "code": error.code}
    if error.details:
        body["details"] = error.details
    return jsonify(body), ERROR_STATUS.get(error.code, 400)


def handle_document_errors(action: str):
    """
    Map domain errors raised by the wrapped route to JSON responses.

    Unexpected exceptions are logged with traceback and become a generic 500.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except UnknownKindError as e:
                return jsonify({"error": f"Unknown document kind: {e.args[0]}", "code": "NOT_FOUND"}), 404
            except ValidationError as e:
                return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
            except DocumentError as e:
                return error_response(e)
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
        return wrapper
    return decorator


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _page_args() -> tuple[int, int]:
    config = current_app.config
    page = request.args.get("page", 1, type=int)
    page_size = request.args.get("page_size", config["DEFAULT_PAGE_SIZE"], type=int)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if page_size < 1:
        raise ValidationError("page_size must be >= 1")
    return page, min(page_size, config["MAX_PAGE_SIZE"])


# ============================================================================
# Collection
# ============================================================================

@documents_bp.get("/<kind>")
@handle_document_errors("list documents")
def list_documents_route(kind: str):
    """
    List documents of one kind.

    Query parameters:
        status: filter by status
        include_deleted: "true" to include soft-deleted documents
        sort: "newest" (default) or "oldest", by last modification
        page, page_size: 1-based paging (page_size capped by MAX_PAGE_SIZE)
    """
    kind = get_kind(kind).name
    status = request.args.get("status") or None
    include_deleted = to_bool(request.args.get("include_deleted"), "include_deleted")
    sort = request.args.get("sort", SORT_NEWEST)
    page, page_size = _page_args()

    cache = get_cache()
    key = CacheKeys.list_page(
        kind, status=status, include_deleted=include_deleted, sort=sort, page=page, page_size=page_size,
    )
    cached = cache.get_json(key)
    if cached is not None:
        return jsonify(cached)

    rows, total = document_service().list_documents(
        kind,
        status=status,
        include_deleted=include_deleted,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    body = {
        "items": [doc.to_summary_dict() for doc in rows],
        "count": total,
        "page": page,
        "page_size": page_size,
    }
    cache.set_json(key, body)
    return jsonify(body)


@documents_bp.post("/<kind>")
@handle_document_errors("create document")
def create_document_route(kind: str):
    """
    Create a document. The display id is assigned by the server and the
    display name may come back with a numeric suffix if it was taken.
    """
    data = parse_document_input(_json_body())
    document = document_service().create_document(kind, data)
    return jsonify({"document": document.to_dict()}), 201


@documents_bp.post("/<kind>/name-conflicts")
@handle_document_errors("check name conflicts")
def name_conflicts_route(kind: str):
    payload = _json_body()
    names = payload.get("names")
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise ValidationError("names must be a list of strings")
    return jsonify({"conflicts": document_service().check_name_conflicts(kind, names)})


# ============================================================================
# Single document
# ============================================================================

@documents_bp.get("/<kind>/<int:document_id>")
@handle_document_errors("get document")
def get_document_route(kind: str, document_id: int):
    document = document_service().get_document(kind, document_id)
    return jsonify({"document": document.to_dict()})


@documents_bp.put("/<kind>/<int:document_id>")
@handle_document_errors("update document")
def update_document_route(kind: str, document_id: int):
    """
    Update a document and reconcile its items, details and remarks.

    Send `last_known_modified_at` (the `modified_at` you loaded) to have the
    write rejected with 409 STALE_WRITE if someone else saved in between.
    Omitting `items` / `remarks` leaves them unchanged; `[]` removes all.
    """
    data = parse_document_input(_json_body())
    document = document_service().update_document(kind, document_id, data)
    return jsonify({"document": document.to_dict()})


@documents_bp.patch("/<kind>/<int:document_id>/status")
@handle_document_errors("update document status")
def update_status_route(kind: str, document_id: int):
    payload = _json_body()
    status = payload.get("status")
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("status is required")
    last_known = to_datetime(payload.get("last_known_modified_at"), "last_known_modified_at")
    document = document_service().set_status(kind, document_id, status.strip().lower(), last_known)
    return jsonify({"document": document.to_summary_dict()})


@documents_bp.delete("/<kind>/<int:document_id>")
@handle_document_errors("delete document")
def delete_document_route(kind: str, document_id: int):
    payload = _json_body()
    last_known = to_datetime(payload.get("last_known_modified_at"), "last_known_modified_at")
    document = document_service().soft_delete(kind, document_id, last_known)
    return jsonify({"document": document.to_summary_dict()})


@documents_bp.post("/<kind>/<int:document_id>/restore")
@handle_document_errors("restore document")
def restore_document_route(kind: str, document_id: int):
    document = document_service().restore(kind, document_id)
    return jsonify({"document": document.to_summary_dict()})


@documents_bp.post("/<kind>/<int:document_id>/copy")
@handle_document_errors("copy document")
def copy_document_route(kind: str, document_id: int):
    document = document_service().copy(kind, document_id)
    return jsonify({"document": document.to_dict()}), 201


@documents_bp.post("/<kind>/<int:document_id>/generate-invoice")
@handle_document_errors("generate invoice")
def generate_invoice_route(kind: str, document_id: int):
    """
    Create the invoice for an accepted quotation.

    Returns 201 with the new invoice, or 200 with the invoice already
    generated for this quotation.
    """
    if get_kind(kind).name != QUOTATION.name:
        return jsonify({"error": "Only quotations can generate invoices", "code": "NOT_FOUND"}), 404
    invoice, created = document_service().generate_invoice(document_id)
    return jsonify({"document": invoice.to_dict(), "created": created}), 201 if created else 200


@documents_bp.post("/<kind>/<int:document_id>/generate-quotation")
@handle_document_errors("generate quotation")
def generate_quotation_route(kind: str, document_id: int):
    """Create the quotation for a final planning (201), or return the existing one (200)."""
    if get_kind(kind).name != PLANNING.name:
        return jsonify({"error": "Only plannings can generate quotations", "code": "NOT_FOUND"}), 404
    quotation, created = document_service().generate_quotation(document_id)
    return jsonify({"document": quotation.to_dict(), "created": created}), 201 if created else 200


@documents_bp.post("/<kind>/<int:document_id>/create-expense")
@handle_document_errors("create expense")
def create_expense_route(kind: str, document_id: int):
    if get_kind(kind).name != INVOICE.name:
        return jsonify({"error": "Only invoices can open expenses", "code": "NOT_FOUND"}), 404
    expense, created = document_service().create_expense(document_id)
    return jsonify({"document": expense.to_dict(), "created": created}), 201 if created else 200


@documents_bp.post("/<kind>/<int:document_id>/finalize")
@handle_document_errors("finalize ticket")
def finalize_ticket_route(kind: str, document_id: int):
    payload = _json_body()
    last_known = to_datetime(payload.get("last_known_modified_at"), "last_known_modified_at")
    ticket, expense = document_service().finalize_ticket(kind, document_id, last_known)
    return jsonify({"document": ticket.to_summary_dict(), "expense": expense.to_dict()})
