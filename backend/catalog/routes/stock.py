# backend/catalog/routes/stock.py
"""
Stock batch routes.

SECURITY: All routes require an actor (X-User-Id).
- Read operations are open to any active user
- Write operations require a stock manager role (MD, IT, WAREHOUSE, DIRECTOR, MANAGER)

Every successful batch write resyncs the owning product's stock. Bulk
updates only resync when the body carries {"resync": true}.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import STOCK_MANAGER_ROLES, require_actor, require_role
from ..responses import error_response, success_response
from ..services.concurrency import StorageError
from ..validation import ConflictError, NotFoundError, ValidationError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/batches")
@require_actor
def list_batches_route():
    product_id = request.args.get("product_id", type=int)
    status = request.args.get("status")

    from ..services.stock_batch_service import list_batches

    try:
        batches = list_batches(product_id=product_id, status=status)
    except ValidationError as e:
        return error_response(str(e), 400)

    return success_response("Stock batches retrieved successfully", [b.to_dict() for b in batches])


@stock_bp.get("/batches/<int:batch_id>")
@require_actor
def get_batch_route(batch_id: int):
    from ..services.stock_batch_service import get_batch

    try:
        batch = get_batch(batch_id)
    except NotFoundError as e:
        return error_response(str(e), 404)

    return success_response("Stock batch retrieved successfully", batch.to_dict(include_movements=True))


@stock_bp.post("/batches")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def create_batch_route():
    payload = request.get_json(silent=True) or {}

    from ..services.stock_batch_service import create_batch

    try:
        batch = create_batch(payload, g.current_user)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ConflictError as e:
        return error_response(str(e), 409)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to create stock batch")
        return error_response("Failed to create stock batch", 500)

    return success_response("Stock batch created successfully", batch.to_dict(), 201)


@stock_bp.patch("/batches/<int:batch_id>")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def update_batch_route(batch_id: int):
    payload = request.get_json(silent=True) or {}

    from ..services.stock_batch_service import update_batch

    try:
        batch = update_batch(batch_id, payload, g.current_user)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ConflictError as e:
        return error_response(str(e), 409)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to update stock batch")
        return error_response("Failed to update stock batch", 500)

    return success_response("Stock batch updated successfully", batch.to_dict())


@stock_bp.delete("/batches/<int:batch_id>")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def delete_batch_route(batch_id: int):
    from ..services.stock_batch_service import delete_batch

    try:
        product_id = delete_batch(batch_id)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except (ConflictError, StorageError):
        current_app.logger.exception("Failed to delete stock batch")
        return error_response("Failed to delete stock batch", 500)

    return success_response("Stock batch deleted successfully", {"batchId": batch_id, "productId": product_id})


@stock_bp.patch("/batches/bulk")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def bulk_update_batches_route():
    """
    Apply the same changes to many batches.

    Body: {"batch_ids": [...], "fields": {...}, "resync": false}
    """
    payload = request.get_json(silent=True) or {}
    batch_ids = payload.get("batch_ids")
    if not isinstance(batch_ids, list) or not all(isinstance(i, int) for i in batch_ids):
        return error_response("batch_ids must be a list of integers", 400)

    from ..services.stock_batch_service import bulk_update_batches

    try:
        result = bulk_update_batches(
            batch_ids,
            payload.get("fields") or {},
            g.current_user,
            resync=payload.get("resync") is True,
        )
    except ValidationError as e:
        return error_response(str(e), 400)
    except (ConflictError, StorageError):
        current_app.logger.exception("Failed to bulk update stock batches")
        return error_response("Failed to bulk update stock batches", 500)

    return success_response("Bulk update completed", result)


@stock_bp.post("/batches/<int:batch_id>/allocate")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def allocate_stock_route(batch_id: int):
    payload = request.get_json(silent=True) or {}

    from ..services.stock_batch_service import allocate_stock

    try:
        batch = allocate_stock(
            batch_id,
            payload.get("quantity"),
            g.current_user,
            reason=payload.get("reason") or "",
        )
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to allocate stock")
        return error_response("Failed to allocate stock", 500)

    return success_response("Stock allocated successfully", batch.to_dict(include_movements=True))


@stock_bp.get("/expiring")
@require_actor
def expiring_batches_route():
    days = request.args.get("days", type=int)
    if days is None:
        days = current_app.config.get("EXPIRY_WARNING_DAYS", 30)

    from ..services.stock_batch_service import get_expiring_batches

    try:
        batches = get_expiring_batches(days)
    except ValidationError as e:
        return error_response(str(e), 400)

    data = [
        {**b.to_dict(), "product_name": b.product.name if b.product else None}
        for b in batches
    ]
    return success_response("Expiring batches retrieved successfully", data)
