# backend/catalog/routes/warehouse.py
"""
Warehouse stock routes: manual override, reconciliation and audits.

SECURITY: All routes require an actor (X-User-Id).
- Reports (summary, alerts, consistency, activity log) are open to any active user
- Everything that changes stock requires a stock manager role
"""
from flask import Blueprint, current_app, g, request

from ..decorators import STOCK_MANAGER_ROLES, require_actor, require_role
from ..responses import error_response, success_response
from ..services.concurrency import StorageError
from ..validation import NotFoundError, ValidationError


warehouse_bp = Blueprint("warehouse", __name__, url_prefix="/api/warehouse")


@warehouse_bp.put("/update-stock")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def update_stock_route():
    """
    Enable the manual override with typed-in figures.

    Body: {"productId": 1, "stock_on_arrival": ..., "final_stock": ..., "notes": "..."}
    """
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("productId")
    if not isinstance(product_id, int):
        return error_response("Product ID is required", 400)

    from ..services.warehouse_service import update_warehouse_stock

    try:
        product = update_warehouse_stock(product_id, payload, g.current_user)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, errors=e.errors)
    except StorageError:
        current_app.logger.exception("Failed to update warehouse stock")
        return error_response("Failed to update stock", 500)

    return success_response("Stock updated successfully", product.to_dict())


@warehouse_bp.post("/reconcile-stock")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def reconcile_stock_route():
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("productId")
    if not isinstance(product_id, int) or payload.get("actualCount") is None:
        return error_response("Product ID and actual count are required", 400)

    from ..services.warehouse_service import reconcile_stock

    try:
        result = reconcile_stock(product_id, payload.get("actualCount"), g.current_user)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to reconcile stock")
        return error_response("Failed to reconcile stock", 500)

    return success_response("Stock reconciled successfully", result)


@warehouse_bp.put("/bulk-update-stock")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def bulk_update_stock_route():
    """
    Manual override for several products in one request.

    Body: {"updates": [{"productId": 1, "final_stock": ..., ...}, ...]}.
    Items are applied one by one; failures are listed in data.errors and
    do not stop the remaining items.
    """
    payload = request.get_json(silent=True) or {}

    from ..services.warehouse_service import bulk_update_warehouse_stock

    try:
        result = bulk_update_warehouse_stock(payload.get("updates"), g.current_user)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to perform bulk warehouse update")
        return error_response("Failed to perform bulk update", 500)

    return success_response("Bulk update completed", result)


@warehouse_bp.patch("/products/<int:product_id>/disable-override")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def disable_override_route(product_id: int):
    from ..services.stock_sync_service import disable_override_and_sync

    try:
        result = disable_override_and_sync(product_id, g.current_user)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except StorageError:
        current_app.logger.exception("Failed to disable warehouse override")
        return error_response("Failed to disable warehouse override", 500)

    return success_response("Warehouse override disabled, stock synced from batches", result)


@warehouse_bp.post("/products/<int:product_id>/force-sync")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def force_sync_route(product_id: int):
    from ..services.stock_sync_service import force_sync_product

    try:
        result = force_sync_product(product_id)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except StorageError:
        current_app.logger.exception("Failed to force sync product stock")
        return error_response("Failed to sync product stock", 500)

    return success_response("Product stock sync completed", result)


@warehouse_bp.get("/products/<int:product_id>/consistency")
@require_actor
def consistency_route(product_id: int):
    from ..services.stock_sync_service import validate_stock_consistency

    try:
        result = validate_stock_consistency(product_id)
    except NotFoundError as e:
        return error_response(str(e), 404)

    return success_response("Stock consistency checked", result)


@warehouse_bp.post("/validate-stock")
@require_actor
@require_role(*STOCK_MANAGER_ROLES)
def validate_stock_route():
    """
    Audit several products at once.

    Body: {"productIds": [1, 2, 3]}. Only inconsistent products are listed
    in the result; failures for one product do not stop the others.
    """
    payload = request.get_json(silent=True) or {}
    product_ids = payload.get("productIds")
    if not isinstance(product_ids, list) or not product_ids:
        return error_response("productIds must be a non-empty list", 400)

    from ..services.stock_sync_service import validate_multiple_products_stock

    result = validate_multiple_products_stock(product_ids)
    return success_response("Stock validation completed", result)


@warehouse_bp.post("/sync-all-from-stock-model")
@require_actor
@require_role("DIRECTOR", "IT")
def sync_all_route():
    from ..services.stock_sync_service import sync_all_from_batches

    try:
        result = sync_all_from_batches(g.current_user)
    except StorageError:
        current_app.logger.exception("Failed to perform bulk sync")
        return error_response("Failed to perform bulk sync", 500)

    return success_response("Bulk stock sync completed", result)


@warehouse_bp.get("/stock-summary")
@require_actor
def stock_summary_route():
    from ..services.warehouse_service import get_stock_summary

    return success_response("Stock summary retrieved successfully", get_stock_summary())


@warehouse_bp.get("/low-stock-alerts")
@require_actor
def low_stock_alerts_route():
    from ..services.warehouse_service import get_low_stock_alerts

    return success_response("Stock alerts retrieved successfully", get_low_stock_alerts())


@warehouse_bp.get("/activity-log")
@require_actor
def activity_log_route():
    """
    Warehouse activity, newest first.

    Query: productId, action, userId, limit (default 50).
    """
    try:
        product_id = request.args.get("productId", type=int)
        user_id = request.args.get("userId", type=int)
        limit = int(request.args.get("limit", 50))
    except ValueError:
        return error_response("limit must be an integer", 400)

    from ..services.activity_service import get_activity_log

    try:
        entries = get_activity_log(
            product_id=product_id,
            action=request.args.get("action") or None,
            user_id=user_id,
            limit=limit,
        )
    except ValidationError as e:
        return error_response(str(e), 400)

    return success_response("Activity log retrieved successfully", [e.to_dict() for e in entries])
