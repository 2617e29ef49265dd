# backend/catalog/routes/direct_pricing.py
"""
Direct pricing routes.

SECURITY: All routes require an actor (X-User-Id).
- Reads are open to any active user
- Price changes require MD, IT, ACCOUNTANT or DIRECTOR
- Deactivation requires DIRECTOR or IT
"""
from flask import Blueprint, current_app, g, request

from ..decorators import (
    PRICING_ADMIN_ROLES,
    PRICING_MANAGER_ROLES,
    require_actor,
    require_role,
)
from ..responses import error_response, success_response
from ..services.concurrency import StorageError
from ..validation import NotFoundError, ValidationError


direct_pricing_bp = Blueprint("direct_pricing", __name__, url_prefix="/api/direct-pricing")


@direct_pricing_bp.post("/create-update")
@require_actor
@require_role(*PRICING_MANAGER_ROLES)
def create_or_update_route():
    """
    Set several tiers at once.

    Body: {"productId": 1, "prices": {"salePrice": 100, ...}, "notes": "..."}
    Unknown tier keys are ignored.
    """
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("productId")
    if not isinstance(product_id, int):
        return error_response("Product ID is required", 400)

    from ..services.pricing_service import set_prices

    try:
        result = set_prices(product_id, payload.get("prices"), g.current_user.id, payload.get("notes") or "")
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to update direct pricing")
        return error_response("Failed to update direct pricing", 500)

    return success_response("Direct pricing updated successfully", result)


@direct_pricing_bp.put("/update-single")
@require_actor
@require_role(*PRICING_MANAGER_ROLES)
def update_single_route():
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("productId")
    tier = payload.get("priceType")
    if not isinstance(product_id, int) or not tier:
        return error_response("Product ID and price type are required", 400)

    from ..services.pricing_service import set_single_price

    try:
        result = set_single_price(
            product_id,
            tier,
            payload.get("price"),
            g.current_user.id,
            payload.get("notes") or "",
        )
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400)
    except StorageError:
        current_app.logger.exception("Failed to update price")
        return error_response("Failed to update price", 500)

    return success_response(f"{tier} updated successfully", result)


@direct_pricing_bp.get("/product/<int:product_id>")
@require_actor
def get_pricing_route(product_id: int):
    from ..services.pricing_service import get_pricing

    record = get_pricing(product_id)
    if record is None:
        return error_response("Direct pricing not found for this product", 404)
    return success_response("Direct pricing retrieved successfully", record.to_dict())


@direct_pricing_bp.get("/history/<int:product_id>")
@require_actor
def price_history_route(product_id: int):
    limit = request.args.get("limit", default=50, type=int)

    from ..services.pricing_service import get_price_history

    try:
        result = get_price_history(product_id, limit=limit)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400)

    return success_response("Price history retrieved successfully", result)


@direct_pricing_bp.delete("/product/<int:product_id>")
@require_actor
@require_role(*PRICING_ADMIN_ROLES)
def deactivate_pricing_route(product_id: int):
    from ..services.pricing_service import deactivate_pricing

    try:
        result = deactivate_pricing(product_id, g.current_user.id)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except StorageError:
        current_app.logger.exception("Failed to deactivate direct pricing")
        return error_response("Failed to delete direct pricing", 500)

    return success_response("Direct pricing deleted successfully", result)


@direct_pricing_bp.get("/stats")
@require_actor
def pricing_stats_route():
    from ..services.pricing_service import get_pricing_stats

    return success_response("Direct pricing statistics retrieved successfully", get_pricing_stats())
