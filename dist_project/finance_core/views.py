import json
import logging
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .exceptions import ConcurrencyConflict, ConsistencyError, NotFoundError
from .services.allocation import reallocate_container_costs
from .services.invoices import get_invoice_balance
from .services.reconciliation import MatchPolicy, run_auto_match
from .services.stock import adjust_batch_stock

logger = logging.getLogger(__name__)


def _error_message(exc):
    if isinstance(exc, ValidationError):
        return "; ".join(exc.messages)
    return str(exc)


def json_errors(view):
    """Translate the finance error taxonomy into JSON error responses."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except PermissionDenied as e:
            return JsonResponse({"ok": False, "error": str(e) or "Forbidden"}, status=403)
        except NotFoundError as e:
            return JsonResponse({"ok": False, "error": str(e)}, status=404)
        except ConcurrencyConflict as e:
            return JsonResponse({"ok": False, "error": str(e)}, status=409)
        except (ValidationError, ConsistencyError) as e:
            logger.warning("%s rejected: %s", view.__name__, e)
            return JsonResponse({"ok": False, "error": _error_message(e)}, status=400)

    return wrapper


def _require_user(request):
    if not request.user.is_authenticated:
        raise PermissionDenied("Authentication required.")


def _payload(request):
    # JSON body or form-encoded POST
    if request.content_type == "application/json":
        try:
            return json.loads(request.body or b"{}")
        except json.JSONDecodeError:
            raise ValidationError("Request body is not valid JSON.")
    return request.POST


def _decimal(value, name):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"{name} must be a number.")


@require_POST
@json_errors
def auto_match_view(request):
    _require_user(request)
    counts = run_auto_match(policy=MatchPolicy.from_settings(), user=request.user)
    return JsonResponse({"ok": True, **counts})


@require_GET
@json_errors
def invoice_balance_view(request, invoice_id):
    _require_user(request)
    balance = get_invoice_balance(invoice_id)
    # Decimals go out as strings so no precision is lost
    return JsonResponse({"ok": True, **{k: str(v) for k, v in balance.items()}})


@require_POST
@json_errors
def reallocate_container_view(request, container_id):
    _require_user(request)
    shares = reallocate_container_costs(container_id)
    return JsonResponse({
        "ok": True,
        "allocations": {str(batch_id): str(amount) for batch_id, amount in shares.items()},
    })


@require_POST
@json_errors
def adjust_stock_view(request, batch_id):
    _require_user(request)
    data = _payload(request)
    if "delta" not in data:
        raise ValidationError("delta is required.")
    new_stock, movement_id = adjust_batch_stock(
        batch_id,
        _decimal(data["delta"], "delta"),
        data.get("tx_type") or "adjustment",
        reference_id=data.get("reference_id"),
        notes=data.get("notes"),
        user=request.user,
    )
    return JsonResponse({"ok": True, "new_stock": str(new_stock), "movement_id": movement_id})
