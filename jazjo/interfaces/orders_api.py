import logging

from fastapi import APIRouter, Depends

from jazjo.application.access import ANY_ROLE, STAFF_ROLES, AuthContext
from jazjo.core.errors import NotFoundError
from jazjo.domain.schemas import CreateOrderIn, StatusUpdateIn
from jazjo.interfaces.dependencies import Services, get_services, require_roles

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/orders")
def list_my_orders(auth: AuthContext = Depends(require_roles(*ANY_ROLE)),
                   services: Services = Depends(get_services)):
    return {"orders": services.views.list_for_user(auth.profile.user_id)}


@router.get("/orders/{order_code}")
def read_my_order(order_code: str, auth: AuthContext = Depends(require_roles(*ANY_ROLE)),
                  services: Services = Depends(get_services)):
    order = services.views.get_for_user(order_code, auth.profile.user_id)
    if order is None:
        raise NotFoundError("Order not found")
    return {"order": order}


@router.post("/orders", status_code=201)
def create_order(payload: CreateOrderIn, auth: AuthContext = Depends(require_roles(*ANY_ROLE)),
                 services: Services = Depends(get_services)):
    placed = services.builder.create_order(
        customer_name=payload.customerName,
        contact=payload.contact,
        address=payload.address,
        payment_method=payload.paymentMethod,
        items=payload.items,
        requester=auth.profile,
    )
    return {
        "order": services.views.get_for_user(placed.order.order_code, auth.profile.user_id),
        "checkoutUrl": placed.checkout_url,
    }


@router.patch("/orders/{order_code}/status")
def update_order_status(order_code: str, payload: StatusUpdateIn,
                        auth: AuthContext = Depends(require_roles(*STAFF_ROLES)),
                        services: Services = Depends(get_services)):
    services.lifecycle.advance_status(order_code, payload.status, auth.profile)
    return {"ok": True, "order": services.views.get_detailed(order_code)}
