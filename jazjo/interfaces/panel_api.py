from fastapi import APIRouter, Depends

from jazjo.application.access import ADMIN_ONLY, STAFF_ROLES
from jazjo.interfaces.dependencies import Services, get_services, require_roles

admin_router = APIRouter(prefix="/panel/admin", dependencies=[Depends(require_roles(*ADMIN_ONLY))])
staff_router = APIRouter(prefix="/panel/staff", dependencies=[Depends(require_roles(*STAFF_ROLES))])


# --- Admin ---

@admin_router.get("/dashboard")
def admin_dashboard(services: Services = Depends(get_services)):
    return services.panel.dashboard()


@admin_router.get("/orders")
def admin_orders(services: Services = Depends(get_services)):
    return {"orders": services.views.list_all_detailed()}


@admin_router.get("/inventory")
def admin_inventory(services: Services = Depends(get_services)):
    return services.panel.inventory()


@admin_router.get("/customers")
def admin_customers(services: Services = Depends(get_services)):
    return {"customers": services.panel.customers()}


@admin_router.get("/reports")
def admin_reports(services: Services = Depends(get_services)):
    return {"reports": services.panel.reports()}


@admin_router.get("/rewards")
def admin_rewards(services: Services = Depends(get_services)):
    return {"rewards": services.panel.rewards()}


@admin_router.get("/sales")
def admin_sales(services: Services = Depends(get_services)):
    return services.panel.sales()


@admin_router.get("/delivery")
def admin_delivery(services: Services = Depends(get_services)):
    return services.panel.delivery()


# --- Staff ---

@staff_router.get("/orders")
def staff_orders(services: Services = Depends(get_services)):
    return {"orders": services.views.list_all_detailed()}


@staff_router.get("/inventory")
def staff_inventory(services: Services = Depends(get_services)):
    return services.panel.inventory()


@staff_router.get("/delivery")
def staff_delivery(services: Services = Depends(get_services)):
    return services.panel.delivery()
