from dataclasses import dataclass

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool

from jazjo.application.access import AccessGate, AuthContext
from jazjo.application.catalog import CatalogReader
from jazjo.application.lifecycle import OrderLifecycleManager
from jazjo.application.order_builder import OrderBuilder
from jazjo.application.panel import PanelReports
from jazjo.application.views import OrderViews
from jazjo.interfaces.IPaymentGateway import IPaymentGateway
from jazjo.interfaces.IProfileRepository import IProfileRepository


@dataclass
class Services:
    """Everything the routers need, built once by the composition root."""
    access: AccessGate
    catalog: CatalogReader
    builder: OrderBuilder
    lifecycle: OrderLifecycleManager
    views: OrderViews
    panel: PanelReports
    profiles: IProfileRepository
    gateway: IPaymentGateway


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_roles(*roles: str):
    """
    Route dependency: authenticates the bearer token and checks the caller's
    role before the handler body runs. No roles means any signed-in profile.
    """
    async def dependency(request: Request, services: Services = Depends(get_services)) -> AuthContext:
        header = request.headers.get("authorization")
        return await run_in_threadpool(services.access.require, header, roles)

    return dependency
