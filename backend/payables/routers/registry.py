"""Central router registry."""
from __future__ import annotations

from fastapi import FastAPI

from payables.routers import auth, currencies, invoices, master_data_requests, payments, users, vendors

ALL_ROUTERS = (
    auth.router,
    invoices.router,
    payments.router,
    vendors.router,
    master_data_requests.router,
    users.router,
    currencies.router,
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
