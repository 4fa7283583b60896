"""
Orders API routes.

Thin HTTP binding over OrderCoordinator; responses use the unified envelope.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from api.dependencies import get_order_coordinator
from application.dtos.orders import CreateOrder, ReconcileRequest
from application.services.order_service import OrderCoordinator
from core.response import created_response, success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", summary="Create order", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CreateOrder,
    coordinator: OrderCoordinator = Depends(get_order_coordinator),
):
    created = await coordinator.create(payload)
    return created_response(data=created, message="Order created")


@router.get("/{order_id}", summary="Get order")
async def get_order(
    order_id: str,
    coordinator: OrderCoordinator = Depends(get_order_coordinator),
):
    view = await coordinator.get_order(order_id)
    return success_response(data=view)


@router.post("/{order_id}/reconcile", summary="Submit UTR / poll status")
async def reconcile_order(
    order_id: str,
    payload: ReconcileRequest | None = None,
    coordinator: OrderCoordinator = Depends(get_order_coordinator),
):
    result = await coordinator.reconcile(order_id, payload.utr if payload else None)
    return success_response(data=result)


@router.post("/{order_id}/refresh", summary="Re-query gateway status")
async def refresh_order(
    order_id: str,
    coordinator: OrderCoordinator = Depends(get_order_coordinator),
):
    result = await coordinator.refresh(order_id)
    message = "Success" if result.refreshed else "Unable to refresh from gateway"
    return success_response(data=result, message=message)
