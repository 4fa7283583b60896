"""
API依赖项 - 组装订单服务（composition root）

订单存储与网关客户端在进程内复用；测试通过 app.dependency_overrides 替换。
"""
import inspect
from typing import Any, Callable, Optional

from fastapi import Depends, Request

from application.ports.payment_gateway import GatewayLink
from application.services.order_service import OrderCoordinator
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.order.repository import OrderStore
from domain.order.signature import SignatureCodec
from infrastructure.external.payments import get_payment_gateway


logger = get_logger(__name__)

_order_store: Optional[OrderStore] = None
_gateway: Optional[GatewayLink] = None


def build_order_store(backend: Optional[str] = None) -> OrderStore:
    name = (backend or settings.ORDER_STORE).lower()
    if name == "memory":
        from infrastructure.repositories.memory_order_repository import InMemoryOrderStore
        return InMemoryOrderStore()
    if name == "sqlalchemy":
        from infrastructure.database import AsyncSessionLocal
        from infrastructure.repositories.order_repository import SQLAlchemyOrderStore
        return SQLAlchemyOrderStore(AsyncSessionLocal)
    raise ValueError(f"Unsupported order store: {name}")


async def get_order_store() -> OrderStore:
    global _order_store
    if _order_store is None:
        _order_store = build_order_store()
        logger.info("order_store_initialized", backend=settings.ORDER_STORE)
    return _order_store


async def get_gateway_link() -> GatewayLink:
    global _gateway
    if _gateway is None:
        _gateway = get_payment_gateway()
        logger.info("payment_gateway_initialized", provider=_gateway.provider)
    return _gateway


def build_order_coordinator(store: OrderStore, gateway: GatewayLink) -> OrderCoordinator:
    cfg = payment_settings.wpay
    return OrderCoordinator(
        store,
        gateway,
        codec=SignatureCodec(cfg.secret_key or ""),
        merchant_id=cfg.mch_id or "",
        notify_url=cfg.notify_url,
        subject=cfg.subject,
        default_currency=cfg.currency,
        order_id_prefix=cfg.order_id_prefix,
        ack=cfg.ack,
        tolerance_seconds=payment_settings.webhook.tolerance_seconds,
    )


async def get_order_coordinator(
    store: OrderStore = Depends(get_order_store),
    gateway: GatewayLink = Depends(get_gateway_link),
) -> OrderCoordinator:
    return build_order_coordinator(store, gateway)


async def _call_dependency(request: Request, dependency: Callable[[], Any]) -> Any:
    provider = request.app.dependency_overrides.get(dependency, dependency)
    result = provider()
    if inspect.isawaitable(result):
        result = await result
    return result


async def resolve_order_coordinator(request: Request) -> OrderCoordinator:
    """
    在路由内部组装订单服务（遵循 app.dependency_overrides）

    回调路由需要在 try 块中捕获组装失败并照常应答网关，因此不能走 Depends。
    """
    store = await _call_dependency(request, get_order_store)
    gateway = await _call_dependency(request, get_gateway_link)
    return build_order_coordinator(store, gateway)


async def shutdown_dependencies() -> None:
    """关闭进程内复用的网关客户端与订单存储"""
    global _order_store, _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None
    if _order_store is not None:
        await _order_store.aclose()
        _order_store = None
