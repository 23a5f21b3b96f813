from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_TENANT_ID_CTX: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_CUSTOMER_ID_CTX: ContextVar[str | None] = ContextVar("customer_id", default=None)
_ORDER_ID_CTX: ContextVar[str | None] = ContextVar("order_id", default=None)
_STEP_CTX: ContextVar[str | None] = ContextVar("step", default=None)


def set_request_context(
    *,
    request_id: str | None = None,
    tenant_id: str | None = None,
    customer_id: str | None = None,
    step: str | None = None,
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if tenant_id is not None:
        _TENANT_ID_CTX.set(str(tenant_id))
    if customer_id is not None:
        _CUSTOMER_ID_CTX.set(customer_id)
    if step is not None:
        _STEP_CTX.set(step)


@contextmanager
def bind_order_context(order_id: int | str) -> Iterator[None]:
    """Marca los logs del bloque con el pedido que se está tocando."""
    token = _ORDER_ID_CTX.set(str(order_id))
    try:
        yield
    finally:
        _ORDER_ID_CTX.reset(token)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_tenant_id() -> str | None:
    return _TENANT_ID_CTX.get()


def get_customer_id() -> str | None:
    return _CUSTOMER_ID_CTX.get()


def get_order_id() -> str | None:
    return _ORDER_ID_CTX.get()


def get_step() -> str | None:
    return _STEP_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _TENANT_ID_CTX.set(None)
    _CUSTOMER_ID_CTX.set(None)
    _ORDER_ID_CTX.set(None)
    _STEP_CTX.set(None)
