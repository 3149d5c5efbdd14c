"""
FastAPI Application Entry Point

Restaurant POS Gateway: the order, kitchen, inventory, shift and menu
chat API in front of the hosted backend.

Endpoints:
    - /api/orders, /api/online-orders: order entry, kitchen workflow, history
    - /api/inventory: stock levels, adjustments, alerts
    - /api/menu, /api/tables, /api/shifts, /api/customers, /api/loyalty
    - /api/dashboard, /api/analytics, /api/reports: reporting
    - POST /functions/menu-chat: public menu assistant
    - POST /webhook/db-changes: backend change notifications
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from pos_gateway.backend import get_backend
from pos_gateway.cache import get_query_cache
from pos_gateway.core.config import get_settings, setup_logging
from pos_gateway.exceptions import ChatServiceError, PosError, ValidationError
from pos_gateway.schemas import (
    ChangeNotification,
    CustomerCreate,
    ErrorResponse,
    HealthResponse,
    InventoryItemCreate,
    MenuChatRequest,
    MenuItemsStockRequest,
    MutationResponse,
    OnlineOrderCreate,
    OrderCreate,
    OrderCreateResponse,
    PaymentStatusUpdate,
    ShiftClose,
    StockAdjustment,
    TableCreate,
    TableStatusUpdate,
    TableUpdate,
    WorkflowStatusUpdate,
)
from pos_gateway.services import (
    AnalyticsService,
    CustomerService,
    InventoryService,
    MenuAssistant,
    MenuService,
    OrderService,
    ShiftReportManager,
    ShiftService,
    TableService,
    get_analytics_service,
    get_customer_service,
    get_inventory_service,
    get_menu_assistant,
    get_menu_service,
    get_order_service,
    get_shift_service,
    get_table_service,
)
from pos_gateway.services.chat import get_chat_service
from pos_gateway.tasks import export_shift_report
from pos_gateway.timeutils import parse_timestamp, utcnow

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name} for {settings.restaurant_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    backend = get_backend()
    chat = get_chat_service()
    logger.info(f"✅ Backend: {backend.provider_name}")
    logger.info(f"✅ Chat Service: {chat.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield

    logger.info("Shutting down...")
    await backend.close()
    await chat.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant point-of-sale gateway: orders, kitchen workflow with "
        "optimistic locking, inventory, shifts, loyalty and a menu assistant."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def queue_shift_report(summary: dict[str, Any]) -> bool:
    """Queue the Excel export; a broker outage never fails the shift close."""
    if not settings.reports_enabled:
        return False
    try:
        export_shift_report.delay(summary)
    except Exception as e:
        logger.warning(f"Could not queue shift report for {summary.get('shift_id')}: {e}")
        return False
    return True


def check_redis() -> str:
    try:
        client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        client.ping()
        client.close()
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return f"unhealthy: {e}"
    return "healthy"


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "message": f"Welcome to {settings.app_name}",
        "restaurant": settings.restaurant_name,
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"], summary="System Health Check")
async def health_check() -> HealthResponse:
    backend = get_backend()
    backend_status = "healthy" if await backend.health_check() else "unhealthy"

    redis_status = check_redis()

    chat = get_chat_service()
    chat_status = "healthy" if chat.is_configured else "not configured"

    # Redis only carries report exports, so it does not degrade the API
    overall = "operational" if backend_status == "healthy" and chat_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        backend=f"{backend.provider_name}: {backend_status}",
        redis=redis_status,
        chat_service=f"{chat.provider_name}: {chat_status}",
        environment=settings.env_mode.value,
        timestamp=utcnow(),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create POS Order",
)
async def create_order(
    order_data: OrderCreate,
    orders: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """
    Create an order atomically (items, stock deduction, table occupation).

    Retrying with the same ``idempotency_key`` returns the original order
    with ``status="existing"``.
    """
    result = await orders.create_order(order_data)
    return OrderCreateResponse(
        success=True,
        message=result.message,
        status=result.status,
        order=result.order,
    )


@app.get("/api/orders", tags=["Orders"], summary="Active Kitchen Orders")
async def list_active_orders(
    orders: OrderService = Depends(get_order_service),
) -> list[dict[str, Any]]:
    return await orders.list_active_orders()


@app.get("/api/orders/history", tags=["Orders"])
async def order_history(
    search: str = Query(""),
    status: str = Query("all"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    orders: OrderService = Depends(get_order_service),
) -> list[dict[str, Any]]:
    """Orders newest first; ``status=paid`` filters on payment status."""
    return await orders.order_history(search, status, start_date, end_date)


@app.get("/api/orders/stats", tags=["Orders"])
async def order_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    stats = await orders.order_stats(start_date, end_date)
    return stats.__dict__


@app.get("/api/orders/{order_id}", responses=ERROR_RESPONSES, tags=["Orders"])
async def get_order(
    order_id: str,
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    return await orders.get_order(order_id)


@app.patch(
    "/api/orders/{order_id}/status",
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Update Kitchen Workflow Status",
)
async def update_workflow_status(
    order_id: str,
    update: WorkflowStatusUpdate,
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """
    Move an order along the workflow.

    Answers 409 when the order's version no longer matches
    ``expected_version``; the client should reload and retry.
    """
    return await orders.update_workflow_status(
        order_id, update.status.value, update.expected_version
    )


@app.patch("/api/orders/{order_id}/payment-status", responses=ERROR_RESPONSES, tags=["Orders"])
async def update_payment_status(
    order_id: str,
    update: PaymentStatusUpdate,
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    return await orders.update_payment_status(order_id, update.status.value)


@app.post("/api/online-orders", responses=ERROR_RESPONSES, tags=["Orders"], summary="Public Menu Order")
async def create_online_order(
    order_data: OnlineOrderCreate,
    orders: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    result = await orders.create_online_order(order_data)
    return {
        "success": True,
        "order": result.order,
        "subtotal": result.subtotal,
        "vat": result.vat,
        "total": result.gross_total,
        "loyalty_discount": result.loyalty_discount,
        "redeemed_points": result.redeemed_points,
        "final_total": result.final_total,
    }


# =============================================================================
# INVENTORY ENDPOINTS
# =============================================================================

@app.get("/api/inventory", tags=["Inventory"])
async def list_inventory(
    inventory: InventoryService = Depends(get_inventory_service),
) -> list[dict[str, Any]]:
    return await inventory.list_items()


@app.post("/api/inventory", tags=["Inventory"])
async def create_inventory_item(
    data: InventoryItemCreate,
    inventory: InventoryService = Depends(get_inventory_service),
) -> MutationResponse:
    item = await inventory.create_item(data)
    return MutationResponse(message=f"Inventory item {data.name_en} created", data=item)


@app.get("/api/inventory/low-stock", tags=["Inventory"])
async def low_stock_alerts(
    inventory: InventoryService = Depends(get_inventory_service),
) -> list[dict[str, Any]]:
    return [alert.__dict__ for alert in await inventory.low_stock_alerts()]


@app.post("/api/inventory/menu-items-stock", tags=["Inventory"])
async def menu_items_stock(
    request: MenuItemsStockRequest,
    inventory: InventoryService = Depends(get_inventory_service),
) -> list[dict[str, Any]]:
    stock = await inventory.menu_items_stock(request.menu_item_ids)
    return [entry.__dict__ for entry in stock]


@app.post("/api/inventory/{item_id}/adjust", responses=ERROR_RESPONSES, tags=["Inventory"])
async def adjust_stock(
    item_id: str,
    adjustment: StockAdjustment,
    inventory: InventoryService = Depends(get_inventory_service),
) -> MutationResponse:
    result = await inventory.adjust_stock(item_id, adjustment.quantity, adjustment.reason)
    return MutationResponse(message=result.message, data=result.__dict__)


@app.get("/api/inventory/{item_id}/movements", tags=["Inventory"])
async def stock_movements(
    item_id: str,
    limit: int = Query(50, ge=1, le=500),
    inventory: InventoryService = Depends(get_inventory_service),
) -> list[dict[str, Any]]:
    return await inventory.movement_history(item_id, limit)


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get("/api/menu/items", tags=["Menu"])
async def menu_items(menu: MenuService = Depends(get_menu_service)) -> list[dict[str, Any]]:
    return await menu.available_items()


@app.get("/api/menu/categories", tags=["Menu"])
async def menu_categories(menu: MenuService = Depends(get_menu_service)) -> list[dict[str, Any]]:
    return await menu.active_categories()


@app.get("/api/menu/items/{menu_item_id}/stock", tags=["Menu"])
async def check_menu_item_stock(
    menu_item_id: str,
    quantity: int = Query(1, ge=1),
    inventory: InventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    available, insufficient = await inventory.check_menu_item_stock(menu_item_id, quantity)
    return {"available": available, "insufficient_ingredients": insufficient}


# =============================================================================
# TABLE ENDPOINTS
# =============================================================================

@app.get("/api/tables", tags=["Tables"])
async def list_tables(tables: TableService = Depends(get_table_service)) -> list[dict[str, Any]]:
    return await tables.list_tables()


@app.post("/api/tables", tags=["Tables"])
async def create_table(
    data: TableCreate,
    tables: TableService = Depends(get_table_service),
) -> MutationResponse:
    table = await tables.create_table(data)
    return MutationResponse(message=f"Table {data.table_number} created", data=table)


@app.patch("/api/tables/{table_id}", responses=ERROR_RESPONSES, tags=["Tables"])
async def update_table(
    table_id: str,
    data: TableUpdate,
    tables: TableService = Depends(get_table_service),
) -> MutationResponse:
    table = await tables.update_table(table_id, data)
    return MutationResponse(message="Table updated", data=table)


@app.delete("/api/tables/{table_id}", responses=ERROR_RESPONSES, tags=["Tables"])
async def delete_table(
    table_id: str,
    tables: TableService = Depends(get_table_service),
) -> MutationResponse:
    table = await tables.delete_table(table_id)
    return MutationResponse(message="Table deleted", data=table)


@app.patch("/api/tables/{table_id}/status", responses=ERROR_RESPONSES, tags=["Tables"])
async def update_table_status(
    table_id: str,
    update: TableStatusUpdate,
    tables: TableService = Depends(get_table_service),
) -> MutationResponse:
    if "current_order_id" in update.model_fields_set:
        table = await tables.update_status(table_id, update.status.value, update.current_order_id)
    else:
        table = await tables.update_status(table_id, update.status.value)
    return MutationResponse(message=f"Table status set to {update.status.value}", data=table)


# =============================================================================
# SHIFT & REPORT ENDPOINTS
# =============================================================================

@app.get("/api/shifts", tags=["Shifts"])
async def list_shifts(
    status: Optional[str] = Query(None, pattern="^(open|closed)$"),
    shifts: ShiftService = Depends(get_shift_service),
) -> list[dict[str, Any]]:
    return await shifts.list_shifts(status)


@app.post("/api/shifts/{shift_id}/close", responses=ERROR_RESPONSES, tags=["Shifts"])
async def close_shift(
    shift_id: str,
    data: ShiftClose,
    shifts: ShiftService = Depends(get_shift_service),
) -> MutationResponse:
    result = await shifts.close_shift(shift_id, data.closing_cash, data.notes)
    queue_shift_report({**result.summary, "notes": data.notes})
    return MutationResponse(message=result.message, data=result.summary)


@app.get("/api/reports/shifts", tags=["Reports"])
async def shift_reports() -> list[dict[str, Any]]:
    """Shift summaries exported so far by the report worker."""
    return ShiftReportManager().get_all_shift_summaries()


# =============================================================================
# CUSTOMER & LOYALTY ENDPOINTS
# =============================================================================

@app.get("/api/loyalty/{phone}", tags=["Loyalty"])
async def loyalty_balance(
    phone: str,
    customers: CustomerService = Depends(get_customer_service),
) -> dict[str, Any]:
    """``balance`` is null when the phone is too short to look up."""
    balance = await customers.loyalty_balance(phone)
    return {"phone": phone, "balance": balance.to_dict() if balance else None}


@app.get("/api/customers", tags=["Customers"])
async def search_customers(
    search: str = Query("", max_length=100),
    limit: int = Query(20, ge=1, le=100),
    customers: CustomerService = Depends(get_customer_service),
) -> list[dict[str, Any]]:
    return await customers.search_customers(search, limit)


@app.post("/api/customers", responses=ERROR_RESPONSES, tags=["Customers"])
async def create_customer(
    data: CustomerCreate,
    customers: CustomerService = Depends(get_customer_service),
) -> MutationResponse:
    customer = await customers.create_customer(data)
    return MutationResponse(message=f"Customer {data.name} created", data=customer)


# =============================================================================
# DASHBOARD & ANALYTICS ENDPOINTS
# =============================================================================

@app.get("/api/dashboard/stats", tags=["Dashboard"])
async def dashboard_stats(
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return (await analytics.dashboard_stats()).to_dict()


@app.get("/api/dashboard/daily-sales", tags=["Dashboard"])
async def daily_sales(
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> list[dict[str, Any]]:
    return await analytics.daily_sales()


@app.get("/api/dashboard/top-selling", tags=["Dashboard"])
async def top_selling_items(
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> list[dict[str, Any]]:
    return await analytics.top_selling_items()


@app.get("/api/analytics/sales", tags=["Dashboard"])
async def sales_analytics(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    """Sales report for an interval; defaults to today."""
    report = await analytics.sales_analytics(parse_timestamp(start), parse_timestamp(end))
    return report.to_dict()


# =============================================================================
# MENU CHAT
# =============================================================================

@app.post("/functions/menu-chat", tags=["Menu Chat"], summary="Public Menu Assistant")
async def menu_chat(
    request: Request,
    assistant: MenuAssistant = Depends(get_menu_assistant),
) -> JSONResponse:
    """
    Answer a guest's question about the menu.

    Errors use the body ``{"error": message}``: 400 for a malformed body or
    a missing message, 503 when the model is unconfigured or unavailable,
    500 otherwise.
    """
    try:
        chat_request = MenuChatRequest.model_validate(await request.json())
    except (ValueError, PydanticValidationError) as e:
        logger.warning(f"Menu chat: rejected request body - {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    try:
        result = await assistant.answer(chat_request)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    except ChatServiceError as e:
        return JSONResponse(status_code=503, content={"error": e.message})
    except Exception as e:
        logger.exception(f"Menu chat error: {e}")
        return JSONResponse(status_code=500, content={"error": "An unexpected error occurred."})

    return JSONResponse(content=result.to_dict())


# =============================================================================
# CHANGE NOTIFICATIONS
# =============================================================================

@app.post("/webhook/db-changes", tags=["Webhooks"], summary="Backend Change Notification")
async def db_changes(notification: ChangeNotification) -> dict[str, Any]:
    """Drop cached queries that read the changed table."""
    removed = get_query_cache().handle_change(notification.table)
    return {"success": True, "table": notification.table, "invalidated": removed}


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, detail=exc.detail).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
