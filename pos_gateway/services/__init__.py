"""
                        Services Module

Business logic over the hosted backend. Every service takes the backend
client and the query cache, so tests can hand in an in-memory backend
and a private cache.

Services:
    - orders: order entry, kitchen workflow, history
    - inventory: stock adjustments, alerts, recipe availability
    - shifts: shift close and reconciliation
    - customers: loyalty balance and redemption
    - tables / menu: dining tables and the menu
    - analytics: dashboard and sales reports
    - chat: menu assistant (Mock / Gemini)
    - reports: file-locked Excel export of shift summaries

The ``get_*_service`` functions below are the FastAPI dependencies.
"""

from pos_gateway.backend import get_backend
from pos_gateway.cache import get_query_cache
from pos_gateway.services.analytics import AnalyticsService
from pos_gateway.services.customers import CustomerService
from pos_gateway.services.inventory import InventoryService
from pos_gateway.services.menu import MenuService
from pos_gateway.services.orders import OrderService
from pos_gateway.services.reports import ShiftReportManager
from pos_gateway.services.shifts import ShiftService
from pos_gateway.services.tables import TableService
from pos_gateway.services.chat import MenuAssistant, get_chat_service


def get_order_service() -> OrderService:
    return OrderService(get_backend(), get_query_cache())


def get_inventory_service() -> InventoryService:
    return InventoryService(get_backend(), get_query_cache())


def get_shift_service() -> ShiftService:
    return ShiftService(get_backend(), get_query_cache())


def get_customer_service() -> CustomerService:
    return CustomerService(get_backend(), get_query_cache())


def get_table_service() -> TableService:
    return TableService(get_backend(), get_query_cache())


def get_menu_service() -> MenuService:
    return MenuService(get_backend(), get_query_cache())


def get_analytics_service() -> AnalyticsService:
    return AnalyticsService(get_backend(), get_query_cache())


def get_menu_assistant() -> MenuAssistant:
    return MenuAssistant(get_chat_service(), get_menu_service())


__all__ = [
    "AnalyticsService",
    "CustomerService",
    "InventoryService",
    "MenuAssistant",
    "MenuService",
    "OrderService",
    "ShiftReportManager",
    "ShiftService",
    "TableService",
    "get_analytics_service",
    "get_customer_service",
    "get_inventory_service",
    "get_menu_assistant",
    "get_menu_service",
    "get_order_service",
    "get_shift_service",
    "get_table_service",
]
