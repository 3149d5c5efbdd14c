"""
Demo data for the in-memory backend.

Gives development mode a small but complete restaurant: menu categories
and items, the inventory behind their recipes, dining tables, an open
shift and one loyalty customer.
"""

from typing import Any

from pos_gateway.timeutils import utcnow_iso


def demo_tables() -> dict[str, list[dict[str, Any]]]:
    now = utcnow_iso()

    categories = [
        {"id": "cat-grill", "name_en": "Grill", "name_ar": "مشويات", "image_url": None,
         "is_active": True, "display_order": 1},
        {"id": "cat-drinks", "name_en": "Drinks", "name_ar": "مشروبات", "image_url": None,
         "is_active": True, "display_order": 2},
    ]

    menu_items = [
        {"id": "mi-burger", "category_id": "cat-grill", "category": "grill",
         "name_en": "Classic Burger", "name_ar": "برجر كلاسيك",
         "description_en": "Beef patty, cheddar, house sauce", "description_ar": "لحم بقري وجبن شيدر",
         "price": 32.0, "image_url": None, "is_available": True, "is_featured": True,
         "display_order": 1},
        {"id": "mi-shawarma", "category_id": "cat-grill", "category": "grill",
         "name_en": "Chicken Shawarma", "name_ar": "شاورما دجاج",
         "description_en": "Garlic sauce and pickles", "description_ar": "ثومية ومخلل",
         "price": 18.0, "image_url": None, "is_available": True, "is_featured": False,
         "display_order": 2},
        {"id": "mi-lemonade", "category_id": "cat-drinks", "category": "drinks",
         "name_en": "Mint Lemonade", "name_ar": "ليمون بالنعناع",
         "description_en": None, "description_ar": None,
         "price": 12.0, "image_url": None, "is_available": True, "is_featured": False,
         "display_order": 1},
    ]

    inventory_items = [
        {"id": "inv-beef", "name_en": "Beef Patty", "name_ar": "شريحة لحم", "unit": "pcs",
         "current_stock": 40.0, "minimum_stock": 10.0, "cost_per_unit": 6.5, "warehouse_id": "wh-main"},
        {"id": "inv-bun", "name_en": "Burger Bun", "name_ar": "خبز برجر", "unit": "pcs",
         "current_stock": 60.0, "minimum_stock": 20.0, "cost_per_unit": 1.0, "warehouse_id": "wh-main"},
        {"id": "inv-chicken", "name_en": "Chicken", "name_ar": "دجاج", "unit": "kg",
         "current_stock": 4.0, "minimum_stock": 5.0, "cost_per_unit": 22.0, "warehouse_id": "wh-main"},
        {"id": "inv-lemon", "name_en": "Lemon", "name_ar": "ليمون", "unit": "kg",
         "current_stock": 1.0, "minimum_stock": 3.0, "cost_per_unit": 8.0, "warehouse_id": "wh-main"},
    ]

    recipes = [
        {"id": "rc-1", "menu_item_id": "mi-burger", "inventory_item_id": "inv-beef", "quantity": 1.0},
        {"id": "rc-2", "menu_item_id": "mi-burger", "inventory_item_id": "inv-bun", "quantity": 1.0},
        {"id": "rc-3", "menu_item_id": "mi-shawarma", "inventory_item_id": "inv-chicken", "quantity": 0.2},
        {"id": "rc-4", "menu_item_id": "mi-lemonade", "inventory_item_id": "inv-lemon", "quantity": 0.1},
    ]

    tables = [
        {"id": f"tbl-{n}", "table_number": str(n), "capacity": 4 if n < 5 else 6,
         "section": "indoor" if n < 5 else "outdoor", "status": "available",
         "current_order_id": None, "is_active": True}
        for n in range(1, 7)
    ]

    return {
        "menu_categories": categories,
        "menu_items": menu_items,
        "inventory_items": inventory_items,
        "recipes": recipes,
        "restaurant_tables": tables,
        "shifts": [
            {"id": "shift-1", "status": "open", "opening_cash": 500.0,
             "opened_at": now, "created_at": now},
        ],
        "customers": [
            {"id": "cust-1", "name": "Sara", "phone": "0512345678",
             "loyalty_points": 120, "created_at": now},
        ],
    }
