from fastapi import APIRouter

from stockledger.app.api.v1.endpoints.health import router as health_router
from stockledger.app.api.v1.endpoints.inventory import router as inventory_router
from stockledger.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from stockledger.app.api.v1.endpoints.payables import router as payables_router
from stockledger.app.api.v1.endpoints.families import router as families_router
from stockledger.app.api.v1.endpoints.dashboard import router as dashboard_router
from stockledger.app.api.v1.endpoints.audits import router as audits_router
from stockledger.app.api.v1.endpoints.products import router as products_router
from stockledger.app.api.v1.endpoints.suppliers import router as suppliers_router
from stockledger.app.api.v1.endpoints.warehouses import router as warehouses_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(inventory_router, tags=["inventory"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(payables_router, tags=["accounts_payable"])
router.include_router(families_router, tags=["families"])
router.include_router(dashboard_router, tags=["dashboard"])
router.include_router(audits_router, tags=["audits"])
router.include_router(products_router, tags=["products"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(warehouses_router, tags=["warehouses"])
