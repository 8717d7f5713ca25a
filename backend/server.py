from fastapi import FastAPI, APIRouter, HTTPException, Query
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
import os
import logging
from pathlib import Path
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone

from unit_conversion_engine import MAX_CHAIN_DEPTH, ConversionError, UnitNotFoundError
from unit_service import UnitService, UnitValidationError, UnitInUseError, parse_loose_bool
from permission_definitions import GUARD, all_permissions
from permission_module_resolver import resolve, group_by_module
from permission_seeder import PermissionSeeder

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB connection
mongo_url = os.environ['MONGO_URL']
client = AsyncIOMotorClient(mongo_url)
db = client[os.environ['DB_NAME']]

# Deployment flags
MULTI_TENANT = bool(parse_loose_bool(os.environ.get('MULTI_TENANT', 'false')))


def read_max_chain_depth(raw: Optional[str]) -> int:
    """UNIT_MAX_CHAIN_DEPTH as a positive int, else the engine default"""
    if raw is None or raw.strip() == "":
        return MAX_CHAIN_DEPTH
    try:
        value = int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            f"UNIT_MAX_CHAIN_DEPTH={raw!r} is not an integer, using {MAX_CHAIN_DEPTH}"
        )
        return MAX_CHAIN_DEPTH
    if value < 1:
        logging.getLogger(__name__).warning(
            f"UNIT_MAX_CHAIN_DEPTH={value} must be at least 1, using {MAX_CHAIN_DEPTH}"
        )
        return MAX_CHAIN_DEPTH
    return value


UNIT_MAX_CHAIN_DEPTH = read_max_chain_depth(os.environ.get('UNIT_MAX_CHAIN_DEPTH'))

app = FastAPI(title="Retail ERP Core")

# ==================== CORS CONFIGURATION ====================
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

cors_origins_env = os.environ.get('CORS_ORIGINS', '')
if cors_origins_env:
    cors_origins = [origin.strip() for origin in cors_origins_env.split(',') if origin.strip()]
else:
    cors_origins = DEFAULT_CORS_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
)

# ==================== HEALTH ENDPOINT (ROOT LEVEL) ====================
@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "service": "Retail ERP Core API",
        "version": "1.0.0"
    }

api_router = APIRouter(prefix="/api")


def get_unit_service() -> UnitService:
    return UnitService(db, max_chain_depth=UNIT_MAX_CHAIN_DEPTH)


def get_permission_seeder() -> PermissionSeeder:
    return PermissionSeeder(db)

# ==================== MODELS ====================

class UnitCreate(BaseModel):
    code: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    base_unit: Optional[str] = None
    operator: Optional[str] = None
    operation_value: Optional[float] = None
    is_active: Optional[Any] = None

class UnitUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=255)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    base_unit: Optional[str] = None
    operator: Optional[str] = None
    operation_value: Optional[float] = None
    is_active: Optional[Any] = None

class BulkUnitIds(BaseModel):
    ids: List[str] = Field(min_length=1)

class ConvertRequest(BaseModel):
    from_unit_id: str
    to_unit_id: str
    quantity: float

class SeedRequest(BaseModel):
    multi_tenant: Optional[bool] = None
    extra_mappings: List[Dict[str, Any]] = []


def raise_unit_http_error(e: Exception):
    """Translate unit service / engine failures into user-facing responses"""
    if isinstance(e, UnitNotFoundError):
        raise HTTPException(status_code=404, detail=e.message)
    if isinstance(e, UnitValidationError):
        raise HTTPException(status_code=422, detail={"field": e.field, "message": e.message})
    if isinstance(e, UnitInUseError):
        raise HTTPException(status_code=409, detail=e.message)
    if isinstance(e, ConversionError):
        raise HTTPException(status_code=422, detail={"error_code": e.error_code, "message": e.message})
    raise e

# ==================== UNIT ROUTES ====================

@api_router.get("/units")
async def get_units(status: Optional[str] = None, search: Optional[str] = None):
    return await get_unit_service().list_units(status=status, search=search)

@api_router.get("/units/base")
async def get_base_units():
    return await get_unit_service().get_base_units()

@api_router.post("/units/convert")
async def convert_units(data: ConvertRequest):
    try:
        result = await get_unit_service().convert(data.from_unit_id, data.to_unit_id, data.quantity)
    except (ConversionError, UnitValidationError) as e:
        raise_unit_http_error(e)
    if result.errors:
        error = result.errors[0]
        raise HTTPException(status_code=422, detail={"error_code": error["error_code"], "message": error["message"]})
    return result.model_dump(mode="json")

@api_router.post("/units/bulk-activate")
async def bulk_activate_units(data: BulkUnitIds):
    updated = await get_unit_service().bulk_activate(data.ids)
    return {"message": f"{updated} units activated", "updated": updated}

@api_router.post("/units/bulk-deactivate")
async def bulk_deactivate_units(data: BulkUnitIds):
    updated = await get_unit_service().bulk_deactivate(data.ids)
    return {"message": f"{updated} units deactivated", "updated": updated}

@api_router.post("/units/bulk-destroy")
async def bulk_destroy_units(data: BulkUnitIds):
    result = await get_unit_service().bulk_destroy(data.ids)
    return {"message": f"{result['deleted']} units deleted", **result}

@api_router.get("/units/{unit_id}")
async def get_unit(unit_id: str):
    unit = await get_unit_service().get_unit_by_id(unit_id)
    if not unit:
        raise HTTPException(status_code=404, detail="Unit not found")
    return unit

@api_router.post("/units")
async def create_unit(data: UnitCreate):
    try:
        return await get_unit_service().create_unit(data.model_dump())
    except (ConversionError, UnitValidationError) as e:
        raise_unit_http_error(e)

@api_router.put("/units/{unit_id}")
async def update_unit(unit_id: str, data: UnitUpdate):
    try:
        return await get_unit_service().update_unit(unit_id, data.model_dump(exclude_unset=True))
    except (ConversionError, UnitValidationError) as e:
        raise_unit_http_error(e)

@api_router.delete("/units/{unit_id}")
async def delete_unit(unit_id: str):
    try:
        await get_unit_service().delete_unit(unit_id)
    except (ConversionError, UnitInUseError) as e:
        raise_unit_http_error(e)
    return {"message": "Unit deleted"}

# ==================== PERMISSION ROUTES ====================

@api_router.get("/permissions")
async def get_permissions(module: Optional[str] = Query(default=None)):
    """Stored permissions with their module; falls back to the catalog before seeding"""
    permissions = await db.permissions.find({"guard_name": GUARD}, {"_id": 0}).to_list(None)
    if not permissions:
        permissions = all_permissions()
    for permission in permissions:
        permission["module"] = resolve(permission["name"])
    if module:
        permissions = [p for p in permissions if p["module"] == module]
    return permissions

@api_router.get("/permissions/modules")
async def get_permission_modules():
    permissions = await db.permissions.find({"guard_name": GUARD}, {"_id": 0, "name": 1}).to_list(None)
    names = [p["name"] for p in permissions] or [p["name"] for p in all_permissions()]
    return group_by_module(names)

@api_router.post("/permissions/seed")
async def seed_permissions(data: SeedRequest):
    multi_tenant = MULTI_TENANT if data.multi_tenant is None else data.multi_tenant
    counts = await get_permission_seeder().seed(multi_tenant=multi_tenant, extra_mappings=data.extra_mappings)
    return {"message": "Permissions seeded", "multi_tenant": multi_tenant, "inserted": counts}


app.include_router(api_router)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@app.on_event("startup")
async def startup_event():
    try:
        await db.units.create_index([("id", 1)], unique=True, name="unit_id_unique")
        await db.units.create_index([("code", 1)], unique=True, name="unit_code_unique")
        await db.units.create_index([("name", 1)], unique=True, name="unit_name_unique")
        await db.units.create_index([("base_unit", 1)], name="base_unit_idx")
        await db.permissions.create_index([("name", 1), ("guard_name", 1)], unique=True, name="permission_name_guard_unique")
        await db.role_has_permissions.create_index([("role_id", 1), ("permission_id", 1)], unique=True, name="role_permission_unique")
        logging.info("Unit and permission indexes created")
    except Exception as e:
        logging.warning(f"Failed to create unit/permission indexes: {e}")

@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()
