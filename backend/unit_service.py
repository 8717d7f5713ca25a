"""
Unit Service - unit lifecycle, validation and conversion by id
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import re
import uuid
import logging

from unit_conversion_engine import (
    MAX_CHAIN_DEPTH,
    NEUTRAL_OPERATOR,
    NEUTRAL_OPERATION_VALUE,
    ConversionError,
    ConversionResult,
    InvalidUnitDefinitionError,
    Unit,
    UnitConversionEngine,
    UnitNotFoundError,
)

logger = logging.getLogger(__name__)

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off", ""}


def parse_loose_bool(value: Any) -> Optional[bool]:
    """Parse form-style booleans ("true", "1", "yes", ...). Unrecognized values give None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return None


class UnitServiceError(Exception):
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class UnitValidationError(UnitServiceError):
    """Input rejected (uniqueness, base unit, definition)"""


class UnitInUseError(UnitServiceError):
    """Unit is the base unit of other units"""


class UnitService:
    """Unit CRUD, bulk actions and conversion against the units collection"""

    def __init__(self, db, max_chain_depth: int = MAX_CHAIN_DEPTH):
        self.db = db
        self.max_chain_depth = max_chain_depth

    # ==================== LOOKUPS ====================

    async def get_unit_by_id(self, unit_id: str) -> Optional[dict]:
        return await self.db.units.find_one({"id": unit_id}, {"_id": 0})

    async def get_unit(self, unit_id: str) -> Unit:
        doc = await self.get_unit_by_id(unit_id)
        if not doc:
            raise UnitNotFoundError(unit_id)
        return Unit(**doc)

    async def list_units(self, status: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
        query: Dict[str, Any] = {}
        if status in ("active", "inactive"):
            query["is_active"] = status == "active"
        if search:
            term = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"code": term}, {"name": term}]
        return await self.db.units.find(query, {"_id": 0}).sort("name", 1).to_list(1000)

    async def get_base_units(self) -> List[dict]:
        """Active units with no base unit, for base-unit dropdowns"""
        return await self.db.units.find(
            {"is_active": True, "base_unit": None}, {"_id": 0}
        ).sort("name", 1).to_list(1000)

    async def load_chain(self, unit_id: str) -> Dict[str, Unit]:
        """
        Pre-fetch a unit and its ancestors.

        Stops at a missing unit, a revisited unit or one hop past the depth
        limit, so the engine can report the exact failure from the fetched data.
        """
        units: Dict[str, Unit] = {}
        current_id: Optional[str] = unit_id
        hops = 0
        while current_id and current_id not in units and hops <= self.max_chain_depth + 1:
            doc = await self.get_unit_by_id(current_id)
            if not doc:
                break
            unit = Unit(**doc)
            units[unit.id] = unit
            current_id = unit.base_unit
            hops += 1
        return units

    # ==================== VALIDATION ====================

    def normalize_unit_data(self, data: Dict[str, Any], is_update: bool = False) -> Dict[str, Any]:
        """Base units get the neutral "* 1" pair; is_active defaults to True on create."""
        data = dict(data)
        if not data.get("base_unit"):
            data["base_unit"] = None
            data["operator"] = NEUTRAL_OPERATOR
            data["operation_value"] = NEUTRAL_OPERATION_VALUE
        else:
            data["operator"] = data.get("operator") or None
            if data.get("operation_value") in ("", None):
                data["operation_value"] = None

        if "is_active" in data and data["is_active"] is not None:
            parsed = parse_loose_bool(data["is_active"])
            if parsed is None:
                raise UnitValidationError("The is_active field must be true or false.", field="is_active")
            data["is_active"] = parsed
        elif not is_update:
            data["is_active"] = True
        else:
            data.pop("is_active", None)

        return data

    async def _ensure_unique(self, field: str, value: str, unit_id: Optional[str]) -> None:
        query: Dict[str, Any] = {field: value}
        if unit_id:
            query["id"] = {"$ne": unit_id}
        if await self.db.units.find_one(query, {"_id": 0}):
            raise UnitValidationError(f"A unit with this {field} already exists.", field=field)

    async def _descendant_depth(self, unit_id: str) -> int:
        """Longest chain of sub-units below unit_id, capped just past the depth limit"""
        depth = 0
        seen = {unit_id}
        frontier = [unit_id]
        while frontier and depth <= self.max_chain_depth:
            children = await self.db.units.find(
                {"base_unit": {"$in": frontier}}, {"_id": 0, "id": 1}
            ).to_list(None)
            frontier = [c["id"] for c in children if c["id"] not in seen]
            seen.update(frontier)
            if frontier:
                depth += 1
        return depth

    async def _validate(self, unit: Unit, is_update: bool) -> None:
        """
        Reject duplicates, bad definitions, missing base units and chains that
        loop or grow past the depth limit. On update the limit also covers the
        sub-units hanging below the edited unit.
        """
        await self._ensure_unique("code", unit.code, unit.id if is_update else None)
        await self._ensure_unique("name", unit.name, unit.id if is_update else None)

        try:
            UnitConversionEngine.validate_unit(unit)
        except InvalidUnitDefinitionError as e:
            raise UnitValidationError(e.reason, field=e.field)

        if not unit.base_unit:
            return

        if not await self.get_unit_by_id(unit.base_unit):
            raise UnitValidationError("The selected base unit does not exist.", field="base_unit")

        # Walk the new chain with the edited unit in place of its stored version
        units = await self.load_chain(unit.base_unit)
        units[unit.id] = unit
        engine = UnitConversionEngine(units, self.max_chain_depth)
        try:
            chain = engine.resolve_chain(unit)
        except ConversionError as e:
            raise UnitValidationError(e.message, field="base_unit")

        if is_update:
            hops = len(chain) - 1 + await self._descendant_depth(unit.id)
            if hops > self.max_chain_depth:
                raise UnitValidationError(
                    f"Moving '{unit.code}' here would give its sub-units a base unit chain of {hops} steps "
                    f"(limit {self.max_chain_depth}).",
                    field="base_unit"
                )

    # ==================== CRUD ====================

    async def create_unit(self, data: Dict[str, Any]) -> dict:
        data = self.normalize_unit_data(data)
        now = datetime.now(timezone.utc).isoformat()
        unit = Unit(id=str(uuid.uuid4()), **{k: v for k, v in data.items() if k != "id"})
        await self._validate(unit, is_update=False)

        doc = {**unit.model_dump(), "created_at": now, "updated_at": now}
        await self.db.units.insert_one(doc)
        doc.pop("_id", None)
        logger.info(f"Created unit {unit.code} ({unit.id})")
        return doc

    async def update_unit(self, unit_id: str, data: Dict[str, Any]) -> dict:
        existing = await self.get_unit_by_id(unit_id)
        if not existing:
            raise UnitNotFoundError(unit_id)

        merged = {**existing, **{k: v for k, v in data.items() if k != "id"}}
        if "base_unit" in data and not data["base_unit"]:
            merged["base_unit"] = None
        merged = self.normalize_unit_data(merged, is_update=True)
        unit = Unit(**merged)
        await self._validate(unit, is_update=True)

        update = {**unit.model_dump(), "updated_at": datetime.now(timezone.utc).isoformat()}
        await self.db.units.update_one({"id": unit_id}, {"$set": update})
        logger.info(f"Updated unit {unit.code} ({unit_id})")
        return await self.get_unit_by_id(unit_id)

    async def delete_unit(self, unit_id: str) -> None:
        existing = await self.get_unit_by_id(unit_id)
        if not existing:
            raise UnitNotFoundError(unit_id)

        sub_unit_count = await self.db.units.count_documents({"base_unit": unit_id})
        if sub_unit_count > 0:
            raise UnitInUseError(
                f"Cannot delete unit '{existing['name']}' because it has associated sub-units."
            )

        await self.db.units.delete_one({"id": unit_id})
        logger.info(f"Deleted unit {existing['code']} ({unit_id})")

    # ==================== BULK ACTIONS ====================

    async def _set_active(self, ids: List[str], is_active: bool) -> int:
        if not ids:
            return 0
        result = await self.db.units.update_many(
            {"id": {"$in": ids}},
            {"$set": {"is_active": is_active, "updated_at": datetime.now(timezone.utc).isoformat()}}
        )
        return result.modified_count

    async def bulk_activate(self, ids: List[str]) -> int:
        return await self._set_active(ids, True)

    async def bulk_deactivate(self, ids: List[str]) -> int:
        return await self._set_active(ids, False)

    async def bulk_destroy(self, ids: List[str]) -> Dict[str, Any]:
        """
        Delete units, skipping any still used as base unit by a unit that survives.

        A skipped unit keeps its own base unit alive, so the skip set is grown
        until it stops changing.
        """
        if not ids:
            return {"deleted": 0, "skipped": []}

        dependants = await self.db.units.find(
            {"base_unit": {"$in": ids}}, {"_id": 0, "id": 1, "base_unit": 1}
        ).to_list(None)
        batch = set(ids)
        kept = set()
        changed = True
        while changed:
            changed = False
            for d in dependants:
                survives = d["id"] not in batch or d["id"] in kept
                if survives and d["base_unit"] not in kept:
                    kept.add(d["base_unit"])
                    changed = True
        in_use = sorted(kept)
        deletable = [i for i in ids if i not in kept]

        deleted = 0
        if deletable:
            result = await self.db.units.delete_many({"id": {"$in": deletable}})
            deleted = result.deleted_count

        if in_use:
            logger.warning(f"Bulk destroy skipped {len(in_use)} units still used as base units")
        return {"deleted": deleted, "skipped": in_use}

    # ==================== CONVERSION ====================

    async def convert(self, from_unit_id: str, to_unit_id: str, quantity: float) -> ConversionResult:
        """Pre-fetch both chains, then convert without further lookups"""
        units = await self.load_chain(from_unit_id)
        units.update(await self.load_chain(to_unit_id))

        if from_unit_id not in units:
            raise UnitNotFoundError(from_unit_id)
        if to_unit_id not in units:
            raise UnitNotFoundError(to_unit_id)

        engine = UnitConversionEngine(units, self.max_chain_depth)
        return engine.convert_detailed(units[from_unit_id], units[to_unit_id], quantity)
