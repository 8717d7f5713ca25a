# backend/unit_conversion_engine.py

"""
Unit Conversion Engine - Base/Derived Unit Graph

This engine is responsible for:
- Validating unit definitions (base unit + operator + operand)
- Walking a unit's base-unit chain back to its root
- Converting a quantity between two units that share a root
- Building a conversion audit trail

This engine MUST NOT:
- Query the database mid-computation (callers pre-fetch the chain)
- Round quantities (display formatting is a caller concern)
- Retry failed conversions (all failures are deterministic data errors)

GLOBAL INVARIANTS (ENFORCED):
1) A derived unit MUST have an operator and a non-negative operation_value
2) A base unit carries no operator, or the neutral "* 1" pair
3) A unit can never be its own base unit
4) Every chain terminates at a base unit within MAX_CHAIN_DEPTH hops
5) Division by a zero operand is an error, never inf/nan
6) convert(A, A, q) == q
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Tuple, Callable, Mapping, Union
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
import uuid
import logging

logger = logging.getLogger(__name__)

# Chains longer than this are treated as misconfigured data
MAX_CHAIN_DEPTH = 32

# ==================== ENUMS ====================

class UnitOperator(str, Enum):
    """Operators allowed between a derived unit and its base unit"""
    MULTIPLY = "*"
    DIVIDE = "/"
    ADD = "+"
    SUBTRACT = "-"


class ConversionStatus(str, Enum):
    """Conversion result status"""
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


ALLOWED_OPERATORS = [op.value for op in UnitOperator]

# Base units are stored with this pair by the unit service
NEUTRAL_OPERATOR = UnitOperator.MULTIPLY.value
NEUTRAL_OPERATION_VALUE = 1.0

# ==================== ERROR CLASSES ====================

class ConversionError(Exception):
    """Base conversion error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None, severity: str = "HARD_ERROR"):
        self.error_code = error_code
        self.message = message
        self.field = field
        self.severity = severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "field": self.field,
            "severity": self.severity,
        }


class UnitNotFoundError(ConversionError):
    """Referenced unit does not resolve"""
    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(
            "UNIT_NOT_FOUND",
            f"Unit '{unit_id}' not found.",
            field="base_unit",
        )


class CycleDetectedError(ConversionError):
    """Base-unit chain revisits a unit"""
    def __init__(self, unit_id: str, path: List[str]):
        self.unit_id = unit_id
        self.path = path
        super().__init__(
            "CYCLE_DETECTED",
            f"Base unit chain of '{path[0] if path else unit_id}' loops back to '{unit_id}': {' -> '.join(path + [unit_id])}",
            field="base_unit",
        )


class ChainTooLongError(ConversionError):
    """Base-unit chain exceeds the traversal limit"""
    def __init__(self, unit_id: str, max_depth: int):
        self.unit_id = unit_id
        self.max_depth = max_depth
        super().__init__(
            "CHAIN_TOO_LONG",
            f"Base unit chain of '{unit_id}' exceeds {max_depth} steps. Check the unit configuration.",
            field="base_unit",
        )


class DivisionByZeroError(ConversionError):
    """Operation value of 0 used as a divisor"""
    def __init__(self, unit_code: str, operator: str):
        super().__init__(
            "DIVISION_BY_ZERO",
            f"Unit '{unit_code}' divides by an operation value of 0 (operator '{operator}').",
            field="operation_value",
        )


class IncompatibleUnitsError(ConversionError):
    """Units resolve to different root base units"""
    def __init__(self, from_unit: str, to_unit: str):
        super().__init__(
            "INCOMPATIBLE_UNITS",
            f"Cannot convert between incompatible units '{from_unit}' and '{to_unit}'.",
            field="to_unit",
        )


class InvalidUnitDefinitionError(ConversionError):
    """Operator/operand inconsistent with base_unit"""
    def __init__(self, unit_code: str, reason: str, field: Optional[str] = None):
        self.reason = reason
        super().__init__(
            "INVALID_UNIT_DEFINITION",
            f"Unit '{unit_code}' is misconfigured: {reason}",
            field=field,
        )


# ==================== DATA MODELS ====================

class Unit(BaseModel):
    """Unit of measure record"""
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    code: str
    name: str
    base_unit: Optional[str] = None
    operator: Optional[str] = None
    operation_value: Optional[float] = None
    is_active: bool = True

    @property
    def is_base(self) -> bool:
        return not self.base_unit


class ConversionStep(BaseModel):
    """Single conversion step in audit trail"""
    step_number: int
    from_unit: str
    from_qty: float
    to_unit: str
    to_qty: float
    operator: str
    operation_value: float
    direction: str  # "TO_BASE" | "FROM_BASE"
    calculation_formula: str


class ConversionBreakdown(BaseModel):
    """Complete conversion audit trail"""
    steps: List[ConversionStep]
    total_steps: int


class ConversionResult(BaseModel):
    """Engine output contract"""
    from_unit: str
    to_unit: str
    quantity: float
    converted_qty: Optional[float] = None

    base_unit: Optional[str] = None
    base_qty: Optional[float] = None

    conversion_breakdown: ConversionBreakdown
    status: ConversionStatus
    errors: List[Dict[str, Any]] = []

    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


UnitLookup = Callable[[str], Optional[Unit]]

# ==================== OPERATOR TABLES ====================

# Derived unit -> base unit
_TO_BASE: Dict[str, Callable[[float, float], float]] = {
    "*": lambda q, v: q * v,
    "/": lambda q, v: q / v,
    "+": lambda q, v: q + v,
    "-": lambda q, v: q - v,
}

# Base unit -> derived unit
_FROM_BASE: Dict[str, Callable[[float, float], float]] = {
    "*": lambda q, v: q / v,
    "/": lambda q, v: q * v,
    "+": lambda q, v: q - v,
    "-": lambda q, v: q + v,
}

# Operators whose inverse divides by the operand
_INVERSE_SYMBOL = {"*": "/", "/": "*", "+": "-", "-": "+"}


# ==================== UNIT CONVERSION ENGINE ====================

class UnitConversionEngine:
    """
    Stateless unit conversion engine.

    The engine walks already-fetched unit records. It holds no mutable state
    and can be shared across concurrent requests.
    """

    def __init__(
        self,
        lookup: Union[UnitLookup, Mapping[str, Unit], None] = None,
        max_chain_depth: int = MAX_CHAIN_DEPTH
    ):
        """
        Initialize engine.

        Args:
            lookup: Callable returning a Unit (or None) for an id, or a
                mapping of pre-fetched units keyed by id. Must be
                idempotent and side-effect free.
            max_chain_depth: Maximum number of base-unit hops per chain
        """
        if lookup is None:
            lookup = {}
        if isinstance(lookup, Mapping):
            self._lookup: UnitLookup = lookup.get
        else:
            self._lookup = lookup
        self.max_chain_depth = max_chain_depth

    # ==================== VALIDATION ====================

    @staticmethod
    def validate_unit(unit: Unit) -> None:
        """
        Check that operator/operation_value agree with base_unit.

        Raises:
            InvalidUnitDefinitionError: If the definition is inconsistent
        """
        if unit.base_unit:
            if unit.base_unit == unit.id:
                raise InvalidUnitDefinitionError(unit.code, "a unit cannot be its own base unit", field="base_unit")
            if unit.operator is None:
                raise InvalidUnitDefinitionError(unit.code, "operator is required when base_unit is set", field="operator")
            if unit.operator not in ALLOWED_OPERATORS:
                raise InvalidUnitDefinitionError(
                    unit.code,
                    f"operator must be one of: {', '.join(ALLOWED_OPERATORS)}",
                    field="operator"
                )
            if unit.operation_value is None:
                raise InvalidUnitDefinitionError(unit.code, "operation_value is required when base_unit is set", field="operation_value")
            if unit.operation_value < 0:
                raise InvalidUnitDefinitionError(unit.code, "operation_value must be greater than or equal to 0", field="operation_value")
            return

        if unit.operator is None and unit.operation_value is None:
            return
        if unit.operator == NEUTRAL_OPERATOR and unit.operation_value == NEUTRAL_OPERATION_VALUE:
            return
        raise InvalidUnitDefinitionError(
            unit.code,
            "operator and operation_value require a base_unit",
            field="base_unit"
        )

    # ==================== CHAIN TRAVERSAL ====================

    def get_unit(self, unit_id: str) -> Unit:
        unit = self._lookup(unit_id)
        if unit is None:
            raise UnitNotFoundError(unit_id)
        return unit

    def resolve_chain(self, unit: Unit) -> List[Unit]:
        """
        Walk base_unit references from unit to its root.

        Args:
            unit: Starting unit

        Returns:
            [unit, parent, ..., root]

        Raises:
            CycleDetectedError: If a unit is revisited
            ChainTooLongError: If more than max_chain_depth hops are needed
            UnitNotFoundError: If a base_unit reference does not resolve
            InvalidUnitDefinitionError: If a unit on the chain is misconfigured
        """
        chain = [unit]
        seen = {unit.id}
        current = unit

        while current.base_unit:
            self.validate_unit(current)
            if len(chain) > self.max_chain_depth:
                raise ChainTooLongError(unit.code, self.max_chain_depth)
            if current.base_unit in seen:
                raise CycleDetectedError(current.base_unit, [u.id for u in chain])
            current = self.get_unit(current.base_unit)
            seen.add(current.id)
            chain.append(current)

        self.validate_unit(current)
        return chain

    # ==================== ARITHMETIC ====================

    @staticmethod
    def _apply(unit: Unit, quantity: float, table: Dict[str, Callable[[float, float], float]]) -> float:
        operator = unit.operator
        value = float(unit.operation_value)
        # "/ 0" is rejected in both directions, "* 0" only when it has to be undone
        if value == 0 and (operator == "/" or (operator == "*" and table is _FROM_BASE)):
            raise DivisionByZeroError(unit.code, operator)
        return table[operator](quantity, value)

    def _up(self, chain: List[Unit], quantity: float, steps: Optional[List[ConversionStep]] = None) -> float:
        qty = quantity
        for unit, parent in zip(chain, chain[1:]):
            new_qty = self._apply(unit, qty, _TO_BASE)
            if steps is not None:
                steps.append(ConversionStep(
                    step_number=len(steps) + 1,
                    from_unit=unit.code,
                    from_qty=qty,
                    to_unit=parent.code,
                    to_qty=new_qty,
                    operator=unit.operator,
                    operation_value=unit.operation_value,
                    direction="TO_BASE",
                    calculation_formula=f"{qty} {unit.operator} {unit.operation_value} = {new_qty}"
                ))
            qty = new_qty
        return qty

    def _down(self, chain: List[Unit], base_quantity: float, steps: Optional[List[ConversionStep]] = None) -> float:
        qty = base_quantity
        for parent, unit in zip(reversed(chain), list(reversed(chain))[1:]):
            new_qty = self._apply(unit, qty, _FROM_BASE)
            if steps is not None:
                steps.append(ConversionStep(
                    step_number=len(steps) + 1,
                    from_unit=parent.code,
                    from_qty=qty,
                    to_unit=unit.code,
                    to_qty=new_qty,
                    operator=_INVERSE_SYMBOL[unit.operator],
                    operation_value=unit.operation_value,
                    direction="FROM_BASE",
                    calculation_formula=f"{qty} {_INVERSE_SYMBOL[unit.operator]} {unit.operation_value} = {new_qty}"
                ))
            qty = new_qty
        return qty

    # ==================== PUBLIC API ====================

    def resolve_to_base(self, unit: Unit, quantity: float) -> Tuple[Unit, float]:
        """
        Express a quantity of unit in its root base unit.

        Args:
            unit: Unit the quantity is expressed in
            quantity: Quantity in that unit

        Returns:
            Tuple of (root base unit, quantity in root base unit)

        Raises:
            ConversionError subclasses
        """
        chain = self.resolve_chain(unit)
        return chain[-1], self._up(chain, quantity)

    def convert(self, from_unit: Unit, to_unit: Unit, quantity: float) -> float:
        """
        Convert a quantity between two units on the same base-unit tree.

        Raises:
            IncompatibleUnitsError: If the units have different roots
            ConversionError subclasses for chain/arithmetic failures
        """
        if from_unit.id == to_unit.id:
            return quantity

        from_chain = self.resolve_chain(from_unit)
        to_chain = self.resolve_chain(to_unit)
        if from_chain[-1].id != to_chain[-1].id:
            raise IncompatibleUnitsError(from_unit.code, to_unit.code)

        base_qty = self._up(from_chain, quantity)
        return self._down(to_chain, base_qty)

    def convert_detailed(self, from_unit: Unit, to_unit: Unit, quantity: float) -> ConversionResult:
        """
        Convert with an audit trail.

        Conversion errors are captured into the result instead of raised.

        Returns:
            ConversionResult with status SUCCESS or ERROR
        """
        steps: List[ConversionStep] = []
        errors: List[Dict[str, Any]] = []
        converted_qty = None
        root = None
        base_qty = None

        try:
            if from_unit.id == to_unit.id:
                converted_qty = quantity
            else:
                from_chain = self.resolve_chain(from_unit)
                to_chain = self.resolve_chain(to_unit)
                if from_chain[-1].id != to_chain[-1].id:
                    raise IncompatibleUnitsError(from_unit.code, to_unit.code)
                up_qty = self._up(from_chain, quantity, steps)
                converted_qty = self._down(to_chain, up_qty, steps)
                root = from_chain[-1]
                base_qty = up_qty
        except ConversionError as e:
            logger.warning(f"Unit conversion {from_unit.code} -> {to_unit.code} failed: {e.error_code} {e.message}")
            errors.append(e.to_dict())
            steps = []

        return ConversionResult(
            from_unit=from_unit.code,
            to_unit=to_unit.code,
            quantity=quantity,
            converted_qty=converted_qty,
            base_unit=root.code if root else None,
            base_qty=base_qty,
            conversion_breakdown=ConversionBreakdown(steps=steps, total_steps=len(steps)),
            status=ConversionStatus.ERROR if errors else ConversionStatus.SUCCESS,
            errors=errors,
        )
