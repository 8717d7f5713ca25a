# backend/tests/test_unit_conversion_engine.py

"""
Unit tests for Unit Conversion Engine

Tests cover:
- Box → Piece (multiplicative) and back
- Offset units (+ / -) and back
- Multi-step chains (Pallet → Box → Piece)
- Round-trip and identity properties for every operator
- Division by zero guard
- Cycle detection and chain length limit
- Incompatible units and missing base units
- Unit definition validation
- Audit trail in convert_detailed
"""

import math

import pytest

from unit_conversion_engine import (
    UnitConversionEngine,
    Unit,
    ConversionStatus,
    CycleDetectedError,
    ChainTooLongError,
    DivisionByZeroError,
    IncompatibleUnitsError,
    InvalidUnitDefinitionError,
    UnitNotFoundError,
)


def make_unit(unit_id, base_unit=None, operator=None, operation_value=None):
    return Unit(
        id=unit_id,
        code=unit_id.upper(),
        name=unit_id.title(),
        base_unit=base_unit,
        operator=operator,
        operation_value=operation_value,
    )


@pytest.fixture
def units():
    """Piece-based tree plus an unrelated weight tree"""
    return {
        "piece": make_unit("piece"),
        "box": make_unit("box", "piece", "*", 12),
        "pallet": make_unit("pallet", "box", "*", 40),
        "half": make_unit("half", "piece", "/", 2),
        "x": make_unit("x"),
        "offset": make_unit("offset", "x", "+", 5),
        "minus": make_unit("minus", "x", "-", 3),
        "kg": make_unit("kg", None, "*", 1),
        "gram": make_unit("gram", "kg", "/", 1000),
    }


@pytest.fixture
def engine(units):
    return UnitConversionEngine(units)


class TestResolveToBase:
    """Test resolve_to_base step semantics"""

    def test_multiply_step(self, engine, units):
        base, qty = engine.resolve_to_base(units["box"], 3)
        assert base.id == "piece"
        assert qty == 36

    def test_divide_step(self, engine, units):
        base, qty = engine.resolve_to_base(units["gram"], 2500)
        assert base.id == "kg"
        assert qty == 2.5

    def test_add_and_subtract_steps(self, engine, units):
        assert engine.resolve_to_base(units["offset"], 10)[1] == 15
        assert engine.resolve_to_base(units["minus"], 10)[1] == 7

    def test_multi_step_chain(self, engine, units):
        base, qty = engine.resolve_to_base(units["pallet"], 2)
        assert base.id == "piece"
        assert qty == 960  # 2 × 40 × 12

    def test_base_unit_resolves_to_itself(self, engine, units):
        base, qty = engine.resolve_to_base(units["piece"], 7.5)
        assert base.id == "piece"
        assert qty == 7.5

    def test_lookup_callable(self, units):
        calls = []

        def lookup(unit_id):
            calls.append(unit_id)
            return units.get(unit_id)

        engine = UnitConversionEngine(lookup)
        assert engine.resolve_to_base(units["pallet"], 1)[1] == 480
        assert calls == ["box", "piece"]


class TestConvert:
    """Test convert between related units"""

    def test_box_to_piece(self, engine, units):
        assert engine.convert(units["box"], units["piece"], 1) == 12

    def test_piece_to_box(self, engine, units):
        assert engine.convert(units["piece"], units["box"], 12) == 1

    def test_offset_to_base(self, engine, units):
        assert engine.convert(units["offset"], units["x"], 10) == 15

    def test_base_to_offset(self, engine, units):
        assert engine.convert(units["x"], units["offset"], 15) == 10

    def test_sibling_units(self, engine, units):
        # 1 box = 12 pieces = 24 halves
        assert engine.convert(units["box"], units["half"], 1) == 24
        assert engine.convert(units["offset"], units["minus"], 10) == 18

    def test_pallet_to_box(self, engine, units):
        assert engine.convert(units["pallet"], units["box"], 1) == 40
        assert engine.convert(units["box"], units["pallet"], 20) == 0.5

    def test_no_rounding(self, engine, units):
        assert engine.convert(units["piece"], units["box"], 1) == 1 / 12

    @pytest.mark.parametrize("a,b", [
        ("box", "piece"), ("pallet", "half"), ("offset", "minus"),
        ("gram", "kg"), ("minus", "x"), ("half", "box"),
    ])
    @pytest.mark.parametrize("q", [0.0, 1.0, 3.7, 1250.25])
    def test_round_trip(self, engine, units, a, b, q):
        there = engine.convert(units[b], units[a], q)
        back = engine.convert(units[a], units[b], there)
        assert math.isclose(back, q, rel_tol=1e-9, abs_tol=1e-9)

    @pytest.mark.parametrize("unit_id", ["piece", "box", "offset", "gram"])
    def test_identity(self, engine, units, unit_id):
        assert engine.convert(units[unit_id], units[unit_id], 42.42) == 42.42


class TestConversionErrors:
    """Test typed conversion failures"""

    def test_division_by_zero_to_base(self):
        units = {"base": make_unit("base"), "broken": make_unit("broken", "base", "/", 0)}
        engine = UnitConversionEngine(units)

        with pytest.raises(DivisionByZeroError) as exc_info:
            engine.convert(units["broken"], units["base"], 5)
        assert exc_info.value.error_code == "DIVISION_BY_ZERO"

    def test_division_by_zero_from_base(self):
        units = {"base": make_unit("base"), "broken": make_unit("broken", "base", "/", 0)}
        engine = UnitConversionEngine(units)

        with pytest.raises(DivisionByZeroError):
            engine.convert(units["base"], units["broken"], 5)

    def test_multiply_by_zero_cannot_be_undone(self):
        units = {"base": make_unit("base"), "zero": make_unit("zero", "base", "*", 0)}
        engine = UnitConversionEngine(units)

        assert engine.convert(units["zero"], units["base"], 5) == 0
        with pytest.raises(DivisionByZeroError):
            engine.convert(units["base"], units["zero"], 5)

    def test_cycle_detected(self):
        units = {"a": make_unit("a", "b", "*", 2), "b": make_unit("b", "a", "*", 3)}
        engine = UnitConversionEngine(units)

        with pytest.raises(CycleDetectedError) as exc_info:
            engine.resolve_to_base(units["a"], 1)
        assert exc_info.value.error_code == "CYCLE_DETECTED"

    def test_longer_cycle_detected(self):
        units = {
            "a": make_unit("a", "b", "*", 2),
            "b": make_unit("b", "c", "*", 2),
            "c": make_unit("c", "b", "*", 2),
        }
        with pytest.raises(CycleDetectedError):
            UnitConversionEngine(units).resolve_to_base(units["a"], 1)

    def test_chain_too_long(self):
        units = {"u0": make_unit("u0")}
        for i in range(1, 41):
            units[f"u{i}"] = make_unit(f"u{i}", f"u{i - 1}", "*", 1)
        engine = UnitConversionEngine(units)

        with pytest.raises(ChainTooLongError) as exc_info:
            engine.resolve_to_base(units["u40"], 1)
        assert exc_info.value.error_code == "CHAIN_TOO_LONG"

    def test_chain_at_limit_is_allowed(self):
        units = {"u0": make_unit("u0")}
        for i in range(1, 5):
            units[f"u{i}"] = make_unit(f"u{i}", f"u{i - 1}", "*", 2)
        engine = UnitConversionEngine(units, max_chain_depth=4)

        assert engine.resolve_to_base(units["u4"], 1)[1] == 16

        units["u5"] = make_unit("u5", "u4", "*", 2)
        with pytest.raises(ChainTooLongError):
            engine.resolve_to_base(units["u5"], 1)

    def test_incompatible_units(self, engine, units):
        with pytest.raises(IncompatibleUnitsError) as exc_info:
            engine.convert(units["box"], units["gram"], 1)
        assert exc_info.value.error_code == "INCOMPATIBLE_UNITS"
        assert "incompatible" in exc_info.value.message

    def test_unit_not_found(self):
        orphan = make_unit("orphan", "missing", "*", 2)
        engine = UnitConversionEngine({"orphan": orphan})

        with pytest.raises(UnitNotFoundError) as exc_info:
            engine.resolve_to_base(orphan, 1)
        assert exc_info.value.error_code == "UNIT_NOT_FOUND"
        assert exc_info.value.unit_id == "missing"


class TestUnitValidation:
    """Test unit definition invariants"""

    def test_valid_definitions(self, units):
        for unit in units.values():
            UnitConversionEngine.validate_unit(unit)

    def test_missing_operator(self):
        with pytest.raises(InvalidUnitDefinitionError) as exc_info:
            UnitConversionEngine.validate_unit(make_unit("bad", "piece", None, 12))
        assert exc_info.value.field == "operator"

    def test_missing_operation_value(self):
        with pytest.raises(InvalidUnitDefinitionError) as exc_info:
            UnitConversionEngine.validate_unit(make_unit("bad", "piece", "*", None))
        assert exc_info.value.field == "operation_value"

    def test_unknown_operator(self):
        with pytest.raises(InvalidUnitDefinitionError):
            UnitConversionEngine.validate_unit(make_unit("bad", "piece", "^", 2))

    def test_negative_operation_value(self):
        with pytest.raises(InvalidUnitDefinitionError):
            UnitConversionEngine.validate_unit(make_unit("bad", "piece", "*", -1))

    def test_operator_without_base_unit(self):
        with pytest.raises(InvalidUnitDefinitionError) as exc_info:
            UnitConversionEngine.validate_unit(make_unit("bad", None, "+", 5))
        assert exc_info.value.field == "base_unit"

    def test_self_reference(self):
        with pytest.raises(InvalidUnitDefinitionError):
            UnitConversionEngine.validate_unit(make_unit("loop", "loop", "*", 2))

    def test_invalid_unit_on_chain_fails_conversion(self):
        units = {"base": make_unit("base"), "bad": make_unit("bad", "base", None, 2)}
        with pytest.raises(InvalidUnitDefinitionError):
            UnitConversionEngine(units).convert(units["bad"], units["base"], 1)


class TestConvertDetailed:
    """Test audit trail output"""

    def test_breakdown_steps(self, engine, units):
        result = engine.convert_detailed(units["pallet"], units["half"], 1)

        assert result.status == ConversionStatus.SUCCESS
        assert result.converted_qty == 960
        assert result.base_unit == "PIECE"
        assert result.base_qty == 480
        steps = result.conversion_breakdown.steps
        assert [s.direction for s in steps] == ["TO_BASE", "TO_BASE", "FROM_BASE"]
        assert steps[-1].operator == "*"
        assert steps[-1].to_qty == 960
        assert result.conversion_breakdown.total_steps == 3

    def test_errors_captured(self, engine, units):
        result = engine.convert_detailed(units["box"], units["gram"], 1)

        assert result.status == ConversionStatus.ERROR
        assert result.converted_qty is None
        assert result.errors[0]["error_code"] == "INCOMPATIBLE_UNITS"
        assert result.conversion_breakdown.steps == []

    def test_identity(self, engine, units):
        result = engine.convert_detailed(units["box"], units["box"], 5)
        assert result.status == ConversionStatus.SUCCESS
        assert result.converted_qty == 5
        assert result.conversion_breakdown.total_steps == 0
