"""Check keys compare and hash correctly."""

import numpy as np
import pytest
from statcond.element import Element
from statcond.keys import (
    ElementShape,
    GeometricFactors,
    GlobalLinSysKey,
    OperatorKey,
    OperatorType,
    VariableCoefficient,
)


def test_operator_key_equality() -> None:
    """Check keys with equal fields are equal and hash the same."""
    k1 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, [3], [1.5])
    k2 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (1.5,))
    assert k1 == k2
    assert hash(k1) == hash(k2)
    assert len({k1, k2}) == 1


def test_operator_key_constants() -> None:
    """Check a different constant gives a different key."""
    k1 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (1.0,))
    k2 = OperatorKey(OperatorType.HELMHOLTZ, ElementShape.SEGMENT, (3,), (2.0,))
    assert k1 != k2
    assert (k1 < k2) != (k2 < k1)


def test_variable_coefficient_identity() -> None:
    """Check coefficients are compared by identity of the array and offset."""
    a = np.ones(10)
    b = np.ones(10)
    key = OperatorKey(
        OperatorType.MASS, ElementShape.SEGMENT, (2,), (), (VariableCoefficient(a, 0),)
    )
    same = OperatorKey(
        OperatorType.MASS, ElementShape.SEGMENT, (2,), (), (VariableCoefficient(a, 0),)
    )
    other_array = OperatorKey(
        OperatorType.MASS, ElementShape.SEGMENT, (2,), (), (VariableCoefficient(b, 0),)
    )
    other_offset = OperatorKey(
        OperatorType.MASS, ElementShape.SEGMENT, (2,), (), (VariableCoefficient(a, 4),)
    )
    assert key == same
    assert hash(key) == hash(same)
    assert key != other_array
    assert key != other_offset


def test_operator_key_ordering() -> None:
    """Check keys can be sorted and the order is total."""
    keys = [
        OperatorKey(OperatorType.LAPLACIAN, ElementShape.QUADRILATERAL, (2, 2)),
        OperatorKey(OperatorType.MASS, ElementShape.SEGMENT, (4,)),
        OperatorKey(OperatorType.MASS, ElementShape.SEGMENT, (2,)),
        OperatorKey(
            OperatorType.MASS,
            ElementShape.SEGMENT,
            (2,),
            geometry=GeometricFactors(0.5, (4.0,)),
        ),
    ]
    ordered = sorted(keys)
    for k1, k2 in zip(ordered[:-1], ordered[1:]):
        assert k1 < k2
        assert not k2 < k1
    assert ordered[0] == OperatorKey(OperatorType.MASS, ElementShape.SEGMENT, (2,))


def test_reference_key() -> None:
    """Check reference key drops parameters and geometry."""
    key = OperatorKey(
        OperatorType.HELMHOLTZ,
        ElementShape.SEGMENT,
        (3,),
        (2.0,),
        geometry=GeometricFactors(1.0, (1.0,)),
    )
    ref = key.reference(OperatorType.MASS)
    assert ref == OperatorKey(OperatorType.MASS, ElementShape.SEGMENT, (3,))
    assert key.reference().operator == OperatorType.HELMHOLTZ


def test_global_key() -> None:
    """Check global keys compare arrays by identity and make element keys."""
    a = np.zeros(12)
    k1 = GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,), (a,))
    k2 = GlobalLinSysKey(OperatorType.HELMHOLTZ, [1.0], [a])
    k3 = GlobalLinSysKey(OperatorType.HELMHOLTZ, (1.0,), (np.zeros(12),))
    assert k1 == k2
    assert hash(k1) == hash(k2)
    assert k1 != k3

    element = Element(ElementShape.SEGMENT, 2, (0.0, 1.0))
    ekey = k1.element_key(element, 4, element.geometric_factors)
    assert ekey.orders == (2,)
    assert ekey.constants == (1.0,)
    assert ekey.variable_coefficients == (VariableCoefficient(a, 4),)
    assert ekey.geometry == GeometricFactors(0.5, (4.0,))


def test_geometric_factors_translation() -> None:
    """Check translated elements have equal geometric factors."""
    e1 = Element(ElementShape.QUADRILATERAL, 2, [(0, 0), (2, 0), (3, 1), (1, 1)])
    e2 = Element(ElementShape.QUADRILATERAL, 2, [(5, 1), (7, 1), (8, 2), (6, 2)])
    assert e1.geometric_factors == e2.geometric_factors
    assert e1.geometric_factors.jacobian == pytest.approx(0.5)


def test_geometric_factors_roundoff() -> None:
    """Check elements equal up to roundoff have equal geometric factors."""
    nodes = np.linspace(0.0, 1.0, 4)
    lengths = np.diff(nodes)
    assert len(set(lengths.tolist())) > 1
    factors = {
        Element(ElementShape.SEGMENT, 3, (x0, x1)).geometric_factors
        for x0, x1 in zip(nodes[:-1], nodes[1:])
    }
    assert len(factors) == 1
    assert factors.pop().jacobian == pytest.approx(1 / 6)

    e1 = Element(ElementShape.QUADRILATERAL, 2, [(0, 0), (0.1, 0), (0.1, 0.3), (0, 0.3)])
    e2 = Element(
        ElementShape.QUADRILATERAL, 2, [(0.7, 0.6), (0.8, 0.6), (0.8, 0.9), (0.7, 0.9)]
    )
    assert e1.geometric_factors == e2.geometric_factors
    assert e1.geometric_factors.inverse_metric[1] == 0.0
