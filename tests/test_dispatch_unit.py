"""Every node kind must have a handler in every dispatch table."""

import pytest

from algebra import Polynomial, UnsupportedOperationError
from algebra import calculus, evaluator, interop, nodes, transforms

TABLES = {
    "render": (nodes.render, ()),
    "evaluate": (evaluator._eval, (None,)),
    "expand": (transforms._expand, ()),
    "substitute": (transforms._substitute, (None, None)),
    "derive": (calculus._derive, ("x",)),
    "antiderivative": (calculus._antiderivative, (None,)),
    "to_sympy": (interop._to_sympy, (None,)),
}

NODE_CLASSES = nodes.NODE_TYPES + (Polynomial,)


@pytest.mark.parametrize("table_name", sorted(TABLES))
@pytest.mark.parametrize("cls", NODE_CLASSES, ids=lambda c: c.__name__)
def test_every_node_kind_is_registered(table_name: str, cls) -> None:
    table, _ = TABLES[table_name]
    assert table.dispatch(cls) is not table.registry[object]


@pytest.mark.parametrize("table_name", sorted(TABLES))
def test_unknown_nodes_raise(table_name: str) -> None:
    table, extra = TABLES[table_name]
    with pytest.raises(UnsupportedOperationError) as exc:
        table(object(), *extra)
    assert exc.value.code.startswith("U3")
