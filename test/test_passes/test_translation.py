"""Basis translation through the equivalence library.

Test matrix:
- every rule of :func:`standard_library` is unitary-equivalent (up to global phase, 1e-9);
- every standard gate translates into each supported basis with the same unitary;
- unbound parameters survive translation and bind to the same result;
- error-aware costs pick cheaper derivations, registration order breaks ties;
- :class:`UnsupportedGateError` carries the operation index and gate name;
- ``approximation_degree`` drops negligible rotations;
- ``unroll_multi_qubit`` lowers three-qubit gates.
"""

import math

import numpy as np
import pytest
from qiskit.circuit import Parameter

from qtranspile import Circuit, Device, EquivalenceLibrary, UnsupportedGateError, standard_library
from qtranspile.equivalence import RuleOp
from qtranspile.gates import STANDARD_GATES, circuit_unitary, equal_up_to_phase
from qtranspile.circuit import Operation
from qtranspile.passes import BasisTranslator, drop_negligible_rotations, plan_translation, translate, unroll_multi_qubit

BASES = [
    ("rz", "sx", "x", "cx"),
    ("u", "cx"),
    ("rz", "rx", "cz"),
    ("rz", "sx", "cz"),
]


def _angles(n, seed):
    rng = np.random.default_rng(seed)
    return tuple(float(v) for v in rng.uniform(-math.pi, math.pi, size=n))


@pytest.mark.parametrize("rule", list(standard_library()), ids=repr)
def test_every_rule_preserves_unitary(rule):
    spec = STANDARD_GATES[rule.source]
    op = Operation(rule.source, tuple(range(spec.num_qubits)), _angles(spec.num_params, 7))
    expected = circuit_unitary([op], spec.num_qubits)
    got = circuit_unitary(rule.apply(op), spec.num_qubits)
    assert equal_up_to_phase(got, expected, atol=1e-9)


@pytest.mark.parametrize("basis", BASES, ids="-".join)
@pytest.mark.parametrize("gate", sorted(STANDARD_GATES))
def test_translation_reaches_basis(basis, gate):
    spec = STANDARD_GATES[gate]
    qc = Circuit(spec.num_qubits)
    qc.append(gate, tuple(reversed(range(spec.num_qubits))), _angles(spec.num_params, 3))

    out = BasisTranslator(basis).run(qc)

    assert set(out.count_ops()) <= set(basis)
    assert equal_up_to_phase(
        circuit_unitary(out, spec.num_qubits), circuit_unitary(qc, spec.num_qubits), atol=1e-9
    )


def test_translation_keeps_directives(line3):
    qc = Circuit(2, 1)
    qc.h(0).barrier().delay(32, 1).measure(0, 0)
    out = translate(qc, line3)
    assert [op.name for op in out] == ["rz", "sx", "rz", "barrier", "delay", "measure"]
    assert out.frozen


def test_unbound_parameters_survive_translation():
    theta = Parameter("theta")
    qc = Circuit(2)
    qc.cp(theta, 0, 1).rx(2 * theta, 1)
    translator = BasisTranslator(("u", "cx"))
    out = translator.run(qc)
    assert out.parameters == frozenset({"theta"})

    values = {"theta": 0.37}
    direct = translator.run(qc.assign_parameters(values))
    assert equal_up_to_phase(
        circuit_unitary(out.assign_parameters(values), 2), circuit_unitary(direct, 2), atol=1e-9
    )


def test_plan_prefers_fewer_gates_without_errors():
    translator = BasisTranslator(("rz", "sx", "u", "cx"))
    assert translator.rule_for("h").gates == frozenset({"u"})
    assert translator.cost("h") == (0.0, 1)


def test_plan_prefers_lower_error(durations):
    dev = Device.line(
        2,
        basis_gates=("rz", "sx", "u", "cx"),
        gate_durations=durations,
        gate_errors={"u": 0.1, "sx": 0.001, "rz": 0.0, "cx": 0.01},
    )
    translator = BasisTranslator.for_device(dev)
    assert translator.rule_for("h").gates == frozenset({"rz", "sx"})
    assert translator.cost("h") == (pytest.approx(0.001), 3)


def test_registration_order_breaks_ties():
    lib = EquivalenceLibrary()
    lib.add_rule("x", [RuleOp("sx", (0,), lambda p: ()), RuleOp("sx", (0,), lambda p: ())])
    lib.add_rule("x", [RuleOp("rz", (0,), lambda p: (math.pi,)), RuleOp("sx", (0,), lambda p: ())])
    plan = plan_translation({"sx", "rz"}, lib, lambda _: (0.0, 1))
    assert plan["x"][1] is lib.rules_for("x")[0]


def test_native_gates_have_no_rule():
    translator = BasisTranslator(("rz", "sx", "x", "cx"))
    assert translator.rule_for("cx") is None
    assert translator.supports("measure")
    assert not BasisTranslator(("cx",)).supports("h")


def test_unsupported_gate_reports_index():
    qc = Circuit(2)
    qc.cx(0, 1).h(1)
    with pytest.raises(UnsupportedGateError) as exc:
        BasisTranslator(("cx",)).run(qc)
    assert exc.value.op_index == 1
    assert exc.value.qubit == 1
    assert exc.value.details["gate"] == "h"


def test_library_rejects_out_of_arity_operands():
    lib = EquivalenceLibrary()
    with pytest.raises(ValueError):
        lib.add_rule("h", [RuleOp("cx", (0, 1), lambda p: ())])


def test_approximation_drops_negligible_rotations(line3):
    qc = Circuit(1)
    qc.rz(1e-3, 0).rx(1.0, 0).rz(Parameter("a"), 0)
    dropped = drop_negligible_rotations(qc, 0.01)
    assert [op.name for op in dropped] == ["rx", "rz"]
    assert translate(qc, line3, approximation_degree=1.0).count_ops()["rz"] >= 3


def test_unroll_multi_qubit_lowers_ccx_and_cswap():
    qc = Circuit(3)
    qc.h(0).ccx(0, 1, 2).cswap(2, 0, 1)
    out = unroll_multi_qubit(qc)
    assert all(op.num_qubits <= 2 for op in out)
    assert equal_up_to_phase(circuit_unitary(out, 3), circuit_unitary(qc, 3), atol=1e-9)


def test_unroll_multi_qubit_without_rule():
    qc = Circuit(3)
    qc.x(0).ccx(0, 1, 2)
    with pytest.raises(UnsupportedGateError) as exc:
        unroll_multi_qubit(qc, EquivalenceLibrary())
    assert exc.value.op_index == 1


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-rA"]))
