"""Conversion to and from Qiskit circuits."""
from __future__ import annotations

from typing import Any

try:
    from qiskit.circuit import ClassicalRegister, QuantumCircuit, QuantumRegister
except Exception as e:
    raise ImportError("Qiskit >= 2.0 is required. Install with `pip install qiskit>=2.1,<3.0`.") from e

from .circuit import Circuit, ParamValue, is_bound
from .gates import BARRIER, DELAY, MEASURE

# Qiskit spellings that map onto our gate names.
_ALIASES = {"u3": "u", "u1": "p", "cnot": "cx", "i": "id"}


def _from_qiskit_param(value: Any) -> ParamValue:
    # Angles share qiskit's symbol type, so unbound expressions pass through as-is.
    return float(value) if is_bound(value) else value


def to_qiskit(circuit: Circuit) -> QuantumCircuit:
    """Build an equivalent ``QuantumCircuit`` (registers ``q`` and ``c``)."""
    qreg = QuantumRegister(circuit.num_qubits, "q")
    regs = [qreg]
    if circuit.num_clbits:
        regs.append(ClassicalRegister(circuit.num_clbits, "c"))
    qc = QuantumCircuit(*regs, name=circuit.name)
    for op in circuit:
        if op.name == MEASURE:
            qc.measure(op.qubits[0], op.clbits[0])
        elif op.name == BARRIER:
            qc.barrier(*op.qubits)
        elif op.name == DELAY:
            qc.delay(int(round(float(op.params[0]))), op.qubits[0], unit="dt")
        else:
            getattr(qc, op.name)(*op.params, *op.qubits)
    return qc


def from_qiskit(qc: QuantumCircuit) -> Circuit:
    """Import a ``QuantumCircuit`` built from standard gates, measure, barrier and delay."""
    circ = Circuit(qc.num_qubits, qc.num_clbits, name=qc.name)
    for instr in qc.data:
        op = instr.operation
        name = _ALIASES.get(op.name, op.name)
        qubits = [qc.find_bit(q).index for q in instr.qubits]
        clbits = [qc.find_bit(c).index for c in instr.clbits]
        if name == DELAY:
            unit = getattr(op, "unit", "dt")
            if unit != "dt":
                raise ValueError(f"Delay in unit '{unit}' is not supported; use 'dt'.")
            params = [float(op.params[0])]
        else:
            params = [_from_qiskit_param(p) for p in op.params]
        circ.append(name, qubits, params, clbits)
    return circ.freeze()
