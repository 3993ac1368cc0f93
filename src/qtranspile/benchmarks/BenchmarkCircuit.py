# benchmarks/BenchmarkCircuit.py
from __future__ import annotations

"""
BenchmarkCircuit: minimal, strict base class for logical benchmarks.

Design goals:
  • Empty __init__: subclasses must implement build_circuit() which returns a qtranspile Circuit.
  • Stable logical metrics:
      - 'n_qubits'  : number of logical qubits in the abstract circuit.
      - 'depth'     : number of parallel logical layers (includes measurement).
      - 'twoq'      : count of logical two-qubit gates BEFORE any routing/decomposition.
  • Simple accessors and serializers:
      - get_circuit()  -> return the stored Circuit.
      - to_qasm()      -> return an OpenQASM 2 string (through Qiskit).
      - to_yaml()      -> return a YAML string description.

Strictness policy:
  • No hidden decompositions: SWAP counts as ONE logical 2Q op here (pre-mapping).
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..circuit import Circuit


# --- Core class --------------------------------------------------------------
class BenchmarkCircuit(ABC):
    """
    Abstract base class; daughter classes build the circuit by overriding build_circuit().

    Typical usage in a subclass:
        class Bell(BenchmarkCircuit):
            def build_circuit(self):
                qc = Circuit(2, 2)
                qc.h(0).cx(0, 1).measure([0, 1], [0, 1])
                return qc
    """

    def __init__(self) -> None:
        """
        Empty initializer. The base class lazily builds and caches the circuit
        when first accessed via get_circuit().
        """
        self._qc: Optional[Circuit] = None

    # ---- Subclass hook --------------------------------------------------------
    @abstractmethod
    def build_circuit(self) -> Circuit:
        """
        Construct and return the logical (pre-mapping) Circuit.
        """
        raise NotImplementedError

    # ---- Accessors ------------------------------------------------------------
    def get_circuit(self) -> Circuit:
        """
        Return the stored (frozen) Circuit.
        Raises:
          - TypeError if build_circuit() does not return a Circuit.
        """
        if self._qc is None:
            qc = self.build_circuit()
            if not isinstance(qc, Circuit):
                raise TypeError("build_circuit() must return a qtranspile.Circuit.")
            self._qc = qc.freeze()
        return self._qc

    # ---- Logical metrics (pre-mapping) ---------------------------------------
    def compute_logical_metrics(self) -> Dict[str, int]:
        """
        Extract the three logical metrics on the abstract circuit (pre-mapping).

        Counting rules:
          • Logical qubit count:     qc.num_qubits.
          • Depth:                   qc.depth(), measurements included, barriers add no depth.
          • Two-qubit gate count:    gates on two or more qubits, WITHOUT decomposing.

        Returns:
          dict with keys {'n_qubits', 'depth', 'twoq'}.
        """
        qc = self.get_circuit()
        return {
            "n_qubits": int(qc.num_qubits),
            "depth": int(qc.depth()),
            "twoq": int(qc.num_nonlocal_gates()),
        }

    # ---- Serialization: QASM & YAML ------------------------------------------
    def to_qasm(self) -> str:
        """
        Return the circuit as an OpenQASM 2 string.
        Strict: relies on Qiskit; if it cannot produce QASM, raise an error.
        """
        from qiskit import qasm2

        from ..interop import to_qiskit

        try:
            return qasm2.dumps(to_qiskit(self.get_circuit()))
        except Exception as e:
            raise RuntimeError(f"Failed to produce QASM from the circuit: {e}") from e

    def to_yaml(self) -> str:
        """
        Return a YAML string with a compact, explicit description of the circuit.

        Schema:
          version: 1
          name: <name>
          qubits: <int>
          clbits: <int>
          instructions:
            - name: <op>
              qubits: [i, j, ...]
              clbits: [k, ...]             # only if present
              params:  [ ... ]             # numeric/strings, only if present
        """
        return self.get_circuit().to_yaml()
