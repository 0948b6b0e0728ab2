"""
Error types and common error messages for ndgrad.

Consolidates repetitive error handling to reduce code duplication.
"""


class NdgradError(Exception):
    """Base class for all ndgrad errors."""


class ArgumentError(NdgradError, ValueError):
    """Caller misuse: bad argument types, mismatched lengths, unknown tags."""


class GraphError(NdgradError, RuntimeError):
    """An array has no usable recorded computation history."""


def length_mismatch_error(what: str, expected: int, got: int):
    """Error when two parallel argument lists differ in length."""
    return f"number of {what} not matched: expected {expected}, got {got}"


def invalid_grad_req_error(value):
    """Error when a write policy tag is not recognized."""
    return f"invalid grad_req {value!r}: expected one of 'null', 'write', 'inplace', 'add'"


def not_an_array_error(arg_name: str, value):
    """Error when an NDArray was expected."""
    return f"{arg_name} should be NDArray, got {type(value).__name__}"


def shape_mismatch_error(what: str, expected, got):
    """Error when a gradient does not match the shape of its array."""
    return f"{what} shape {got} does not match array shape {expected}"


def not_in_graph_error(array_id: int):
    """Error when an array was never recorded and is not a variable."""
    return (f"NDArray[{array_id}] is not in a computational graph. "
            "Record the computation inside autograd.record() and mark inputs "
            "with attach_grad() or mark_variables().")


def graph_released_error(array_id: int):
    """Error when backward reaches structures freed by an earlier pass."""
    return (f"Computation graph for NDArray[{array_id}] was already freed by a "
            "previous backward call. Pass retain_graph=True to backward "
            "the same graph more than once.")
