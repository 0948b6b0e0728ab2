"""
Debug utilities for ndgrad.

Provides visibility into:
- Recording scopes and the recorded graph
- Backward passes
- Engine selection

Environment variables for debug output:
- NDGRAD_VERBOSE: Framework status messages (config loading, engine setup)
- NDGRAD_DEBUG_AUTOGRAD: Scope, recording and backward tracing
- NDGRAD_DEBUG_ENGINE: Engine creation and backend selection

By default, ndgrad is completely silent (no framework output). Only errors are shown.
"""

import os
from typing import List, Dict, Any


# Debug flags
DEBUG_AUTOGRAD = os.environ.get('NDGRAD_DEBUG_AUTOGRAD', '0') == '1'
DEBUG_ENGINE = os.environ.get('NDGRAD_DEBUG_ENGINE', '0') == '1'
VERBOSE = os.environ.get('NDGRAD_VERBOSE', '0') == '1'


def debug_print_autograd(*args, **kwargs):
    """Print autograd debug message if NDGRAD_DEBUG_AUTOGRAD=1."""
    if DEBUG_AUTOGRAD:
        print("[AUTOGRAD]", *args, **kwargs)


def debug_print_engine(*args, **kwargs):
    """Print engine debug message if NDGRAD_DEBUG_ENGINE=1."""
    if DEBUG_ENGINE:
        print("[ENGINE]", *args, **kwargs)


def verbose_print(*args, **kwargs):
    """Print verbose framework message if NDGRAD_VERBOSE=1."""
    if VERBOSE:
        print(*args, **kwargs)


def get_tape() -> List[Dict[str, Any]]:
    """
    Get the live recorded graph as a list of operations, in recording order.

    Each entry describes:
    - Output array ID and shape
    - Input array IDs
    - Operation name and attributes

    Example:
        import ndgrad as nd
        from ndgrad import autograd
        x = nd.array([1.0, 2.0])
        x.attach_grad()
        with autograd.record():
            y = x * x + x

        for i, entry in enumerate(nd.debug.get_tape()):
            print(f"{i}: {entry}")
    """
    from ndgrad.autograd.graph import get_graph

    tape_info = []
    for node in get_graph().nodes():
        entry = {
            'output_id': node.output_id,
            'output_shape': node.output_shape,
            'input_ids': list(node.input_ids),
            'op': node.op,
            'attrs': dict(node.attrs),
        }
        tape_info.append(entry)

    return tape_info


def print_tape():
    """
    Pretty-print the recorded graph.

    Example:
        nd.debug.print_tape()
        # Output:
        # Recorded graph (2 operations):
        # 0: NDArray[2] = mul(NDArray[0], NDArray[0])
        #    shape=(2,)
        # 1: NDArray[3] = add(NDArray[2], NDArray[0])
        #    shape=(2,)
    """
    tape = get_tape()

    if not tape:
        print("Recorded graph: Empty (no operations recorded)")
        return

    print(f"Recorded graph ({len(tape)} operations):")
    print("-" * 60)

    for i, entry in enumerate(tape):
        input_ids = ', '.join(f"NDArray[{aid}]" for aid in entry['input_ids'])
        print(f"{i}: NDArray[{entry['output_id']}] = {entry['op']}({input_ids})")
        print(f"   shape={entry['output_shape']}")
