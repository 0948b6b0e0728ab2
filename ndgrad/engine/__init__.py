"""
Engine abstraction for different array backends (NumPy, PyTorch).

Engines own array storage and the elementwise/matrix kernels. ndgrad keeps
one current engine per process; NDArrays created under one engine should not
be mixed with arrays from another.
"""

import threading
from typing import Optional

from .base import Engine
from .numpy import NumpyEngine
from ndgrad.debug import debug_print_engine


def create_engine(backend: str = 'numpy') -> Engine:
    """
    Factory function to create an engine.

    Args:
        backend: 'numpy' or 'pytorch'

    Returns:
        Engine instance
    """
    if backend == 'numpy':
        return NumpyEngine()
    elif backend == 'pytorch':
        from .pytorch import PyTorchEngine
        return PyTorchEngine()
    else:
        raise ValueError(f"Unknown backend: {backend}")


_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def get_engine() -> Engine:
    """Get the current engine, creating it from config on first use."""
    global _engine

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                from ndgrad.config import get_config
                backend = get_config().backend()
                _engine = create_engine(backend)
                debug_print_engine(f"Created {backend} engine")
    return _engine


def set_engine(engine) -> Engine:
    """
    Replace the current engine.

    Args:
        engine: Engine instance or backend name

    Returns:
        The previous engine (may be None if none was created yet)
    """
    global _engine

    if isinstance(engine, str):
        engine = create_engine(engine)

    with _engine_lock:
        prev = _engine
        _engine = engine
    debug_print_engine(f"Switched to {engine.name} engine")
    return prev


__all__ = ['Engine', 'NumpyEngine', 'create_engine', 'get_engine', 'set_engine']
