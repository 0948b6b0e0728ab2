"""
ndgrad - N-dimensional arrays with automatic differentiation

Simple MXNet-like API:
    import ndgrad as nd
    from ndgrad import autograd

    x = nd.array([1.0, 2.0, 3.0])
    x.attach_grad()

    with autograd.record():
        y = (x * x).sum()

    y.backward()
    print(x.grad)  # [2. 4. 6.]
"""

__version__ = "0.1.0"

# Dtype constants
# These are string constants understood by every engine
float32 = 'float32'
float64 = 'float64'
int32 = 'int32'
int64 = 'int64'

from ndgrad.errors import NdgradError, ArgumentError, GraphError
from ndgrad.config import load_config, get_config
from ndgrad.engine import create_engine, get_engine, set_engine
from ndgrad.ndarray import NDArray, array, from_numpy, zeros, ones, zeros_like, ones_like
from ndgrad import ops
from ndgrad import autograd
from ndgrad import debug  # Import module for debug.get_tape(), debug.print_tape()

# Pick up NDGRAD_CONFIG before any engine is created
get_config().load_from_env()
