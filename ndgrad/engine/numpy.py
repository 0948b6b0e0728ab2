"""
NumPy-based engine (CPU only, eager execution).
"""

import numpy as np
from .base import Engine, Axis


class NumpyEngine(Engine):
    """NumPy-based engine (CPU only)."""

    name = 'numpy'

    def create_tensor(self, data: np.ndarray) -> np.ndarray:
        # Copy so the array owns its storage
        return np.array(data, copy=True)

    def to_numpy(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(tensor)

    def zeros(self, shape: tuple, dtype: str = 'float32') -> np.ndarray:
        return np.zeros(shape, dtype=dtype)

    def ones(self, shape: tuple, dtype: str = 'float32') -> np.ndarray:
        return np.ones(shape, dtype=dtype)

    def rand(self, shape: tuple, dtype: str = 'float32') -> np.ndarray:
        return np.random.random_sample(shape).astype(dtype)

    def shape(self, tensor: np.ndarray) -> tuple:
        return tuple(np.shape(tensor))

    def dtype(self, tensor: np.ndarray) -> str:
        return str(np.asarray(tensor).dtype)

    def device(self, tensor: np.ndarray) -> str:
        return 'cpu'

    def add(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(a + b)

    def sub(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(a - b)

    def mul(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(a * b)

    def div(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(a / b)

    def neg(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.negative(tensor))

    def greater(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(np.greater(a, b), dtype=np.asarray(a).dtype)

    def matmul(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.asarray(a @ b)

    def exp(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.exp(tensor))

    def log(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.log(tensor))

    def relu(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.maximum(tensor, 0), dtype=np.asarray(tensor).dtype)

    def sigmoid(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(1 / (1 + np.exp(-tensor)))

    def tanh(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.tanh(tensor))

    def sqrt(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(np.sqrt(tensor))

    def sum(self, tensor: np.ndarray, axis: Axis = None, keepdims: bool = False) -> np.ndarray:
        return np.asarray(np.sum(tensor, axis=axis, keepdims=keepdims))

    def transpose(self, tensor: np.ndarray) -> np.ndarray:
        # Swap last two dimensions; for 1D or 0D arrays, transpose is a no-op
        if tensor.ndim < 2:
            return tensor
        return np.swapaxes(tensor, -2, -1)

    def reshape(self, tensor: np.ndarray, shape: tuple) -> np.ndarray:
        return np.reshape(tensor, shape)

    def broadcast_to(self, tensor: np.ndarray, shape: tuple) -> np.ndarray:
        # broadcast_to returns a read-only view; materialize it
        return np.array(np.broadcast_to(tensor, shape))

    def copy(self, tensor: np.ndarray) -> np.ndarray:
        return np.array(tensor, copy=True)

    def copy_(self, dst: np.ndarray, src: np.ndarray) -> None:
        np.copyto(dst, src, casting='unsafe')

    def add_(self, dst: np.ndarray, src: np.ndarray) -> None:
        np.add(dst, src, out=dst, casting='unsafe')
