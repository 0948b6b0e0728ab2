"""
PyTorch-based engine for eager execution.

Uses torch tensors as storage; gradients are still computed by ndgrad's own
graph, never by torch.autograd.
"""

import numpy as np
from .base import Engine, Axis


class PyTorchEngine(Engine):
    """PyTorch-based engine (CPU by default, NDGRAD_DEVICE selects another device)."""

    name = 'pytorch'

    def __init__(self, device: str = None):
        try:
            import torch
            self.torch = torch
        except ImportError:
            raise ImportError("PyTorch not available")

        import os
        self._device = torch.device(device or os.environ.get('NDGRAD_DEVICE', 'cpu'))

    def _dtype(self, dtype: str):
        return getattr(self.torch, dtype)

    def create_tensor(self, data: np.ndarray):
        return self.torch.tensor(np.asarray(data), device=self._device)

    def to_numpy(self, tensor) -> np.ndarray:
        return tensor.detach().cpu().numpy()

    def zeros(self, shape: tuple, dtype: str = 'float32'):
        return self.torch.zeros(tuple(shape), dtype=self._dtype(dtype), device=self._device)

    def ones(self, shape: tuple, dtype: str = 'float32'):
        return self.torch.ones(tuple(shape), dtype=self._dtype(dtype), device=self._device)

    def rand(self, shape: tuple, dtype: str = 'float32'):
        return self.torch.rand(tuple(shape), dtype=self._dtype(dtype), device=self._device)

    def shape(self, tensor) -> tuple:
        return tuple(tensor.shape)

    def dtype(self, tensor) -> str:
        # torch.float32 -> 'float32'
        return str(tensor.dtype).replace('torch.', '')

    def device(self, tensor) -> str:
        return str(tensor.device)

    def add(self, a, b):
        return a + b

    def sub(self, a, b):
        return a - b

    def mul(self, a, b):
        return a * b

    def div(self, a, b):
        return a / b

    def neg(self, tensor):
        return -tensor

    def greater(self, a, b):
        return (a > b).to(a.dtype)

    def matmul(self, a, b):
        return self.torch.matmul(a, b)

    def exp(self, tensor):
        return self.torch.exp(tensor)

    def log(self, tensor):
        return self.torch.log(tensor)

    def relu(self, tensor):
        return self.torch.relu(tensor)

    def sigmoid(self, tensor):
        return self.torch.sigmoid(tensor)

    def tanh(self, tensor):
        return self.torch.tanh(tensor)

    def sqrt(self, tensor):
        return self.torch.sqrt(tensor)

    def sum(self, tensor, axis: Axis = None, keepdims: bool = False):
        if axis is None:
            # Full reduction - sum all elements
            if keepdims:
                # For keepdims with full reduction, we need to keep all dims as 1
                shape = tuple([1] * len(tensor.shape))
                return self.torch.sum(tensor).reshape(shape)
            return self.torch.sum(tensor)
        return self.torch.sum(tensor, dim=axis, keepdim=keepdims)

    def transpose(self, tensor):
        # Swap last two dimensions (for 1D or 0D tensors, transpose is a no-op)
        if tensor.ndim < 2:
            return tensor
        return tensor.transpose(-2, -1)

    def reshape(self, tensor, shape: tuple):
        return tensor.reshape(shape)

    def broadcast_to(self, tensor, shape: tuple):
        return tensor.broadcast_to(shape).clone()

    def copy(self, tensor):
        return tensor.clone()

    def copy_(self, dst, src) -> None:
        dst.copy_(src)

    def add_(self, dst, src) -> None:
        dst.add_(src)
