"""
Base Engine interface for ndgrad arrays.

All storage backends (NumPy, PyTorch) implement this interface. The autograd
core never touches backend tensors directly; NDArray and the operator library
go through the current engine.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple, Union


Axis = Optional[Union[int, Tuple[int, ...]]]


class Engine(ABC):
    """Abstract base class for array storage engines."""

    name = 'base'

    @abstractmethod
    def create_tensor(self, data: np.ndarray) -> Any:
        """Create a tensor from numpy array."""
        pass

    @abstractmethod
    def to_numpy(self, tensor: Any) -> np.ndarray:
        """Convert tensor to numpy array."""
        pass

    @abstractmethod
    def zeros(self, shape: tuple, dtype: str = 'float32') -> Any:
        """Create zero tensor."""
        pass

    @abstractmethod
    def ones(self, shape: tuple, dtype: str = 'float32') -> Any:
        """Create tensor filled with ones."""
        pass

    @abstractmethod
    def rand(self, shape: tuple, dtype: str = 'float32') -> Any:
        """Create uniform [0, 1) random tensor."""
        pass

    @abstractmethod
    def shape(self, tensor: Any) -> tuple:
        """Shape as a tuple of ints."""
        pass

    @abstractmethod
    def dtype(self, tensor: Any) -> str:
        """Dtype name, e.g. 'float32'."""
        pass

    @abstractmethod
    def device(self, tensor: Any) -> str:
        """Device name, e.g. 'cpu'."""
        pass

    @abstractmethod
    def add(self, a: Any, b: Any) -> Any:
        """Element-wise addition."""
        pass

    @abstractmethod
    def sub(self, a: Any, b: Any) -> Any:
        """Element-wise subtraction."""
        pass

    @abstractmethod
    def mul(self, a: Any, b: Any) -> Any:
        """Element-wise multiplication."""
        pass

    @abstractmethod
    def div(self, a: Any, b: Any) -> Any:
        """Element-wise division."""
        pass

    @abstractmethod
    def neg(self, tensor: Any) -> Any:
        """Element-wise negation."""
        pass

    @abstractmethod
    def greater(self, a: Any, b: Any) -> Any:
        """Element-wise a > b, as 0/1 values in a's dtype."""
        pass

    @abstractmethod
    def matmul(self, a: Any, b: Any) -> Any:
        """Matrix multiplication."""
        pass

    @abstractmethod
    def exp(self, tensor: Any) -> Any:
        pass

    @abstractmethod
    def log(self, tensor: Any) -> Any:
        pass

    @abstractmethod
    def relu(self, tensor: Any) -> Any:
        """ReLU activation."""
        pass

    @abstractmethod
    def sigmoid(self, tensor: Any) -> Any:
        """Sigmoid activation."""
        pass

    @abstractmethod
    def tanh(self, tensor: Any) -> Any:
        """Tanh activation."""
        pass

    @abstractmethod
    def sqrt(self, tensor: Any) -> Any:
        """Square root."""
        pass

    @abstractmethod
    def sum(self, tensor: Any, axis: Axis = None, keepdims: bool = False) -> Any:
        """Sum reduction."""
        pass

    @abstractmethod
    def transpose(self, tensor: Any) -> Any:
        """Transpose (swap last two dimensions)."""
        pass

    @abstractmethod
    def reshape(self, tensor: Any, shape: tuple) -> Any:
        pass

    @abstractmethod
    def broadcast_to(self, tensor: Any, shape: tuple) -> Any:
        pass

    @abstractmethod
    def copy(self, tensor: Any) -> Any:
        """New tensor with the same contents."""
        pass

    @abstractmethod
    def copy_(self, dst: Any, src: Any) -> None:
        """Overwrite dst with src in place (dst keeps its identity)."""
        pass

    @abstractmethod
    def add_(self, dst: Any, src: Any) -> None:
        """Accumulate src into dst in place."""
        pass

    def zeros_like(self, tensor: Any) -> Any:
        """Zero tensor with the same shape and dtype."""
        return self.zeros(self.shape(tensor), self.dtype(tensor))

    def ones_like(self, tensor: Any) -> Any:
        """Ones tensor with the same shape and dtype."""
        return self.ones(self.shape(tensor), self.dtype(tensor))
