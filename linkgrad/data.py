"""Defines the LinkData class, a container for the value and gradient buffers of a Link, represented as numpy arrays.

The engine only supports 1-D sequences, so every LinkData wraps a flat float64 array whose length is the "width" of the
buffer. The methods below are the building blocks for the forward functions and local derivatives of the operators in
function.py. They are executed immediately on the CPU using numpy.

"""
from typing import Sequence, Union
import numpy as np
from linkgrad.ops import UnaryOps, BinaryOps, ReduceOps   # consider reading the docs there
from linkgrad.helpers import DEBUG


class LinkData:
    """A class that encapsulates a 1-D numpy array and provides methods for direct buffer operations."""

    def __init__(self, data: Union[np.ndarray, Sequence[float], None] = None):
        """Initialize the LinkData with anything numpy can turn into a flat float64 array."""
        data = np.array([] if data is None else data, dtype=np.float64)
        assert data.ndim <= 1, f"only 1-D buffers are supported, got shape {data.shape}"
        self.data = data.reshape(-1)

    @property
    def width(self) -> int:
        """Return the number of elements in the buffer."""
        return self.data.shape[0]

    def __len__(self) -> int:
        return self.width

    def __repr__(self) -> str:
        return f"<LinkData width={self.width} {self.data.tolist()}>"

    @staticmethod
    def full(width: int, value: float) -> 'LinkData':
        """Create a buffer of the given width filled with a constant."""
        return LinkData(np.full((width,), value, dtype=np.float64))

    def copy(self) -> 'LinkData':
        return LinkData(self.data.copy())

    def numpy(self) -> np.ndarray:
        """Return a copy of the underlying array."""
        return self.data.copy()

    def view(self) -> np.ndarray:
        """Return a read-only view of the underlying array."""
        v = self.data.view()
        v.flags.writeable = False
        return v

    def const(self, x) -> 'LinkData':
        """Returns a new LinkData of the same width with a constant value."""
        return LinkData(np.full_like(self.data, x))

    def elementwise(self, op, *srcs: 'LinkData') -> 'LinkData':
        """Execute a unary or binary operation on the data."""
        unary_ops = {
            UnaryOps.NEG: np.negative,
            UnaryOps.EXP: np.exp,
            UnaryOps.LN: np.log,
            UnaryOps.SIN: np.sin,
            UnaryOps.COS: np.cos,
            UnaryOps.TAN: np.tan,
            UnaryOps.RECIP: np.reciprocal,
        }
        binary_ops = {
            BinaryOps.ADD: np.add,
            BinaryOps.SUB: np.subtract,
            BinaryOps.MUL: np.multiply,
            BinaryOps.DIV: np.divide,
            BinaryOps.MAX: np.maximum,
            BinaryOps.POW: np.power,
            BinaryOps.CMPLT: np.less,
        }

        if op in unary_ops:
            return LinkData(unary_ops[op](self.data))
        elif op in binary_ops and srcs:
            assert self.width == srcs[0].width, f"elementwise widths must match, {self.width} != {srcs[0].width}"
            return LinkData(binary_ops[op](self.data, srcs[0].data).astype(np.float64))
        else:
            raise NotImplementedError(f"Operation {op} not implemented or wrong number of sources")

    def reduce(self, op) -> 'LinkData':
        """Reduce the whole buffer to a width-1 buffer."""
        if DEBUG >= 4:
            print(op, self)
        if op == ReduceOps.SUM:
            return LinkData(self.data.sum(keepdims=True))
        else:
            raise NotImplementedError(op)

    # ------------------------------------------------------------------------------------------------------------------
    # movement operations

    def expand(self, width: int) -> 'LinkData':
        """Replicate a width-1 buffer up to the given width."""
        assert self.width in (1, width), f"cannot expand width {self.width} to {width}"
        return LinkData(np.broadcast_to(self.data, (width,)).copy())

    def shrink(self, start: int, stop: int) -> 'LinkData':
        """Shrink the data to the contiguous range [start, stop)."""
        assert 0 <= start <= stop <= self.width, f"invalid shrink ({start}, {stop}) of width {self.width}"
        return LinkData(self.data[start:stop].copy())

    @staticmethod
    def cat(*srcs: 'LinkData') -> 'LinkData':
        """Concatenate buffers in order."""
        return LinkData(np.concatenate([s.data for s in srcs]) if srcs else None)

    # ------------------------------------------------------------------------------------------------------------------
    # in-place updates, used for the gradient buffers owned by a Context

    def fill(self, x: float) -> None:
        self.data.fill(x)

    def accumulate(self, delta: 'LinkData') -> None:
        """Add another buffer of the same width into this one."""
        assert delta.width == self.width, f"accumulate width mismatch, {delta.width} != {self.width}"
        self.data += delta.data
