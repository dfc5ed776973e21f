from __future__ import annotations
from typing import Optional, Sequence, Tuple, Union
import numpy as np

from linkgrad.data import LinkData
from linkgrad.function import Function, Leaf
from linkgrad.errors import LeafValueError, GraphOwnershipError


class Link:
    """One vertex of the computation graph.

    A Link is created by a Context factory call and wired once: its precedents (the ids it consumes) are fixed at
    construction, its descendants (the ids consuming it) grow only when a later Link names it as an argument. Values of
    non-leaf links are only ever produced by the forward pass; gradients are only ever written by the backward pass.

    Attributes:
        id (int): Handle issued by the owning Context, never reused within it.
        op (Function): The operator computing this link's value, `Leaf` for source-supplied values.
        val (LinkData): Value buffer. Its length is the link's width.
        grad (LinkData): Gradient buffer. Same width as `val` once a forward pass has completed.

    """
    __slots__ = "id", "op", "val", "grad", "_precedent", "_descendent", "_adopted"

    def __init__(self, id: int, op: Optional[Function] = None, val: Union[None, Sequence[float], np.ndarray] = None,
                 precedent: Tuple[int, ...] = ()):
        self.id = id
        self.op: Function = Leaf() if op is None else op
        self.val = LinkData(val)
        self.grad = LinkData()
        self._precedent: Tuple[int, ...] = tuple(precedent)
        self._descendent: list = []
        self._adopted = False

    def __repr__(self):
        return f"<Link {self.id} {self.op!r} val={self.val.data.tolist()} grad={self.grad.data.tolist()}>"

    # ------------------------------------------------------------------------------------------------------------------
    # topology

    @property
    def precedent(self) -> Tuple[int, ...]: return self._precedent
    @property
    def descendent(self) -> Tuple[int, ...]: return tuple(self._descendent)
    @property
    def is_leaf(self) -> bool: return isinstance(self.op, Leaf)
    @property
    def width(self) -> int: return self.val.width

    def _add_descendent(self, id: int):
        if self._adopted:
            raise GraphOwnershipError(f"link {self.id} is owned by a context and cannot gain descendants")
        self._descendent.append(id)

    def check(self):
        """Returns the arity the operator expects and the number of wired precedents."""
        return self.op.arity(), len(self._precedent)

    # ------------------------------------------------------------------------------------------------------------------
    # values

    def set_val(self, val: Union[Sequence[float], np.ndarray]):
        """Replace the value of a leaf before it is handed to a forward pass.

        The new value must have the same width as the current one, except for an empty placeholder created by
        Context.init(), which takes the width of its first value.

        """
        if self._adopted:
            raise GraphOwnershipError(f"link {self.id} is owned by a context, use Context.set_val")
        self._assign(val)

    def _assign(self, val):
        if not self.is_leaf:
            raise LeafValueError(f"cannot set value for nonleaf link {self.id} ({self.op!r})")
        new = LinkData(val)
        if self.val.width != 0 and new.width != self.val.width:
            raise LeafValueError(f"setting val array length not match for link {self.id}: {new.width} != {self.val.width}")
        self.val = new

    def get_val(self) -> np.ndarray:
        return self.val.view()
