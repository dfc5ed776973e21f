from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Union
import numpy as np

from linkgrad.helpers import argfix
from linkgrad.ops import OpType
from linkgrad.function import make_function
from linkgrad.link import Link
from linkgrad.errors import UnknownNodeId, LeafValueError, GraphOwnershipError

from linkgrad.schedule import fwd_pass, refresh
from linkgrad.autograd import compute_grad


class Context:
    """Owns one generation of links and runs the forward and backward passes over it.

    Usage:
        ctx = Context()
        a, b = ctx.init_var([1., 2., 3.]), ctx.init_var([2.])
        y = ctx.init_op(OpType.SUM_REDUCE, ctx.init_op(OpType.MUL, a, b))
        ctx.fwd_pass()
        ctx.compute_grad(y.id, b.id)  # array([6.])

    Ids are issued by a per-context counter, start at 1 and are never reused. A set of links is adopted exactly once by
    `fwd_pass`; afterwards links are only addressed by id. Gradient buffers are valid for a single output at a time,
    see autograd.py. A Context is not thread safe.

    """

    def __init__(self):
        self._id = 0
        # links created by this context and not adopted yet
        self._pending: Dict[int, Link] = {}
        # adopted generation
        self._buf: List[Link] = []
        self._id_map: Dict[int, int] = {}
        self._eval_order: List[int] = []
        self._eval_order_map: Dict[int, int] = {}
        self._is_evaluated: Optional[int] = None
        self._adopted = False
        self._complete = False

    def __repr__(self):
        state = "evaluated" if self._complete else "failed" if self._adopted else "building"
        return f"<Context {state} links={len(self._buf) or len(self._pending)} grad_for={self._is_evaluated}>"

    def _gen_id(self) -> int:
        self._id += 1
        return self._id

    def _resolve(self, x: Union[Link, int]) -> Link:
        """Maps a Link or the id of a pending link to the Link. Only links this context created and has not adopted resolve."""
        if isinstance(x, Link):
            if self._pending.get(x.id) is not x:
                raise GraphOwnershipError(f"link {x.id} was not created by this context or is already adopted")
            return x
        if x not in self._pending:
            raise UnknownNodeId(x, "not a pending link of this context")
        return self._pending[x]

    def _index(self, id: int) -> int:
        """Store position of an id of the completed generation."""
        if not self._complete or id not in self._id_map:
            raise UnknownNodeId(id, "not produced by a completed forward pass of this context")
        return self._id_map[id]

    # ------------------------------------------------------------------------------------------------------------------
    # graph construction

    def init(self) -> Link:
        """Creates an empty leaf placeholder."""
        l = Link(self._gen_id())
        self._pending[l.id] = l
        return l

    def init_var(self, val: Union[Sequence[float], np.ndarray]) -> Link:
        """Creates a leaf holding the given values."""
        l = Link(self._gen_id(), val=val)
        self._pending[l.id] = l
        return l

    def init_op(self, op: OpType, *args: Union[Link, int]) -> Link:
        """Creates a link applying `op` to the given links, in order. Arity is checked by the forward pass."""
        # resolve every argument before touching any of them
        args = tuple(self._resolve(a) for a in argfix(*args))
        fn = make_function(op, len(args))
        l = Link(self._gen_id(), op=fn, precedent=tuple(a.id for a in args))
        for a in args:
            a._add_descendent(l.id)
        self._pending[l.id] = l
        return l

    # ------------------------------------------------------------------------------------------------------------------
    # schedule.py and autograd.py

    def fwd_pass(self, links: Optional[Sequence[Union[Link, int]]] = None) -> List[int]: return fwd_pass(self, links)
    def compute_grad(self, y: int, x: int) -> np.ndarray: return compute_grad(self, y, x)

    # ------------------------------------------------------------------------------------------------------------------
    # lookups

    @property
    def ids(self) -> List[int]: return [l.id for l in self._buf]
    @property
    def eval_order(self) -> List[int]:
        """Ids in backward evaluation order, deepest consumers first and leaves last."""
        return [self._buf[i].id for i in self._eval_order]
    @property
    def evaluated_for(self) -> Optional[int]:
        """Id of the output whose gradients are currently valid, if any."""
        return self._is_evaluated

    def __contains__(self, id: int) -> bool: return id in self._id_map
    def __len__(self) -> int: return len(self._buf)

    def get_var(self, id: int) -> Optional[Link]:
        i = self._id_map.get(id)
        return None if i is None else self._buf[i]

    def get_val(self, id: int) -> Optional[np.ndarray]:
        """Read-only view of a link's value, or None for ids this context does not own."""
        l = self.get_var(id)
        return None if l is None else l.get_val()

    def set_val(self, id: int, val: Union[Sequence[float], np.ndarray]):
        """Replaces the value of an adopted leaf and recomputes every value of the generation.

        The width of the leaf cannot change. Gradients of the previous output are invalidated.

        """
        l = self._buf[self._index(id)]
        if l.is_leaf and len(val) != l.width:
            raise LeafValueError(f"setting val array length not match for link {id}: {len(val)} != {l.width}")
        l._assign(val)
        self._is_evaluated = None
        refresh(self)
