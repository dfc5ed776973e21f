"""This module contains the backward engine of a Context: reverse-mode gradients of one output w.r.t. its ancestors.

Only one output's gradients are valid at any time. `compute_grad(y, x)` seeds y, propagates to every ancestor of y and
remembers y. A following `compute_grad(y, x2)` for the same y reads the already computed buffer of x2. Asking for another
output y2 zeroes every gradient buffer and propagates again, after which the gradients of y are gone. Callers that need
gradients of several outputs must copy the returned buffers.

"""
from __future__ import annotations
import numpy as np

from linkgrad.helpers import DEBUG
from linkgrad.ops import ReduceOps
from linkgrad.schedule import gather_inputs


def _backward_link(ctx: 'Context', link: 'Link'):
    """Folds the accumulated gradient of one link into the gradient buffers of its precedents.

    For each precedent p of link y, the chain rule gives p.grad += fold(y.grad, dy/dp). Precedents that were broadcast
    for this operator receive a contribution as wide as the operator's output, which is summed back to width 1, since
    every replicated element is the same input.

    """
    if not link.precedent:
        return
    local = link.op.local_derivative(*gather_inputs(ctx, link))
    assert len(local) == len(link.precedent), f"{link.op!r} returned {len(local)} derivatives for {len(link.precedent)} precedents"

    offset = 0
    for pid, g in zip(link.precedent, local):
        parent = ctx._buf[ctx._id_map[pid]]
        delta = link.op.fold_backward(link.grad, parent.grad, g.width, offset, g)
        if delta.width != parent.grad.width:
            assert parent.grad.width == 1, f"gradient width {delta.width} does not fit link {pid} of width {parent.grad.width}"
            delta = delta.reduce(ReduceOps.SUM)
        if DEBUG >= 3:
            print(f"  {link.id} -> {pid}: {delta.data.tolist()}")
        parent.grad.accumulate(delta)
        offset += parent.grad.width


def compute_grad(ctx: 'Context', y: int, x: int) -> np.ndarray:
    """Computes dy/dx, and the gradient of y w.r.t. every other ancestor as well, by back propagating from y.

    The seed of y is a buffer of ones, so for a vector y the result is the gradient of sum(y).

    Args:
        ctx: A context with a completed forward pass.
        y: Id of the output link.
        x: Id of the link to return the gradient for.

    Returns:
        np.ndarray: A copy of x's gradient buffer.

    Raises:
        UnknownNodeId: If either id was not produced by a completed forward pass of `ctx`.

    """
    index_y, index_x = ctx._index(y), ctx._index(x)
    if ctx._is_evaluated == y:
        return ctx._buf[index_x].grad.numpy()

    # reset and do gradient compute starting at y
    ctx._is_evaluated = None
    for link in ctx._buf:
        link.grad.fill(0.0)
    ctx._buf[index_y].grad.fill(1.0)
    if DEBUG >= 1:
        print(f"compute_grad: seeding link {y} at slot {ctx._eval_order_map[index_y]} of {len(ctx._eval_order)}")

    # links before y carry zero gradients, but a non-finite local derivative still folds NaN into y
    for i in ctx._eval_order:
        _backward_link(ctx, ctx._buf[i])

    ctx._is_evaluated = y
    return ctx._buf[index_x].grad.numpy()
