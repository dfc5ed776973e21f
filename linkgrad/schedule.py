"""This module contains the forward scheduler of a Context.

`fwd_pass` adopts a complete set of links, computes a topological order with a ready-queue that starts at the leaves,
runs every operator's forward function in that order and persists the reversed order for the backward engine.

Example:
Consider y = sum(concat(sin(a), a * b)) with a of width 3 and b of width 1. The leaves a and b are ready first. Once a is
done, sin(a) is ready and the multiplication is queued, but it only executes after b is done as well. When it executes,
b is broadcast to width 3 for the multiplication only, b's own buffers keep width 1. The forward order is
[a, b, sin, mul, concat, sum] and the backward order stored in the context is its reverse.

"""
from __future__ import annotations
from typing import List, Optional, Sequence, Union

from linkgrad.helpers import DEBUG, all_same, dedup
from linkgrad.data import LinkData
from linkgrad.errors import ArityMismatch, IncompatibleWidth, UnknownNodeId, GraphOwnershipError


def gather_inputs(ctx: 'Context', link: 'Link') -> List[LinkData]:
    """Collects the current values of a link's precedents, reconciled to a common width if its operator broadcasts.

    A precedent of width 1 is replicated up to the widest precedent. Any other mismatch cannot be reconciled.

    Raises:
        IncompatibleWidth: If two precedents differ in width and neither is 1.

    """
    vals = [ctx._buf[ctx._id_map[p]].val for p in link.precedent]
    if len(vals) < 2 or not link.op.requires_broadcast():
        return vals
    widths = [v.width for v in vals]
    if all_same(widths):
        return vals
    out = max(widths)
    if any(w not in (1, out) for w in widths):
        raise IncompatibleWidth(link.id, widths)
    if DEBUG >= 2:
        print(f"broadcast link {link.id} {link.op!r}: precedent widths {widths} -> {out}")
    return [v.expand(out) if v.width == 1 else v for v in vals]


def _execute(ctx: 'Context', link: 'Link'):
    """Validates the arity of one link, runs its forward function and sizes its gradient buffer."""
    arity, n = link.check()
    if arity != n:
        raise ArityMismatch(link.id, arity, n)
    ret = link.op.forward(*gather_inputs(ctx, link))
    if ret is not None:
        link.val = ret
    if link.grad.width != link.val.width:
        link.grad = LinkData.full(link.val.width, 0.0)
    if DEBUG >= 2:
        print(f"forward link {link.id} {link.op!r} width {link.val.width}")


def fwd_pass(ctx: 'Context', links: Optional[Sequence[Union['Link', int]]] = None) -> List[int]:
    """Adopts a complete set of links, computes every value and stores the backward evaluation order.

    Args:
        ctx: The context taking ownership. It must not own a generation yet.
        links: Links (or ids of links created by `ctx`) forming one or more DAGs. Defaults to every link `ctx` created
            that has not been adopted.

    Returns:
        List[int]: The ids of all links now owned by the context, in submission order.

    Raises:
        GraphOwnershipError: If the context already owns a generation, or a link was not created by `ctx`.
        UnknownNodeId: If a precedent of a submitted link is missing from the set.
        ArityMismatch: If a link's operator arity differs from its precedent count.
        IncompatibleWidth: If precedent widths cannot be reconciled.

    """
    if ctx._adopted:
        raise GraphOwnershipError("context already owns a graph generation, create a new Context")
    links = dedup(ctx._resolve(l) for l in (list(ctx._pending.values()) if links is None else links))

    # adopt: from here on the links belong to this generation, even if the pass fails
    ctx._adopted, ctx._complete, ctx._is_evaluated = True, False, None
    ctx._buf = links
    ctx._id_map = {l.id: i for i, l in enumerate(links)}
    for l in links:
        l._adopted = True
        ctx._pending.pop(l.id, None)
    ids = [l.id for l in links]

    for l in links:
        for p in l.precedent:
            if p not in ctx._id_map:
                raise UnknownNodeId(p, f"precedent of link {l.id} was not submitted to fwd_pass")

    done = [False] * len(links)
    order: List[int] = []
    frontier = [i for i, l in enumerate(links) if not l.precedent]
    while frontier:
        queued = []
        for i in frontier:
            link = links[i]
            # a link can be queued once per precedent, but it executes once, after all its precedents
            if done[i] or not all(done[ctx._id_map[p]] for p in link.precedent):
                continue
            _execute(ctx, link)
            done[i] = True
            order.append(i)
            for d in link.descendent:
                if d not in ctx._id_map:
                    if DEBUG >= 2:
                        print(f"descendant {d} of link {link.id} was not submitted, skipping")
                    continue
                if not done[ctx._id_map[d]]:
                    queued.append(ctx._id_map[d])
        frontier = queued
    assert len(order) == len(links), f"scheduled {len(order)} of {len(links)} links, graph is not a DAG"

    # deepest consumers first, leaves last
    ctx._eval_order = order[::-1]
    ctx._eval_order_map = {index: slot for slot, index in enumerate(ctx._eval_order)}
    ctx._complete = True
    if DEBUG >= 1:
        print(f"fwd_pass: {len(links)} links, {sum(1 for l in links if l.is_leaf)} leaves")
    return ids


def refresh(ctx: 'Context'):
    """Re-runs every forward function of an adopted generation in forward order, after a leaf value changed."""
    assert ctx._complete, "refresh needs a completed forward pass"
    for i in reversed(ctx._eval_order):
        _execute(ctx, ctx._buf[i])
    if DEBUG >= 1:
        print(f"refresh: {len(ctx._buf)} links")
