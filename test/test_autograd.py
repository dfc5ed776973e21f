import numpy as np
import pytest
from linkgrad import Context, OpType, UnknownNodeId


def test_concat_then_sum_gives_unit_gradients():
    ctx = Context()
    xs = [ctx.init_var([v]) for v in (0.3, -1.2, 4.0, 2.5)]
    y = ctx.init_op(OpType.SUM_REDUCE, ctx.init_op(OpType.CONCAT, *xs))
    ctx.fwd_pass()
    for x in xs:
        assert ctx.compute_grad(y.id, x.id).tolist() == [1.0]


def test_multiply_broadcast_gradient_is_summed():
    ctx = Context()
    a, b = ctx.init_var([1.0, -2.0, 3.5]), ctx.init_var([3.0])
    m = ctx.init_op(OpType.MUL, a, b)
    ctx.fwd_pass()
    assert ctx.get_val(m.id).tolist() == [3.0, -6.0, 10.5]
    assert ctx.compute_grad(m.id, b.id).tolist() == [2.5]
    assert ctx.compute_grad(m.id, a.id).tolist() == [3.0, 3.0, 3.0]


def test_sigmoid_at_zero():
    ctx = Context()
    x = ctx.init_var([0.0])
    s = ctx.init_op(OpType.SIGMOID, x)
    ctx.fwd_pass()
    assert ctx.get_val(s.id).tolist() == [0.5]
    assert ctx.compute_grad(s.id, x.id).tolist() == [0.25]


def test_duplicate_backprop():
    ctx = Context()
    a, k3, k5 = ctx.init_var([1.0]), ctx.init_var([3.0]), ctx.init_var([5.0])
    b = ctx.init_op(OpType.ADD_PAIRWISE, a, ctx.init_var([4.0]))
    c = ctx.init_op(OpType.ADD_PAIRWISE, ctx.init_op(OpType.MUL, b, k3), ctx.init_op(OpType.MUL, b, k5))
    ctx.fwd_pass()
    assert ctx.compute_grad(c.id, a.id).tolist() == [8.0]
    assert ctx.compute_grad(c.id, b.id).tolist() == [8.0]
    assert ctx.compute_grad(c.id, c.id).tolist() == [1.0]


def test_same_link_used_twice():
    ctx = Context()
    a = ctx.init_var([1.5, -2.0])
    sq = ctx.init_op(OpType.MUL, a, a)
    ctx.fwd_pass()
    assert ctx.compute_grad(sq.id, a.id).tolist() == [3.0, -4.0]


def chain():
    ctx = Context()
    x1, x2 = ctx.init_var([0.4, 1.1]), ctx.init_var([2.0])
    h = ctx.init_op(OpType.TANH, ctx.init_op(OpType.MUL, x1, x2))
    y = ctx.init_op(OpType.SUM_REDUCE, h)
    y2 = ctx.init_op(OpType.SUM_REDUCE, ctx.init_op(OpType.SIN, x1))
    ctx.fwd_pass()
    return ctx, x1, x2, y, y2


def test_gradient_cache_is_single_slot():
    ctx, x1, x2, y, y2 = chain()
    v = np.array([0.4, 1.1])
    t = np.tanh(2.0 * v)

    g1 = ctx.compute_grad(y.id, x1.id)
    np.testing.assert_allclose(g1, (1 - t ** 2) * 2.0)
    assert ctx.evaluated_for == y.id

    values = {id: ctx.get_val(id).copy() for id in ctx.ids}
    g2 = ctx.compute_grad(y.id, x2.id)
    np.testing.assert_allclose(g2, [((1 - t ** 2) * v).sum()])
    # second query for the same output reuses the buffers, nothing is reset or recomputed
    np.testing.assert_allclose(ctx.compute_grad(y.id, x1.id), g1)
    np.testing.assert_allclose(ctx.get_var(x1.id).grad.data, g1)
    for id, val in values.items():
        np.testing.assert_array_equal(ctx.get_val(id), val)

    # another output zeroes every buffer and propagates again
    g3 = ctx.compute_grad(y2.id, x1.id)
    np.testing.assert_allclose(g3, np.cos(v))
    assert ctx.evaluated_for == y2.id
    assert ctx.compute_grad(y2.id, x2.id).tolist() == [0.0]
    assert ctx.get_var(y.id).grad.data.tolist() == [0.0]

    # and back again
    np.testing.assert_allclose(ctx.compute_grad(y.id, x1.id), g1)


def test_returned_gradient_is_a_copy():
    ctx, x1, _, y, _ = chain()
    g = ctx.compute_grad(y.id, x1.id)
    g[:] = 100.0
    assert not np.allclose(ctx.compute_grad(y.id, x1.id), 100.0)


def test_gradient_of_descendant_is_zero():
    ctx, x1, _, y, _ = chain()
    h = ctx.get_var(y.id).precedent[0]
    assert ctx.compute_grad(h, y.id).tolist() == [0.0]
    assert ctx.compute_grad(h, h).tolist() == [1.0, 1.0]


def test_set_val_invalidates_gradients():
    ctx, x1, x2, y, _ = chain()
    ctx.compute_grad(y.id, x1.id)
    ctx.set_val(x2.id, [0.5])
    assert ctx.evaluated_for is None
    t = np.tanh(0.5 * np.array([0.4, 1.1]))
    np.testing.assert_allclose(ctx.compute_grad(y.id, x1.id), (1 - t ** 2) * 0.5)


def test_unknown_ids():
    ctx, x1, _, y, _ = chain()
    with pytest.raises(UnknownNodeId):
        ctx.compute_grad(y.id, 999)
    with pytest.raises(UnknownNodeId):
        ctx.compute_grad(999, x1.id)
    with pytest.raises(KeyError):
        ctx.compute_grad(999, x1.id)
    assert ctx.get_val(999) is None

    fresh = Context()
    a = fresh.init_var([1.0])
    with pytest.raises(UnknownNodeId):
        fresh.compute_grad(a.id, a.id)


def test_sanity_check_against_torch():
    torch = pytest.importorskip("torch")

    xv, wv, bv = [-4.0, 0.5, 1.2], [0.3], [2.0, -1.0, 0.25]
    ctx = Context()
    x, w, b = ctx.init_var(xv), ctx.init_var(wv), ctx.init_var(bv)
    z = ctx.init_op(OpType.ADD_PAIRWISE, ctx.init_op(OpType.MUL, x, w), b)
    q = ctx.init_op(OpType.MUL, ctx.init_op(OpType.SIGMOID, z), ctx.init_op(OpType.TANH, x))
    h = ctx.init_op(OpType.DIV, ctx.init_op(OpType.RELU, z), ctx.init_op(OpType.LEAKY_RELU, b))
    y = ctx.init_op(OpType.SUM_REDUCE, ctx.init_op(OpType.CONCAT, q, h, ctx.init_op(OpType.SIN, w)))
    ctx.fwd_pass()
    grads = [ctx.compute_grad(y.id, t.id) for t in (x, w, b)]

    xt, wt, bt = (torch.tensor(v, dtype=torch.float64, requires_grad=True) for v in (xv, wv, bv))
    zt = xt * wt + bt
    qt = torch.sigmoid(zt) * torch.tanh(xt)
    ht = torch.relu(zt) / torch.nn.functional.leaky_relu(bt, 0.01)
    yt = torch.cat([qt, ht, torch.sin(wt)]).sum()
    yt.backward()

    tol = 1e-6
    assert abs(ctx.get_val(y.id)[0] - yt.item()) < tol
    for g, t in zip(grads, (xt, wt, bt)):
        np.testing.assert_allclose(g, t.grad.numpy(), atol=tol)


def test_backward_walk_covers_descendants_of_the_output():
    ctx = Context()
    x, one = ctx.init_var([0.0]), ctx.init_var([1.0])
    y = ctx.init_op(OpType.SIN, x)
    d = ctx.init_op(OpType.DIV, one, y)
    with np.errstate(divide="ignore", invalid="ignore"):
        ctx.fwd_pass()
        assert ctx.eval_order[0] == d.id
        # d has a zero gradient, but its local derivative -1/y^2 is -inf, so 0 * -inf reaches y
        g = ctx.compute_grad(y.id, x.id)
    assert np.isnan(g).all()
