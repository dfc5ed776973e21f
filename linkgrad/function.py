"""Contains the operator contract and the built-in catalog of differentiable functions.

Every operator is a small, stateless (Concat keeps its arity) description of one mathematical function. The forward
scheduler in schedule.py calls `forward` on the current precedent values of a Link and stores the result as the Link's
value. The backward engine in autograd.py calls `local_derivative` on the same values and folds each local derivative
into the precedent's gradient buffer with `fold_backward`.

All these functions are composed of the primitive methods of data.LinkData and are applied to and return LinkData
objects.

"""
from typing import Dict, Optional, Tuple, Type
from linkgrad.ops import UnaryOps, BinaryOps, ReduceOps, OpType
from linkgrad.data import LinkData


class Function:
    """Base class for all operators in the autograd engine.

    A Function is attached to exactly one Link at construction time and never changes afterwards. Subclasses implement
    the forward value and the local derivatives of one mathematical function. Operators whose output width differs from
    the width of their inputs also override `fold_backward`.

    """
    __slots__ = ()

    def arity(self) -> int:
        """Number of precedents the operator consumes."""
        raise NotImplementedError(f"arity not implemented for {type(self)}")

    def requires_broadcast(self) -> bool:
        """Whether unequal precedent widths should be reconciled by broadcasting width-1 precedents first."""
        return True

    def forward(self, *inputs: LinkData) -> Optional[LinkData]:
        """Forward pass of the function.

        Computes the output buffer from the precedent buffers. Returns None when the operator has no value of its own
        to contribute (leaves keep whatever value they were given).

        """
        raise NotImplementedError(f"forward not implemented for {type(self)}")

    def local_derivative(self, *inputs: LinkData) -> Tuple[LinkData, ...]:
        """One buffer per precedent holding d(output)/d(input_k) elementwise."""
        raise RuntimeError(f"local_derivative not implemented for {type(self)}")

    def fold_backward(self, grad_output: LinkData, precedent_grad: LinkData, width: int, offset: int,
                      local_grad: LinkData) -> LinkData:
        """Combines the gradient of this operator's output with one local derivative.

        Args:
            grad_output: Accumulated upstream gradient of the Link carrying this operator.
            precedent_grad: Gradient buffer of the precedent accumulated so far.
            width: Width of the local derivative.
            offset: Cumulative width of the precedents before this one.
            local_grad: Local derivative with respect to this precedent.

        Returns:
            LinkData: The delta to add into the precedent's gradient buffer.

        """
        assert local_grad.width == grad_output.width == width, \
            f"fold width mismatch, local {local_grad.width} != output {grad_output.width}"
        return local_grad.elementwise(BinaryOps.MUL, grad_output)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Leaf(Function):
    """Marker operator for links whose value is supplied from outside. y = constant; y' = 0"""
    def arity(self) -> int: return 0

    def forward(self, *inputs: LinkData) -> Optional[LinkData]:
        return None

    def local_derivative(self, *inputs: LinkData) -> Tuple[LinkData, ...]:
        return ()


# ----------------------------------------------------------------------------------------------------------------------
# width changing ops

class Concat(Function):
    """Ordered concatenation of all inputs. Precedents may differ in width, so no broadcasting."""
    __slots__ = ("_arity",)

    def __init__(self, arity: int):
        self._arity = arity

    def arity(self) -> int: return self._arity
    def requires_broadcast(self) -> bool: return False

    def forward(self, *inputs: LinkData) -> LinkData:
        return LinkData.cat(*inputs)

    def local_derivative(self, *inputs: LinkData) -> Tuple[LinkData, ...]:
        return tuple(x.const(1.0) for x in inputs)

    def fold_backward(self, grad_output, precedent_grad, width, offset, local_grad):
        # each precedent owns the contiguous region [offset, offset + width) of the output
        assert grad_output.width >= offset + width, f"concat region ({offset}, {offset + width}) out of range"
        return grad_output.shrink(offset, offset + width).elementwise(BinaryOps.MUL, local_grad)

    def __repr__(self) -> str:
        return f"Concat(arity={self._arity})"


class SumReduce(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.reduce(ReduceOps.SUM)

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        return (x.const(1.0),)

    def fold_backward(self, grad_output, precedent_grad, width, offset, local_grad):
        # every summed element receives the same upstream scalar
        assert grad_output.width == 1, f"sum gradient must be a scalar, got width {grad_output.width}"
        return local_grad.elementwise(BinaryOps.MUL, grad_output.expand(width))


# ----------------------------------------------------------------------------------------------------------------------
# binary ops

class Mul(Function):
    def arity(self) -> int: return 2

    def forward(self, a: LinkData, b: LinkData) -> LinkData:
        return a.elementwise(BinaryOps.MUL, b)

    def local_derivative(self, a: LinkData, b: LinkData) -> Tuple[LinkData, ...]:
        return b.copy(), a.copy()


class Div(Function):
    def arity(self) -> int: return 2

    def forward(self, a: LinkData, b: LinkData) -> LinkData:
        return a.elementwise(BinaryOps.DIV, b)

    def local_derivative(self, a: LinkData, b: LinkData) -> Tuple[LinkData, ...]:
        return b.elementwise(UnaryOps.RECIP), \
            a.elementwise(UnaryOps.NEG).elementwise(BinaryOps.DIV, b.elementwise(BinaryOps.MUL, b))


class AddPairwise(Function):
    def arity(self) -> int: return 2

    def forward(self, a: LinkData, b: LinkData) -> LinkData:
        return a.elementwise(BinaryOps.ADD, b)

    def local_derivative(self, a: LinkData, b: LinkData) -> Tuple[LinkData, ...]:
        return a.const(1.0), b.const(1.0)


class Pow(Function):
    """y = base^exponent. The base is not differentiated: its local derivative is always zero."""
    def arity(self) -> int: return 2

    def forward(self, base: LinkData, exponent: LinkData) -> LinkData:
        return base.elementwise(BinaryOps.POW, exponent)

    def local_derivative(self, base: LinkData, exponent: LinkData) -> Tuple[LinkData, ...]:
        return base.const(0.0), \
            base.elementwise(UnaryOps.LN).elementwise(BinaryOps.MUL, base.elementwise(BinaryOps.POW, exponent))


class Log(Function):
    """y = log_base(value). The base is not differentiated: its local derivative is always zero."""
    def arity(self) -> int: return 2

    def forward(self, base: LinkData, value: LinkData) -> LinkData:
        return value.elementwise(UnaryOps.LN).elementwise(BinaryOps.DIV, base.elementwise(UnaryOps.LN))

    def local_derivative(self, base: LinkData, value: LinkData) -> Tuple[LinkData, ...]:
        return base.const(0.0), value.elementwise(BinaryOps.MUL, base.elementwise(UnaryOps.LN)).elementwise(UnaryOps.RECIP)


# ----------------------------------------------------------------------------------------------------------------------
# unary ops

class Sin(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.elementwise(UnaryOps.SIN)

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        return (x.elementwise(UnaryOps.COS),)


class Cos(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.elementwise(UnaryOps.COS)

    # NOTE: the local derivative is -cos(x), not -sin(x). Existing results depend on this value, do not change it.
    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        return (x.elementwise(UnaryOps.COS).elementwise(UnaryOps.NEG),)


class Tan(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.elementwise(UnaryOps.TAN)

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        c = x.elementwise(UnaryOps.COS)
        return (c.elementwise(BinaryOps.MUL, c).elementwise(UnaryOps.RECIP),)


class Sigmoid(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.const(1).elementwise(BinaryOps.DIV, x.const(1).elementwise(BinaryOps.ADD, x.elementwise(UnaryOps.NEG).elementwise(UnaryOps.EXP)))

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        s = self.forward(x)
        return (s.elementwise(BinaryOps.MUL, s.const(1).elementwise(BinaryOps.SUB, s)),)


class Tanh(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        a = x.elementwise(BinaryOps.MUL, x.const(-2)).elementwise(UnaryOps.EXP)
        return a.const(1).elementwise(BinaryOps.SUB, a).elementwise(BinaryOps.DIV, a.const(1).elementwise(BinaryOps.ADD, a))

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        t = self.forward(x)
        return (t.const(1).elementwise(BinaryOps.SUB, t.elementwise(BinaryOps.MUL, t)),)


class Relu(Function):
    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.elementwise(BinaryOps.MAX, x.const(0))

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        return (x.const(0).elementwise(BinaryOps.CMPLT, x),)


class LeakyRelu(Function):
    slope = 0.01

    def arity(self) -> int: return 1

    def forward(self, x: LinkData) -> LinkData:
        return x.elementwise(BinaryOps.MAX, x.elementwise(BinaryOps.MUL, x.const(self.slope)))

    def local_derivative(self, x: LinkData) -> Tuple[LinkData, ...]:
        positive = x.const(0).elementwise(BinaryOps.CMPLT, x)
        return (positive.elementwise(BinaryOps.MUL, x.const(1 - self.slope)).elementwise(BinaryOps.ADD, x.const(self.slope)),)


# ----------------------------------------------------------------------------------------------------------------------
# registry

REGISTRY: Dict[OpType, Type[Function]] = {
    OpType.CONCAT: Concat,
    OpType.MUL: Mul,
    OpType.DIV: Div,
    OpType.ADD_PAIRWISE: AddPairwise,
    OpType.SUM_REDUCE: SumReduce,
    OpType.SIN: Sin,
    OpType.COS: Cos,
    OpType.TAN: Tan,
    OpType.POW: Pow,
    OpType.LOG: Log,
    OpType.SIGMOID: Sigmoid,
    OpType.TANH: Tanh,
    OpType.RELU: Relu,
    OpType.LEAKY_RELU: LeakyRelu,
}


def make_function(op: OpType, n_args: int) -> Function:
    """Instantiate the operator for a catalog tag. Concat takes its arity from the number of arguments."""
    if op not in REGISTRY:
        raise NotImplementedError(f"unsupported op {op}")
    return Concat(n_args) if op == OpType.CONCAT else REGISTRY[op]()
