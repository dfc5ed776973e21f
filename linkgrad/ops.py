"""This module defines the operation tags used by the engine, using namedtuples.

Primitive Operation Types (implemented by data.LinkData, composed by function.py):
- UnaryOps: Operations taking a single 1-D buffer, applied to every element.
- BinaryOps: Operations on two buffers of equal width, elementwise.
- ReduceOps: Aggregate every element of a buffer into a width-1 buffer.

Operator Catalog:
- OpType: the closed set of differentiable operators a Link can carry. Context.init_op takes one of these and
    resolves it to a Function through function.REGISTRY.

"""
from collections import namedtuple

UnaryOps = namedtuple('UnaryOps', ['NEG', 'EXP', 'LN', 'SIN', 'COS', 'TAN', 'RECIP'])
BinaryOps = namedtuple('BinaryOps', ['ADD', 'SUB', 'MUL', 'DIV', 'MAX', 'POW', 'CMPLT'])
ReduceOps = namedtuple('ReduceOps', ['SUM'])

OpType = namedtuple('OpType', ['CONCAT', 'MUL', 'DIV', 'ADD_PAIRWISE', 'SUM_REDUCE', 'SIN', 'COS', 'TAN', 'POW', 'LOG',
                               'SIGMOID', 'TANH', 'RELU', 'LEAKY_RELU'])
