"""Exceptions raised by the graph engine.

Every error is a deterministic function of the graph's shape or the ids passed in, so none of them is worth retrying.
"""


class AutogradError(Exception):
    """Base class for all engine errors."""


class ArityMismatch(AutogradError):
    """A link's operator arity disagrees with its number of precedents."""
    def __init__(self, link_id: int, arity: int, n_precedents: int):
        self.link_id, self.arity, self.n_precedents = link_id, arity, n_precedents
        super().__init__(f"op arity not match for link {link_id}: expected {arity} precedents, got {n_precedents}")


class IncompatibleWidth(AutogradError):
    """Precedent widths disagree and cannot be reconciled by broadcasting a width-1 precedent."""
    def __init__(self, link_id: int, widths):
        self.link_id, self.widths = link_id, tuple(widths)
        super().__init__(f"variable length not consistent for link {link_id}: precedent widths {self.widths}")


class UnknownNodeId(AutogradError, KeyError):
    """An id was never produced by a completed forward pass of this context (or is missing from the submitted set)."""
    def __init__(self, link_id: int, reason: str = "not owned by this context"):
        self.link_id = link_id
        super().__init__(f"unknown link id {link_id}: {reason}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class LeafValueError(AutogradError, ValueError):
    """A value was set on a computed link, or with the wrong width."""


class GraphOwnershipError(AutogradError):
    """A link set was submitted to a context that already owns a generation, or an adopted link was mutated directly."""
