from linkgrad.context import Context  # noqa: F401
from linkgrad.link import Link  # noqa: F401
from linkgrad.ops import OpType  # noqa: F401
from linkgrad.function import Function  # noqa: F401
from linkgrad.errors import AutogradError, ArityMismatch, IncompatibleWidth, UnknownNodeId, LeafValueError, GraphOwnershipError  # noqa: F401
