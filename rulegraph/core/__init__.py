from .Types import Combinator, NodeKind, Operator, ValueArity
from .GraphPrimitives import (
    ActionPayload,
    ConditionPayload,
    Edge,
    Graph,
    LogicPayload,
    Node,
    Position,
)
from .ConnectionValidator import (
    ProposedConnection,
    ValidationResult,
    is_valid_connection,
    validate_connection,
)
from .History import HistoryManager
