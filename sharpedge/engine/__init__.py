"""Signal detection engine components."""

from sharpedge.engine.alert_gate import AlertGate
from sharpedge.engine.consensus import ConsensusEngine, devig
from sharpedge.engine.edge import EdgeCalculator, market_price
from sharpedge.engine.lifecycle import LifecycleOutcome, SignalLifecycleManager
from sharpedge.engine.movement import MovementDetector

__all__ = [
    "AlertGate",
    "ConsensusEngine",
    "devig",
    "EdgeCalculator",
    "market_price",
    "LifecycleOutcome",
    "SignalLifecycleManager",
    "MovementDetector",
]
