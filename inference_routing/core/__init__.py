"""
Core components of the Inference Routing layer.
"""

from .router import CentralRouter
from .classifier import IntentClassifier, classify
from .availability import AvailabilityOracle
from .credits import CreditCalculator, cost
from .interfaces import (
    BackendInterface,
    LocalLLMInterface,
    SidecarInterface,
    CloudInterface,
    OfflineInterface,
)

__all__ = [
    "CentralRouter",
    "IntentClassifier",
    "classify",
    "AvailabilityOracle",
    "CreditCalculator",
    "cost",
    "BackendInterface",
    "LocalLLMInterface",
    "SidecarInterface",
    "CloudInterface",
    "OfflineInterface",
]
