# loginguard/rba/__init__.py

from .risk_scorer import RiskAssessment, RiskLevel, RiskScorer, RiskThresholds
from .challenge_gate import ChallengeGate, GateDecision
from .reconciler import AccountReconciler
from .novelty import NoveltyDetector
from .orchestrator import LoginOrchestrator, LoginOutcome

__all__ = [
    'RiskAssessment',
    'RiskLevel',
    'RiskScorer',
    'RiskThresholds',
    'ChallengeGate',
    'GateDecision',
    'AccountReconciler',
    'NoveltyDetector',
    'LoginOrchestrator',
    'LoginOutcome',
]
