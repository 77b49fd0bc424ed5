"""Learner authentication (token validation only)."""

from .dependencies import CurrentLearner, get_current_learner
from .schemas import Learner
from .security import create_access_token, decode_access_token


__all__ = [
    "CurrentLearner",
    "Learner",
    "create_access_token",
    "decode_access_token",
    "get_current_learner",
]
