from .manager import AuthenticationManager, FlowStage
from .pkce import code_challenge_for, generate_code_verifier

__all__ = [
    "AuthenticationManager",
    "FlowStage",
    "code_challenge_for",
    "generate_code_verifier",
]
