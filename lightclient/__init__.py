"""
NEAR-style proof-of-stake light client.

Tracks a remote chain's finalized headers from a trusted root, follows
validator-set rotation across epochs, verifies state proofs against the
committed roots and freezes itself on proven misbehaviour.

Public surface:
- LightClient: the update/verify/freeze state machine over a KV store
- value types (Height, ClientState, ConsensusState, Header, Misbehaviour, Proof)
- ValidatorSet / ValidatorStake and the error hierarchy
"""

from .client import LightClient, new_client_state
from .errors import LightClientError, LightClientErrorCode
from .types import (
    ClientState,
    ConsensusState,
    Header,
    Height,
    Misbehaviour,
    Proof,
    Status,
)
from .validators import ValidatorSet, ValidatorStake
from .version import __version__

__all__ = [
    "__version__",
    "LightClient",
    "new_client_state",
    "LightClientError",
    "LightClientErrorCode",
    "Height",
    "ClientState",
    "ConsensusState",
    "Header",
    "Misbehaviour",
    "Proof",
    "Status",
    "ValidatorSet",
    "ValidatorStake",
]
