"""
Misbehaviour Detector.

Both headers are verified independently against the same trusted snapshot;
only two valid finalizations can conflict. Evidence is proven when:

- same height: the headers commit to different state roots or different
  next-epoch validator sets;
- different heights: the higher header is not strictly later in time than
  the lower one.

The detector only judges; freezing is applied by the client.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .config import LightClientConfig, get_config
from .errors import LightClientError, MisbehaviourNotProven
from .logging import get_logger
from .types import Header, Height, Misbehaviour
from .verifier import TrustedSnapshot, VerifiedHeader, verify_header

log = get_logger("lightclient.misbehaviour")


@dataclass(frozen=True)
class Evidence:
    freeze_height: Height
    reason: str


def _verify_one(trusted: TrustedSnapshot, header: Header, which: str, cfg: LightClientConfig) -> VerifiedHeader:
    try:
        return verify_header(trusted, header, config=cfg)
    except LightClientError as e:
        raise MisbehaviourNotProven(
            f"{which} is not a valid finalization",
            reason=e.code_str,
            detail=e.message,
        ).with_cause(e) from e


def detect(
    trusted: TrustedSnapshot,
    misbehaviour: Misbehaviour,
    *,
    config: Optional[LightClientConfig] = None,
) -> Evidence:
    """Return the evidence to freeze on, or raise MisbehaviourNotProven."""
    cfg = config or get_config()
    h1, h2 = misbehaviour.header_1, misbehaviour.header_2

    if h1 == h2:
        raise MisbehaviourNotProven("headers are identical", height=str(h1.height))

    if cfg.verifier.signature_workers > 1:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="lc-misb") as pool:
            f1 = pool.submit(_verify_one, trusted, h1, "header_1", cfg)
            f2 = pool.submit(_verify_one, trusted, h2, "header_2", cfg)
            v1, v2 = f1.result(), f2.result()
    else:
        v1 = _verify_one(trusted, h1, "header_1", cfg)
        v2 = _verify_one(trusted, h2, "header_2", cfg)

    if v1.height == v2.height:
        c1, c2 = v1.consensus_state, v2.consensus_state
        if c1.state_root != c2.state_root:
            reason = "conflicting state roots"
        elif c1.next_bp_hash != c2.next_bp_hash:
            reason = "conflicting next-epoch validator commitments"
        else:
            raise MisbehaviourNotProven(
                "headers agree on state root and next-epoch commitment",
                height=str(v1.height),
            )
    else:
        lo, hi = sorted((h1, h2), key=lambda h: h.height)
        if hi.timestamp > lo.timestamp:
            raise MisbehaviourNotProven(
                "headers at different heights are consistently ordered in time",
                low=str(lo.height),
                high=str(hi.height),
            )
        reason = "time-monotonicity violation"

    evidence = Evidence(freeze_height=min(v1.height, v2.height), reason=reason)
    log.info(
        "misbehaviour proven",
        extra={"client_id": misbehaviour.client_id, "height": str(evidence.freeze_height), "reason": reason},
    )
    return evidence


__all__ = ["Evidence", "detect"]
