from __future__ import annotations

from .. import config
from ..engine.capabilities import Arbiter, ProviderArbiter, ProviderScorer, Scorer


def get_scorer() -> Scorer:
    return ProviderScorer(timeout_seconds=config.SCORER_TIMEOUT_SECONDS)


def get_arbiter() -> Arbiter:
    return ProviderArbiter(config.ARBITER_MODEL, timeout_seconds=config.ARBITER_TIMEOUT_SECONDS)
