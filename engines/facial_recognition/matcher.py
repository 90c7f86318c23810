"""
Face Matcher — enrolled pool + Euclidean distance scoring + decision.
Scores a live profile against every enrolled descriptor and decides between
accept, reject, and ambiguous.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

import numpy as np

from engines.facial_recognition.descriptors import as_descriptor, euclidean_distance, normalize

logger = logging.getLogger(__name__)


class MatchOutcome(enum.Enum):
    """Terminal states of the match decision."""
    NO_ENROLLED_FACES = 'no-enrolled-faces'
    NOT_RECOGNIZED = 'not-recognized'
    AMBIGUOUS = 'ambiguous'
    PROVISIONAL_ACCEPT = 'provisional-accept'


@dataclass
class EnrollmentRecord:
    """One enrolled user's reference descriptor."""
    identity_key: str
    descriptor: np.ndarray
    blocked: bool = False


@dataclass
class MatchCandidate:
    """Distance from the live profile to one enrolled identity."""
    identity_key: str
    distance: float

    def to_dict(self) -> dict:
        return {'identity_key': self.identity_key, 'distance': round(self.distance, 4)}


@dataclass
class MatchDecision:
    """Result of deciding over a sorted candidate list."""
    outcome: MatchOutcome
    candidate: Optional[MatchCandidate] = None
    runner_up: Optional[MatchCandidate] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is MatchOutcome.PROVISIONAL_ACCEPT

    def to_dict(self) -> dict:
        return {
            'outcome': self.outcome.value,
            'candidate': self.candidate.to_dict() if self.candidate else None,
            'runner_up': self.runner_up.to_dict() if self.runner_up else None,
        }


class EnrolledPool:
    """
    Ordered collection of enrollment records for one login session.

    Identity keys are unique: adding an existing key replaces its record
    in place, keeping the original order.
    """

    def __init__(self, descriptor_dim: Optional[int] = None):
        self.descriptor_dim = descriptor_dim
        self._records: Dict[str, EnrollmentRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EnrollmentRecord]:
        return iter(list(self._records.values()))

    def add(self, identity_key: str, descriptor, blocked: bool = False) -> EnrollmentRecord:
        """
        Add an enrolled descriptor.

        Args:
            identity_key: directory key (email or display name)
            descriptor: vector as list, JSON string, or numpy array
            blocked: blocked flag as seen at load time (informational only)
        """
        vec = normalize(as_descriptor(descriptor, self.descriptor_dim))
        record = EnrollmentRecord(identity_key=identity_key, descriptor=vec, blocked=bool(blocked))
        self._records[identity_key] = record
        logger.debug(f"EnrolledPool: added {identity_key}")
        return record


class FaceMatcher:
    """
    Scores a live profile against an EnrolledPool and applies the decision rules.

    Decision order (first match wins):
        1. empty pool                          → NO_ENROLLED_FACES
        2. best distance > accept_threshold    → NOT_RECOGNIZED
        3. runner-up gap < ambiguity_delta     → AMBIGUOUS
        4. otherwise                           → PROVISIONAL_ACCEPT

    Rule 2 is checked before rule 3 so a too-far best match is always a plain
    rejection, never an ambiguity.
    """

    def __init__(self, accept_threshold: float = 1.0, ambiguity_delta: float = 0.1):
        self.accept_threshold = accept_threshold
        self.ambiguity_delta = ambiguity_delta

    def score(self, profile: np.ndarray, pool: EnrolledPool) -> List[MatchCandidate]:
        """Distances from the live profile to every pool entry, best first."""
        scores = [
            MatchCandidate(record.identity_key, euclidean_distance(profile, record.descriptor))
            for record in pool
        ]
        scores.sort(key=lambda c: c.distance)
        return scores

    def decide(self, scores: List[MatchCandidate]) -> MatchDecision:
        """Apply threshold and ambiguity rules to a best-first candidate list."""
        if not scores:
            return MatchDecision(MatchOutcome.NO_ENROLLED_FACES)

        best = scores[0]
        runner_up = scores[1] if len(scores) > 1 else None

        if best.distance > self.accept_threshold:
            return MatchDecision(MatchOutcome.NOT_RECOGNIZED, best, runner_up)

        if runner_up is not None and (runner_up.distance - best.distance) < self.ambiguity_delta:
            return MatchDecision(MatchOutcome.AMBIGUOUS, best, runner_up)

        return MatchDecision(MatchOutcome.PROVISIONAL_ACCEPT, best, runner_up)

    def match(self, profile: np.ndarray, pool: EnrolledPool) -> MatchDecision:
        """Score and decide in one step."""
        decision = self.decide(self.score(profile, pool))
        logger.info(f"Face match decision: {decision.to_dict()}")
        return decision
