"""
Command Risk Classifier
=======================

Scores a literal shell command before any tool runs it.

Layers:
1. Input sanitization
2. Obfuscation detection (short-circuits: always CRITICAL)
3. Tiered pattern matching (CRITICAL / HIGH / MEDIUM, first match wins)
4. Context heuristics (chaining, pipe to shell, /etc redirect, sudo)
5. Risk scoring and decision

The final score is the higher of the pattern score and the context score;
the two are never summed. Commands scoring 70 or more are blocked, 40-69
are allowed but require approval.

Every tool that mediates a literal command calls ``enforce_command_policy``
before acting.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from crewforge.errors import PolicyBlocked
from crewforge.risk import (
    CONTEXT_HEURISTICS,
    OBFUSCATION_PATTERNS,
    TIERED_PATTERNS,
    RiskLevel,
    TierScore,
)

BLOCK_THRESHOLD = 70
APPROVAL_THRESHOLD = 40

_LINE_CONTINUATION = re.compile(r"\\\r?\n")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class RiskAssessment:
    """Outcome of classifying one command. Never persisted."""

    is_allowed: bool
    risk_level: RiskLevel
    risk_score: int
    sanitized_command: str
    detected_patterns: list[str] = field(default_factory=list)
    requires_approval: bool = False
    block_reason: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "is_allowed": self.is_allowed,
            "risk_level": str(self.risk_level),
            "risk_score": self.risk_score,
            "block_reason": self.block_reason,
            "sanitized_command": self.sanitized_command,
            "detected_patterns": list(self.detected_patterns),
            "requires_approval": self.requires_approval,
        }


@dataclass
class _CheckResult:
    score: int
    patterns: list[str]
    reason: Optional[str] = None


def sanitize_command(command: str) -> str:
    """
    Normalize a raw command string.

    Trims, drops backslash-newline continuations, then collapses whitespace
    runs to a single space. Applying it twice gives the same result.
    """
    text = command.strip()
    text = _LINE_CONTINUATION.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def detect_obfuscation(command: str) -> _CheckResult:
    """Check a sanitized command against the obfuscation patterns."""
    matched = [p for p in OBFUSCATION_PATTERNS if p.matches(command)]
    if not matched:
        return _CheckResult(score=0, patterns=[])
    classes = ", ".join(p.description for p in matched)
    return _CheckResult(
        score=int(TierScore.CRITICAL),
        patterns=[p.pattern_id for p in matched],
        reason=f"Obfuscation detected: {classes}",
    )


def match_patterns(command: str) -> _CheckResult:
    """Tiered match on the lowercased command; the first hit decides."""
    lowered = command.lower()
    for tier in TIERED_PATTERNS:
        for pattern in tier:
            if pattern.matches(lowered):
                return _CheckResult(
                    score=int(pattern.score),
                    patterns=[pattern.pattern_id],
                    reason=f"{pattern.score.name}: {pattern.description} ({pattern.pattern_id})",
                )
    return _CheckResult(score=0, patterns=[])


def analyze_context(command: str) -> _CheckResult:
    """Additive context heuristics, capped at 100."""
    score = 0
    names = []
    for heuristic in CONTEXT_HEURISTICS:
        if heuristic.matches(command):
            score += heuristic.weight
            names.append(heuristic.name)
    score = min(score, 100)
    reason = f"Risky command context: {', '.join(names)}" if names else None
    return _CheckResult(score=score, patterns=names, reason=reason)


def score_to_level(score: int) -> RiskLevel:
    """Map a 0-100 score to a risk level."""
    if score >= 90:
        return RiskLevel.CRITICAL
    if score >= BLOCK_THRESHOLD:
        return RiskLevel.HIGH
    if score >= APPROVAL_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def validate(command: str) -> RiskAssessment:
    """
    Classify a command. Pure and total: never raises.

    Args:
        command: The raw command string

    Returns:
        RiskAssessment with the decision and the evidence behind it
    """
    sanitized = sanitize_command(command or "")

    obfuscation = detect_obfuscation(sanitized)
    if obfuscation.patterns:
        return RiskAssessment(
            is_allowed=False,
            risk_level=RiskLevel.CRITICAL,
            risk_score=obfuscation.score,
            sanitized_command=sanitized,
            detected_patterns=obfuscation.patterns,
            requires_approval=False,
            block_reason=obfuscation.reason,
        )

    pattern_check = match_patterns(sanitized)
    context_check = analyze_context(sanitized)

    score = max(pattern_check.score, context_check.score)
    is_allowed = score < BLOCK_THRESHOLD

    block_reason = None
    if not is_allowed:
        decisive = pattern_check if pattern_check.score >= context_check.score else context_check
        block_reason = decisive.reason

    return RiskAssessment(
        is_allowed=is_allowed,
        risk_level=score_to_level(score),
        risk_score=score,
        sanitized_command=sanitized,
        detected_patterns=pattern_check.patterns + context_check.patterns,
        requires_approval=APPROVAL_THRESHOLD <= score < BLOCK_THRESHOLD,
        block_reason=block_reason,
    )


def enforce_command_policy(command: str) -> RiskAssessment:
    """
    Validate a command and raise if it is blocked.

    Returns:
        The assessment when the command is allowed

    Raises:
        PolicyBlocked: carrying the assessment when the command is refused
    """
    assessment = validate(command)
    if not assessment.is_allowed:
        raise PolicyBlocked(assessment)
    return assessment
