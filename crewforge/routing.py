"""
Role Classifier
===============

Routes a free-text request to one of the role handlers using keyword
scoring. Pure and synchronous.

Scoring:
- +1 for each single-word keyword found in the lowercased request
- +2 for each multi-word keyword phrase
- fixed boosts from the project's stack hints, when given

The strictly highest score wins; ties go to the earlier role in
ROLE_ORDER. When nothing matches the request goes to ``backend``.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from crewforge.stacks import StackConfig

ROLE_ORDER: Tuple[str, ...] = ("devops", "backend", "qa", "ux")
DEFAULT_ROLE = "backend"

ROLE_KEYWORDS: Dict[str, List[str]] = {
    "devops": [
        "deploy", "server", "vps", "ssh", "docker", "nginx", "systemd", "disk", "cpu",
        "memory", "infra", "ci/cd", "pipeline", "scale", "container", "kubernetes",
        "hosting", "host", "cloud server", "droplet", "ec2", "linode", "digitalocean",
    ],
    "backend": [
        "api", "route", "database", "schema", "endpoint", "auth", "backend",
        "server-side", "migration", "query", "model", "crud", "rest", "graphql",
        "webhook", "middleware", "prisma", "supabase",
    ],
    "qa": [
        "test", "bug", "quality", "coverage", "playwright", "vitest", "jest", "pytest",
        "spec", "assertion", "review code", "security audit", "lint", "e2e",
    ],
    "ux": [
        # general UI
        "ui", "component", "design", "css", "tailwind", "animation", "accessibility",
        "a11y", "layout", "frontend", "ux", "form", "button", "page", "view", "screen",
        # landing pages
        "landing", "landing page", "homepage", "home page", "hero", "section", "sections",
        "banner", "header", "footer", "navbar", "nav", "cta", "feature", "pricing",
        # static sites
        "html", "html page", "static", "static page", "static site",
        # frameworks
        "bootstrap", "react", "next.js", "nextjs", "vue", "svelte", "angular",
        # content
        "responsive", "mobile-friendly", "card", "grid", "flex", "template",
        # marketing
        "sale", "product page", "promo", "marketing page", "showcase",
    ],
}


@dataclass(frozen=True)
class StackBoost:
    """Adds ``boost`` to ``role`` when the stack declares ``fields``."""
    fields: Tuple[str, ...]
    role: str
    boost: int


STACK_ROLE_BOOST: List[StackBoost] = [
    StackBoost(("frontend",), "ux", 3),
    StackBoost(("mobile",), "ux", 2),
    StackBoost(("backend", "database"), "backend", 2),
    StackBoost(("deploy", "database"), "devops", 2),
    StackBoost(("testing",), "qa", 2),
]

# A boost also fires when one of these heavy fields is missing, so a
# frontend-only project is not pulled toward backend.
_HEAVY_FIELDS = ("backend", "database")


def keyword_weight(keyword: str) -> int:
    return 2 if " " in keyword else 1


def score_request(text: str, stack: Optional[StackConfig] = None) -> Dict[str, int]:
    """Per-role scores for a request, in ROLE_ORDER."""
    lower = text.lower()
    scores = {role: 0 for role in ROLE_ORDER}

    for role, keywords in ROLE_KEYWORDS.items():
        for keyword in keywords:
            if keyword in lower:
                scores[role] += keyword_weight(keyword)

    if stack is not None:
        for rule in STACK_ROLE_BOOST:
            has_fields = all(stack.has(f) for f in rule.fields)
            heavy_absent = any(f in _HEAVY_FIELDS and not stack.has(f) for f in rule.fields)
            if has_fields or heavy_absent:
                scores[rule.role] += rule.boost

    return scores


def classify_request(text: str, stack: Optional[StackConfig] = None) -> str:
    """
    Pick the role that should handle a request.

    Args:
        text: The user's request
        stack: Optional project stack hints

    Returns:
        One of ROLE_ORDER; ``backend`` when every role scores zero
    """
    scores = score_request(text, stack)
    best_role = DEFAULT_ROLE
    best_score = 0
    for role in ROLE_ORDER:
        if scores[role] > best_score:
            best_role = role
            best_score = scores[role]
    return best_role
