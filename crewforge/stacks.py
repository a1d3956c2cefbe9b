"""
Stack Hints & Prompt Builder
============================

A project may declare its technology stack (frontend, backend, database,
testing, deploy, mobile). The stack feeds two things:

- the role classifier, which boosts roles whose stack fields are present
- the system prompt, which gets the knowledge snippets for the categories
  each role cares about
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from crewforge.prompts import load_prompt

STACK_CATEGORIES = ("frontend", "backend", "database", "testing", "deploy", "mobile")


class StackConfig(BaseModel):
    """A project's declared stack. Values are STACK_LIBRARY keys or free text."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    frontend: Optional[str] = None
    backend: Optional[str] = None
    database: Optional[str] = None
    testing: Optional[str] = None
    deploy: Optional[str] = None
    mobile: Optional[str] = None

    def has(self, category: str) -> bool:
        return bool(getattr(self, category, None))


@dataclass(frozen=True)
class StackChoice:
    label: str
    description: str
    prompt_snippet: str


STACK_LIBRARY: Dict[str, Dict[str, StackChoice]] = {
    "frontend": {
        "HTML": StackChoice(
            label="Plain HTML Landing Page",
            description="HTML5 + CSS3 + vanilla JS, no framework",
            prompt_snippet=(
                "Frontend: plain HTML5 / CSS3 / vanilla JS.\n"
                "- Semantic tags: <header>, <nav>, <main>, <section>, <footer>\n"
                "- CSS custom properties, Flexbox and Grid, mobile-first media queries\n"
                "- No build tools; CDN links only\n"
                "- Accessibility: aria-label, keyboard-navigable focus styles"
            ),
        ),
        "React+Vite": StackChoice(
            label="React + Vite",
            description="React 18, Vite, TanStack Query",
            prompt_snippet=(
                "Frontend: React 18 + Vite.\n"
                "- Functional components with hooks\n"
                "- Server state with TanStack Query, client state with Zustand or Context\n"
                "- React Router v6; CSS Modules or Tailwind CSS\n"
                "- TypeScript strict mode"
            ),
        ),
        "Next.js": StackChoice(
            label="Next.js App Router",
            description="Next.js, Server Components, App Router",
            prompt_snippet=(
                "Frontend: Next.js App Router.\n"
                "- Server Components by default; 'use client' only for interactivity\n"
                "- page.tsx / layout.tsx / loading.tsx / error.tsx conventions\n"
                "- next/image and next/link; Tailwind CSS or CSS Modules"
            ),
        ),
    },
    "backend": {
        "Express": StackChoice(
            label="Express.js",
            description="Express, REST, middleware pattern",
            prompt_snippet=(
                "Backend: Express.js + TypeScript.\n"
                "- routes/, controllers/, services/, middlewares/\n"
                "- Zod validation on every input; centralized error middleware\n"
                "- JWT auth; explicit HTTP status codes"
            ),
        ),
        "FastAPI": StackChoice(
            label="FastAPI",
            description="FastAPI, Pydantic, async Python",
            prompt_snippet=(
                "Backend: FastAPI + Python 3.11+.\n"
                "- async def route handlers; Pydantic v2 request/response models\n"
                "- routers/, schemas/, services/, dependencies/\n"
                "- SQLAlchemy 2.0 async; dependency injection via Depends()"
            ),
        ),
    },
    "database": {
        "PostgreSQL": StackChoice(
            label="PostgreSQL",
            description="PostgreSQL with migrations",
            prompt_snippet=(
                "Database: PostgreSQL.\n"
                "- Schema changes through migrations only\n"
                "- Composite indexes for frequent filters; unique natural keys\n"
                "- Transactions for multi-row writes"
            ),
        ),
        "MongoDB": StackChoice(
            label="MongoDB + Mongoose",
            description="MongoDB, Mongoose ODM, aggregations",
            prompt_snippet=(
                "Database: MongoDB + Mongoose.\n"
                "- Typed schemas with indexes on queried fields\n"
                "- Aggregation pipelines instead of N+1 lookups\n"
                "- Soft deletes via a deletedAt field"
            ),
        ),
    },
    "testing": {
        "Pytest": StackChoice(
            label="Pytest",
            description="Pytest, pytest-asyncio, httpx",
            prompt_snippet=(
                "Testing: Pytest.\n"
                "- Fixtures for setup and teardown\n"
                "- @pytest.mark.asyncio for async code\n"
                "- Cover the happy path, error paths and edge cases"
            ),
        ),
        "Vitest": StackChoice(
            label="Vitest",
            description="Vitest, Testing Library, MSW",
            prompt_snippet=(
                "Testing: Vitest + Testing Library.\n"
                "- vi.fn() / vi.mock() for doubles; MSW for network\n"
                "- *.test.ts next to the source\n"
                "- Cover the happy path, error paths and edge cases"
            ),
        ),
        "Playwright": StackChoice(
            label="Playwright E2E",
            description="Playwright, page object model",
            prompt_snippet=(
                "Testing: Playwright E2E.\n"
                "- One page object per page\n"
                "- getByRole / getByLabel / getByTestId locators\n"
                "- Never waitForTimeout; assert visibility instead"
            ),
        ),
    },
    "deploy": {
        "Docker+VPS": StackChoice(
            label="Docker + VPS",
            description="Docker, docker compose, Nginx",
            prompt_snippet=(
                "Deploy: Docker + Linux VPS.\n"
                "- Multi-stage Dockerfile with a slim runtime image\n"
                "- docker-compose.yml with app, db and nginx services\n"
                "- Nginx reverse proxy with TLS; HEALTHCHECK in the Dockerfile\n"
                "- Secrets via --env-file, never committed"
            ),
        ),
        "Vercel": StackChoice(
            label="Vercel",
            description="Vercel, edge functions, preview deployments",
            prompt_snippet=(
                "Deploy: Vercel.\n"
                "- vercel.json for rewrites and headers\n"
                "- Environment variables managed in the dashboard\n"
                "- Preview deployments per branch"
            ),
        ),
    },
    "mobile": {
        "React Native + Expo": StackChoice(
            label="React Native + Expo",
            description="React Native, Expo, Expo Router",
            prompt_snippet=(
                "Mobile: React Native + Expo.\n"
                "- Expo Router file-based navigation\n"
                "- NativeWind or StyleSheet.create()\n"
                "- Platform.OS checks for platform-specific logic"
            ),
        ),
        "Flutter": StackChoice(
            label="Flutter",
            description="Flutter 3.x, Dart, Riverpod",
            prompt_snippet=(
                "Mobile: Flutter 3.x + Dart 3.\n"
                "- Riverpod for state, GoRouter for navigation\n"
                "- Widgets small and composable; const constructors"
            ),
        ),
    },
}

# Which stack categories each role cares about
ROLE_STACK_CATEGORIES: Dict[str, List[str]] = {
    "devops": ["deploy", "database"],
    "backend": ["backend", "database", "testing"],
    "qa": ["testing", "frontend", "backend", "mobile"],
    "ux": ["frontend", "mobile", "testing"],
}

GENERAL_RULES = [
    "- Always reason through the task before taking action",
    "- Write production-quality code (typed, error-handled, documented)",
    "- If a task is ambiguous, state your assumption and proceed",
    "- Never introduce security vulnerabilities (SQL injection, XSS, secrets in code)",
    "- Output valid, runnable code - no pseudocode or placeholders",
]


def stack_snippets(role: str, stack: Optional[StackConfig]) -> List[str]:
    """Knowledge snippets for the categories a role cares about."""
    if stack is None:
        return []
    categories = ROLE_STACK_CATEGORIES.get(role, list(STACK_CATEGORIES))
    sections = []
    for category in categories:
        key = getattr(stack, category, None)
        if not key:
            continue
        choice = STACK_LIBRARY.get(category, {}).get(key)
        if choice:
            sections.append(f"### {choice.label}\n{choice.prompt_snippet}")
    return sections


def build_system_prompt(
    role: str,
    stack: Optional[StackConfig] = None,
    extra: Optional[str] = None,
) -> str:
    """
    Build a complete system prompt for a role and project stack.

    Args:
        role: Role key (devops | backend | qa | ux)
        stack: The project's stack, if any
        extra: Role-specific rules appended at the end

    Returns:
        Persona + stack knowledge + general rules (+ extra rules)
    """
    sections = stack_snippets(role, stack)
    parts = [
        load_prompt(role),
        "",
        "## Tech Stack for This Project",
        "\n\n".join(sections) if sections
        else "_No specific stack configured. Use best practices for the most common production setup._",
        "",
        "## General Rules",
        *GENERAL_RULES,
    ]
    if extra:
        parts.extend(["", "## Role-Specific Rules", extra.strip()])
    return "\n".join(parts)


def format_stack_summary(stack: Optional[StackConfig]) -> str:
    """One-line summary, e.g. "React+Vite · FastAPI · PostgreSQL"."""
    if stack is None:
        return "No stack configured"
    parts = [
        stack.mobile,
        stack.frontend,
        stack.backend,
        stack.database,
        stack.testing,
        stack.deploy,
    ]
    return " · ".join(p for p in parts if p) or "No stack configured"
