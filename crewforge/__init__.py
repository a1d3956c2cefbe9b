"""
CrewForge
=========

Risk-gated plan/execute pipeline for a small crew of role agents
(devops, backend, qa, ux).
"""

__version__ = "0.1.0"
