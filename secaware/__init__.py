"""
Security-Awareness Engagement Engine

Backend for quizzes, mini-games and training modules of the security
awareness platform:
1. Timed quiz and game attempts with at most one open attempt per user and assessment
2. Server-side quiz scoring against stored answer keys
3. Training modules gated by a prerequisite graph
"""

__version__ = "0.1.0"
