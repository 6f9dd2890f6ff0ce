"""Training modules, per-user progress and prerequisite gating."""
