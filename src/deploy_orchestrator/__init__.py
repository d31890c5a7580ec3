"""Database migration and ECS service rollout for staging and prod."""

__version__ = "0.1.0"
