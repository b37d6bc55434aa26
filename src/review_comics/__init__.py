"""Turn venue reviews into cached comics and a per-region strangeness leaderboard."""

__version__ = "0.1.0"
