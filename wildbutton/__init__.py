"""Wild Button: a daily button, a race to click it, and a leaderboard."""

__version__ = "1.0.0"
