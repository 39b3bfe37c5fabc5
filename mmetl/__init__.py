"""Transform Slack export archives into Mattermost bulk import files."""

__version__ = "0.1.0"