"""
Archiver package — incrementally pulls Slack channel history through the
Web API (``conversations.history``) and stores it in PostgreSQL.

All Slack API access goes through ReadOnlySlackClient, which only permits
an explicit allowlist of read methods.  Sync position is never stored on
its own: each run derives it from the newest archived message of a channel.
"""
