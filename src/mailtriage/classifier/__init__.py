"""Message classification components.

This package provides the cheap and expensive classification paths:
- Pattern tables shared by the rule-based classifiers
- Pre-filter deciding whether AI analysis can be skipped
- Learned per-user sender patterns
- Sender type detection (direct, broadcast, cold outreach, opportunity)
- Analyzer contract and the Claude-backed analyzer
"""
