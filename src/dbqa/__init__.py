"""
dbqa - data-quality checks for BI data sources.

Queries run on a schedule or on demand, results are evaluated against
thresholds, and failing checks raise throttled alerts that are delivered
over email, Slack and webhooks.
"""

__version__ = "0.1.0"
