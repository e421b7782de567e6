"""
Communication history feature.

Aggregates Dialpad call/text exports and Microsoft Graph mail into
per-entity summaries and a flat contact timeline.
"""
