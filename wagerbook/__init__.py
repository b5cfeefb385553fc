"""
Wagerbook: settle a group's match-day wagers from the events of a football match.
"""
