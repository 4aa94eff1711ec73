"""Correlation of multi-line numeric replies into single units."""

from .correlator import AggregateReply, PendingGroup, ReplyCorrelator, family_of

__all__ = ["AggregateReply", "PendingGroup", "ReplyCorrelator", "family_of"]
