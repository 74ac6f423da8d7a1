"""Flancer negotiation service: price negotiation between requester and provider."""
