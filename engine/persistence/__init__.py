"""Persistence collaborators: settings document and durable event log."""
