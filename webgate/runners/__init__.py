"""Collaborator adapters: browser session, accessibility, performance and visual diff."""
