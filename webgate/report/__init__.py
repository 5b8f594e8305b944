"""Summary envelopes and human-readable reports."""
