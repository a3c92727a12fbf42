"""Wire-level helpers: encryption, command envelopes and status reports."""
