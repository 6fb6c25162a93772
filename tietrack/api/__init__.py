"""HTTP API for TieTrack."""
