"""Pydantic schemas for the TieTrack API."""
