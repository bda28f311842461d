"""Realtime presence and message routing core."""
