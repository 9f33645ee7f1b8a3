"""Collaborative coding rooms: durable sessions and the realtime hub."""
