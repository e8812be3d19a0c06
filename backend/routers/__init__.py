"""Parley HTTP routers and the chat turn pipeline."""
