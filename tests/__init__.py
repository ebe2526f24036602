"""Test package for Memory Blocks.

Core tests drive the round engine with a fake clock and an explicitly pumped
scheduler. UI smoke tests use pygame's dummy video/audio drivers to avoid
opening real windows. Run ``pytest`` from the project root.
"""
