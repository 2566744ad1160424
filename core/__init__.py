"""Larm core: pixel buffers, tiers, engine bridge, render coordination, sessions."""
