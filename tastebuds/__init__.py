"""Tastebuds: people-you-may-like recommendations for a restaurant social platform."""
