"""Venue booking lifecycle and availability engine."""
