"""Subscription signup API (FastAPI + Stripe)."""
