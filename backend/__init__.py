"""
Backend package for the FriendlyEats restaurant-review service.

This package provides a FastAPI application over Firestore, Firebase
Authentication, object storage and Gemini, with in-memory stand-ins for each
backend so the service runs locally and under test without credentials.
"""
