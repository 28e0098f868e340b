"""Onboarding, approval and the identity message worker."""
