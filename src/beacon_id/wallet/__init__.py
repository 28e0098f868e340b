"""Wallet clients, backends and response normalization."""
