# app/core/__init__.py
"""Configuration, logging, errors and crypto shared by the billing core."""
