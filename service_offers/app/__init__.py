"""Offers Service application: rule engine, schemas and HTTP surface."""
