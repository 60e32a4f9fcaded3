"""Configuration, logging, errors and rate limiting shared by the API and services."""
