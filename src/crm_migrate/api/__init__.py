"""Clients, rate limiting and retries for the CRM APIs."""
