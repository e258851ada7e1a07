"""Shared infrastructure: settings, logging, time helpers, hashing and stores."""
