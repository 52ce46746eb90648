"""Database models, sessions and schema checks."""
