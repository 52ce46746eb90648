"""Services that write decoded events to the database."""
