"""In-process request events and their admin summary."""
