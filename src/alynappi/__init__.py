"""Retrieval-augmented chat assistant for the Nappi magazine archive."""
