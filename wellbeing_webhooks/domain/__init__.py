"""Domain models, provider payload schemas and the error taxonomy."""
