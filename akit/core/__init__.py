"""Installation engine and its collaborators."""
