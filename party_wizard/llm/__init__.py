"""Model backends and recipe extraction collaborators."""
