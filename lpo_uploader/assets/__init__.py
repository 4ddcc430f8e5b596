"""File upload, response normalization and resolution."""
