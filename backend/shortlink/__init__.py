"""Admin backend for the Shortlink URL shortener."""
